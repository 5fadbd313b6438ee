from datetime import datetime, timezone

import pytest

from proxima.state import transitions
from proxima.state.models import ActiveOverlay, AppState, AuthPhase, CacheState, Modal, SessionState, Tab, UIEvent
from proxima.tickets.models import Comment, Notification, Session
from proxima.tickets.state import TicketCategory, TicketStatus
from proxima.tickets.views import DateRange


def _authenticated(**cache) -> AppState:
    session = Session(access_token="t", user_id="user-1", email="amy@proxima.com")
    return AppState(session=SessionState(phase=AuthPhase.AUTHENTICATED, session=session), cache=CacheState(**cache))


def _notification(notification_id: int, *, is_read: bool = False) -> Notification:
    return Notification(
        id=notification_id,
        user_id="user-1",
        ticket_id=None,
        text=f"n{notification_id}",
        is_read=is_read,
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def test_initial_state_is_loading_on_home():
    state = AppState()
    assert state.session.phase == AuthPhase.LOADING
    assert state.ui.active_tab == Tab.HOME
    assert state.ui.overlay == ActiveOverlay.NONE


def test_only_one_overlay_is_open_at_a_time():
    state = transitions.toggle_overlay(AppState(), ActiveOverlay.NOTIFICATIONS)
    state = transitions.toggle_overlay(state, ActiveOverlay.USER)
    assert state.ui.overlay == ActiveOverlay.USER

    state = transitions.toggle_overlay(state, ActiveOverlay.USER)
    assert state.ui.overlay == ActiveOverlay.NONE


def test_outside_event_closes_overlay_but_own_region_keeps_it():
    state = transitions.toggle_overlay(AppState(), ActiveOverlay.SORT)

    assert transitions.handle_event(state, UIEvent(ActiveOverlay.SORT)).ui.overlay == ActiveOverlay.SORT
    assert transitions.handle_event(state, UIEvent()).ui.overlay == ActiveOverlay.NONE
    assert transitions.handle_event(state, UIEvent(ActiveOverlay.USER)).ui.overlay == ActiveOverlay.NONE


@pytest.mark.parametrize(
    "overlay", [ActiveOverlay.FILTER_CATEGORY, ActiveOverlay.SORT, ActiveOverlay.NOTIFICATIONS]
)
def test_typing_a_search_closes_the_open_menu(overlay):
    state = transitions.toggle_overlay(AppState(), overlay)

    state = transitions.set_search_query(transitions.handle_event(state, UIEvent()), "vpn")

    assert state.ui.overlay == ActiveOverlay.NONE
    assert state.filters.registry.search_query == "vpn"


def test_changing_date_range_closes_the_open_menu():
    state = transitions.toggle_overlay(AppState(), ActiveOverlay.USER)

    state = transitions.set_date_range(state, DateRange.LAST_7_DAYS)

    assert state.ui.overlay == ActiveOverlay.NONE
    assert state.filters.date_range == DateRange.LAST_7_DAYS

def test_overlays_do_not_change_active_tab():
    state = transitions.navigate(AppState(), Tab.DASHBOARD)
    state = transitions.toggle_overlay(state, ActiveOverlay.NOTIFICATIONS)
    state = transitions.open_modal(state, Modal.CREATE_TICKET)
    assert state.ui.active_tab == Tab.DASHBOARD


def test_navigate_to_detail_without_ticket_falls_back_to_list():
    assert transitions.navigate(AppState(), Tab.DETAIL).ui.active_tab == Tab.TICKETS


def test_ticket_created_is_prepended_and_switches_to_tickets(make_ticket):
    older = make_ticket()
    state = transitions.open_modal(_authenticated(tickets=(older,)), Modal.CREATE_TICKET)
    created = make_ticket(title="VPN down")

    state = transitions.ticket_created(state, created)

    assert state.cache.tickets == (created, older)
    assert state.ui.modal == Modal.NONE
    assert state.ui.active_tab == Tab.TICKETS


def test_status_change_patches_cache_and_detail_copy(make_ticket):
    ticket = make_ticket()
    state = transitions.open_ticket(_authenticated(tickets=(ticket,)), ticket)
    state = transitions.toggle_overlay(state, ActiveOverlay.STATUS)

    state = transitions.ticket_status_changed(state, ticket.id, TicketStatus.RESOLVED)

    assert state.cache.tickets[0].status == TicketStatus.RESOLVED
    assert state.ui.selected_ticket.status == TicketStatus.RESOLVED
    assert state.ui.overlay == ActiveOverlay.NONE


def test_deleting_open_ticket_returns_to_list(make_ticket):
    doomed, kept = make_ticket(), make_ticket()
    state = transitions.open_ticket(_authenticated(tickets=(doomed, kept)), doomed)
    state = transitions.request_delete(state, doomed.id)

    state = transitions.ticket_deleted(state, doomed.id)

    assert state.cache.tickets == (kept,)
    assert state.ui.selected_ticket is None
    assert state.ui.active_tab == Tab.TICKETS
    assert state.ui.modal == Modal.NONE
    assert state.ui.delete_target is None


def test_deleting_other_ticket_keeps_detail_open(make_ticket):
    shown, other = make_ticket(), make_ticket()
    state = transitions.open_ticket(_authenticated(tickets=(shown, other)), shown)

    state = transitions.ticket_deleted(state, other.id)

    assert state.ui.active_tab == Tab.DETAIL
    assert state.ui.selected_ticket == shown


def test_comment_is_appended_to_cache_and_detail(make_ticket):
    ticket = make_ticket()
    state = transitions.open_ticket(_authenticated(tickets=(ticket,)), ticket)
    comment = Comment(id=5, ticket_id=ticket.id, user_name="amy", text="on it", created_at=datetime.now(timezone.utc))

    state = transitions.comment_added(state, comment)

    assert state.cache.tickets[0].comments == (comment,)
    assert state.ui.selected_ticket.comments == (comment,)


def test_marking_one_notification_read_leaves_others():
    state = _authenticated(notifications=(_notification(1), _notification(2)))

    state = transitions.notification_read(state, 1)

    assert [item.is_read for item in state.cache.notifications] == [True, False]


def test_clearing_notifications_marks_all_read():
    state = _authenticated(notifications=(_notification(1), _notification(2, is_read=True), _notification(3)))

    state = transitions.notifications_cleared(state)

    assert all(item.is_read for item in state.cache.notifications)


def test_filters_close_their_menu_and_clear_resets(make_ticket):
    state = transitions.toggle_overlay(AppState(), ActiveOverlay.FILTER_CATEGORY)
    state = transitions.set_category_filter(state, TicketCategory.BILLING)
    state = transitions.set_search_query(state, "vpn")

    assert state.ui.overlay == ActiveOverlay.NONE
    assert state.filters.registry.category == TicketCategory.BILLING
    assert state.filters.registry.is_filtered

    state = transitions.clear_filters(state)
    assert not state.filters.registry.is_filtered


def test_sign_out_clears_everything_and_returns_home(make_ticket):
    ticket = make_ticket()
    state = transitions.open_ticket(_authenticated(tickets=(ticket,), notifications=(_notification(1),)), ticket)

    state = transitions.signed_out(state)

    assert state.session.phase == AuthPhase.UNAUTHENTICATED
    assert state.session.profile is None
    assert state.cache.tickets == ()
    assert state.cache.notifications == ()
    assert state.ui.active_tab == Tab.HOME
