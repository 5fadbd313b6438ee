"""Pure state transitions; every handler result is applied through one of these."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from proxima.tickets.models import Comment, Notification, Profile, Session, Ticket
from proxima.tickets.state import TicketCategory, TicketStatus
from proxima.tickets.views import DateRange, SortOrder

from .models import (
    ActiveOverlay,
    AppState,
    AuthPhase,
    CacheState,
    Modal,
    SessionState,
    Tab,
    UIEvent,
)


def _ui(state: AppState, **changes: object) -> AppState:
    return replace(state, ui=replace(state.ui, **changes))


def _cache(state: AppState, **changes: object) -> AppState:
    return replace(state, cache=replace(state.cache, **changes))


def _registry(state: AppState, **changes: object) -> AppState:
    registry = replace(state.filters.registry, **changes)
    return replace(state, filters=replace(state.filters, registry=registry))


# Session lifecycle
def loading(state: AppState) -> AppState:
    return replace(state, session=replace(state.session, phase=AuthPhase.LOADING))


def session_missing(state: AppState) -> AppState:
    return replace(state, session=SessionState(phase=AuthPhase.UNAUTHENTICATED))


def session_started(state: AppState, session: Session) -> AppState:
    return replace(
        state,
        session=SessionState(phase=AuthPhase.AUTHENTICATED, session=session),
        cache=CacheState(),
        ui=replace(state.ui, auth_error=None),
    )


def profile_loaded(state: AppState, profile: Profile | None) -> AppState:
    return replace(state, session=replace(state.session, profile=profile))


def tickets_loaded(state: AppState, tickets: Iterable[Ticket]) -> AppState:
    return _cache(state, tickets=tuple(tickets))


def notifications_loaded(state: AppState, notifications: Iterable[Notification]) -> AppState:
    return _cache(state, notifications=tuple(notifications))


def signed_out(state: AppState) -> AppState:
    """Drop identity, caches and transient UI; the view returns home."""

    return AppState(session=SessionState(phase=AuthPhase.UNAUTHENTICATED))


def auth_failed(state: AppState, message: str) -> AppState:
    return replace(state, session=SessionState(phase=AuthPhase.UNAUTHENTICATED), ui=replace(state.ui, auth_error=message))


# Navigation and overlays
def navigate(state: AppState, tab: Tab) -> AppState:
    if tab == Tab.DETAIL and state.ui.selected_ticket is None:
        tab = Tab.TICKETS
    return _ui(state, active_tab=tab, overlay=ActiveOverlay.NONE)


def open_ticket(state: AppState, ticket: Ticket) -> AppState:
    return _ui(state, selected_ticket=ticket, active_tab=Tab.DETAIL, overlay=ActiveOverlay.NONE)


def toggle_overlay(state: AppState, overlay: ActiveOverlay) -> AppState:
    current = state.ui.overlay
    return _ui(state, overlay=ActiveOverlay.NONE if current == overlay else overlay)


def close_overlay(state: AppState) -> AppState:
    if state.ui.overlay == ActiveOverlay.NONE:
        return state
    return _ui(state, overlay=ActiveOverlay.NONE)


def handle_event(state: AppState, event: UIEvent) -> AppState:
    """Close the open overlay for any event outside its menu and trigger."""

    if event.target == state.ui.overlay:
        return state
    return close_overlay(state)


def open_modal(state: AppState, modal: Modal) -> AppState:
    return _ui(state, modal=modal, overlay=ActiveOverlay.NONE)


def close_modal(state: AppState) -> AppState:
    return _ui(state, modal=Modal.NONE, delete_target=None)


def request_delete(state: AppState, ticket_id: int) -> AppState:
    return _ui(state, modal=Modal.DELETE_CONFIRMATION, delete_target=ticket_id, overlay=ActiveOverlay.NONE)


# Filters
def set_search_query(state: AppState, query: str) -> AppState:
    return close_overlay(_registry(state, search_query=query))


def set_category_filter(state: AppState, category: TicketCategory | None) -> AppState:
    return close_overlay(_registry(state, category=category))


def set_status_filter(state: AppState, status: TicketStatus | None) -> AppState:
    return close_overlay(_registry(state, status=status))


def set_sort_order(state: AppState, sort_order: SortOrder) -> AppState:
    return close_overlay(_registry(state, sort_order=sort_order))


def clear_filters(state: AppState) -> AppState:
    return _registry(state, search_query="", category=None, status=None)


def set_date_range(state: AppState, date_range: DateRange) -> AppState:
    return close_overlay(replace(state, filters=replace(state.filters, date_range=date_range)))


# Entity cache mutations, applied after the gateway confirmed the write
def ticket_created(state: AppState, ticket: Ticket) -> AppState:
    state = _cache(state, tickets=(ticket, *state.cache.tickets))
    return _ui(state, modal=Modal.NONE, active_tab=Tab.TICKETS)


def ticket_status_changed(state: AppState, ticket_id: int, status: TicketStatus) -> AppState:
    tickets = tuple(ticket.with_status(status) if ticket.id == ticket_id else ticket for ticket in state.cache.tickets)
    selected = state.ui.selected_ticket
    if selected is not None and selected.id == ticket_id:
        selected = selected.with_status(status)
    state = _cache(state, tickets=tickets)
    return _ui(state, selected_ticket=selected, overlay=ActiveOverlay.NONE)


def ticket_deleted(state: AppState, ticket_id: int) -> AppState:
    state = _cache(state, tickets=tuple(ticket for ticket in state.cache.tickets if ticket.id != ticket_id))
    ui = replace(state.ui, modal=Modal.NONE, delete_target=None)
    if ui.selected_ticket is not None and ui.selected_ticket.id == ticket_id:
        ui = replace(ui, selected_ticket=None, active_tab=Tab.TICKETS)
    return replace(state, ui=ui)


def comment_added(state: AppState, comment: Comment) -> AppState:
    tickets = tuple(
        ticket.with_comment(comment) if ticket.id == comment.ticket_id else ticket for ticket in state.cache.tickets
    )
    selected = state.ui.selected_ticket
    if selected is not None and selected.id == comment.ticket_id:
        selected = selected.with_comment(comment)
    return _ui(_cache(state, tickets=tickets), selected_ticket=selected)


def notification_read(state: AppState, notification_id: int) -> AppState:
    notifications = tuple(
        item.mark_read() if item.id == notification_id else item for item in state.cache.notifications
    )
    return _cache(state, notifications=notifications)


def notifications_cleared(state: AppState) -> AppState:
    return _cache(state, notifications=tuple(item.mark_read() for item in state.cache.notifications))


def profile_updated(state: AppState, profile: Profile) -> AppState:
    return profile_loaded(state, profile)


# Messages
def alert_raised(state: AppState, message: str) -> AppState:
    return _ui(state, alert=message)


def notice_raised(state: AppState, message: str) -> AppState:
    return _ui(state, notice=message)


def messages_dismissed(state: AppState) -> AppState:
    return _ui(state, alert=None, notice=None)
