from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine

import streamlit as st

from proxima.core.config import Settings, get_settings
from proxima.core.logging import configure_logging, init_tracer
from proxima.gateway.client import GatewayClient, SessionEvent
from proxima.security.permissions import Role
from proxima.services.dashboard import DashboardController
from proxima.state import transitions
from proxima.state.models import ActiveOverlay, AppState, AuthPhase, Modal, Tab, UIEvent
from proxima.tickets.models import Session, Ticket, TicketDraft
from proxima.tickets.state import TicketCategory, TicketPriority, TicketStatus, TicketType
from proxima.tickets.views import DateRange, SortOrder, dashboard_stats, project_registry, unread_count
from proxima.ui.forms import format_day, format_timestamp, login_view_model, parse_account_form, profile_initials

_STATE_KEY = "proxima_state"
_CONTROLLER_KEY = "proxima_controller"
_SESSION_KEY = "proxima_session"

_TAB_LABELS: dict[Tab, str] = {
    Tab.HOME: "Home",
    Tab.DASHBOARD: "Dashboard",
    Tab.TICKETS: "My Tickets",
    Tab.SETTINGS: "Settings",
}

_RANGE_LABELS: dict[DateRange, str] = {
    DateRange.ALL: "All time",
    DateRange.LAST_7_DAYS: "Last 7 days",
    DateRange.LAST_30_DAYS: "Last 30 days",
}

_SORT_LABELS: dict[SortOrder, str] = {
    SortOrder.NEWEST: "Newest first",
    SortOrder.OLDEST: "Oldest first",
    SortOrder.PRIORITY: "Priority",
}


@st.cache_resource
def _init_observability(_settings: Settings) -> None:
    configure_logging(_settings)
    init_tracer(_settings)


def _remember_session(event: SessionEvent, session: Session | None) -> None:
    if session is None:
        st.session_state.pop(_SESSION_KEY, None)
    else:
        st.session_state[_SESSION_KEY] = session


def _get_controller(settings: Settings) -> DashboardController:
    controller = st.session_state.get(_CONTROLLER_KEY)
    if isinstance(controller, DashboardController):
        return controller
    gateway = GatewayClient.from_settings(settings)
    saved = st.session_state.get(_SESSION_KEY)
    if isinstance(saved, Session) and gateway.configured:
        gateway.restore_session(saved)
    gateway.on_session_change(_remember_session)
    controller = DashboardController(gateway, notification_limit=settings.notification_limit)
    st.session_state[_CONTROLLER_KEY] = controller
    return controller


def _get_state() -> AppState:
    state = st.session_state.get(_STATE_KEY)
    if isinstance(state, AppState):
        return state
    state = AppState()
    st.session_state[_STATE_KEY] = state
    return state


def _set_state(state: AppState) -> None:
    st.session_state[_STATE_KEY] = state


def _run(coro: Coroutine[Any, Any, AppState]) -> AppState:
    return asyncio.run(coro)


def _apply(transition: Callable[..., AppState], *args: Any, target: ActiveOverlay = ActiveOverlay.NONE) -> None:
    """Button callback: close foreign overlays, then apply a pure transition."""

    state = transitions.handle_event(_get_state(), UIEvent(target))
    _set_state(transition(state, *args))


def _apply_async(
    handler: Callable[..., Coroutine[Any, Any, AppState]],
    *args: Any,
    target: ActiveOverlay = ActiveOverlay.NONE,
) -> None:
    """Button callback for handlers that talk to the gateway."""

    state = transitions.handle_event(_get_state(), UIEvent(target))
    _set_state(_run(handler(state, *args)))


def _submit(handler: Callable[..., Coroutine[Any, Any, AppState]], *args: Any, **kwargs: Any) -> None:
    """Form submit: treat the submit as an outside event, run the handler, rerun."""

    state = transitions.handle_event(_get_state(), UIEvent())
    _set_state(_run(handler(state, *args, **kwargs)))
    st.rerun()


def _render_login(controller: DashboardController, state: AppState) -> None:
    st.title("ProximaGo")
    st.caption("Sign in to your dashboard")

    view = login_view_model(controller.gateway.configured)
    if view.notice:
        st.warning(view.notice)
    if state.ui.auth_error:
        st.error(state.ui.auth_error)
    if state.ui.notice and state.ui.notice != view.notice:
        st.info(state.ui.notice)

    with st.form("login_form"):
        email = st.text_input("Email", placeholder="admin@proxima.com")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign In", disabled=view.submit_disabled)

    if submitted and not view.submit_disabled:
        _submit(controller.sign_in, email, password)

    st.caption("Internal System. Authorized Personnel Only.")


def _render_sidebar(state: AppState) -> None:
    st.sidebar.title("ProximaGo")
    current = Tab.TICKETS if state.ui.active_tab == Tab.DETAIL else state.ui.active_tab
    for tab, label in _TAB_LABELS.items():
        st.sidebar.button(
            label,
            key=f"nav_{tab.value}",
            type="primary" if tab == current else "secondary",
            use_container_width=True,
            on_click=_apply,
            args=(transitions.navigate, tab),
        )


def _render_header(controller: DashboardController, state: AppState) -> None:
    profile = state.session.profile
    unread = unread_count(state.cache.notifications)
    _, notif_col, user_col = st.columns([6, 1, 1])

    notif_col.button(
        f"🔔 {unread}" if unread else "🔔",
        key="trigger_notifications",
        on_click=_apply,
        args=(transitions.toggle_overlay, ActiveOverlay.NOTIFICATIONS),
        kwargs={"target": ActiveOverlay.NOTIFICATIONS},
    )
    user_col.button(
        profile_initials(profile, state.session.session),
        key="trigger_user",
        on_click=_apply,
        args=(transitions.toggle_overlay, ActiveOverlay.USER),
        kwargs={"target": ActiveOverlay.USER},
    )

    if state.ui.overlay == ActiveOverlay.NOTIFICATIONS:
        with st.container(border=True):
            st.markdown("**Notifications**")
            if unread:
                st.button(
                    "Clear All",
                    key="notifications_clear",
                    on_click=_apply_async,
                    args=(controller.clear_notifications,),
                    kwargs={"target": ActiveOverlay.NOTIFICATIONS},
                )
            if not state.cache.notifications:
                st.caption("No new updates.")
            for notification in state.cache.notifications:
                marker = "" if notification.is_read else "● "
                st.button(
                    f"{marker}{notification.text} · {format_timestamp(notification.created_at)}",
                    key=f"notification_{notification.id}",
                    on_click=_apply_async,
                    args=(controller.open_notification, notification.id),
                    kwargs={"target": ActiveOverlay.NOTIFICATIONS},
                )

    if state.ui.overlay == ActiveOverlay.USER:
        with st.container(border=True):
            st.markdown(f"**{profile.username if profile else state.session.session.email}**")
            st.caption(profile.role.value if profile and profile.role else "No staff role")
            st.button(
                "Sign out",
                key="sign_out",
                on_click=_apply_async,
                args=(controller.sign_out,),
                kwargs={"target": ActiveOverlay.USER},
            )


def _render_messages(state: AppState) -> None:
    if state.ui.alert:
        st.error(state.ui.alert)
    elif state.ui.notice:
        st.info(state.ui.notice)
    if state.ui.alert or state.ui.notice:
        st.button("Dismiss", key="dismiss_messages", on_click=_apply, args=(transitions.messages_dismissed,))


def _render_home(state: AppState) -> None:
    profile = state.session.profile
    st.header(f"Welcome back, {profile.username}" if profile and profile.username else "Welcome")
    if state.capabilities.can_manage_tickets:
        st.button("Create Ticket", key="home_create", on_click=_apply, args=(transitions.open_modal, Modal.CREATE_TICKET))
    else:
        st.caption("Your account has no staff role yet.")


def _render_dashboard(state: AppState) -> None:
    st.subheader("Dashboard")
    ranges = list(DateRange)
    selected = st.radio(
        "Date range",
        options=ranges,
        index=ranges.index(state.filters.date_range),
        format_func=lambda item: _RANGE_LABELS[item],
        horizontal=True,
    )
    if selected != state.filters.date_range:
        _apply(transitions.set_date_range, selected)
        st.rerun()

    stats = dashboard_stats(state.cache.tickets, state.filters.date_range)
    cols = st.columns(4)
    cols[0].metric("Total Tickets", stats.total)
    cols[1].metric("Resolved", stats.resolved)
    cols[1].caption(f"{stats.completion_rate}% completion rate")
    cols[2].metric("Active", stats.active)
    cols[3].metric("Upcoming", stats.upcoming)

    if stats.histogram:
        st.bar_chart(
            {"day": [bucket.label for bucket in stats.histogram], "tickets": [bucket.count for bucket in stats.histogram]},
            x="day",
            y="tickets",
        )
    else:
        st.caption("No tickets in this period")


def _render_menu(
    label: str,
    overlay: ActiveOverlay,
    state: AppState,
    options: list[Any],
    on_pick: Callable[[AppState, Any], AppState],
    current: Any,
    column: Any,
) -> None:
    column.button(
        label,
        key=f"trigger_{overlay.value}",
        on_click=_apply,
        args=(transitions.toggle_overlay, overlay),
        kwargs={"target": overlay},
    )
    if state.ui.overlay != overlay:
        return
    with column.container(border=True):
        for option in options:
            text = option.value if hasattr(option, "value") else str(option)
            st.button(
                f"✓ {text}" if option == current else text,
                key=f"{overlay.value}_{text}",
                on_click=_apply,
                args=(on_pick, option),
                kwargs={"target": overlay},
            )


def _render_tickets(controller: DashboardController, state: AppState) -> None:
    st.subheader("Tickets")
    filters = state.filters.registry

    query = st.text_input("Search", value=filters.search_query, placeholder="Title, #id or description")
    if query != filters.search_query:
        _apply(transitions.set_search_query, query)
        st.rerun()

    cat_col, status_col, sort_col, clear_col, refresh_col, create_col = st.columns(6)
    _render_menu(
        filters.category.value if filters.category else "Category",
        ActiveOverlay.FILTER_CATEGORY,
        state,
        list(TicketCategory),
        transitions.set_category_filter,
        filters.category,
        cat_col,
    )
    _render_menu(
        filters.status.value if filters.status else "Status",
        ActiveOverlay.FILTER_STATUS,
        state,
        list(TicketStatus),
        transitions.set_status_filter,
        filters.status,
        status_col,
    )
    _render_menu(
        _SORT_LABELS[filters.sort_order],
        ActiveOverlay.SORT,
        state,
        list(SortOrder),
        transitions.set_sort_order,
        filters.sort_order,
        sort_col,
    )
    if filters.is_filtered:
        clear_col.button("Clear", key="clear_filters", on_click=_apply, args=(transitions.clear_filters,))
    refresh_col.button("Refresh", key="refresh_tickets", on_click=_apply_async, args=(controller.refresh_tickets,))
    if state.capabilities.can_manage_tickets:
        create_col.button("New Ticket", key="tickets_create", on_click=_apply, args=(transitions.open_modal, Modal.CREATE_TICKET))

    visible = project_registry(state.cache.tickets, filters)
    if not visible:
        st.caption("No tickets found")
        return
    for ticket in visible:
        st.button(
            f"{ticket.title} · {ticket.status.value} · {ticket.type.value} · {ticket.priority.value} · {format_day(ticket.created_at)}",
            key=f"ticket_{ticket.id}",
            use_container_width=True,
            on_click=_apply,
            args=(transitions.open_ticket, ticket),
        )


def _render_detail(controller: DashboardController, state: AppState) -> None:
    ticket: Ticket | None = state.ui.selected_ticket
    if ticket is None:
        st.caption("Select a ticket to see its details")
        return
    capabilities = state.capabilities

    st.button("← Back to tickets", key="detail_back", on_click=_apply, args=(transitions.navigate, Tab.TICKETS))
    st.markdown(f"### {ticket.title} `#{ticket.id}`")
    st.caption(f"{ticket.status.value} · {ticket.priority.value} · {ticket.type.value} · {ticket.category.value}")

    if capabilities.can_manage_tickets:
        status_col, delete_col, _ = st.columns([2, 1, 4])
        _render_menu(
            "Update Status",
            ActiveOverlay.STATUS,
            state,
            list(TicketStatus),
            lambda current, status: _run(controller.change_status(current, ticket.id, status)),
            ticket.status,
            status_col,
        )
        if capabilities.can_delete_tickets:
            delete_col.button("Delete", key="detail_delete", on_click=_apply, args=(transitions.request_delete, ticket.id))

    st.markdown("#### Description")
    st.write(ticket.description or "—")

    st.markdown("#### Comments")
    if not ticket.comments:
        st.caption("No comments yet.")
    for comment in ticket.comments:
        st.markdown(f"**{comment.user_name}** ({format_timestamp(comment.created_at)}): {comment.text}")

    profile = state.session.profile
    with st.form("comment_form", clear_on_submit=True):
        text = st.text_area("Reply", placeholder=f"Reply as {profile.username if profile else 'Unknown'}...")
        submitted = st.form_submit_button("Send")
    if submitted:
        _submit(controller.add_comment, text)


def _render_settings(controller: DashboardController, state: AppState) -> None:
    st.subheader("Settings")
    profile = state.session.profile
    if profile is None:
        st.caption("No profile is linked to this account.")
    else:
        with st.form("settings_form"):
            username = st.text_input("Username", value=profile.username)
            email_notifications = st.toggle("Email Notifications", value=profile.email_notifications)
            submitted = st.form_submit_button("Save")
        if submitted:
            _submit(controller.update_profile, username=username, email_notifications=email_notifications)

    if state.capabilities.can_manage_users:
        st.markdown("#### Team")
        st.button("Create Account", key="settings_create_account", on_click=_apply, args=(transitions.open_modal, Modal.CREATE_ACCOUNT))


def _render_create_ticket(controller: DashboardController, state: AppState) -> None:
    with st.container(border=True):
        st.markdown("### New Ticket")
        with st.form("create_ticket_form"):
            title = st.text_input("Title")
            type_ = st.selectbox("Type", options=[item.value for item in TicketType])
            category = st.selectbox("Category", options=[item.value for item in TicketCategory], index=1)
            priority = st.selectbox("Priority", options=[item.value for item in TicketPriority], index=1)
            description = st.text_area("Description")
            submitted = st.form_submit_button("Create Ticket")
        st.button("Cancel", key="create_ticket_cancel", on_click=_apply, args=(transitions.close_modal,))

    if submitted:
        try:
            draft = TicketDraft.from_mapping(
                {"title": title, "type": type_, "category": category, "priority": priority, "description": description}
            )
        except ValueError as exc:
            st.error(str(exc))
            return
        _submit(controller.create_ticket, draft)


def _render_create_account(controller: DashboardController, state: AppState) -> None:
    with st.container(border=True):
        st.markdown("### Create Account")
        st.caption("The new account becomes the active session once it is created.")
        with st.form("create_account_form"):
            name = st.text_input("Name")
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            role = st.selectbox("Role", options=[role.value for role in Role])
            submitted = st.form_submit_button("Create Account")
        st.button("Cancel", key="create_account_cancel", on_click=_apply, args=(transitions.close_modal,))

    if submitted:
        try:
            form = parse_account_form(name, email, password, role)
        except ValueError as exc:
            st.error(str(exc))
            return
        _submit(controller.create_account, name=form.name, email=form.email, password=form.password, role=form.role)


def _render_delete_confirmation(controller: DashboardController, state: AppState) -> None:
    with st.container(border=True):
        st.markdown(f"### Delete ticket #{state.ui.delete_target}?")
        st.caption("This action cannot be undone.")
        confirm_col, cancel_col = st.columns(2)
        confirm_col.button("Delete", key="delete_confirm", type="primary", on_click=_apply_async, args=(controller.confirm_delete,))
        cancel_col.button("Cancel", key="delete_cancel", on_click=_apply, args=(transitions.close_modal,))


def main() -> None:
    settings = get_settings()
    st.set_page_config(page_title=settings.app_name, layout="wide")
    _init_observability(settings)

    controller = _get_controller(settings)
    state = _get_state()
    if state.session.phase == AuthPhase.LOADING:
        with st.spinner("Loading..."):
            state = _run(controller.bootstrap(state))
        _set_state(state)
    elif controller.session_diverged(state):
        state = _run(controller.sync_session(state))
        _set_state(state)

    if state.session.phase != AuthPhase.AUTHENTICATED:
        _render_login(controller, state)
        return

    _render_sidebar(state)
    _render_header(controller, state)
    _render_messages(state)

    modal_renderers: dict[Modal, Callable[[DashboardController, AppState], None]] = {
        Modal.CREATE_TICKET: _render_create_ticket,
        Modal.CREATE_ACCOUNT: _render_create_account,
        Modal.DELETE_CONFIRMATION: _render_delete_confirmation,
    }
    if state.ui.modal in modal_renderers:
        modal_renderers[state.ui.modal](controller, state)

    tab = state.ui.active_tab
    if tab == Tab.HOME:
        _render_home(state)
    elif tab == Tab.DASHBOARD:
        _render_dashboard(state)
    elif tab == Tab.TICKETS:
        _render_tickets(controller, state)
    elif tab == Tab.DETAIL:
        _render_detail(controller, state)
    elif tab == Tab.SETTINGS:
        _render_settings(controller, state)


if __name__ == "__main__":
    main()
