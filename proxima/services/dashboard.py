from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Iterable, Iterator, Mapping

from proxima.gateway.client import GatewayClient, GatewayError
from proxima.security.permissions import Role
from proxima.state import transitions
from proxima.state.models import AppState, AuthPhase
from proxima.tickets.models import Comment, Notification, Profile, Session, Ticket, TicketDraft
from proxima.tickets.state import TicketStatus

logger = logging.getLogger(__name__)

GATEWAY_NOT_CONFIGURED = (
    "Sign-in is unavailable because the backend connection is not configured. "
    "Set PROXIMA_GATEWAY_URL and PROXIMA_GATEWAY_KEY and restart the dashboard."
)

_TICKET_COLUMNS = "*,comments(*)"
_MALFORMED_ROW = (KeyError, TypeError, ValueError)


class DashboardError(RuntimeError):
    """Base error for dashboard handler failures."""


class FetchError(DashboardError):
    """Reading from the gateway failed; the cache keeps its previous content."""


class MutationError(DashboardError):
    """An insert, update or delete was rejected or failed."""


class PermissionDeniedError(DashboardError):
    """The current profile lacks the capability for the requested action."""


@contextmanager
def _translate(error_cls: type[DashboardError], action: str) -> Iterator[None]:
    try:
        yield
    except GatewayError as exc:
        raise error_cls(f"Could not {action}: {exc}") from exc
    except _MALFORMED_ROW as exc:
        raise error_cls(f"Could not {action}: unexpected row from the backend ({exc!r})") from exc


def _parse_tickets(rows: Iterable[Mapping[str, Any]]) -> list[Ticket]:
    tickets: list[Ticket] = []
    for row in rows:
        try:
            tickets.append(Ticket.from_row(row))
        except _MALFORMED_ROW as exc:
            logger.warning("Skipping unreadable ticket row %r: %r", row.get("id"), exc)
    return tickets


class DashboardController:
    """Handlers turning user intents into gateway calls and state transitions.

    Every public coroutine takes the current :class:`AppState` and returns the next
    one. Cache entries change only after the gateway confirmed the write. Failed
    writes raise a blocking alert, failed reads a non-blocking notice.
    """

    def __init__(self, gateway: GatewayClient, *, notification_limit: int = 20) -> None:
        self._gateway = gateway
        self._notification_limit = notification_limit

    @property
    def gateway(self) -> GatewayClient:
        return self._gateway

    # Reads
    async def fetch_profile(self, user_id: str) -> Profile | None:
        with _translate(FetchError, "load profile"):
            row = await self._gateway.table("profiles").select("*").eq("id", user_id).single().execute()
            return Profile.from_row(row) if row else None

    async def fetch_tickets(self) -> list[Ticket]:
        with _translate(FetchError, "load tickets"):
            rows = await (
                self._gateway.table("tickets")
                .select(_TICKET_COLUMNS)
                .order("created_at", descending=True)
                .order("created_at", foreign_table="comments")
                .execute()
            )
        return _parse_tickets(rows or [])

    async def fetch_ticket(self, ticket_id: int) -> Ticket | None:
        with _translate(FetchError, f"load ticket #{ticket_id}"):
            row = await self._gateway.table("tickets").select(_TICKET_COLUMNS).eq("id", ticket_id).single().execute()
            return Ticket.from_row(row) if row else None

    async def fetch_notifications(self, user_id: str) -> list[Notification]:
        with _translate(FetchError, "load notifications"):
            rows = await (
                self._gateway.table("notifications")
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", descending=True)
                .limit(self._notification_limit)
                .execute()
            )
            return [Notification.from_row(row) for row in rows or []]

    # Session lifecycle
    async def bootstrap(self, state: AppState) -> AppState:
        """Resolve the initial ``LOADING`` phase from the gateway's session."""

        state = transitions.loading(state)
        session = self._gateway.current_session() if self._gateway.configured else None
        if session is None:
            return transitions.session_missing(state)
        return await self.enter_session(state, session)

    def session_diverged(self, state: AppState) -> bool:
        """True when the gateway dropped or replaced the identity ``state`` was built for."""

        if state.session.phase != AuthPhase.AUTHENTICATED:
            return False
        current = self._gateway.current_session()
        return current is None or current.user_id != state.session.user_id

    async def sync_session(self, state: AppState) -> AppState:
        if not self.session_diverged(state):
            return state
        return await self.handle_session_change(state, self._gateway.current_session())

    async def handle_session_change(self, state: AppState, session: Session | None) -> AppState:
        if session is None:
            logger.info("Gateway session ended, returning to sign-in")
            return transitions.notice_raised(transitions.signed_out(state), "Your session has ended. Please sign in again.")
        return await self.enter_session(state, session)

    async def enter_session(self, state: AppState, session: Session) -> AppState:
        """Load profile, tickets and notifications concurrently for ``session``."""

        state = transitions.session_started(state, session)
        profile, tickets, notifications = await asyncio.gather(
            self.fetch_profile(session.user_id),
            self.fetch_tickets(),
            self.fetch_notifications(session.user_id),
            return_exceptions=True,
        )

        failures: list[str] = []
        for result, apply in (
            (profile, transitions.profile_loaded),
            (tickets, transitions.tickets_loaded),
            (notifications, transitions.notifications_loaded),
        ):
            if isinstance(result, FetchError):
                logger.warning("%s", result)
                failures.append(str(result))
            elif isinstance(result, BaseException):
                raise result
            else:
                state = apply(state, result)

        logger.info("Session ready for %s (%d tickets)", session.email, len(state.cache.tickets))
        if failures:
            state = transitions.notice_raised(state, " ".join(failures))
        return state

    async def sign_in(self, state: AppState, email: str, password: str) -> AppState:
        if not self._gateway.configured:
            return transitions.notice_raised(transitions.session_missing(state), GATEWAY_NOT_CONFIGURED)
        try:
            session = await self._gateway.sign_in(email.strip(), password)
        except GatewayError as exc:
            logger.info("Sign-in rejected for %s: %s", email, exc)
            return transitions.auth_failed(state, str(exc))
        return await self.enter_session(state, session)

    async def sign_out(self, state: AppState) -> AppState:
        await self._gateway.sign_out()
        return transitions.signed_out(state)

    async def create_account(self, state: AppState, *, name: str, email: str, password: str, role: Role) -> AppState:
        """Register a staff account; the gateway switches to it when it issues a session."""

        try:
            self._require(state.capabilities.can_manage_users, "create accounts")
            session = await self._gateway.sign_up(email.strip(), password, {"name": name, "username": name, "role": role.value})
        except PermissionDeniedError as exc:
            return transitions.alert_raised(state, str(exc))
        except GatewayError as exc:
            logger.error("Account creation for %s failed: %s", email, exc)
            return transitions.alert_raised(state, f"Error: {exc}")

        state = transitions.close_modal(state)
        if session is None:
            return transitions.notice_raised(state, f"Account created for {name}.")
        logger.info("Switched to newly created account %s", session.email)
        state = await self.enter_session(transitions.signed_out(state), session)
        return transitions.notice_raised(
            state, f"Account created for {name}. NOTE: You have been switched to this new account."
        )

    async def update_profile(self, state: AppState, *, username: str, email_notifications: bool) -> AppState:
        profile = state.session.profile
        if profile is None:
            return state
        patch = {"username": username.strip() or profile.username, "email_notifications": email_notifications}
        try:
            with _translate(MutationError, "update profile"):
                rows = await self._gateway.table("profiles").update(patch).eq("id", profile.id).execute()
                updated = Profile.from_row(rows[0]) if rows else replace(profile, **patch)
        except MutationError as exc:
            logger.error("%s", exc)
            return transitions.alert_raised(state, str(exc))
        return transitions.notice_raised(transitions.profile_updated(state, updated), "Settings saved.")

    # Tickets
    async def create_ticket(self, state: AppState, draft: TicketDraft) -> AppState:
        user_id = state.session.user_id
        try:
            self._require(state.capabilities.can_manage_tickets and user_id is not None, "create tickets")
            with _translate(MutationError, "create ticket"):
                rows = await self._gateway.table("tickets").insert(draft.to_row(created_by=user_id)).execute()
                if not rows:
                    raise MutationError("Could not create ticket: the backend returned no row")
                ticket = Ticket.from_row(rows[0])
        except DashboardError as exc:
            logger.error("%s", exc)
            return transitions.alert_raised(state, str(exc))

        logger.info("Ticket #%s created by %s", ticket.id, user_id)
        state = transitions.ticket_created(state, ticket)

        await self._fan_out(ticket)
        return await self.refresh_notifications(state)

    async def _fan_out(self, ticket: Ticket) -> None:
        try:
            profile_rows = await self._gateway.table("profiles").select("id").execute()
            if not profile_rows:
                return
            await self._gateway.table("notifications").insert(
                [
                    {"user_id": row["id"], "ticket_id": ticket.id, "text": f"New Ticket: {ticket.title}", "is_read": False}
                    for row in profile_rows
                ]
            ).execute()
        except GatewayError as exc:
            logger.warning("Notification fan-out for ticket #%s failed: %s", ticket.id, exc)

    async def refresh_notifications(self, state: AppState) -> AppState:
        user_id = state.session.user_id
        if user_id is None:
            return state
        try:
            notifications = await self.fetch_notifications(user_id)
        except FetchError as exc:
            logger.warning("%s", exc)
            return transitions.notice_raised(state, str(exc))
        return transitions.notifications_loaded(state, notifications)

    async def refresh_tickets(self, state: AppState) -> AppState:
        if state.session.phase != AuthPhase.AUTHENTICATED:
            return state
        try:
            tickets = await self.fetch_tickets()
        except FetchError as exc:
            logger.warning("%s", exc)
            return transitions.notice_raised(state, str(exc))
        return transitions.tickets_loaded(state, tickets)

    async def change_status(self, state: AppState, ticket_id: int, status: TicketStatus) -> AppState:
        try:
            self._require(state.capabilities.can_manage_tickets, "update ticket status")
            with _translate(MutationError, f"update ticket #{ticket_id}"):
                await self._gateway.table("tickets").update({"status": status.value}).eq("id", ticket_id).execute()
        except DashboardError as exc:
            logger.error("%s", exc)
            return transitions.alert_raised(state, str(exc))
        logger.info("Ticket #%s moved to %s", ticket_id, status.value)
        return transitions.ticket_status_changed(state, ticket_id, status)

    async def confirm_delete(self, state: AppState) -> AppState:
        ticket_id = state.ui.delete_target
        if ticket_id is None:
            return state
        try:
            self._require(state.capabilities.can_delete_tickets, "delete tickets")
            with _translate(MutationError, f"delete ticket #{ticket_id}"):
                await self._gateway.table("tickets").delete().eq("id", ticket_id).execute()
        except DashboardError as exc:
            logger.error("%s", exc)
            return transitions.alert_raised(state, str(exc))
        logger.info("Ticket #%s deleted", ticket_id)
        return transitions.ticket_deleted(state, ticket_id)

    async def add_comment(self, state: AppState, text: str) -> AppState:
        ticket = state.ui.selected_ticket
        if ticket is None or not text.strip():
            return state
        profile = state.session.profile
        row = {"ticket_id": ticket.id, "user_name": profile.username if profile and profile.username else "Unknown", "text": text}
        try:
            with _translate(MutationError, "post reply"):
                rows = await self._gateway.table("comments").insert(row).execute()
                if not rows:
                    raise MutationError("Could not post reply: the backend returned no row")
                comment = Comment.from_row(rows[0])
        except MutationError as exc:
            logger.error("%s", exc)
            return transitions.alert_raised(state, str(exc))
        return transitions.comment_added(state, comment)

    # Notifications
    async def open_notification(self, state: AppState, notification_id: int) -> AppState:
        """Mark a notification read and open the ticket it references."""

        notification = next((item for item in state.cache.notifications if item.id == notification_id), None)
        if notification is None:
            return transitions.close_overlay(state)

        if not notification.is_read:
            try:
                with _translate(MutationError, "mark notification read"):
                    await self._gateway.table("notifications").update({"is_read": True}).eq("id", notification.id).execute()
            except MutationError as exc:
                logger.error("%s", exc)
                return transitions.alert_raised(state, str(exc))
            state = transitions.notification_read(state, notification.id)

        state = transitions.close_overlay(state)
        if notification.ticket_id is None:
            return state

        ticket = state.cache.find_ticket(notification.ticket_id)
        if ticket is None:
            try:
                ticket = await self.fetch_ticket(notification.ticket_id)
            except FetchError as exc:
                logger.warning("%s", exc)
                return transitions.notice_raised(state, str(exc))
        if ticket is None:
            return transitions.notice_raised(state, f"Ticket #{notification.ticket_id} no longer exists.")
        return transitions.open_ticket(state, ticket)

    async def clear_notifications(self, state: AppState) -> AppState:
        user_id = state.session.user_id
        if user_id is None:
            return state
        try:
            with _translate(MutationError, "clear notifications"):
                await (
                    self._gateway.table("notifications")
                    .update({"is_read": True})
                    .eq("user_id", user_id)
                    .eq("is_read", False)
                    .execute()
                )
        except MutationError as exc:
            logger.error("%s", exc)
            return transitions.alert_raised(state, str(exc))
        return transitions.notifications_cleared(state)

    @staticmethod
    def _require(allowed: bool, action: str) -> None:
        if not allowed:
            raise PermissionDeniedError(f"You are not allowed to {action}")
