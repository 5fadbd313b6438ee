"""Application state for one dashboard session, split into named sub-records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from proxima.security.permissions import Capabilities, capabilities_for
from proxima.tickets.models import Notification, Profile, Session, Ticket
from proxima.tickets.views import DateRange, RegistryFilters


class AuthPhase(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class Tab(str, Enum):
    HOME = "home"
    DASHBOARD = "dashboard"
    TICKETS = "tickets"
    DETAIL = "detail"
    SETTINGS = "settings"


class ActiveOverlay(str, Enum):
    """Dropdown menus; at most one is open at a time."""

    NONE = "none"
    FILTER_CATEGORY = "filter-category"
    FILTER_STATUS = "filter-status"
    SORT = "sort"
    STATUS = "status"
    NOTIFICATIONS = "notifications"
    USER = "user"


class Modal(str, Enum):
    NONE = "none"
    CREATE_TICKET = "create-ticket"
    CREATE_ACCOUNT = "create-account"
    DELETE_CONFIRMATION = "delete-confirmation"


@dataclass(frozen=True, slots=True)
class SessionState:
    phase: AuthPhase = AuthPhase.LOADING
    session: Session | None = None
    profile: Profile | None = None

    @property
    def capabilities(self) -> Capabilities:
        return capabilities_for(self.profile)

    @property
    def user_id(self) -> str | None:
        return self.session.user_id if self.session else None


@dataclass(frozen=True, slots=True)
class CacheState:
    tickets: tuple[Ticket, ...] = ()
    notifications: tuple[Notification, ...] = ()

    def find_ticket(self, ticket_id: int) -> Ticket | None:
        return next((ticket for ticket in self.tickets if ticket.id == ticket_id), None)


@dataclass(frozen=True, slots=True)
class FilterState:
    registry: RegistryFilters = field(default_factory=RegistryFilters)
    date_range: DateRange = DateRange.ALL


@dataclass(frozen=True, slots=True)
class UIState:
    active_tab: Tab = Tab.HOME
    overlay: ActiveOverlay = ActiveOverlay.NONE
    modal: Modal = Modal.NONE
    selected_ticket: Ticket | None = None
    delete_target: int | None = None
    auth_error: str | None = None
    # blocking message for failed writes
    alert: str | None = None
    # non-blocking message for failed reads and confirmations
    notice: str | None = None


@dataclass(frozen=True, slots=True)
class UIEvent:
    """A user interaction; ``target`` is the overlay whose menu or trigger it hit."""

    target: ActiveOverlay = ActiveOverlay.NONE


@dataclass(frozen=True, slots=True)
class AppState:
    session: SessionState = field(default_factory=SessionState)
    cache: CacheState = field(default_factory=CacheState)
    filters: FilterState = field(default_factory=FilterState)
    ui: UIState = field(default_factory=UIState)

    @property
    def capabilities(self) -> Capabilities:
        return self.session.capabilities
