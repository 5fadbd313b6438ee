from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    UPCOMING = "Upcoming"
    PLANNED = "Planned"

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return cls.OPEN


class TicketType(str, Enum):
    INCIDENT = "Incident"
    OUTAGE = "Outage"
    BUG = "Bug"
    ISSUE = "Issue"
    FEATURE_REQUEST = "Feature Request"


class TicketPriority(str, Enum):
    """Ticket urgency; ``rank`` orders Critical above Low."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


class TicketCategory(str, Enum):
    GETTING_STARTED = "Getting Started"
    APPS = "Apps"
    ACCOUNT_SETTINGS = "Account Settings"
    BILLING = "Billing"
    INTERFACE = "Interface"
    TRUST_AND_SAFETY = "Trust & Safety"
    SERVER_SETUP = "Server Setup"


_PRIORITY_RANK: dict[TicketPriority, int] = {
    TicketPriority.LOW: 0,
    TicketPriority.MEDIUM: 1,
    TicketPriority.HIGH: 2,
    TicketPriority.CRITICAL: 3,
}

RESOLVED_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})
ACTIVE_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.OPEN, TicketStatus.IN_PROGRESS})
UPCOMING_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.UPCOMING, TicketStatus.PLANNED})
