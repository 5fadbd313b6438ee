"""Pure projections over the cached tickets and notifications."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Sequence

from .models import Notification, Ticket
from .state import (
    ACTIVE_STATUSES,
    RESOLVED_STATUSES,
    UPCOMING_STATUSES,
    TicketCategory,
    TicketStatus,
)


class DateRange(str, Enum):
    ALL = "all"
    LAST_7_DAYS = "7days"
    LAST_30_DAYS = "30days"

    @property
    def days(self) -> int | None:
        return _RANGE_DAYS[self]


_RANGE_DAYS: dict[DateRange, int | None] = {
    DateRange.ALL: None,
    DateRange.LAST_7_DAYS: 7,
    DateRange.LAST_30_DAYS: 30,
}


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    PRIORITY = "priority"


@dataclass(frozen=True, slots=True)
class HistogramBucket:
    day: date
    label: str
    count: int


@dataclass(frozen=True, slots=True)
class DashboardStats:
    total: int
    resolved: int
    active: int
    upcoming: int
    histogram: tuple[HistogramBucket, ...]

    @property
    def completion_rate(self) -> int:
        """Resolved share of the total as a whole percentage."""

        if self.total == 0:
            return 0
        return round(self.resolved / self.total * 100)


@dataclass(frozen=True, slots=True)
class RegistryFilters:
    search_query: str = ""
    category: TicketCategory | None = None
    status: TicketStatus | None = None
    sort_order: SortOrder = SortOrder.NEWEST

    @property
    def is_filtered(self) -> bool:
        return bool(self.search_query.strip()) or self.category is not None or self.status is not None


def day_label(day: date) -> str:
    """Locale formatted calendar day used for chart buckets."""

    return day.strftime("%x")


def filter_by_range(tickets: Iterable[Ticket], date_range: DateRange, *, now: datetime | None = None) -> list[Ticket]:
    days = date_range.days
    if days is None:
        return list(tickets)
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    return [ticket for ticket in tickets if ticket.created_at >= cutoff]


def dashboard_stats(
    tickets: Sequence[Ticket],
    date_range: DateRange = DateRange.ALL,
    *,
    now: datetime | None = None,
) -> DashboardStats:
    """Aggregate counts and a per-day histogram for tickets inside ``date_range``."""

    selected = filter_by_range(tickets, date_range, now=now)
    per_day = Counter(ticket.created_at.astimezone().date() for ticket in selected)
    histogram = tuple(
        HistogramBucket(day=day, label=day_label(day), count=per_day[day]) for day in sorted(per_day)
    )
    return DashboardStats(
        total=len(selected),
        resolved=sum(1 for ticket in selected if ticket.status in RESOLVED_STATUSES),
        active=sum(1 for ticket in selected if ticket.status in ACTIVE_STATUSES),
        upcoming=sum(1 for ticket in selected if ticket.status in UPCOMING_STATUSES),
        histogram=histogram,
    )


def matches_search(ticket: Ticket, query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    return (
        needle in ticket.title.lower()
        or needle in str(ticket.id)
        or needle in ticket.description.lower()
    )


def project_registry(tickets: Sequence[Ticket], filters: RegistryFilters) -> list[Ticket]:
    """Return the filtered and sorted ticket list shown in the registry."""

    matched = [
        ticket
        for ticket in tickets
        if (filters.category is None or ticket.category == filters.category)
        and (filters.status is None or ticket.status == filters.status)
        and matches_search(ticket, filters.search_query)
    ]
    if filters.sort_order == SortOrder.OLDEST:
        return sorted(matched, key=lambda ticket: ticket.created_at)
    if filters.sort_order == SortOrder.PRIORITY:
        return sorted(matched, key=lambda ticket: ticket.priority.rank, reverse=True)
    return sorted(matched, key=lambda ticket: ticket.created_at, reverse=True)


def unread_count(notifications: Iterable[Notification]) -> int:
    return sum(1 for notification in notifications if not notification.is_read)
