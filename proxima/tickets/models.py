from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from proxima.security.permissions import Role

from .state import TicketCategory, TicketPriority, TicketStatus, TicketType


@dataclass(frozen=True, slots=True)
class Session:
    """Authenticated identity issued by the gateway."""

    access_token: str
    user_id: str
    email: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_auth_payload(cls, payload: Mapping[str, Any]) -> Session:
        user = payload.get("user") or {}
        expires_at = payload.get("expires_at")
        return cls(
            access_token=str(payload["access_token"]),
            user_id=str(user["id"]),
            email=str(user.get("email") or ""),
            refresh_token=payload.get("refresh_token"),
            expires_at=datetime.fromtimestamp(int(expires_at), tz=timezone.utc) if expires_at else None,
        )

    def is_expired(self, *, now: datetime | None = None, leeway: timedelta = timedelta(seconds=30)) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(timezone.utc)) + leeway


@dataclass(frozen=True, slots=True)
class Profile:
    """Staff profile row from the ``profiles`` table."""

    id: str
    username: str
    role: Role | None
    email_notifications: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Profile:
        preference = row.get("email_notifications")
        return cls(
            id=str(row["id"]),
            username=str(row.get("username") or ""),
            role=Role.parse(row.get("role")),
            email_notifications=True if preference is None else bool(preference),
        )


@dataclass(frozen=True, slots=True)
class Comment:
    """Reply appended to a ticket."""

    id: int
    ticket_id: int
    user_name: str
    text: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Comment:
        return cls(
            id=int(row["id"]),
            ticket_id=int(row["ticket_id"]),
            user_name=str(row.get("user_name") or "Unknown"),
            text=str(row.get("text") or ""),
            created_at=_ensure_datetime(row["created_at"]),
        )


@dataclass(frozen=True, slots=True)
class Ticket:
    """Ticket aggregate with its comment thread."""

    id: int
    title: str
    type: TicketType
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    description: str
    created_by: str | None
    created_at: datetime
    comments: tuple[Comment, ...] = field(default=())

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Ticket:
        comments = sorted(
            (Comment.from_row(item) for item in row.get("comments") or ()),
            key=lambda comment: (comment.created_at, comment.id),
        )
        created_by = row.get("created_by")
        return cls(
            id=int(row["id"]),
            title=str(row["title"]),
            type=TicketType(str(row["type"])),
            category=TicketCategory(str(row["category"])),
            priority=TicketPriority(str(row["priority"])),
            status=TicketStatus(str(row["status"])),
            description=str(row.get("description") or ""),
            created_by=None if created_by is None else str(created_by),
            created_at=_ensure_datetime(row["created_at"]),
            comments=tuple(comments),
        )

    def with_status(self, status: TicketStatus) -> Ticket:
        return replace(self, status=status)

    def with_comment(self, comment: Comment) -> Ticket:
        return replace(self, comments=(*self.comments, comment))


@dataclass(frozen=True, slots=True)
class Notification:
    """Per-user notification row."""

    id: int
    user_id: str
    ticket_id: int | None
    text: str
    is_read: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Notification:
        ticket_id = row.get("ticket_id")
        return cls(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            ticket_id=None if ticket_id is None else int(ticket_id),
            text=str(row.get("text") or ""),
            is_read=bool(row.get("is_read")),
            created_at=_ensure_datetime(row["created_at"]),
        )

    def mark_read(self) -> Notification:
        return replace(self, is_read=True)


@dataclass(slots=True)
class TicketDraft:
    """Fields a staff member fills in when opening a ticket."""

    title: str
    type: TicketType = TicketType.INCIDENT
    category: TicketCategory = TicketCategory.APPS
    priority: TicketPriority = TicketPriority.MEDIUM
    description: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TicketDraft:
        """Build a draft from raw form values; unknown keys such as ``status`` are ignored."""

        title = str(data.get("title") or "").strip()
        if not title:
            raise ValueError("Ticket title is required")
        return cls(
            title=title,
            type=TicketType(data.get("type") or TicketType.INCIDENT),
            category=TicketCategory(data.get("category") or TicketCategory.APPS),
            priority=TicketPriority(data.get("priority") or TicketPriority.MEDIUM),
            description=str(data.get("description") or "").strip(),
        )

    def to_row(self, *, created_by: str) -> dict[str, Any]:
        # status is not a draft field; new tickets always start Open
        return {
            "title": self.title,
            "type": self.type.value,
            "category": self.category.value,
            "priority": self.priority.value,
            "description": self.description,
            "created_by": created_by,
            "status": TicketStatus.initial_state().value,
        }


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
