from datetime import datetime, timezone

import pytest

from proxima.tickets.models import Comment, Notification, Profile, Session, Ticket, TicketDraft
from proxima.tickets.state import TicketCategory, TicketPriority, TicketStatus, TicketType


def _ticket_row(**overrides):
    row = {
        "id": 7,
        "title": "VPN down",
        "type": "Outage",
        "category": "Server Setup",
        "priority": "Critical",
        "status": "Open",
        "description": "Nobody can connect",
        "created_by": "user-1",
        "created_at": "2024-05-01T10:00:00.123456+00:00",
    }
    row.update(overrides)
    return row


def test_ticket_from_row_parses_enums_and_orders_comments():
    row = _ticket_row(
        comments=[
            {"id": 2, "ticket_id": 7, "user_name": "bob", "text": "second", "created_at": "2024-05-01T11:00:00Z"},
            {"id": 1, "ticket_id": 7, "user_name": "amy", "text": "first", "created_at": "2024-05-01T10:30:00Z"},
        ]
    )

    ticket = Ticket.from_row(row)

    assert ticket.type == TicketType.OUTAGE
    assert ticket.category == TicketCategory.SERVER_SETUP
    assert ticket.priority == TicketPriority.CRITICAL
    assert ticket.status == TicketStatus.OPEN
    assert ticket.created_at.tzinfo is not None
    assert [comment.text for comment in ticket.comments] == ["first", "second"]


def test_ticket_from_row_rejects_unknown_status():
    with pytest.raises(ValueError):
        Ticket.from_row(_ticket_row(status="Escalated"))


def test_naive_timestamps_are_treated_as_utc():
    ticket = Ticket.from_row(_ticket_row(created_at="2024-05-01T10:00:00"))
    assert ticket.created_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_with_comment_appends_without_touching_original(make_ticket):
    ticket = make_ticket()
    comment_row = {"id": 99, "ticket_id": ticket.id, "user_name": "amy", "text": "hi", "created_at": "2024-05-02T10:00:00Z"}
    updated = ticket.with_comment(Comment.from_row(comment_row))
    assert ticket.comments == ()
    assert updated.comments[-1].id == 99


def test_draft_ignores_requested_status_and_forces_open():
    draft = TicketDraft.from_mapping(
        {
            "title": "  VPN down ",
            "type": "Outage",
            "category": "Server Setup",
            "priority": "Critical",
            "description": "...",
            "status": "Closed",
        }
    )

    row = draft.to_row(created_by="user-1")

    assert row["title"] == "VPN down"
    assert row["status"] == "Open"
    assert row["created_by"] == "user-1"


def test_draft_requires_title():
    with pytest.raises(ValueError):
        TicketDraft.from_mapping({"title": "   "})


def test_profile_defaults_email_notifications_when_column_missing():
    profile = Profile.from_row({"id": "user-1", "username": "amy", "role": "Helper"})
    assert profile.email_notifications is True


def test_notification_mark_read_returns_copy():
    notification = Notification.from_row(
        {"id": 1, "user_id": "user-1", "ticket_id": None, "text": "hello", "is_read": False, "created_at": "2024-05-01T10:00:00Z"}
    )
    read = notification.mark_read()
    assert read.is_read
    assert not notification.is_read
    assert read.ticket_id is None


def test_session_from_auth_payload():
    session = Session.from_auth_payload(
        {
            "access_token": "abc",
            "refresh_token": "def",
            "expires_at": 1900000000,
            "user": {"id": "user-1", "email": "amy@proxima.com"},
        }
    )
    assert session.user_id == "user-1"
    assert session.email == "amy@proxima.com"
    assert session.expires_at is not None and session.expires_at.tzinfo is timezone.utc
