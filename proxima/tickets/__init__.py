"""Ticket domain records, enumerations and derived views."""

from .models import Comment, Notification, Profile, Session, Ticket, TicketDraft
from .state import TicketCategory, TicketPriority, TicketStatus, TicketType
from .views import DashboardStats, DateRange, RegistryFilters, SortOrder, dashboard_stats, project_registry

__all__ = [
    "Comment",
    "DashboardStats",
    "DateRange",
    "Notification",
    "Profile",
    "RegistryFilters",
    "Session",
    "SortOrder",
    "Ticket",
    "TicketCategory",
    "TicketDraft",
    "TicketPriority",
    "TicketStatus",
    "TicketType",
    "dashboard_stats",
    "project_registry",
]
