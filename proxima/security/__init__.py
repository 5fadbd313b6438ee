"""Permission policy for the ProximaGo dashboard."""

from .permissions import NO_CAPABILITIES, STAFF_ROLES, Capabilities, Role, capabilities_for, is_staff

__all__ = [
    "NO_CAPABILITIES",
    "STAFF_ROLES",
    "Capabilities",
    "Role",
    "capabilities_for",
    "is_staff",
]
