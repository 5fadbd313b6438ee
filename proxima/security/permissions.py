"""Role to capability mapping used to gate dashboard affordances."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from proxima.tickets.models import Profile


class Role(str, Enum):
    """Supported staff roles."""

    HELPER = "Helper"
    ADMIN = "Admin"

    @classmethod
    def parse(cls, value: object) -> Role | None:
        """Map a stored role to a staff role; anything else is a non-staff profile."""

        try:
            return cls(str(value))
        except ValueError:
            return None


STAFF_ROLES: frozenset[Role] = frozenset({Role.HELPER, Role.ADMIN})


@dataclass(frozen=True, slots=True)
class Capabilities:
    """What the current profile may do in the UI."""

    can_manage_users: bool = False
    can_manage_tickets: bool = False
    can_delete_tickets: bool = False


NO_CAPABILITIES = Capabilities()


def is_staff(profile: Profile | None) -> bool:
    return profile is not None and profile.role in STAFF_ROLES


def capabilities_for(profile: Profile | None) -> Capabilities:
    """Return the capability set for ``profile``; no profile grants nothing."""

    if profile is None:
        return NO_CAPABILITIES
    is_admin = profile.role == Role.ADMIN
    return Capabilities(
        can_manage_users=is_admin,
        can_manage_tickets=is_staff(profile),
        can_delete_tickets=is_admin,
    )
