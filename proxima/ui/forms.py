from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from proxima.security.permissions import Role
from proxima.services.dashboard import GATEWAY_NOT_CONFIGURED
from proxima.tickets.models import Profile, Session


@dataclass(frozen=True, slots=True)
class LoginViewModel:
    submit_disabled: bool
    notice: str | None = None


@dataclass(frozen=True, slots=True)
class AccountForm:
    name: str
    email: str
    password: str
    role: Role


def login_view_model(gateway_configured: bool) -> LoginViewModel:
    """Disable sign-in and explain why when the backend is not configured."""

    if gateway_configured:
        return LoginViewModel(submit_disabled=False)
    return LoginViewModel(submit_disabled=True, notice=GATEWAY_NOT_CONFIGURED)


def parse_account_form(name: str, email: str, password: str, role: str) -> AccountForm:
    """Validate the create-account modal input."""

    name = name.strip()
    email = email.strip()
    if not name:
        raise ValueError("Name is required")
    if "@" not in email:
        raise ValueError("A valid email address is required")
    if len(password) < 6:
        raise ValueError("Password must be at least 6 characters")
    try:
        parsed_role = Role(role)
    except ValueError as exc:
        raise ValueError(f"Unknown role: {role}") from exc
    return AccountForm(name=name, email=email, password=password, role=parsed_role)


def profile_initials(profile: Profile | None, session: Session | None) -> str:
    name = (profile.username if profile else "") or (session.email if session else "")
    return name[:1].upper() if name else "?"


def format_day(value: datetime) -> str:
    return value.astimezone().strftime("%x")


def format_timestamp(value: datetime) -> str:
    return value.astimezone().strftime("%x %H:%M")
