"""Async client for the hosted auth (GoTrue) and table (PostgREST) APIs."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

import httpx
from opentelemetry import trace

from proxima.core.config import Settings
from proxima.tickets.models import Session

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)


class GatewayError(RuntimeError):
    """Raised when the backend rejects or fails a request."""

    def __init__(self, message: str, *, status_code: int | None = None, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    def __str__(self) -> str:
        prefix = f"[{self.status_code}] " if self.status_code is not None else ""
        return f"{prefix}{super().__str__()}"


class AuthError(GatewayError):
    """Credentials were rejected by the auth API."""


class GatewayConfigError(GatewayError):
    """The gateway URL or public key is missing."""


class SessionEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    RESUMED = "RESUMED"


SessionListener = Callable[[SessionEvent, Session | None], None]


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown backend error"

    if isinstance(data, Mapping):
        for key in ("message", "error_description", "msg", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return "The backend could not complete the request"


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class GatewayClient:
    """Thin wrapper that issues authenticated calls and owns the current session."""

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or "").strip()
        self.api_key = (api_key or "").strip()
        self.timeout = timeout
        self._transport = transport
        self._session: Session | None = None
        self._listeners: list[SessionListener] = []

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> GatewayClient:
        return cls(settings.gateway_url, settings.gateway_key, timeout=settings.request_timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    # Session handling
    def current_session(self) -> Session | None:
        return self._session

    def restore_session(self, session: Session) -> None:
        """Adopt a session obtained elsewhere, e.g. kept across reruns."""

        self._set_session(session, SessionEvent.RESUMED)

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_session(self, session: Session | None, event: SessionEvent) -> None:
        self._session = session
        logger.info("Session event %s for %s", event.value, session.email if session else "anonymous")
        for listener in list(self._listeners):
            listener(event, session)

    async def sign_in(self, email: str, password: str) -> Session:
        payload = await self.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            use_session=False,
            error_cls=AuthError,
        )
        if not isinstance(payload, Mapping) or "access_token" not in payload:
            raise AuthError("Sign-in response did not include a session")
        session = Session.from_auth_payload(payload)
        self._set_session(session, SessionEvent.SIGNED_IN)
        return session

    async def sign_up(self, email: str, password: str, profile_fields: Mapping[str, Any]) -> Session | None:
        """Register an account; the new account becomes the active session when one is issued."""

        payload = await self.request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": dict(profile_fields)},
            use_session=False,
            error_cls=AuthError,
        )
        if not isinstance(payload, Mapping) or "access_token" not in payload:
            return None
        session = Session.from_auth_payload(payload)
        self._set_session(session, SessionEvent.SIGNED_IN)
        return session

    async def refresh_session(self) -> Session:
        """Exchange the refresh token for a new session; sign out locally when that fails."""

        current = self._session
        if current is None or not current.refresh_token:
            self._set_session(None, SessionEvent.SIGNED_OUT)
            raise AuthError("Session expired, please sign in again", status_code=401)
        try:
            payload = await self.request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": current.refresh_token},
                use_session=False,
                error_cls=AuthError,
            )
            if not isinstance(payload, Mapping) or "access_token" not in payload:
                raise AuthError("Refresh response did not include a session")
        except GatewayError as exc:
            logger.warning("Session refresh for %s failed: %s", current.email, exc)
            self._set_session(None, SessionEvent.SIGNED_OUT)
            raise AuthError(f"Session expired, please sign in again ({exc})", status_code=exc.status_code) from exc

        session = Session.from_auth_payload(payload)
        self._set_session(session, SessionEvent.RESUMED)
        return session

    async def sign_out(self) -> None:
        if self._session is not None:
            try:
                await self.request("POST", "/auth/v1/logout")
            except GatewayError as exc:
                logger.warning("Remote sign-out failed, clearing local session anyway: %s", exc)
        self._set_session(None, SessionEvent.SIGNED_OUT)

    # Table API
    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        use_session: bool = True,
        error_cls: type[GatewayError] = GatewayError,
    ) -> Any:
        if not self.configured:
            raise GatewayConfigError("Gateway URL and public key are not configured")
        if use_session and self._session is not None and self._session.is_expired():
            await self.refresh_session()

        token =self._session.access_token if use_session and self._session else self.api_key
        merged: dict[str, str] = {
            "Accept": "application/json",
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
        }
        merged.update(headers or {})

        with _tracer.start_as_current_span(f"gateway {method} {path}") as span:
            span.set_attribute("http.method", method)
            try:
                async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                    response = await client.request(
                        method, self._build_url(path), params=params, json=json, headers=merged
                    )
            except httpx.HTTPError as exc:
                raise GatewayError(f"Gateway request failed: {exc}") from exc
            span.set_attribute("http.status_code", response.status_code)

        if response.status_code >= 400:
            raise error_cls(_extract_error_message(response), status_code=response.status_code, response=response)

        if response.status_code == 204 or not response.content:
            return None

        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            return response.json()
        return response.text

    def _build_url(self, path: str) -> str:
        normalized = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url.rstrip('/')}{normalized}"


class TableQuery:
    """Chainable PostgREST request builder, executed with ``await query.execute()``."""

    def __init__(self, client: GatewayClient, table: str) -> None:
        self._client = client
        self._table = table
        self._method = "GET"
        self._body: Any = None
        self._params: list[tuple[str, str]] = []
        self._single = False

    def select(self, columns: str = "*") -> TableQuery:
        self._params.append(("select", columns))
        return self

    def insert(self, rows: Mapping[str, Any] | list[Mapping[str, Any]]) -> TableQuery:
        self._method = "POST"
        self._body = [dict(row) for row in rows] if isinstance(rows, list) else [dict(rows)]
        return self

    def update(self, patch: Mapping[str, Any]) -> TableQuery:
        self._method = "PATCH"
        self._body = dict(patch)
        return self

    def delete(self) -> TableQuery:
        self._method = "DELETE"
        return self

    def eq(self, column: str, value: Any) -> TableQuery:
        self._params.append((column, f"eq.{_encode_value(value)}"))
        return self

    def order(self, column: str, *, descending: bool = False, foreign_table: str | None = None) -> TableQuery:
        key = f"{foreign_table}.order" if foreign_table else "order"
        self._params.append((key, f"{column}.{'desc' if descending else 'asc'}"))
        return self

    def limit(self, count: int) -> TableQuery:
        self._params.append(("limit", str(count)))
        return self

    def single(self) -> TableQuery:
        """Return the first matching row (or ``None``) instead of a list."""

        self._single = True
        return self

    async def execute(self) -> Any:
        headers: dict[str, str] = {}
        if self._method in {"POST", "PATCH"}:
            headers["Prefer"] = "return=representation"
        if self._method in {"PATCH", "DELETE"} and not any(value.startswith("eq.") for _, value in self._params):
            # PostgREST would touch every row without a filter
            raise GatewayError(f"Refusing unfiltered {self._method} on {self._table}")

        data = await self._client.request(
            self._method,
            f"/rest/v1/{self._table}",
            params=self._params,
            json=self._body,
            headers=headers,
        )
        if self._single:
            if isinstance(data, list):
                return data[0] if data else None
            return data
        return data
