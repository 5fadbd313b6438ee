"""Remote data gateway used by the dashboard."""

from .client import AuthError, GatewayClient, GatewayConfigError, GatewayError, SessionEvent, TableQuery

__all__ = [
    "AuthError",
    "GatewayClient",
    "GatewayConfigError",
    "GatewayError",
    "SessionEvent",
    "TableQuery",
]
