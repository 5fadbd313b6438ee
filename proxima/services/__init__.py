"""Dashboard handlers."""

from .dashboard import (
    GATEWAY_NOT_CONFIGURED,
    DashboardController,
    DashboardError,
    FetchError,
    MutationError,
    PermissionDeniedError,
)

__all__ = [
    "GATEWAY_NOT_CONFIGURED",
    "DashboardController",
    "DashboardError",
    "FetchError",
    "MutationError",
    "PermissionDeniedError",
]
