"""Single application state value and its transitions."""

from . import transitions
from .models import ActiveOverlay, AppState, AuthPhase, CacheState, FilterState, Modal, SessionState, Tab, UIEvent, UIState

__all__ = [
    "ActiveOverlay",
    "AppState",
    "AuthPhase",
    "CacheState",
    "FilterState",
    "Modal",
    "SessionState",
    "Tab",
    "UIEvent",
    "UIState",
    "transitions",
]
