"""Emergency session state machine and its tick sources."""

from .config import resolve_session_config
from .machine import (
    DEADLINE_CANCELLED,
    DEADLINE_CAPTURED,
    DEADLINE_LAPSED,
    REASON_CAPTURE_STARTED,
    REASON_MISSED,
    EmergencySession,
    SessionState,
)
from .timer import LoopTickSource, ManualTickSource, TickHandle, TickSource

__all__ = [
    "DEADLINE_CANCELLED",
    "DEADLINE_CAPTURED",
    "DEADLINE_LAPSED",
    "REASON_CAPTURE_STARTED",
    "REASON_MISSED",
    "EmergencySession",
    "LoopTickSource",
    "ManualTickSource",
    "SessionState",
    "TickHandle",
    "TickSource",
    "resolve_session_config",
]
