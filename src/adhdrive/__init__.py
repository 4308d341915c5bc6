"""adhdrive: trust score and emergency capture sessions."""

from .config import DEFAULT_CONFIG, load_config
from .errors import (
    AdhdriveError,
    CaptureFailure,
    InvalidStateTransition,
    PermissionDenied,
    PersistenceFailure,
)
from .logger import TrustLedgerLogger

__all__ = [
    "AdhdriveError",
    "CaptureFailure",
    "DEFAULT_CONFIG",
    "InvalidStateTransition",
    "PermissionDenied",
    "PersistenceFailure",
    "TrustLedgerLogger",
    "load_config",
]
