"""Error taxonomy shared by the trust engine, sessions and capture backends."""

from __future__ import annotations


class AdhdriveError(Exception):
    """Base class for adhdrive errors."""


class PermissionDenied(AdhdriveError):
    """Capture permission was not granted."""


class CaptureFailure(AdhdriveError):
    """Starting or stopping a capture failed."""


class PersistenceFailure(AdhdriveError):
    """A gateway could not read or write a key."""


class InvalidStateTransition(AdhdriveError):
    def __init__(self, operation: str, state: object, detail: str = "") -> None:
        self.operation = operation
        self.state = state
        message = f"{operation}() is not valid in state {getattr(state, 'value', state)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
