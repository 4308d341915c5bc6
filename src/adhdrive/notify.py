from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Protocol, runtime_checkable

from adhdrive.capture import RecordingArtifact

_LOGGER = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    MISSED = "missed"
    CAPTURE_STARTED = "captureStarted"
    CAPTURE_COMPLETED = "captureCompleted"
    PERMISSION_DENIED = "permissionDenied"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    delta: int | None = None
    artifact: RecordingArtifact | None = None
    level: int | None = None


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class LoggingSink:
    """Writes every notification to the module logger."""

    def notify(self, notification: Notification) -> None:
        if notification.kind is NotificationKind.MISSED:
            _LOGGER.warning(
                "Missed the emergency window (%+d, trust %s)",
                notification.delta or 0,
                notification.level,
            )
        elif notification.kind is NotificationKind.PERMISSION_DENIED:
            _LOGGER.warning("Capture permission denied")
        elif notification.kind is NotificationKind.CAPTURE_COMPLETED and notification.artifact:
            _LOGGER.info("Capture completed: %s", notification.artifact.uri)
        else:
            _LOGGER.info(
                "%s (%+d, trust %s)", notification.kind.value, notification.delta or 0, notification.level
            )


class CollectingSink:
    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def kinds(self) -> List[NotificationKind]:
        return [item.kind for item in self.notifications]
