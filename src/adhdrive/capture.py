"""Capture collaborator contract and the bundled file-backed implementation.

The emergency session only needs start/stop primitives that hand back an
opaque :class:`RecordingArtifact`. Actual audio capture lives behind
:class:`CaptureService`; :class:`FileCaptureService` reserves one output file
per capture and measures its duration, which is enough for the CLI drill.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, Iterator, List, Protocol, runtime_checkable

from ulid import ULID

from adhdrive.errors import CaptureFailure, PermissionDenied
from adhdrive.trust.models import format_timestamp, parse_timestamp

_LOGGER = logging.getLogger(__name__)

CAPTURE_TRUST_DELTA = 5


@dataclass(frozen=True)
class CaptureHandle:
    id: str
    uri: str
    started_at: datetime
    started_monotonic: float


@dataclass(frozen=True)
class RecordingArtifact:
    id: str
    uri: str
    duration_millis: int
    timestamp: datetime
    trust_delta: int = CAPTURE_TRUST_DELTA

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "uri": self.uri,
            "duration_millis": self.duration_millis,
            "timestamp": format_timestamp(self.timestamp),
            "trust_delta": self.trust_delta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordingArtifact":
        timestamp = parse_timestamp(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"invalid artifact timestamp: {data.get('timestamp')!r}")
        return cls(
            id=str(data["id"]),
            uri=str(data["uri"]),
            duration_millis=int(data["duration_millis"]),
            timestamp=timestamp,
            trust_delta=int(data.get("trust_delta", CAPTURE_TRUST_DELTA)),
        )


@runtime_checkable
class CaptureService(Protocol):
    async def request_permission(self) -> bool:
        ...

    async def start(self) -> CaptureHandle:
        ...

    async def stop(self, handle: CaptureHandle) -> RecordingArtifact:
        ...


class FileCaptureService:
    def __init__(
        self,
        directory: str | Path,
        *,
        suffix: str = ".m4a",
        permission_granted: bool = True,
    ) -> None:
        self.directory = Path(directory).expanduser()
        self.suffix = suffix if suffix.startswith(".") else f".{suffix}"
        self.permission_granted = permission_granted
        self._active: CaptureHandle | None = None

    @property
    def busy(self) -> bool:
        return self._active is not None

    async def request_permission(self) -> bool:
        return self.permission_granted

    async def start(self) -> CaptureHandle:
        if not self.permission_granted:
            raise PermissionDenied("capture permission is required")
        if self._active is not None:
            raise CaptureFailure("capture device busy")
        capture_id = str(ULID())
        path = self.directory / f"capture-{capture_id}{self.suffix}"
        try:
            await asyncio.to_thread(self._reserve, path)
        except OSError as exc:
            raise CaptureFailure(f"cannot open capture file {path}: {exc}") from exc
        handle = CaptureHandle(
            id=capture_id,
            uri=path.resolve().as_uri(),
            started_at=datetime.now(timezone.utc),
            started_monotonic=time.monotonic(),
        )
        self._active = handle
        _LOGGER.info("Capture %s started at %s", capture_id, path)
        return handle

    def _reserve(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=False)

    async def stop(self, handle: CaptureHandle) -> RecordingArtifact:
        if self._active is None or self._active.id != handle.id:
            raise CaptureFailure(f"capture {handle.id} is not running")
        self._active = None
        elapsed = max(0.0, time.monotonic() - handle.started_monotonic)
        artifact = RecordingArtifact(
            id=handle.id,
            uri=handle.uri,
            duration_millis=int(round(elapsed * 1000)),
            timestamp=handle.started_at,
        )
        _LOGGER.info("Capture %s stopped after %d ms", handle.id, artifact.duration_millis)
        return artifact


class RecordingLibrary:
    """Most recent recordings, newest first."""

    def __init__(self, capacity: int = 5) -> None:
        self.capacity = max(1, capacity)
        self._items: Deque[RecordingArtifact] = deque(maxlen=self.capacity)

    def append(self, artifact: RecordingArtifact) -> None:
        self._items.appendleft(artifact)

    def items(self) -> List[RecordingArtifact]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[RecordingArtifact]:
        return iter(list(self._items))
