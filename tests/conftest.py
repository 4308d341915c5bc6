from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from adhdrive.capture import CaptureHandle, RecordingArtifact
from adhdrive.errors import CaptureFailure, PersistenceFailure
from adhdrive.notify import CollectingSink
from adhdrive.persistence import MemoryGateway
from adhdrive.session import EmergencySession, ManualTickSource
from adhdrive.trust import TrustScoreEngine


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeCapture:
    def __init__(self) -> None:
        self.permission = True
        self.fail_start = False
        self.fail_stop = False
        self.started = 0
        self.stopped = 0
        self.active: CaptureHandle | None = None

    async def request_permission(self) -> bool:
        return self.permission

    async def start(self) -> CaptureHandle:
        if self.fail_start:
            raise CaptureFailure("device busy")
        self.started += 1
        self.active = CaptureHandle(
            id=f"cap-{self.started}",
            uri=f"file:///tmp/cap-{self.started}.m4a",
            started_at=datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc),
            started_monotonic=0.0,
        )
        return self.active

    async def stop(self, handle: CaptureHandle) -> RecordingArtifact:
        if self.fail_stop:
            raise CaptureFailure("stop failed")
        self.stopped += 1
        self.active = None
        return RecordingArtifact(
            id=handle.id,
            uri=handle.uri,
            duration_millis=1500,
            timestamp=handle.started_at,
        )


class FailingGateway:
    def __init__(self) -> None:
        self.attempts = 0

    def get(self, key: str) -> str | None:
        raise PersistenceFailure("disk unavailable")

    def set(self, key: str, value: str) -> bool:
        self.attempts += 1
        raise PersistenceFailure("disk unavailable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def engine(gateway: MemoryGateway, clock: FakeClock) -> TrustScoreEngine:
    return TrustScoreEngine(gateway, clock=clock)


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def ticks() -> ManualTickSource:
    return ManualTickSource()


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def session(
    engine: TrustScoreEngine,
    capture: FakeCapture,
    ticks: ManualTickSource,
    sink: CollectingSink,
) -> EmergencySession:
    return EmergencySession(engine, capture, sink=sink, ticks=ticks)
