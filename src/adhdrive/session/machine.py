from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List

from adhdrive.capture import CaptureHandle, CaptureService, RecordingArtifact, RecordingLibrary
from adhdrive.errors import CaptureFailure, InvalidStateTransition, PermissionDenied
from adhdrive.notify import Notification, NotificationKind, NotificationSink
from adhdrive.trust.engine import TrustScoreEngine

from .config import resolve_session_config
from .timer import LoopTickSource, TickHandle, TickSource

_LOGGER = logging.getLogger(__name__)

REASON_CAPTURE_STARTED = "capture-started"
REASON_MISSED = "missed"

DEADLINE_LAPSED = "lapsed"
DEADLINE_CAPTURED = "captured"
DEADLINE_CANCELLED = "cancelled"


class SessionState(str, Enum):
    IDLE = "idle"
    COUNTING_DOWN = "counting_down"
    RECORDING = "recording"
    LAPSED = "lapsed"


SessionObserver = Callable[[SessionState, float], None]


class EmergencySession:
    """Countdown-gated emergency prompt.

    ``trigger`` starts a countdown that ticks down in fixed steps. Starting a
    capture before it reaches zero earns the capture reward; letting it run
    out applies the missed penalty and returns to ``IDLE`` straight away.
    The trust engine and capture service are shared collaborators, the tick
    handle is owned here and at most one is live at a time.
    """

    def __init__(
        self,
        engine: TrustScoreEngine,
        capture: CaptureService,
        *,
        sink: NotificationSink | None = None,
        library: RecordingLibrary | None = None,
        ticks: TickSource | None = None,
        config: Dict[str, Any] | None = None,
    ) -> None:
        self.engine = engine
        self.capture = capture
        self.sink = sink
        self.library = library
        self.ticks: TickSource = ticks or LoopTickSource()
        self.settings = resolve_session_config(config)
        self._state = SessionState.IDLE
        self._countdown = self.settings["duration_s"]
        self._deadline_reason: str | None = None
        self._ticker: TickHandle | None = None
        self._handle: CaptureHandle | None = None
        self._capture_pending = False
        self._observers: List[SessionObserver] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def countdown(self) -> float:
        return self._countdown

    @property
    def deadline_reason(self) -> str | None:
        return self._deadline_reason

    @property
    def capture_pending(self) -> bool:
        return self._capture_pending

    @property
    def handle(self) -> CaptureHandle | None:
        return self._handle

    def add_observer(self, observer: SessionObserver) -> None:
        self._observers.append(observer)

    def _emit(self) -> None:
        for observer in list(self._observers):
            try:
                observer(self._state, self._countdown)
            except Exception:
                _LOGGER.warning("Session observer %r failed", observer, exc_info=True)

    def _notify(self, kind: NotificationKind, **payload: Any) -> None:
        if self.sink is None:
            return
        notification = Notification(kind=kind, level=self.engine.current_score(), **payload)
        try:
            self.sink.notify(notification)
        except Exception:
            _LOGGER.warning("Notification sink failed for %s", kind.value, exc_info=True)

    def _require(self, operation: str, expected: SessionState) -> None:
        if self._capture_pending:
            raise InvalidStateTransition(operation, self._state, "capture operation in progress")
        if self._state is not expected:
            raise InvalidStateTransition(operation, self._state)

    def _start_ticker(self) -> None:
        self._cancel_ticker()
        interval_s = self.settings["tick_interval_ms"] / 1000.0
        self._ticker = self.ticks.start(self.tick, interval_s)

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _set_state(self, state: SessionState) -> None:
        _LOGGER.info("Emergency session %s -> %s", self._state.value, state.value)
        self._state = state
        self._emit()

    # transitions

    def trigger(self) -> None:
        self._require("trigger", SessionState.IDLE)
        self._countdown = self.settings["duration_s"]
        self._deadline_reason = None
        self._state = SessionState.COUNTING_DOWN
        _LOGGER.info("Emergency session triggered (%.1fs)", self._countdown)
        self._start_ticker()
        self._emit()

    def tick(self) -> None:
        if self._state is not SessionState.COUNTING_DOWN or self._capture_pending:
            return
        remaining = round(self._countdown - self.settings["tick_step_s"], 1)
        if remaining <= 0:
            self._countdown = 0.0
            self._lapse()
            return
        self._countdown = remaining
        self._emit()

    def _lapse(self) -> None:
        self._cancel_ticker()
        self._deadline_reason = DEADLINE_LAPSED
        self._set_state(SessionState.LAPSED)
        penalty = self.settings["missed_penalty"]
        self.engine.apply_change(penalty, REASON_MISSED)
        self._set_state(SessionState.IDLE)
        self._notify(NotificationKind.MISSED, delta=penalty)

    def cancel(self) -> None:
        self._require("cancel", SessionState.COUNTING_DOWN)
        self._cancel_ticker()
        self._deadline_reason = DEADLINE_CANCELLED
        self._set_state(SessionState.IDLE)

    def _resume_countdown(self) -> None:
        if self._state is SessionState.COUNTING_DOWN:
            self._start_ticker()

    async def start_recording(self) -> CaptureHandle:
        self._require("start_recording", SessionState.COUNTING_DOWN)
        self._capture_pending = True
        self._cancel_ticker()
        try:
            try:
                granted = await self.capture.request_permission()
            except Exception as exc:
                raise CaptureFailure(f"permission request failed: {exc}") from exc
            if not granted:
                raise PermissionDenied("capture permission is required")
            try:
                handle = await self.capture.start()
            except (PermissionDenied, CaptureFailure):
                raise
            except Exception as exc:
                raise CaptureFailure(f"capture start failed: {exc}") from exc
        except PermissionDenied:
            self._capture_pending = False
            _LOGGER.warning("Capture permission denied; countdown resumes at %.1fs", self._countdown)
            self._notify(NotificationKind.PERMISSION_DENIED)
            self._resume_countdown()
            raise
        except CaptureFailure as exc:
            self._capture_pending = False
            _LOGGER.warning("Capture start failed (%s); countdown resumes at %.1fs", exc, self._countdown)
            self._resume_countdown()
            raise
        except BaseException:
            # Cancelled or timed out by the caller.
            self._capture_pending = False
            _LOGGER.warning("Capture start interrupted; countdown resumes at %.1fs", self._countdown)
            self._resume_countdown()
            raise
        self._capture_pending = False

        self._handle = handle
        self._deadline_reason = DEADLINE_CAPTURED
        self._set_state(SessionState.RECORDING)
        reward = self.settings["capture_reward"]
        self.engine.apply_change(reward, REASON_CAPTURE_STARTED)
        self._notify(NotificationKind.CAPTURE_STARTED, delta=reward)
        return handle

    async def stop_recording(self) -> RecordingArtifact:
        self._require("stop_recording", SessionState.RECORDING)
        if self._handle is None:
            raise InvalidStateTransition("stop_recording", self._state, "no capture handle")
        self._capture_pending = True
        try:
            artifact = await self.capture.stop(self._handle)
        except CaptureFailure:
            _LOGGER.warning("Capture stop failed; still recording")
            raise
        except Exception as exc:
            _LOGGER.warning("Capture stop failed; still recording")
            raise CaptureFailure(f"capture stop failed: {exc}") from exc
        finally:
            self._capture_pending = False

        self._handle = None
        if self.library is not None:
            self.library.append(artifact)
        self._set_state(SessionState.IDLE)
        self._notify(NotificationKind.CAPTURE_COMPLETED, artifact=artifact)
        return artifact
