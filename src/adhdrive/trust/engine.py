from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from statistics import fmean, pstdev
from typing import Any, Callable, Dict, Iterable, List

from ulid import ULID

from adhdrive.errors import PersistenceFailure
from adhdrive.logger import TrustLedgerLogger
from adhdrive.persistence.gateway import PersistenceGateway
from adhdrive.persistence.writer import PersistenceWriter

from .config import (
    DIRECTION_DECREASING,
    DIRECTION_INCREASING,
    DIRECTION_STABLE,
    resolve_trust_config,
)
from .models import TrustChangeEvent, TrustScore, TrustStats, TrustTrend

_LOGGER = logging.getLogger(__name__)

TrustListener = Callable[[TrustChangeEvent], None]


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def classify_direction(average_change: float, threshold: float = 0.5) -> str:
    if average_change > threshold:
        return DIRECTION_INCREASING
    if average_change < -threshold:
        return DIRECTION_DECREASING
    return DIRECTION_STABLE


def compute_volatility(deltas: Iterable[float]) -> float:
    """Population standard deviation of score deltas."""
    values = [float(delta) for delta in deltas]
    if len(values) < 2:
        return 0.0
    return float(pstdev(values))


def compute_trend(
    events: Iterable[TrustChangeEvent],
    current_level: int,
    *,
    threshold: float = 0.5,
    prediction_days: float = 7,
    low: int = 0,
    high: int = 100,
) -> TrustTrend:
    deltas = [event.delta for event in events]
    if not deltas:
        return TrustTrend(
            direction=DIRECTION_STABLE,
            average_change=0.0,
            volatility=0.0,
            prediction=float(current_level),
        )
    average_change = fmean(deltas)
    return TrustTrend(
        direction=classify_direction(average_change, threshold),
        average_change=average_change,
        volatility=compute_volatility(deltas),
        prediction=_clamp(current_level + average_change * prediction_days, low, high),
    )


class TrustScoreEngine:
    """Owns the bounded trust level, its snapshot history and the change log.

    Every mutation goes through :meth:`apply_change` or :meth:`reset`. Writes
    to the gateway happen after the in-memory state is updated and their
    failures are logged, never raised; the in-memory score stays
    authoritative for the running process.
    """

    def __init__(
        self,
        gateway: PersistenceGateway | None = None,
        *,
        config: Dict[str, Any] | None = None,
        writer: PersistenceWriter | None = None,
        ledger: TrustLedgerLogger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = resolve_trust_config(config)
        self.gateway = gateway
        self.writer = writer
        self.ledger = ledger
        self._clock = clock or _utc_now
        self._listeners: List[TrustListener] = []
        self._level: int = self.settings["initial_level"]
        self._history: List[int] = [self._level]
        self._events: List[TrustChangeEvent] = []

    def _bound(self, value: float) -> int:
        return int(_clamp(value, self.settings["min_level"], self.settings["max_level"]))

    def current_score(self) -> int:
        return self._level

    def snapshot(self) -> TrustScore:
        return TrustScore(level=self._level, history=tuple(self._history))

    def apply_change(self, delta: int, reason: str) -> TrustChangeEvent:
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise TypeError(f"delta must be an int, got {type(delta).__name__}")
        old_level = self._level
        new_level = self._bound(old_level + delta)
        event = TrustChangeEvent(
            id=str(ULID()),
            old_level=old_level,
            new_level=new_level,
            delta=delta,
            reason=str(reason),
            timestamp=self._clock(),
        )
        self._level = new_level
        self._events.append(event)
        self._history.append(new_level)
        capacity = self.settings["history_capacity"]
        if len(self._history) > capacity:
            del self._history[: len(self._history) - capacity]

        _LOGGER.info("Trust %s -> %s (%+d, %s)", old_level, new_level, delta, event.reason)
        self._record_ledger("trust_change", event.as_dict())
        self._persist()
        self._notify(event)
        return event

    def history(self, window_days: float | None = None) -> List[TrustChangeEvent]:
        days = self.settings["history_window_days"] if window_days is None else window_days
        cutoff = self._clock() - timedelta(days=float(days))
        return [event for event in self._events if event.timestamp >= cutoff]

    def events(self) -> List[TrustChangeEvent]:
        return list(self._events)

    def trend(self) -> TrustTrend:
        return compute_trend(
            self.history(self.settings["trend_window_days"]),
            self._level,
            threshold=self.settings["trend_threshold"],
            prediction_days=self.settings["prediction_days"],
            low=self.settings["min_level"],
            high=self.settings["max_level"],
        )

    def stats(self) -> TrustStats:
        deltas = [event.delta for event in self._events]
        return TrustStats(
            current_level=self._level,
            total_changes=len(deltas),
            positive_changes=sum(1 for delta in deltas if delta > 0),
            negative_changes=sum(1 for delta in deltas if delta < 0),
            average_change=fmean(deltas) if deltas else 0.0,
            team_influence=min(self.settings["max_level"], self._level + 10),
        )

    def reset(self) -> None:
        self._level = self.settings["initial_level"]
        self._history = [self._level]
        self._events = []
        _LOGGER.info("Trust reset to %s", self._level)
        self._record_ledger("trust_reset", {"level": self._level})
        self._persist()

    def add_listener(self, listener: TrustListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: TrustListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: TrustChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                _LOGGER.warning("Trust listener %r failed", listener, exc_info=True)

    def _record_ledger(self, name: str, payload: Dict[str, Any]) -> None:
        if self.ledger is None:
            return
        try:
            self.ledger.record(name, payload)
        except OSError as exc:
            _LOGGER.warning("Trust ledger write failed: %s", exc)

    # persistence

    def _serialized_state(self) -> Dict[str, str]:
        return {
            self.settings["level_key"]: json.dumps(self.snapshot().as_dict(), separators=(",", ":")),
            self.settings["history_key"]: json.dumps(
                [event.as_dict() for event in self._events], separators=(",", ":")
            ),
        }

    def _persist(self) -> None:
        if self.gateway is None:
            return
        for key, value in self._serialized_state().items():
            if self.writer is not None:
                if not self.writer.submit(key, value):
                    _LOGGER.warning("Persistence writer rejected %s", key)
                continue
            try:
                ok = self.gateway.set(key, value)
            except PersistenceFailure as exc:
                _LOGGER.warning("Persisting %s failed: %s", key, exc)
                continue
            except Exception:
                _LOGGER.warning("Persisting %s failed", key, exc_info=True)
                continue
            if not ok:
                _LOGGER.warning("Gateway refused write for %s", key)

    def flush(self, timeout_s: float = 2.0) -> bool:
        if self.writer is None:
            return True
        return self.writer.flush(timeout_s)

    def _read(self, key: str) -> Any:
        try:
            raw = self.gateway.get(key) if self.gateway is not None else None
        except PersistenceFailure as exc:
            _LOGGER.warning("Loading %s failed: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            _LOGGER.warning("Stored %s is not valid JSON; ignoring", key)
            return None

    def load(self) -> bool:
        """Restore state from the gateway. Returns True when anything was restored."""
        restored = False
        stored_score = self._read(self.settings["level_key"])
        score: TrustScore | None = None
        try:
            if isinstance(stored_score, dict):
                score = TrustScore.from_dict(stored_score)
            elif isinstance(stored_score, int) and not isinstance(stored_score, bool):
                score = TrustScore(level=stored_score, history=(stored_score,))
            elif isinstance(stored_score, str) and stored_score.strip().lstrip("-").isdigit():
                level = int(stored_score)
                score = TrustScore(level=level, history=(level,))
        except (KeyError, TypeError, ValueError) as exc:
            _LOGGER.warning("Stored trust score is malformed (%s); keeping defaults", exc)
        if score is not None:
            self._level = self._bound(score.level)
            history = [self._bound(item) for item in score.history]
            if not history or history[-1] != self._level:
                history.append(self._level)
            self._history = history[-self.settings["history_capacity"] :]
            restored = True

        stored_events = self._read(self.settings["history_key"])
        if isinstance(stored_events, list):
            try:
                self._events = [TrustChangeEvent.from_dict(item) for item in stored_events]
                restored = True
            except (KeyError, TypeError, ValueError) as exc:
                _LOGGER.warning("Stored trust history is malformed (%s); keeping current log", exc)
        if restored:
            _LOGGER.info("Trust restored at %s with %d events", self._level, len(self._events))
        return restored
