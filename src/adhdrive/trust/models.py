from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _pick(data: Dict[str, Any], key: str, legacy: str) -> Any:
    if key in data:
        return data[key]
    return data[legacy]


@dataclass(frozen=True)
class TrustScore:
    level: int
    history: tuple[int, ...]

    def as_dict(self) -> Dict[str, Any]:
        return {"level": self.level, "history": list(self.history)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrustScore":
        level = int(data["level"])
        raw_history = data.get("history") or [level]
        if not isinstance(raw_history, list):
            raise ValueError(f"trust history must be a list, got {type(raw_history).__name__}")
        history = tuple(int(item) for item in raw_history)
        return cls(level=level, history=history)


@dataclass(frozen=True)
class TrustChangeEvent:
    id: str
    old_level: int
    new_level: int
    delta: int
    reason: str
    timestamp: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "old_level": self.old_level,
            "new_level": self.new_level,
            "delta": self.delta,
            "reason": self.reason,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrustChangeEvent":
        """Accepts both snake_case records and the older camelCase ones
        (`oldLevel`, `newLevel`, `change`)."""
        if not isinstance(data, dict):
            raise ValueError(f"trust change must be an object, got {type(data).__name__}")
        timestamp = parse_timestamp(data.get("timestamp"))
        if timestamp is None:
            raise ValueError(f"invalid trust change timestamp: {data.get('timestamp')!r}")
        return cls(
            id=str(data["id"]),
            old_level=int(_pick(data, "old_level", "oldLevel")),
            new_level=int(_pick(data, "new_level", "newLevel")),
            delta=int(_pick(data, "delta", "change")),
            reason=str(data.get("reason", "")),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class TrustTrend:
    direction: str
    average_change: float
    volatility: float
    prediction: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction,
            "average_change": self.average_change,
            "volatility": self.volatility,
            "prediction": self.prediction,
        }


@dataclass(frozen=True)
class TrustStats:
    current_level: int
    total_changes: int
    positive_changes: int
    negative_changes: int
    average_change: float
    team_influence: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "current_level": self.current_level,
            "total_changes": self.total_changes,
            "positive_changes": self.positive_changes,
            "negative_changes": self.negative_changes,
            "average_change": self.average_change,
            "team_influence": self.team_influence,
        }
