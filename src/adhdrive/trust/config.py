from __future__ import annotations

from typing import Any, Dict

DIRECTION_INCREASING = "increasing"
DIRECTION_DECREASING = "decreasing"
DIRECTION_STABLE = "stable"

DIRECTIONS = (DIRECTION_INCREASING, DIRECTION_DECREASING, DIRECTION_STABLE)

DEFAULTS: Dict[str, Any] = {
    "initial_level": 85,
    "min_level": 0,
    "max_level": 100,
    "history_capacity": 10,
    "trend_window_days": 7,
    "history_window_days": 30,
    "trend_threshold": 0.5,
    "prediction_days": 7,
    "level_key": "trustLevel",
    "history_key": "trustHistory",
}

_INT_KEYS = {"initial_level", "min_level", "max_level", "history_capacity"}
_FLOAT_KEYS = {"trend_window_days", "history_window_days", "trend_threshold", "prediction_days"}


def resolve_trust_config(config: Dict[str, Any] | None) -> Dict[str, Any]:
    section = config.get("trust", {}) if isinstance(config, dict) else {}
    resolved = dict(DEFAULTS)
    if isinstance(section, dict):
        for key, value in section.items():
            if key in _INT_KEYS:
                resolved[key] = int(value)
            elif key in _FLOAT_KEYS:
                resolved[key] = float(value)
            elif key in DEFAULTS:
                resolved[key] = str(value).strip() or DEFAULTS[key]
    if resolved["min_level"] > resolved["max_level"]:
        raise ValueError("trust.min_level must not exceed trust.max_level")
    resolved["history_capacity"] = max(1, resolved["history_capacity"])
    resolved["initial_level"] = max(
        resolved["min_level"], min(resolved["max_level"], resolved["initial_level"])
    )
    return resolved
