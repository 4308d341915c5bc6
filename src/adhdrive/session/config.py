from __future__ import annotations

from typing import Any, Dict

DEFAULTS: Dict[str, Any] = {
    "duration_s": 5.0,
    "tick_step_s": 0.1,
    "tick_interval_ms": 100,
    "capture_reward": 5,
    "missed_penalty": -5,
}


def resolve_session_config(config: Dict[str, Any] | None) -> Dict[str, Any]:
    section = config.get("session", {}) if isinstance(config, dict) else {}
    resolved = dict(DEFAULTS)
    if isinstance(section, dict):
        for key, value in section.items():
            if key in DEFAULTS:
                resolved[key] = value
    resolved["duration_s"] = float(resolved["duration_s"])
    resolved["tick_step_s"] = float(resolved["tick_step_s"])
    resolved["tick_interval_ms"] = int(resolved["tick_interval_ms"])
    resolved["capture_reward"] = int(resolved["capture_reward"])
    resolved["missed_penalty"] = int(resolved["missed_penalty"])
    if resolved["duration_s"] <= 0 or resolved["tick_step_s"] <= 0:
        raise ValueError("session.duration_s and session.tick_step_s must be positive")
    if resolved["tick_interval_ms"] <= 0:
        raise ValueError("session.tick_interval_ms must be positive")
    return resolved
