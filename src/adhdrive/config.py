from __future__ import annotations

import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    "trust": {
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
    },
    "session": {
        "duration_s": 5.0,
        "tick_step_s": 0.1,
        "tick_interval_ms": 100,
        "capture_reward": 5,
        "missed_penalty": -5,
    },
    "persistence": {
        "backend": "json",
        "path": "~/.adhdrive/state.json",
        "sql": {
            "backend": "sqlite3",
            "dsn": "",
            "sqlite_path": "~/.adhdrive/state.db",
            "table": "adhdrive_kv",
            "connect_timeout_s": 5,
        },
        "encrypt": False,
        "key_env": "ADHDRIVE_STATE_KEY",
        "async_writes": True,
        "queue_size": 100,
    },
    "recordings": {
        "directory": "~/.adhdrive/recordings",
        "keep": 5,
        "suffix": ".m4a",
    },
    "ledger": {
        "enabled": False,
        "path": "~/.adhdrive/trust_ledger.jsonl",
    },
    "logging": {
        "level": "INFO",
    },
}


def _merge_dict(default: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for key, default_value in default.items():
        if key not in override:
            merged[key] = copy.deepcopy(default_value)
            continue
        override_value = override[key]
        if isinstance(default_value, dict) and isinstance(override_value, dict):
            merged[key] = _merge_dict(default_value, override_value)
        else:
            merged[key] = override_value
    for key, value in override.items():
        if key not in merged:
            merged[key] = value
    return merged


def merge_config(override: Dict[str, Any] | None) -> Dict[str, Any]:
    """Return DEFAULT_CONFIG with ``override`` layered on top."""
    if not isinstance(override, dict):
        return copy.deepcopy(DEFAULT_CONFIG)
    return _merge_dict(DEFAULT_CONFIG, override)


def load_config(path: str | Path = "adhdrive.toml") -> Dict[str, Any]:
    """Load config with safe defaults; missing files are non-fatal."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    config_path = Path(path).expanduser()
    if config_path.exists():
        try:
            with config_path.open("rb") as handle:
                raw = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError):
            raw = None
        if isinstance(raw, dict):
            config = _merge_dict(config, raw)

    persistence_cfg = config.get("persistence", {})
    state_path = os.getenv("ADHDRIVE_STATE_PATH", "").strip()
    if state_path and isinstance(persistence_cfg, dict):
        persistence_cfg["path"] = state_path
        sql_cfg = persistence_cfg.get("sql")
        if isinstance(sql_cfg, dict) and not str(sql_cfg.get("dsn", "")).strip():
            sql_cfg["sqlite_path"] = state_path
    return config
