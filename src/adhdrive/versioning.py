from __future__ import annotations

from importlib import metadata
from typing import Any, Dict


def get_adhdrive_version(config: Dict[str, Any] | None = None) -> str:
    about = config.get("about", {}) if isinstance(config, dict) else {}
    if isinstance(about, dict):
        value = str(about.get("version", "")).strip()
        if value:
            return value
    try:
        return metadata.version("adhdrive")
    except metadata.PackageNotFoundError:
        return "0.0.0-dev"
