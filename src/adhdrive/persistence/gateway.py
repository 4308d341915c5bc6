"""Key/value persistence gateways.

A gateway stores opaque strings under string keys. ``set`` returns ``True``
once the value is stored; backend errors surface as ``PersistenceFailure``.
Callers in the trust engine treat both a ``False`` return and an exception as
a failed write and keep going with their in-memory state.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Protocol, runtime_checkable

from adhdrive.errors import PersistenceFailure


@runtime_checkable
class PersistenceGateway(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> bool:
        ...


class MemoryGateway:
    """Process-local gateway, mainly for tests and dry runs."""

    def __init__(self, initial: Dict[str, str] | None = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        if not isinstance(value, str):
            raise PersistenceFailure(f"value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            self._data[key] = value
        return True

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class JsonFileGateway:
    """All keys in a single JSON object on disk, replaced atomically on write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceFailure(f"cannot read {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise PersistenceFailure(f"{self.path} does not hold a JSON object")
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read_all().get(key)

    def set(self, key: str, value: str) -> bool:
        if not isinstance(value, str):
            raise PersistenceFailure(f"value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            data = self._read_all()
            data[key] = value
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, sort_keys=True)
                os.replace(tmp_name, self.path)
            except OSError as exc:
                raise PersistenceFailure(f"cannot write {self.path}: {exc}") from exc
        return True
