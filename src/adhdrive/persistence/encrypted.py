from __future__ import annotations

import os
from typing import Any, Dict, Tuple

from cryptography.fernet import Fernet, InvalidToken

from adhdrive.errors import PersistenceFailure

from .gateway import PersistenceGateway


def encryption_status(config: Dict[str, Any]) -> Tuple[bool, str]:
    cfg = config.get("persistence", {}) if isinstance(config, dict) else {}
    if not cfg.get("encrypt"):
        return False, "State encryption disabled."
    key_env = str(cfg.get("key_env", "")).strip()
    if not key_env:
        return False, "persistence.key_env missing."
    if not os.getenv(key_env, ""):
        return False, f"State key missing in env var {key_env}."
    return True, "State encryption ready."


class EncryptedGateway:
    """Wraps another gateway and stores every value as a Fernet token."""

    def __init__(self, inner: PersistenceGateway, key: str | bytes) -> None:
        self.inner = inner
        raw_key = key.encode("utf-8") if isinstance(key, str) else key
        try:
            self._fernet = Fernet(raw_key)
        except ValueError as exc:
            raise PersistenceFailure(f"invalid state encryption key: {exc}") from exc

    @classmethod
    def from_config(cls, inner: PersistenceGateway, config: Dict[str, Any]) -> "EncryptedGateway":
        ok, message = encryption_status(config)
        if not ok:
            raise PersistenceFailure(message)
        key_env = str(config["persistence"]["key_env"]).strip()
        return cls(inner, os.environ[key_env])

    def get(self, key: str) -> str | None:
        token = self.inner.get(key)
        if token is None:
            return None
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise PersistenceFailure(f"cannot decrypt value for {key!r}") from exc

    def set(self, key: str, value: str) -> bool:
        if not isinstance(value, str):
            raise PersistenceFailure(f"value for {key!r} must be str, got {type(value).__name__}")
        token = self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")
        return self.inner.set(key, token)
