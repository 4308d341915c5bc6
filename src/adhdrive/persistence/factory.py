from __future__ import annotations

from typing import Any, Dict

from .encrypted import EncryptedGateway
from .gateway import JsonFileGateway, MemoryGateway, PersistenceGateway
from .sql import SQLGateway
from .writer import PersistenceWriter


def build_gateway(config: Dict[str, Any]) -> PersistenceGateway:
    cfg = config.get("persistence", {}) if isinstance(config, dict) else {}
    backend = str(cfg.get("backend", "json")).strip().lower()
    gateway: PersistenceGateway
    if backend == "memory":
        gateway = MemoryGateway()
    elif backend == "json":
        gateway = JsonFileGateway(str(cfg.get("path", "state.json")))
    elif backend == "sql":
        gateway = SQLGateway.from_config(dict(cfg.get("sql", {})))
    else:
        raise ValueError(f"Unknown persistence backend: {backend}")
    if cfg.get("encrypt"):
        gateway = EncryptedGateway.from_config(gateway, config)
    return gateway


def build_writer(config: Dict[str, Any], gateway: PersistenceGateway) -> PersistenceWriter | None:
    cfg = config.get("persistence", {}) if isinstance(config, dict) else {}
    if not cfg.get("async_writes", True):
        return None
    return PersistenceWriter(gateway, queue_size=int(cfg.get("queue_size", 100)))
