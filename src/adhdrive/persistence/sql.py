from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from adhdrive.errors import PersistenceFailure

KV_COLUMNS: List[Tuple[str, str]] = [
    ("key", "TEXT PRIMARY KEY"),
    ("value", "TEXT NOT NULL"),
    ("updated_at", "TEXT"),
]


def _create_table_sql(table: str) -> str:
    cols = ", ".join(f"{name} {col_type}" for name, col_type in KV_COLUMNS)
    return f"CREATE TABLE IF NOT EXISTS {table} ({cols})"


def _upsert_sql(table: str, placeholder: str) -> str:
    if placeholder == "?":
        values = "?, ?, ?"
    else:
        values = ":key, :value, :updated_at"
    return (
        f"INSERT INTO {table} (key, value, updated_at) VALUES ({values}) "
        "ON CONFLICT (key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at"
    )


def validate_table_name(table: str) -> str:
    name = str(table or "").strip()
    if not name or not name.replace("_", "").isalnum() or name[0].isdigit():
        raise ValueError(f"invalid table name: {table!r}")
    return name


def _sqlite_path_from_dsn(dsn: str) -> str | None:
    prefix = "sqlite:///"
    if not dsn.startswith(prefix):
        return None
    return dsn[len(prefix) :]


def _normalize_backend(value: str | None) -> str:
    backend = str(value or "").strip().lower()
    return backend if backend in {"sqlite3", "sqlalchemy"} else "sqlite3"


def _resolve_targets(config: Dict[str, Any]) -> tuple[str, str, str | None]:
    backend = _normalize_backend(config.get("backend"))
    dsn = str(config.get("dsn", "") or config.get("uri", "")).strip()
    sqlite_path = str(config.get("sqlite_path", "")).strip()
    if backend == "sqlalchemy" and not dsn and sqlite_path:
        dsn = f"sqlite:///{Path(sqlite_path).expanduser()}"
    resolved_sqlite_path: str | None = None
    if backend == "sqlite3":
        if sqlite_path:
            resolved_sqlite_path = str(Path(sqlite_path).expanduser())
        elif dsn:
            resolved_sqlite_path = _sqlite_path_from_dsn(dsn) if "://" in dsn else dsn
    return backend, dsn, resolved_sqlite_path


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SQLGateway:
    """Key/value gateway backed by a single SQL table.

    ``backend="sqlite3"`` talks to a local file through the stdlib driver;
    ``backend="sqlalchemy"`` accepts any SQLAlchemy DSN.
    """

    def __init__(
        self,
        *,
        backend: str = "sqlite3",
        dsn: str = "",
        sqlite_path: str | None = None,
        table: str = "adhdrive_kv",
        connect_timeout_s: int = 5,
    ) -> None:
        self.backend, self.dsn, self.sqlite_path = _resolve_targets(
            {"backend": backend, "dsn": dsn, "sqlite_path": sqlite_path or ""}
        )
        self.table = validate_table_name(table)
        self.connect_timeout_s = max(1, int(connect_timeout_s))
        self.engine = None
        self._lock = threading.Lock()
        self._init_table()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "SQLGateway":
        return cls(
            backend=str(config.get("backend", "sqlite3")),
            dsn=str(config.get("dsn", "") or config.get("uri", "")),
            sqlite_path=str(config.get("sqlite_path", "")) or None,
            table=str(config.get("table", "adhdrive_kv")),
            connect_timeout_s=int(config.get("connect_timeout_s", 5)),
        )

    def _connect(self) -> sqlite3.Connection:
        if not self.sqlite_path:
            raise PersistenceFailure("SQL gateway sqlite_path is empty.")
        return sqlite3.connect(self.sqlite_path, timeout=self.connect_timeout_s)

    def _init_table(self) -> None:
        try:
            if self.backend == "sqlite3":
                if not self.sqlite_path:
                    raise PersistenceFailure("SQL gateway sqlite_path is empty.")
                if self.sqlite_path != ":memory:":
                    Path(self.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
                with self._connect() as conn:
                    conn.execute(_create_table_sql(self.table))
                    conn.commit()
            else:
                if not self.dsn:
                    raise PersistenceFailure("SQL gateway DSN is empty.")
                self.engine = create_engine(self.dsn)
                with self.engine.begin() as conn:
                    conn.execute(text(_create_table_sql(self.table)))
        except (sqlite3.Error, SQLAlchemyError, OSError) as exc:
            raise PersistenceFailure(f"SQL gateway init failed: {exc}") from exc

    def get(self, key: str) -> str | None:
        try:
            with self._lock:
                if self.backend == "sqlite3":
                    with self._connect() as conn:
                        row = conn.execute(
                            f"SELECT value FROM {self.table} WHERE key = ?", (key,)
                        ).fetchone()
                else:
                    with self.engine.connect() as conn:
                        row = conn.execute(
                            text(f"SELECT value FROM {self.table} WHERE key = :key"),
                            {"key": key},
                        ).fetchone()
        except (sqlite3.Error, SQLAlchemyError) as exc:
            raise PersistenceFailure(f"SQL gateway read failed for {key!r}: {exc}") from exc
        return None if row is None else str(row[0])

    def set(self, key: str, value: str) -> bool:
        if not isinstance(value, str):
            raise PersistenceFailure(f"value for {key!r} must be str, got {type(value).__name__}")
        updated_at = _utc_now_iso()
        try:
            with self._lock:
                if self.backend == "sqlite3":
                    with self._connect() as conn:
                        conn.execute(_upsert_sql(self.table, "?"), (key, value, updated_at))
                        conn.commit()
                else:
                    with self.engine.begin() as conn:
                        conn.execute(
                            text(_upsert_sql(self.table, ":")),
                            {"key": key, "value": value, "updated_at": updated_at},
                        )
        except (sqlite3.Error, SQLAlchemyError) as exc:
            raise PersistenceFailure(f"SQL gateway write failed for {key!r}: {exc}") from exc
        return True
