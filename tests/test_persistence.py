import json
import sqlite3
from pathlib import Path

import pytest
from cryptography.fernet import Fernet

from adhdrive.errors import PersistenceFailure
from adhdrive.persistence import (
    EncryptedGateway,
    JsonFileGateway,
    MemoryGateway,
    PersistenceWriter,
    SQLGateway,
    build_gateway,
    encryption_status,
)
from adhdrive.trust import TrustScoreEngine
from adhdrive.trust.models import TrustScore

from conftest import FailingGateway, FakeClock


def _exercise(engine: TrustScoreEngine, clock: FakeClock) -> None:
    engine.apply_change(5, "capture-started")
    clock.advance(hours=3)
    engine.apply_change(-5, "missed")
    engine.apply_change(-5, "missed")


def _assert_round_trip(gateway, clock: FakeClock) -> None:
    engine = TrustScoreEngine(gateway, clock=clock)
    _exercise(engine, clock)

    restored = TrustScoreEngine(gateway, clock=clock)
    assert restored.load() is True
    assert restored.snapshot() == engine.snapshot()
    assert restored.events() == engine.events()


def test_round_trip_memory(clock: FakeClock) -> None:
    _assert_round_trip(MemoryGateway(), clock)


def test_round_trip_json_file(tmp_path: Path, clock: FakeClock) -> None:
    path = tmp_path / "nested" / "state.json"
    _assert_round_trip(JsonFileGateway(path), clock)
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert set(stored) == {"trustLevel", "trustHistory"}
    assert json.loads(stored["trustLevel"]) == {"level": 80, "history": [85, 90, 85, 80]}


def test_round_trip_sqlite(tmp_path: Path, clock: FakeClock) -> None:
    db_path = tmp_path / "state.db"
    _assert_round_trip(SQLGateway(sqlite_path=str(db_path), table="kv"), clock)
    with sqlite3.connect(db_path) as conn:
        keys = {row[0] for row in conn.execute("SELECT key FROM kv")}
    assert keys == {"trustLevel", "trustHistory"}


def test_round_trip_sqlalchemy(tmp_path: Path, clock: FakeClock) -> None:
    dsn = f"sqlite:///{tmp_path / 'alchemy.db'}"
    _assert_round_trip(SQLGateway(backend="sqlalchemy", dsn=dsn), clock)


def test_round_trip_encrypted(tmp_path: Path, clock: FakeClock) -> None:
    inner = MemoryGateway()
    _assert_round_trip(EncryptedGateway(inner, Fernet.generate_key()), clock)
    assert "capture-started" not in (inner.get("trustHistory") or "")


def test_encrypted_gateway_wrong_key_raises() -> None:
    inner = MemoryGateway()
    EncryptedGateway(inner, Fernet.generate_key()).set("k", "v")
    with pytest.raises(PersistenceFailure):
        EncryptedGateway(inner, Fernet.generate_key()).get("k")


def test_sql_gateway_rejects_bad_table(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SQLGateway(sqlite_path=str(tmp_path / "x.db"), table="kv; DROP TABLE kv")


def test_sql_gateway_overwrites_key(tmp_path: Path) -> None:
    gateway = SQLGateway(sqlite_path=str(tmp_path / "x.db"))
    gateway.set("k", "one")
    gateway.set("k", "two")
    assert gateway.get("k") == "two"
    assert gateway.get("missing") is None


def test_json_gateway_corrupt_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(PersistenceFailure):
        JsonFileGateway(path).get("trustLevel")


def test_failed_writes_do_not_touch_memory(clock: FakeClock) -> None:
    gateway = FailingGateway()
    engine = TrustScoreEngine(gateway, clock=clock)
    event = engine.apply_change(-5, "missed")
    assert event.new_level == 80
    assert engine.current_score() == 80
    assert gateway.attempts == 2
    engine.reset()
    assert engine.current_score() == 85


def test_load_with_failing_gateway_keeps_defaults(clock: FakeClock) -> None:
    engine = TrustScoreEngine(FailingGateway(), clock=clock)
    assert engine.load() is False
    assert engine.current_score() == 85


def test_load_legacy_plain_level(clock: FakeClock) -> None:
    engine = TrustScoreEngine(MemoryGateway({"trustLevel": "72"}), clock=clock)
    assert engine.load() is True
    assert engine.snapshot().history == (72,)


def test_load_clamps_and_ignores_garbage(clock: FakeClock) -> None:
    gateway = MemoryGateway(
        {
            "trustLevel": json.dumps({"level": 140, "history": [90, 95]}),
            "trustHistory": "not json",
        }
    )
    engine = TrustScoreEngine(gateway, clock=clock)
    assert engine.load() is True
    assert engine.current_score() == 100
    assert engine.snapshot().history == (90, 95, 100)
    assert engine.events() == []


def test_load_ignores_history_entries_that_are_not_objects(clock: FakeClock) -> None:
    gateway = MemoryGateway(
        {
            "trustLevel": json.dumps({"level": 70, "history": [70]}),
            "trustHistory": json.dumps([1, "x"]),
        }
    )
    engine = TrustScoreEngine(gateway, clock=clock)
    assert engine.load() is True
    assert engine.current_score() == 70
    assert engine.events() == []


def test_load_rejects_odd_score_shapes(clock: FakeClock) -> None:
    for stored in ({"level": 70, "history": "70"}, {"level": 70, "history": [{"x": 1}]}, {"level": [70]}):
        engine = TrustScoreEngine(MemoryGateway({"trustLevel": json.dumps(stored)}), clock=clock)
        assert engine.load() is False
        assert engine.snapshot() == TrustScore(level=85, history=(85,))


def test_load_camel_case_history_records(clock: FakeClock) -> None:
    gateway = MemoryGateway(
        {
            "trustLevel": "80",
            "trustHistory": json.dumps(
                [
                    {
                        "id": "1712345678901",
                        "oldLevel": 85,
                        "newLevel": 80,
                        "change": -5,
                        "reason": "missed",
                        "timestamp": "2024-04-05T19:34:38.901Z",
                    }
                ]
            ),
        }
    )
    engine = TrustScoreEngine(gateway, clock=clock)
    assert engine.load() is True
    [event] = engine.events()
    assert (event.id, event.old_level, event.new_level, event.delta) == ("1712345678901", 85, 80, -5)
    assert event.timestamp.year == 2024


def test_writer_persists_latest_state(clock: FakeClock) -> None:
    gateway = MemoryGateway()
    writer = PersistenceWriter(gateway)
    try:
        engine = TrustScoreEngine(gateway, writer=writer, clock=clock)
        for _ in range(5):
            engine.apply_change(-5, "missed")
        assert engine.flush(2.0)
    finally:
        writer.stop()
    assert json.loads(gateway.get("trustLevel") or "{}")["level"] == 60


def test_writer_contains_failures() -> None:
    gateway = FailingGateway()
    writer = PersistenceWriter(gateway)
    try:
        assert writer.submit("trustLevel", "{}") is True
        assert writer.flush(2.0)
    finally:
        writer.stop()
    assert writer.failures == 1
    assert writer.error == "disk unavailable"
    assert writer.submit("trustLevel", "{}") is False


def test_build_gateway_variants(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    assert isinstance(build_gateway({"persistence": {"backend": "memory"}}), MemoryGateway)
    json_gateway = build_gateway({"persistence": {"backend": "json", "path": str(tmp_path / "s.json")}})
    assert isinstance(json_gateway, JsonFileGateway)
    sql_gateway = build_gateway(
        {"persistence": {"backend": "sql", "sql": {"sqlite_path": str(tmp_path / "s.db")}}}
    )
    assert isinstance(sql_gateway, SQLGateway)
    with pytest.raises(ValueError):
        build_gateway({"persistence": {"backend": "redis"}})

    encrypted_cfg = {"persistence": {"backend": "memory", "encrypt": True, "key_env": "TEST_STATE_KEY"}}
    monkeypatch.delenv("TEST_STATE_KEY", raising=False)
    assert encryption_status(encrypted_cfg)[0] is False
    with pytest.raises(PersistenceFailure):
        build_gateway(encrypted_cfg)
    monkeypatch.setenv("TEST_STATE_KEY", Fernet.generate_key().decode("utf-8"))
    assert isinstance(build_gateway(encrypted_cfg), EncryptedGateway)
