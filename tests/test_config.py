from pathlib import Path

import pytest

from adhdrive.config import DEFAULT_CONFIG, load_config, merge_config
from adhdrive.session import resolve_session_config
from adhdrive.trust import resolve_trust_config
from adhdrive.versioning import get_adhdrive_version


def test_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = load_config(tmp_path / "absent.toml")
    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_toml_overrides_merge(tmp_path: Path) -> None:
    path = tmp_path / "adhdrive.toml"
    path.write_text(
        "[trust]\ninitial_level = 70\n\n[persistence.sql]\ntable = \"custom_kv\"\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config["trust"]["initial_level"] == 70
    assert config["trust"]["history_capacity"] == 10
    assert config["persistence"]["sql"]["table"] == "custom_kv"
    assert config["persistence"]["sql"]["backend"] == "sqlite3"


def test_broken_toml_is_non_fatal(tmp_path: Path) -> None:
    path = tmp_path / "adhdrive.toml"
    path.write_text("[trust\n", encoding="utf-8")
    assert load_config(path) == DEFAULT_CONFIG


def test_state_path_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ADHDRIVE_STATE_PATH", str(tmp_path / "state.json"))
    config = load_config(tmp_path / "absent.toml")
    assert config["persistence"]["path"] == str(tmp_path / "state.json")


def test_resolvers_coerce_and_validate() -> None:
    trust = resolve_trust_config(merge_config({"trust": {"initial_level": "250", "trend_window_days": 3}}))
    assert trust["initial_level"] == 100
    assert trust["trend_window_days"] == 3.0
    with pytest.raises(ValueError):
        resolve_trust_config({"trust": {"min_level": 10, "max_level": 5}})

    session = resolve_session_config({"session": {"tick_interval_ms": "50"}})
    assert session["tick_interval_ms"] == 50
    assert session["duration_s"] == 5.0
    with pytest.raises(ValueError):
        resolve_session_config({"session": {"duration_s": 0}})


def test_version_override() -> None:
    assert get_adhdrive_version({"about": {"version": "9.9.9"}}) == "9.9.9"
    assert get_adhdrive_version({})
