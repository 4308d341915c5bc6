import json
from pathlib import Path

import pytest

from adhdrive.cli import main


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "adhdrive.toml"
    path.write_text(
        "\n".join(
            [
                "[persistence]",
                f'path = "{(tmp_path / "state.json").as_posix()}"',
                "",
                "[session]",
                "tick_interval_ms = 1",
                "",
                "[recordings]",
                f'directory = "{(tmp_path / "recordings").as_posix()}"',
                "",
                "[ledger]",
                "enabled = true",
                f'path = "{(tmp_path / "ledger.jsonl").as_posix()}"',
            ]
        ),
        encoding="utf-8",
    )
    return path


def _last_json(output: str) -> dict:
    start = output.rindex("{\n")
    return json.loads(output[start:])


def test_status_defaults(config_path: Path, capsys) -> None:
    assert main(["--config", str(config_path), "status"]) == 0
    assert json.loads(capsys.readouterr().out) == {"level": 85, "history": [85]}


def test_drill_lapse_then_capture(config_path: Path, tmp_path: Path, capsys) -> None:
    assert main(["--config", str(config_path), "drill"]) == 0
    out = capsys.readouterr().out
    assert "Missed it" in out
    assert _last_json(out)["level"] == 80

    assert main(["--config", str(config_path), "drill", "--respond-after", "0", "--record-for", "0"]) == 0
    out = capsys.readouterr().out
    assert "Recording" in out
    assert _last_json(out)["level"] == 85
    assert len(list((tmp_path / "recordings").iterdir())) == 1

    assert main(["--config", str(config_path), "history", "--days", "7"]) == 0
    events = json.loads(capsys.readouterr().out)
    assert [event["reason"] for event in events] == ["missed", "capture-started"]

    assert main(["--config", str(config_path), "stats"]) == 0
    assert json.loads(capsys.readouterr().out)["total_changes"] == 2

    assert main(["--config", str(config_path), "trend"]) == 0
    assert json.loads(capsys.readouterr().out)["direction"] == "stable"

    assert main(["--config", str(config_path), "reset"]) == 0
    assert json.loads(capsys.readouterr().out) == {"level": 85, "history": [85]}
    assert (tmp_path / "ledger.jsonl").exists()


def test_no_command_prints_help(config_path: Path, capsys) -> None:
    assert main(["--config", str(config_path)]) == 1
    assert "usage" in capsys.readouterr().out


def test_unreadable_state_is_reported(tmp_path: Path, capsys) -> None:
    path = tmp_path / "adhdrive.toml"
    path.write_text('[persistence]\nbackend = "redis"\n', encoding="utf-8")
    assert main(["--config", str(path), "status"]) == 1
    assert "cannot open state" in capsys.readouterr().err
