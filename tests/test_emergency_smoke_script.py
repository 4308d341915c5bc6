import py_compile
import subprocess
import sys
from pathlib import Path


def test_emergency_smoke_script_exists_and_compiles() -> None:
    root = Path(__file__).resolve().parents[1]
    script = root / "scripts" / "emergency_smoke.py"
    assert script.exists()
    py_compile.compile(str(script), doraise=True)


def test_emergency_smoke_script_runs(tmp_path: Path) -> None:
    root = Path(__file__).resolve().parents[1]
    result = subprocess.run(
        [sys.executable, str(root / "scripts" / "emergency_smoke.py"), "--state-dir", str(tmp_path)],
        capture_output=True,
        text=True,
        timeout=30,
    )
    assert result.returncode == 0, result.stderr
    assert "Emergency smoke ok." in result.stdout
