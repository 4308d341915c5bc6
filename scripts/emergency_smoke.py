#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from adhdrive.capture import FileCaptureService, RecordingLibrary  # noqa: E402
from adhdrive.notify import CollectingSink, NotificationKind  # noqa: E402
from adhdrive.persistence import JsonFileGateway, PersistenceWriter  # noqa: E402
from adhdrive.session import EmergencySession, SessionState  # noqa: E402
from adhdrive.trust import TrustScoreEngine  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Emergency session smoke harness (real asyncio ticks + JSON state)."
    )
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=5,
        help="Tick interval; the default shortens the 5s countdown to about 0.25s.",
    )
    parser.add_argument(
        "--state-dir",
        default="",
        help="Directory for state and recordings (defaults to a temp dir).",
    )
    return parser


async def _wait_idle(session: EmergencySession, timeout_s: float) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout_s
    while session.state is not SessionState.IDLE:
        if asyncio.get_running_loop().time() >= deadline:
            return False
        await asyncio.sleep(0.01)
    return True


async def _run(state_dir: Path, interval_ms: int) -> int:
    gateway = JsonFileGateway(state_dir / "state.json")
    writer = PersistenceWriter(gateway)
    engine = TrustScoreEngine(gateway, writer=writer)
    sink = CollectingSink()
    library = RecordingLibrary()
    session = EmergencySession(
        engine,
        FileCaptureService(state_dir / "recordings"),
        sink=sink,
        library=library,
        config={"session": {"tick_interval_ms": interval_ms}},
    )
    try:
        session.trigger()
        if not await _wait_idle(session, timeout_s=interval_ms * 0.1 + 2.0):
            sys.stderr.write("Emergency smoke failed: countdown never lapsed.\n")
            return 1
        if engine.current_score() != 80 or sink.kinds() != [NotificationKind.MISSED]:
            sys.stderr.write("Emergency smoke failed: lapse did not apply the penalty.\n")
            return 1

        session.trigger()
        await asyncio.sleep(interval_ms / 1000.0 * 3)
        await session.start_recording()
        await session.stop_recording()
        if engine.current_score() != 85 or len(library) != 1:
            sys.stderr.write("Emergency smoke failed: capture did not apply the reward.\n")
            return 1

        if not engine.flush(2.0):
            sys.stderr.write("Emergency smoke failed: state writes still pending.\n")
            return 1
        stored = json.loads((state_dir / "state.json").read_text(encoding="utf-8"))
        if json.loads(stored["trustLevel"])["level"] != 85:
            sys.stderr.write("Emergency smoke failed: persisted level mismatch.\n")
            return 1

        sys.stdout.write("Emergency smoke ok.\n")
        return 0
    finally:
        writer.stop()


def main() -> int:
    args = _build_parser().parse_args()
    try:
        if args.state_dir:
            state_dir = Path(args.state_dir)
            state_dir.mkdir(parents=True, exist_ok=True)
            return asyncio.run(_run(state_dir, args.interval_ms))
        with tempfile.TemporaryDirectory() as tmpdir:
            return asyncio.run(_run(Path(tmpdir), args.interval_ms))
    except Exception as exc:
        sys.stderr.write(f"Emergency smoke failed: {exc}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
