from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, Sequence

from adhdrive.capture import FileCaptureService, RecordingLibrary
from adhdrive.config import load_config
from adhdrive.errors import CaptureFailure, PermissionDenied, PersistenceFailure
from adhdrive.logger import TrustLedgerLogger
from adhdrive.notify import Notification, NotificationKind
from adhdrive.persistence import build_gateway, build_writer
from adhdrive.session import EmergencySession, SessionState
from adhdrive.trust import TrustScoreEngine
from adhdrive.versioning import get_adhdrive_version


def _dump(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")


class _ConsoleSink:
    def notify(self, notification: Notification) -> None:
        if notification.kind is NotificationKind.MISSED:
            sys.stdout.write(f"Missed it. Trust {notification.delta:+d} -> {notification.level}\n")
        elif notification.kind is NotificationKind.CAPTURE_STARTED:
            sys.stdout.write(f"Recording. Trust {notification.delta:+d} -> {notification.level}\n")
        elif notification.kind is NotificationKind.CAPTURE_COMPLETED and notification.artifact:
            artifact = notification.artifact
            sys.stdout.write(f"Saved {artifact.uri} ({artifact.duration_millis} ms)\n")
        elif notification.kind is NotificationKind.PERMISSION_DENIED:
            sys.stdout.write("Capture permission denied.\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adhdrive",
        description="Trust score and emergency capture drills.",
    )
    parser.add_argument("--config", default="adhdrive.toml", help="Path to adhdrive.toml.")
    parser.add_argument("--version", action="store_true", help="Print version and exit.")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show the current trust level and history.")
    history = sub.add_parser("history", help="List trust changes in a time window.")
    history.add_argument("--days", type=float, default=None, help="Window in days.")
    sub.add_parser("trend", help="Show the 7-day trend analysis.")
    sub.add_parser("stats", help="Show aggregate change statistics.")
    sub.add_parser("reset", help="Reset trust to its defaults.")

    drill = sub.add_parser("drill", help="Run one emergency session.")
    drill.add_argument(
        "--respond-after",
        type=float,
        default=None,
        help="Seconds before starting the capture; omit to let the countdown lapse.",
    )
    drill.add_argument(
        "--record-for",
        type=float,
        default=1.0,
        help="Seconds to keep recording before stopping.",
    )
    return parser


def _build_engine(config: Dict[str, Any]) -> TrustScoreEngine:
    gateway = build_gateway(config)
    writer = build_writer(config, gateway)
    ledger_cfg = config.get("ledger", {})
    ledger = None
    if isinstance(ledger_cfg, dict) and ledger_cfg.get("enabled"):
        ledger = TrustLedgerLogger(str(ledger_cfg.get("path", "trust_ledger.jsonl")))
    engine = TrustScoreEngine(gateway, config=config, writer=writer, ledger=ledger)
    engine.load()
    return engine


async def _run_drill(
    engine: TrustScoreEngine,
    config: Dict[str, Any],
    respond_after: float | None,
    record_for: float,
) -> int:
    recordings_cfg = config.get("recordings", {})
    capture = FileCaptureService(
        str(recordings_cfg.get("directory", "recordings")),
        suffix=str(recordings_cfg.get("suffix", ".m4a")),
    )
    session = EmergencySession(
        engine,
        capture,
        sink=_ConsoleSink(),
        library=RecordingLibrary(int(recordings_cfg.get("keep", 5))),
        config=config,
    )
    resolved = asyncio.Event()

    def _on_change(state: SessionState, countdown: float) -> None:
        if state is SessionState.IDLE:
            resolved.set()

    session.add_observer(_on_change)
    session.trigger()
    sys.stdout.write(f"Emergency! {session.countdown:.1f}s to respond.\n")

    if respond_after is None:
        await resolved.wait()
        return 0

    await asyncio.sleep(max(0.0, respond_after))
    if session.state is not SessionState.COUNTING_DOWN:
        await resolved.wait()
        return 0
    try:
        await session.start_recording()
    except (PermissionDenied, CaptureFailure) as exc:
        sys.stderr.write(f"Capture failed: {exc}\n")
        session.cancel()
        return 1
    await asyncio.sleep(max(0.0, record_for))
    try:
        await session.stop_recording()
    except CaptureFailure as exc:
        sys.stderr.write(f"Capture failed: {exc}\n")
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = load_config(args.config)
    if args.version:
        sys.stdout.write(get_adhdrive_version(config) + "\n")
        return 0
    if not args.command:
        _build_parser().print_help()
        return 1
    logging.basicConfig(
        level=str(config.get("logging", {}).get("level", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        engine = _build_engine(config)
    except (PersistenceFailure, ValueError) as exc:
        sys.stderr.write(f"adhdrive: cannot open state: {exc}\n")
        return 1

    try:
        if args.command == "status":
            _dump(engine.snapshot().as_dict())
        elif args.command == "history":
            _dump([event.as_dict() for event in engine.history(args.days)])
        elif args.command == "trend":
            _dump(engine.trend().as_dict())
        elif args.command == "stats":
            _dump(engine.stats().as_dict())
        elif args.command == "reset":
            engine.reset()
            _dump(engine.snapshot().as_dict())
        elif args.command == "drill":
            code = asyncio.run(_run_drill(engine, config, args.respond_after, args.record_for))
            _dump(engine.snapshot().as_dict())
            return code
        return 0
    finally:
        engine.flush()
        if engine.writer is not None:
            engine.writer.stop()


if __name__ == "__main__":
    raise SystemExit(main())
