import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List


def _serialize(entry: Dict[str, Any]) -> str:
    return json.dumps(entry, sort_keys=True, separators=(",", ":"))


def _entry_digest(entry: Dict[str, Any]) -> str:
    body = {key: value for key, value in entry.items() if key != "sha256"}
    return hashlib.sha256(_serialize(body).encode()).hexdigest()


class TrustLedgerLogger:
    """Append-only audit trail of trust changes and session outcomes."""

    def __init__(self, path: str | Path = "trust_ledger.jsonl") -> None:
        self.path = Path(path).expanduser()

    def record(self, event: str, payload: Dict[str, Any]) -> None:
        entry = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "event": event,
            "payload": payload,
        }
        entry["sha256"] = _entry_digest(entry)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry) + "\n")

    def entries(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        lines = self.path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]

    def verify(self) -> bool:
        """True when every entry still matches its recorded digest."""
        return all(entry.get("sha256") == _entry_digest(entry) for entry in self.entries())

