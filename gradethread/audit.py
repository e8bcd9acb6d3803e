"""Append-only JSONL audit logger, one file per grading run."""
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Per-image analyses log from worker threads.
_write_lock = threading.Lock()


def log_event(
    audit_path: Path,
    run_id: str,
    event_type: str,
    payload: dict[str, Any] | None = None,
    model_name: str | None = None,
) -> None:
    """Append one JSON object (one line) to the audit file."""
    payload = payload or {}
    record = {
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "run_id": run_id,
        "event_type": event_type,
        "model_name": model_name,
        "payload": payload,
    }
    line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
    with _write_lock, open(audit_path, "a", encoding="utf-8") as f:
        f.write(line)


def read_events(audit_path: Path) -> list[dict[str, Any]]:
    """Load every event from an audit file, in write order."""
    if not audit_path.exists():
        return []
    with open(audit_path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
