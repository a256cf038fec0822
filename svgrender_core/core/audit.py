from __future__ import annotations

import json
from pathlib import Path
import threading
from typing import Any


class JsonlAuditSink:
    """Appends render job events (load, frame, pause, ...) to a JSON-lines file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def __call__(self, entry: dict[str, Any]) -> None:
        self.log(entry)

    def log(self, entry: dict[str, Any]) -> None:
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, separators=(",", ":"), sort_keys=True, default=str))
                f.write("\n")

    def read(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        if not self.path.exists():
            return rows
        with self.path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(row, dict):
                    rows.append(row)
        return rows

    def summarize(self) -> dict[str, Any]:
        action_counts: dict[str, int] = {}
        job_counts: dict[str, int] = {}
        rows = self.read()
        for row in rows:
            action = str(row.get("action", ""))
            job = str(row.get("job", ""))
            action_counts[action] = action_counts.get(action, 0) + 1
            job_counts[job] = job_counts.get(job, 0) + 1
        return {"total": len(rows), "by_action": action_counts, "by_job": job_counts}

    def prune(self, *, max_rows: int | None = None) -> int:
        if max_rows is None or max_rows <= 0 or not self.path.exists():
            return 0
        with self._lock:
            rows = [line for line in self.path.read_text(encoding="utf-8").splitlines() if line.strip()]
            if len(rows) <= max_rows:
                return 0
            kept = rows[-max_rows:]
            with self.path.open("w", encoding="utf-8") as f:
                for row in kept:
                    f.write(row)
                    f.write("\n")
        return len(rows) - len(kept)
