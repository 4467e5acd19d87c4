from __future__ import annotations

import glob
import json
import os
import time
from typing import Any, Dict, Optional


class JsonlLogger:
    """Per-request access log, one JSON object per line.

    The live file is renamed with a timestamp suffix once it exceeds
    ``max_bytes``; only the newest ``backups`` rotated files are kept.
    Write failures never reach the request path.
    """

    def __init__(
        self,
        path: str,
        max_bytes: int = 25_000_000,
        enabled: bool = True,
        backups: int = 5,
    ):
        self.path = path
        self.max_bytes = max_bytes
        self.enabled = enabled
        self.backups = backups
        log_dir = os.path.dirname(path)
        if enabled and log_dir:
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError:
                # Read-only volume: log() will keep failing silently
                pass

    def rotated_files(self) -> list[str]:
        return sorted(glob.glob(glob.escape(self.path) + ".*"))

    def _prune(self):
        stale = self.rotated_files()[: -self.backups] if self.backups else []
        for name in stale:
            try:
                os.remove(name)
            except OSError:
                pass

    def _rotate_if_needed(self):
        try:
            if os.path.getsize(self.path) <= self.max_bytes:
                return
            micros = int(time.time() * 1_000_000) % 1_000_000
            ts = f"{time.strftime('%Y%m%d-%H%M%S')}-{micros:06d}"
            os.rename(self.path, f"{self.path}.{ts}")
        except OSError:
            return
        self._prune()

    def log(self, record: Dict[str, Any]):
        if not self.enabled:
            return
        self._rotate_if_needed()
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError:
            pass

    def log_request(
        self,
        method: str,
        path: str,
        status: int,
        *,
        model: Optional[str] = None,
        stream: bool = False,
        started: Optional[float] = None,
    ):
        """Record one forwarded call; ``started`` is a ``time.time()`` stamp."""
        record: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "method": method,
            "path": path,
            "model": model,
            "status": status,
            "stream": stream,
        }
        if started is not None:
            record["duration_ms"] = round((time.time() - started) * 1000, 1)
        self.log(record)
