"""File-based storage for workflow run logs.

The workflow executor does no I/O; callers that want history hand finished
RunLogs to this store. Each workflow version gets one JSONL file, one RunLog
per line, appended as runs finish. Corrupt lines (partial writes) are
skipped on read.

Storage layout::

    {base_path}/
      workflows/
        {version_id}/
          logs.jsonl
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import threading
from pathlib import Path

from pydantic import ValidationError

from promptlab.workflow.run_log import RunLog

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9_.-]")


class RunLogStore:
    """Persists RunLogs per workflow version. Appends are serialized by a lock."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        self._lock = threading.Lock()

    def _log_path(self, version_id: str) -> Path:
        safe_id = _SAFE_ID.sub("_", version_id) or "_"
        return self._base_path / "workflows" / safe_id / "logs.jsonl"

    # -------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------

    def append_sync(self, version_id: str, log: RunLog) -> Path:
        """Append one run to the version's JSONL file. Sync."""
        path = self._log_path(version_id)
        line = json.dumps(log.model_dump(mode="json", by_alias=True), ensure_ascii=False) + "\n"
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)
        return path

    async def append(self, version_id: str, log: RunLog) -> Path:
        return await asyncio.to_thread(self.append_sync, version_id, log)

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    def load_sync(self, version_id: str) -> list[RunLog]:
        """All stored runs of a version, oldest first."""
        return _read_jsonl_logs(self._log_path(version_id))

    async def list_logs(self, version_id: str, status: str = "", limit: int = 20) -> list[RunLog]:
        """Most recent runs first, optionally filtered by status."""
        logs = await asyncio.to_thread(self.load_sync, version_id)
        if status:
            logs = [log for log in logs if log.status == status]
        logs.sort(key=lambda log: log.timestamp, reverse=True)
        return logs[:limit]

    async def get(self, version_id: str, run_id: str) -> RunLog | None:
        logs = await asyncio.to_thread(self.load_sync, version_id)
        return next((log for log in logs if log.id == run_id), None)

    def list_versions(self) -> list[str]:
        """Directory names of versions that have stored runs."""
        workflows_dir = self._base_path / "workflows"
        if not workflows_dir.is_dir():
            return []
        return sorted(
            d.name for d in workflows_dir.iterdir() if d.is_dir() and (d / "logs.jsonl").exists()
        )


def _read_jsonl_logs(path: Path) -> list[RunLog]:
    results: list[RunLog] = []
    if not path.exists():
        return results
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    results.append(RunLog.model_validate_json(line))
                except ValidationError as e:
                    logger.warning("Skipping corrupt JSONL line in %s: %s", path, e)
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
    return results
