"""Append-only JSON-lines record of tasks dropped after exhausting retries."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from .sync_models import SyncTask

logger = logging.getLogger(__name__)


class DeadLetterLog:
    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def record(self, task: SyncTask, error: BaseException) -> None:
        entry = {
            "task": task.model_dump(mode="json"),
            "error": str(error),
            "errorType": error.__class__.__name__,
            "droppedAt": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, default=str) + "\n")
        except OSError as exc:
            logger.error("Failed to record dead-lettered task %s: %s", task.id, exc)

    def entries(self) -> List[Dict[str, Any]]:
        if not self._path.exists():
            return []
        records: List[Dict[str, Any]] = []
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except ValueError:
                    logger.warning("Skipping malformed dead-letter line in %s", self._path)
        return records


__all__ = ["DeadLetterLog"]
