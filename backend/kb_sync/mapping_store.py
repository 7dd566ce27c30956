"""JSON-file persistence for the logical key -> remote knowledge box id table."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_KB_KEY = "__default_kbid"
DEFAULT_SLUG_KEY = "__default_slug"


class MappingStore:
    """Whole-file JSON table, reloaded and rewritten on every access.

    The lock only serializes callers inside this process. Two processes sharing
    the same file can still race on the read-modify-write cycle.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Dict[str, Any]:
        with self._lock:
            return self._load_unlocked()

    def save(self, mapping: Mapping[str, Any]) -> None:
        with self._lock:
            self._write_unlocked(mapping)

    def get(self, key: str) -> Optional[Any]:
        return self.load().get(key)

    def set_many(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        with self._lock:
            mapping = self._load_unlocked()
            mapping.update(values)
            self._write_unlocked(mapping)
            return mapping

    def delete(self, *keys: str) -> Dict[str, Any]:
        with self._lock:
            mapping = self._load_unlocked()
            removed = [key for key in keys if key in mapping]
            for key in removed:
                del mapping[key]
            if removed:
                self._write_unlocked(mapping)
            return mapping

    def _load_unlocked(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable KB mapping file %s: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring KB mapping file %s: expected a JSON object", self._path)
            return {}
        return raw

    def _write_unlocked(self, mapping: Mapping[str, Any]) -> None:
        try:
            text = json.dumps(dict(mapping), indent=2)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(text, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save KB mapping file %s: %s", self._path, exc)


__all__ = ["DEFAULT_KB_KEY", "DEFAULT_SLUG_KEY", "MappingStore"]
