"""Structured sync lifecycle events, logged and fanned out to in-process listeners."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger("kb_sync.telemetry")

TASK_ENQUEUED = "sync_task_enqueued"
TASK_COMPLETED = "sync_task_completed"
TASK_RETRY_SCHEDULED = "sync_task_retry_scheduled"
TASK_DROPPED = "sync_task_dropped"
KB_CREATED = "kb_created"
KB_MAPPING_INVALIDATED = "kb_mapping_invalidated"
FILES_PROCESSED = "sync_files_processed"


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> None:
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


@contextmanager
def capture_events() -> Iterator[List[TelemetryEvent]]:
    """Collect every event emitted inside the block (used in tests)."""
    captured: List[TelemetryEvent] = []
    register_listener(captured.append)
    try:
        yield captured
    finally:
        unregister_listener(captured.append)


def emit_event(name: str, **fields: Any) -> None:
    payload = {key: _sanitize(value) for key, value in fields.items()}
    event = TelemetryEvent(name=name, payload=payload)

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps({"event": name, **payload}, default=str))


def _sanitize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return value


__all__ = [
    "FILES_PROCESSED",
    "KB_CREATED",
    "KB_MAPPING_INVALIDATED",
    "TASK_COMPLETED",
    "TASK_DROPPED",
    "TASK_ENQUEUED",
    "TASK_RETRY_SCHEDULED",
    "TelemetryEvent",
    "capture_events",
    "clear_listeners",
    "emit_event",
    "register_listener",
    "unregister_listener",
]
