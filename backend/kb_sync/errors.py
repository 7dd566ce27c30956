"""Exceptions raised when a sync task cannot reach a consistent remote state."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional


def _dump(details: Dict[str, Any]) -> str:
    return json.dumps(details, default=str)


class SyncError(RuntimeError):
    """Base error for unrecoverable sync task failures.

    ``details`` holds the raw remote payloads that led to the failure and is
    embedded in the message so a single log line is enough for diagnosis.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.details: Dict[str, Any] = dict(details or {})
        text = f"{message}: {_dump(self.details)}" if self.details else message
        super().__init__(text)


class KnowledgeBoxUnavailableError(SyncError):
    """Neither creating nor looking up the shared knowledge box succeeded."""


class ResourceUpsertError(SyncError):
    """The patch/create ladder produced no resource id."""


class ResourceConflictError(ResourceUpsertError):
    """Create reported a conflict but the existing resource could not be fetched."""


class TextFieldWriteError(SyncError):
    """Writing the summary text into the user resource failed."""


__all__ = [
    "KnowledgeBoxUnavailableError",
    "ResourceConflictError",
    "ResourceUpsertError",
    "SyncError",
    "TextFieldWriteError",
]
