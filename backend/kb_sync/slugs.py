"""Deterministic slug helpers shared by the resolver and the sync processor."""

from __future__ import annotations

import re
import time
import uuid
from typing import Any, Mapping, Optional

USER_SLUG_PREFIX = "edubox-user-"
USER_RESOURCE_PREFIX = "user-"
FILE_KEY_LENGTH = 32

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _collapse(value: str) -> str:
    return _NON_ALNUM.sub("-", value.lower()).strip("-")


def _timestamp() -> str:
    return str(int(time.time() * 1000))


def slugify(user_id: Optional[str]) -> str:
    """Return the mapping key / slug stem for ``user_id``.

    Lowercases, collapses runs of non-alphanumerics to ``-`` and strips the
    separators at both ends. An empty result falls back to a millisecond
    timestamp, so only empty identifiers produce non-deterministic slugs.
    """
    if not user_id:
        return f"{USER_SLUG_PREFIX}{_timestamp()}"
    cleaned = _collapse(str(user_id))
    return f"{USER_SLUG_PREFIX}{cleaned or _timestamp()}"


def user_resource_slug(user_id: str) -> str:
    return f"{USER_RESOURCE_PREFIX}{slugify(user_id)}"


def file_key(file_item: Mapping[str, Any]) -> str:
    for field in ("id", "storageId", "name"):
        value = file_item.get(field)
        if value:
            return str(value)[:FILE_KEY_LENGTH]
    return uuid.uuid4().hex[:FILE_KEY_LENGTH]


def file_resource_slug(user_slug: str, file_item: Mapping[str, Any]) -> str:
    return _collapse(f"{user_slug}-file-{file_key(file_item)}")


__all__ = [
    "FILE_KEY_LENGTH",
    "USER_RESOURCE_PREFIX",
    "USER_SLUG_PREFIX",
    "file_key",
    "file_resource_slug",
    "slugify",
    "user_resource_slug",
]
