"""Resolution of the shared knowledge box every user's resources live in."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .errors import KnowledgeBoxUnavailableError
from .gateway import NucliaGateway, is_error
from .mapping_store import DEFAULT_KB_KEY, DEFAULT_SLUG_KEY, MappingStore
from .slugs import slugify
from .sync_models import KbHandle
from .telemetry import KB_CREATED, KB_MAPPING_INVALIDATED, emit_event

logger = logging.getLogger(__name__)

DEFAULT_KB_SLUG = "edubox-default"
DEFAULT_KB_TITLE = "EduBox default KB"


def _kb_id(body: Any) -> Optional[str]:
    if not isinstance(body, dict) or is_error(body):
        return None
    value = body.get("uuid") or body.get("id")
    return str(value) if value else None


class KnowledgeBoxResolver:
    """Return the single shared knowledge box, creating or repairing it as needed.

    A remembered id is never trusted blindly: it is probed with a one-item
    listing first and dropped from the mapping when the probe fails, since the
    box can be deleted on the remote side without this process noticing.
    """

    def __init__(
        self,
        gateway: NucliaGateway,
        store: MappingStore,
        *,
        default_kbid: Optional[str] = None,
        default_slug: str = DEFAULT_KB_SLUG,
    ) -> None:
        self._gateway = gateway
        self._store = store
        self._override = default_kbid or None
        self._default_slug = default_slug

    async def resolve(self, user_id: str) -> KbHandle:
        if not user_id:
            raise ValueError("user_id is required to resolve a knowledge box.")

        handle = await self._resolve_shared()
        self._remember_user(user_id, handle.kbid)
        return handle

    async def _resolve_shared(self) -> KbHandle:
        mapping = self._store.load()

        if self._override:
            if not mapping.get(DEFAULT_KB_KEY):
                self._store.set_many({DEFAULT_KB_KEY: self._override, DEFAULT_SLUG_KEY: None})
            return KbHandle(
                kbid=self._override,
                slug=mapping.get(DEFAULT_SLUG_KEY),
                created=False,
                from_default=True,
            )

        remembered = mapping.get(DEFAULT_KB_KEY)
        if remembered:
            probe = await self._gateway.list_resources(remembered, page=0, size=1)
            if not is_error(probe):
                return KbHandle(kbid=remembered, slug=mapping.get(DEFAULT_SLUG_KEY), created=False)
            self._invalidate(remembered, probe)

        created = await self._gateway.create_kb(self._default_slug, DEFAULT_KB_TITLE)
        kbid = _kb_id(created)
        if kbid:
            self._store.set_many({DEFAULT_KB_KEY: kbid, DEFAULT_SLUG_KEY: self._default_slug})
            emit_event(KB_CREATED, kbid=kbid, slug=self._default_slug)
            logger.info("Created shared knowledge box %s (slug=%s)", kbid, self._default_slug)
            return KbHandle(kbid=kbid, slug=self._default_slug, created=True)

        if is_error(created):
            found = await self._gateway.get_kb_by_slug(self._default_slug)
            kbid = _kb_id(found)
            if kbid:
                self._store.set_many({DEFAULT_KB_KEY: kbid, DEFAULT_SLUG_KEY: self._default_slug})
                logger.info("Recovered existing knowledge box %s by slug %s", kbid, self._default_slug)
                return KbHandle(kbid=kbid, slug=self._default_slug, created=False)

        raise KnowledgeBoxUnavailableError(
            "Failed to create or find default EduBox KB",
            {"created": created},
        )

    def _invalidate(self, kbid: str, probe: Any) -> None:
        mapping = self._store.load()
        stale = [DEFAULT_KB_KEY, DEFAULT_SLUG_KEY]
        stale.extend(key for key, value in mapping.items() if value == kbid and key not in stale)
        self._store.delete(*stale)
        emit_event(KB_MAPPING_INVALIDATED, kbid=kbid, removed_keys=len(stale))
        logger.warning("Remembered knowledge box %s failed verification; recreating: %s", kbid, probe)

    def _remember_user(self, user_id: str, kbid: str) -> None:
        key = slugify(user_id)
        mapping: Dict[str, Any] = self._store.load()
        if mapping.get(key) != kbid:
            self._store.set_many({key: kbid})


__all__ = ["DEFAULT_KB_SLUG", "DEFAULT_KB_TITLE", "KnowledgeBoxResolver"]
