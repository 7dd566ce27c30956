"""Composition root wiring the gateway, resolver, processor and queue together."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .config import Settings, get_settings
from .dead_letters import DeadLetterLog
from .gateway import NucliaGateway, is_error
from .mapping_store import MappingStore
from .processor import SyncProcessor
from .resolver import KnowledgeBoxResolver
from .resource_links import ResourceLinkClient
from .sync_models import SyncResult
from .worker import SyncQueue

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 100
_OWNER_PATHS = (("extra", "metadata", "userId"), ("metadata", "userId"), ("usermetadata", "userId"))


def _owner_matches(resource: Any, user_id: str) -> bool:
    if not isinstance(resource, Mapping):
        return False
    for path in _OWNER_PATHS:
        current: Any = resource
        for key in path:
            current = current.get(key) if isinstance(current, Mapping) else None
        if current == user_id:
            return True
    return False


class KbSyncService:
    def __init__(
        self,
        gateway: NucliaGateway,
        store: MappingStore,
        *,
        links: Optional[ResourceLinkClient] = None,
        default_kbid: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        dead_letters: Optional[DeadLetterLog] = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.links = links
        self.resolver = KnowledgeBoxResolver(gateway, store, default_kbid=default_kbid)
        self.processor = SyncProcessor(gateway, self.resolver, links)
        self.queue = SyncQueue(
            self.processor.process,
            max_retries=max_retries,
            retry_delay=retry_delay,
            dead_letters=dead_letters,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "KbSyncService":
        return cls(
            NucliaGateway.from_settings(settings),
            MappingStore(settings.mapping_path),
            links=ResourceLinkClient.from_settings(settings),
            default_kbid=settings.nuclia_default_kb,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay_seconds,
            dead_letters=DeadLetterLog(settings.dead_letter_path) if settings.dead_letter_path else None,
        )

    def enqueue_sync(self, user_id: str, payload: Any) -> str:
        return self.queue.enqueue(user_id, payload)

    async def process_now(self, user_id: str, payload: Any) -> SyncResult:
        return await self.queue.process_now(user_id, payload)

    async def resolve_kb_and_list(self, user_id: str) -> Dict[str, Any]:
        """List the user's resources, filtering by owner metadata inside the shared box."""
        handle = await self.resolver.resolve(user_id)
        listing = await self.gateway.list_resources(handle.kbid, page=0, size=LIST_PAGE_SIZE)
        if is_error(listing) or not isinstance(listing, Mapping):
            logger.error("listResources failed for kb %s: %s", handle.kbid, listing)
            return {"kbid": handle.kbid, "resources": []}

        raw = listing.get("resources")
        resources: List[Any] = list(raw) if isinstance(raw, list) else []
        if handle.from_default:
            resources = [resource for resource in resources if _owner_matches(resource, user_id)]
        return {"kbid": handle.kbid, "resources": resources}

    async def aclose(self) -> None:
        await self.queue.shutdown()
        await self.gateway.aclose()
        if self.links is not None:
            await self.links.aclose()


_service: Optional[KbSyncService] = None


def get_sync_service() -> KbSyncService:
    global _service
    if _service is None:
        _service = KbSyncService.from_settings(get_settings())
    return _service


async def close_sync_service() -> None:
    global _service
    if _service is not None:
        await _service.aclose()
    _service = None


__all__ = ["KbSyncService", "close_sync_service", "get_sync_service"]
