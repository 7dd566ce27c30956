"""Client for the web app endpoints that remember file -> resource ids across runs."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from .best_effort import BestEffortResult
from .config import Settings
from .sync_models import ResourceLink

logger = logging.getLogger(__name__)

PERSIST_SECRET_HEADER = "x-nuclia-persist-secret"
GET_MAPPINGS_PATH = "/api/nuclia/sync/get-mappings"
PERSIST_MAPPING_PATH = "/api/nuclia/sync/persist-mapping"


class ResourceLinkClient:
    """Both calls are best-effort: every failure comes back as a result, never raised."""

    def __init__(
        self,
        base_url: str,
        secret: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if secret:
            headers[PERSIST_SECRET_HEADER] = secret
        self._client = httpx.AsyncClient(headers=headers, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResourceLinkClient":
        return cls(
            settings.persist_frontend_url,
            settings.persist_secret,
            timeout=settings.http_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, body: Dict[str, Any]) -> BestEffortResult[Any]:
        try:
            response = await self._client.post(f"{self._base_url}{path}", json=body)
        except httpx.HTTPError as exc:
            return BestEffortResult.failure(f"{path} request failed: {exc}")
        if response.is_error:
            return BestEffortResult.failure(f"{path} returned HTTP {response.status_code}")
        content_type = response.headers.get("content-type", "").lower()
        if "application/json" not in content_type:
            logger.warning("%s: non-json response (status=%s, content-type=%s)", path, response.status_code, content_type)
            return BestEffortResult.success(None)
        try:
            return BestEffortResult.success(response.json())
        except ValueError as exc:
            return BestEffortResult.failure(f"{path} returned invalid JSON: {exc}")

    async def fetch_known(self, file_ids: Sequence[str], user_id: str) -> BestEffortResult[Dict[str, str]]:
        """Look up remote resource ids already recorded for ``file_ids``."""
        if not file_ids:
            return BestEffortResult.success({})
        result = await self._post(GET_MAPPINGS_PATH, {"fileIds": list(file_ids), "userId": user_id})
        if not result.ok:
            return BestEffortResult.failure(result.error or "unknown error")
        known: Dict[str, str] = {}
        body = result.value
        entries = body.get("mappings") if isinstance(body, dict) else None
        for entry in entries if isinstance(entries, list) else []:
            if isinstance(entry, dict) and entry.get("fileId") and entry.get("nucliaResourceId"):
                known[str(entry["fileId"])] = str(entry["nucliaResourceId"])
        return BestEffortResult.success(known)

    async def persist(self, links: Sequence[ResourceLink]) -> BestEffortResult[int]:
        if not links:
            return BestEffortResult.success(0)
        result = await self._post(PERSIST_MAPPING_PATH, {"mappings": [link.as_payload() for link in links]})
        if not result.ok:
            return BestEffortResult.failure(result.error or "unknown error")
        body = result.value
        updated = body.get("updated") if isinstance(body, dict) else None
        return BestEffortResult.success(updated if isinstance(updated, int) else len(links))


__all__ = [
    "GET_MAPPINGS_PATH",
    "PERSIST_MAPPING_PATH",
    "PERSIST_SECRET_HEADER",
    "ResourceLinkClient",
]
