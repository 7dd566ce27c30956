"""Sync task processing: push one user's payload into the shared knowledge box."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .errors import ResourceConflictError, ResourceUpsertError, TextFieldWriteError
from .gateway import TEXT_FIELD_ID, NucliaGateway, extract_resource_id, is_conflict, is_error
from .resolver import KnowledgeBoxResolver
from .resource_links import ResourceLinkClient
from .slugs import file_resource_slug, user_resource_slug
from .summary import render_summary
from .sync_models import FileSyncSummary, ResourceLink, SyncResult, UpsertResult
from .telemetry import FILES_PROCESSED, emit_event

logger = logging.getLogger(__name__)

PROFILE_SOURCE = "edubox-backend"
FILE_SOURCE = "edubox-backend-file"
FILE_SUMMARY_CHARS = 200


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat()


def text_field_payload(body: Any) -> Dict[str, Any]:
    if not isinstance(body, str):
        body = json.dumps(body, indent=2, default=str)
    return {
        "body": body,
        "format": "PLAIN",
        "extract_strategy": None,
        "split_strategy": None,
    }


def _file_label(item: Any) -> str:
    if isinstance(item, Mapping):
        return str(item.get("name") or item.get("id") or item.get("storageId") or "file")
    return repr(item)


class SyncProcessor:
    def __init__(
        self,
        gateway: NucliaGateway,
        resolver: KnowledgeBoxResolver,
        links: Optional[ResourceLinkClient] = None,
        *,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._gateway = gateway
        self._resolver = resolver
        self._links = links
        self._clock = clock

    async def upsert_resource(
        self,
        kbid: str,
        slug: str,
        payload: Mapping[str, Any],
        *,
        known_resource_id: Optional[str] = None,
    ) -> UpsertResult:
        """Patch, else create, else (on conflict) fetch the resource addressed by ``slug``.

        Repeated or concurrent calls for the same slug converge on one remote
        id because a create conflict is always answered by re-fetching.
        """
        if known_resource_id:
            patched = await self._gateway.patch_resource_by_id(kbid, known_resource_id, payload)
        else:
            patched = await self._gateway.patch_resource_by_slug(kbid, slug, payload)
        resource_id = extract_resource_id(patched)
        if resource_id:
            return UpsertResult(action="patched", resource=patched, resource_id=resource_id)

        created = await self._gateway.create_resource(kbid, payload)
        resource_id = extract_resource_id(created)
        if resource_id:
            return UpsertResult(action="created", resource=created, resource_id=resource_id)

        if is_conflict(created):
            existing = await self._gateway.get_resource_by_slug(kbid, slug)
            resource_id = extract_resource_id(existing)
            if resource_id:
                return UpsertResult(action="exists", resource=existing, resource_id=resource_id)
            raise ResourceConflictError(
                f"failed to resolve existing resource {slug} after 409",
                {"existing": existing},
            )

        raise ResourceUpsertError(
            f"failed to upsert resource {slug}",
            {"patched": patched, "created": created},
        )

    async def put_text(self, kbid: str, resource_id: Optional[str], slug: str, body: Any) -> Any:
        payload = text_field_payload(body)
        if resource_id:
            return await self._gateway.put_text_field_by_resource_id(kbid, resource_id, TEXT_FIELD_ID, payload)
        return await self._gateway.put_text_field_by_slug(kbid, slug, TEXT_FIELD_ID, payload)

    async def process(self, user_id: str, payload: Any) -> SyncResult:
        if not user_id:
            raise ValueError("userId required in task")

        handle = await self._resolver.resolve(user_id)
        kbid = handle.kbid
        slug = user_resource_slug(user_id)
        now = self._clock()
        data: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
        profile = data.get("userProfile") or None

        metadata = {
            "title": f"EduBox sync {_iso(now)}",
            "summary": f"Sync of user data for user {user_id}",
            "slug": slug,
            "metadata": {"userId": user_id, "userProfile": profile},
            "extra": {"metadata": {"syncedAt": _iso(now), "source": PROFILE_SOURCE}},
        }

        upsert = await self.upsert_resource(kbid, slug, metadata)
        links: List[ResourceLink] = []
        if isinstance(profile, Mapping) and profile.get("id"):
            links.append(ResourceLink(clerk_id=str(profile["id"]), nuclia_resource_id=upsert.resource_id))
        logger.info(
            "KB resource %s for user %s in kb %s (kb_created=%s)",
            upsert.action,
            user_id,
            kbid,
            handle.created,
        )

        text_result = await self.put_text(kbid, upsert.resource_id, slug, render_summary(user_id, payload, now=now))
        if is_error(text_result):
            raise TextFieldWriteError(
                f"failed to write summary text for {slug}",
                {"resourceInfo": upsert.model_dump(), "putResult": text_result},
            )

        files = FileSyncSummary()
        recent_files = data.get("recentFiles")
        if isinstance(recent_files, list):
            files = await self._sync_files(kbid, user_id, slug, recent_files, links, now)

        await self._flush_links(links)

        return SyncResult(
            action=upsert.action,
            resource=upsert.resource,
            text_field=text_result,
            resource_id=upsert.resource_id,
            kbid=kbid,
            files=files,
            links=links,
        )

    async def _sync_files(
        self,
        kbid: str,
        user_id: str,
        user_slug: str,
        files: Sequence[Any],
        links: List[ResourceLink],
        now: datetime,
    ) -> FileSyncSummary:
        known: Dict[str, str] = {}
        file_ids = [str(item["id"]) for item in files if isinstance(item, Mapping) and item.get("id")]
        if file_ids and self._links is not None:
            result = await self._links.fetch_known(file_ids, user_id)
            known = result.value_or_log(logger, "get-mappings", {})

        summary = FileSyncSummary(total=len(files))
        for item in files:
            try:
                link = await self._sync_file(kbid, user_id, user_slug, item, known, now)
            except Exception as exc:  # noqa: BLE001
                summary.failed += 1
                logger.warning("per-file sync failed for file %s: %s", _file_label(item), exc)
                continue
            summary.synced += 1
            links.append(link)

        emit_event(
            FILES_PROCESSED,
            user_id=user_id,
            total=summary.total,
            synced=summary.synced,
            failed=summary.failed,
        )
        return summary

    async def _sync_file(
        self,
        kbid: str,
        user_id: str,
        user_slug: str,
        item: Any,
        known: Mapping[str, str],
        now: datetime,
    ) -> ResourceLink:
        if not isinstance(item, Mapping):
            raise ValueError("file entry is not an object")

        slug = file_resource_slug(user_slug, item)
        file_id = str(item["id"]) if item.get("id") else None
        extracted = item.get("extractedText")
        name = item.get("name") or item.get("originalName")

        payload: Dict[str, Any] = {
            "title": name or f"file-{int(now.timestamp() * 1000)}",
            "slug": slug,
            "metadata": {
                "userId": user_id,
                "storageId": item.get("storageId"),
                "fileId": file_id,
                "mimeType": item.get("mimeType"),
                "url": item.get("url"),
                "category": item.get("category"),
                "courseId": item.get("courseId"),
            },
            "extra": {"metadata": {"syncedAt": _iso(now), "source": FILE_SOURCE}},
        }
        summary = item.get("description") or (str(extracted)[:FILE_SUMMARY_CHARS] if extracted else None)
        if summary:
            payload["summary"] = summary
        if item.get("base64"):
            payload["extra"]["files"] = [{"fileName": name, "base64": item["base64"]}]

        upsert = await self.upsert_resource(
            kbid,
            slug,
            payload,
            known_resource_id=known.get(file_id) if file_id else None,
        )

        text = extracted or item.get("text")
        if text:
            put_result = await self.put_text(kbid, upsert.resource_id, slug, text)
            if is_error(put_result):
                logger.warning("putTextField for file %s failed: %s", _file_label(item), put_result)

        return ResourceLink(file_id=file_id, user_id=user_id, nuclia_resource_id=upsert.resource_id, slug=slug)

    async def _flush_links(self, links: Sequence[ResourceLink]) -> None:
        if self._links is None or not links:
            return
        result = await self._links.persist(links)
        updated = result.value_or_log(logger, "persist-mapping", 0)
        if result.ok:
            logger.info("Persisted %d resource links (updated=%s)", len(links), updated)


__all__ = ["FILE_SOURCE", "PROFILE_SOURCE", "SyncProcessor", "text_field_payload"]
