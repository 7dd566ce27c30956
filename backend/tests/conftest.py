from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from kb_sync.best_effort import BestEffortResult
from kb_sync.mapping_store import MappingStore
from kb_sync.sync_models import ResourceLink


def _not_found(what: str) -> Dict[str, Any]:
    return {"error": 404, "data": {"detail": f"{what} does not exist"}}


class FakeNuclia:
    """In-memory stand-in for the gateway, answering with Nuclia-like envelopes."""

    def __init__(self) -> None:
        self.kbs: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._overrides: Dict[str, Callable[..., Any]] = {}
        self._ids = itertools.count(1)

    def override(self, name: str, handler: Callable[..., Any]) -> None:
        """Route ``name`` through ``handler``; returning None falls back to the default behaviour."""
        self._overrides[name] = handler

    def add_kb(self, slug: str) -> str:
        kbid = f"kb-{next(self._ids)}"
        self.kbs[kbid] = {"slug": slug, "resources": {}}
        return kbid

    def called(self, name: str) -> List[Tuple[Any, ...]]:
        return [args for method, args in self.calls if method == name]

    def resources(self, kbid: str) -> Dict[str, Dict[str, Any]]:
        return self.kbs[kbid]["resources"]

    def resource_by_slug(self, kbid: str, slug: str) -> Optional[Dict[str, Any]]:
        for resource in self.resources(kbid).values():
            if resource["slug"] == slug:
                return resource
        return None

    async def _dispatch(self, name: str, *args: Any) -> Any:
        self.calls.append((name, args))
        handler = self._overrides.get(name)
        if handler is not None:
            result = handler(*args)
            if result is not None:
                return result
        return getattr(self, f"_{name}")(*args)

    def _get_kb_by_slug(self, slug: str) -> Any:
        for kbid, kb in self.kbs.items():
            if kb["slug"] == slug:
                return {"uuid": kbid, "slug": slug}
        return _not_found("Knowledge box")

    def _create_kb(self, slug: str, title: Optional[str] = None) -> Any:
        if any(kb["slug"] == slug for kb in self.kbs.values()):
            return {"error": 409, "data": {"detail": "Knowledge box already exists"}}
        return {"uuid": self.add_kb(slug)}

    def _create_resource(self, kbid: str, payload: Dict[str, Any]) -> Any:
        if kbid not in self.kbs:
            return _not_found("Knowledge box")
        if self.resource_by_slug(kbid, payload["slug"]) is not None:
            return {"error": 409, "data": {"detail": "Resource slug already exists"}}
        rid = f"res-{next(self._ids)}"
        self.resources(kbid)[rid] = {"id": rid, **payload, "texts": {}}
        return {"uuid": rid, "seqid": 1}

    def _patch(self, resource: Optional[Dict[str, Any]], payload: Dict[str, Any]) -> Any:
        if resource is None:
            return _not_found("Resource")
        resource.update({key: value for key, value in payload.items() if key != "slug"})
        return {"uuid": resource["id"], "seqid": 2}

    def _patch_resource_by_slug(self, kbid: str, slug: str, payload: Dict[str, Any]) -> Any:
        if kbid not in self.kbs:
            return _not_found("Knowledge box")
        return self._patch(self.resource_by_slug(kbid, slug), payload)

    def _patch_resource_by_id(self, kbid: str, resource_id: str, payload: Dict[str, Any]) -> Any:
        if kbid not in self.kbs:
            return _not_found("Knowledge box")
        return self._patch(self.resources(kbid).get(resource_id), payload)

    def _put_text(self, resource: Optional[Dict[str, Any]], field_id: str, payload: Dict[str, Any]) -> Any:
        if resource is None:
            return _not_found("Resource")
        resource["texts"][field_id] = payload["body"]
        return {"seqid": 3}

    def _put_text_field_by_slug(self, kbid: str, slug: str, field_id: str, payload: Dict[str, Any]) -> Any:
        return self._put_text(self.resource_by_slug(kbid, slug) if kbid in self.kbs else None, field_id, payload)

    def _put_text_field_by_resource_id(
        self, kbid: str, resource_id: str, field_id: str, payload: Dict[str, Any]
    ) -> Any:
        resource = self.resources(kbid).get(resource_id) if kbid in self.kbs else None
        return self._put_text(resource, field_id, payload)

    def _list_resources(self, kbid: str, page: int = 0, size: int = 50) -> Any:
        if kbid not in self.kbs:
            return _not_found("Knowledge box")
        items = list(self.resources(kbid).values())
        return {"resources": items[page * size : (page + 1) * size]}

    def _get_resource_by_slug(self, kbid: str, slug: str) -> Any:
        resource = self.resource_by_slug(kbid, slug) if kbid in self.kbs else None
        return dict(resource) if resource else _not_found("Resource")

    async def get_kb_by_slug(self, slug: str) -> Any:
        return await self._dispatch("get_kb_by_slug", slug)

    async def create_kb(self, slug: str, title: Optional[str] = None) -> Any:
        return await self._dispatch("create_kb", slug, title)

    async def create_resource(self, kbid: str, payload: Dict[str, Any]) -> Any:
        return await self._dispatch("create_resource", kbid, payload)

    async def patch_resource_by_slug(self, kbid: str, slug: str, payload: Dict[str, Any]) -> Any:
        return await self._dispatch("patch_resource_by_slug", kbid, slug, payload)

    async def patch_resource_by_id(self, kbid: str, resource_id: str, payload: Dict[str, Any]) -> Any:
        return await self._dispatch("patch_resource_by_id", kbid, resource_id, payload)

    async def put_text_field_by_slug(self, kbid: str, slug: str, field_id: str, payload: Dict[str, Any]) -> Any:
        return await self._dispatch("put_text_field_by_slug", kbid, slug, field_id, payload)

    async def put_text_field_by_resource_id(
        self, kbid: str, resource_id: str, field_id: str, payload: Dict[str, Any]
    ) -> Any:
        return await self._dispatch("put_text_field_by_resource_id", kbid, resource_id, field_id, payload)

    async def list_resources(self, kbid: str, page: int = 0, size: int = 50) -> Any:
        return await self._dispatch("list_resources", kbid, page, size)

    async def get_resource_by_slug(self, kbid: str, slug: str) -> Any:
        return await self._dispatch("get_resource_by_slug", kbid, slug)

    async def aclose(self) -> None:
        return None


class FakeLinkClient:
    def __init__(self, known: Optional[Dict[str, str]] = None) -> None:
        self.known: Dict[str, str] = dict(known or {})
        self.fetch_requests: List[Tuple[List[str], str]] = []
        self.persisted: List[List[ResourceLink]] = []
        self.fetch_error: Optional[str] = None
        self.persist_error: Optional[str] = None

    async def fetch_known(self, file_ids: Sequence[str], user_id: str) -> BestEffortResult[Dict[str, str]]:
        self.fetch_requests.append((list(file_ids), user_id))
        if self.fetch_error:
            return BestEffortResult.failure(self.fetch_error)
        return BestEffortResult.success({fid: rid for fid, rid in self.known.items() if fid in file_ids})

    async def persist(self, links: Sequence[ResourceLink]) -> BestEffortResult[int]:
        self.persisted.append(list(links))
        if self.persist_error:
            return BestEffortResult.failure(self.persist_error)
        return BestEffortResult.success(len(links))

    async def aclose(self) -> None:
        return None


@pytest.fixture()
def fake_nuclia() -> FakeNuclia:
    return FakeNuclia()


@pytest.fixture()
def link_client() -> FakeLinkClient:
    return FakeLinkClient()


@pytest.fixture()
def mapping_store(tmp_path: Path) -> MappingStore:
    return MappingStore(tmp_path / "kb-mapping.json")
