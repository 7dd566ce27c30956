from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from kb_sync.resource_links import (
    GET_MAPPINGS_PATH,
    PERSIST_MAPPING_PATH,
    PERSIST_SECRET_HEADER,
    ResourceLinkClient,
)
from kb_sync.sync_models import ResourceLink

BASE_URL = "http://frontend.test"


def _client(handler, secret: str | None = "s3cret") -> ResourceLinkClient:
    return ResourceLinkClient(BASE_URL, secret, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_known_maps_file_ids_to_resource_ids() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "mappings": [
                    {"fileId": "f1", "nucliaResourceId": "res-1"},
                    {"fileId": "f2"},
                    "junk",
                ]
            },
        )

    client = _client(handler)
    result = await client.fetch_known(["f1", "f2"], "u1")
    await client.aclose()

    assert result.ok
    assert result.value == {"f1": "res-1"}
    assert seen[0].url.path == GET_MAPPINGS_PATH
    assert seen[0].headers[PERSIST_SECRET_HEADER] == "s3cret"
    assert json.loads(seen[0].content) == {"fileIds": ["f1", "f2"], "userId": "u1"}


@pytest.mark.asyncio
async def test_fetch_known_skips_request_without_ids() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = _client(handler)
    result = await client.fetch_known([], "u1")
    await client.aclose()

    assert result.value == {}


@pytest.mark.asyncio
async def test_persist_sends_camel_case_links() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"updated": 2})

    client = _client(handler, secret=None)
    links = [
        ResourceLink(clerk_id="clerk_1", nuclia_resource_id="res-u"),
        ResourceLink(file_id="f1", user_id="u1", nuclia_resource_id="res-1", slug="s"),
    ]
    result = await client.persist(links)
    await client.aclose()

    assert result.value == 2
    assert seen[0].url.path == PERSIST_MAPPING_PATH
    assert PERSIST_SECRET_HEADER not in seen[0].headers
    assert json.loads(seen[0].content) == {
        "mappings": [
            {"clerkId": "clerk_1", "nucliaResourceId": "res-u"},
            {"fileId": "f1", "userId": "u1", "nucliaResourceId": "res-1", "slug": "s"},
        ]
    }


@pytest.mark.asyncio
async def test_error_status_is_a_failure_not_an_exception() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "unauthorized"})

    client = _client(handler)
    result = await client.persist([ResourceLink(clerk_id="c", nuclia_resource_id="r")])
    await client.aclose()

    assert not result.ok
    assert "401" in result.error


@pytest.mark.asyncio
async def test_transport_error_is_a_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    result = await client.fetch_known(["f1"], "u1")
    await client.aclose()

    assert not result.ok


@pytest.mark.asyncio
async def test_non_json_response_is_tolerated(caplog) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>login</html>", headers={"content-type": "text/html"})

    client = _client(handler)
    known = await client.fetch_known(["f1"], "u1")
    persisted = await client.persist([ResourceLink(clerk_id="c", nuclia_resource_id="r")])
    await client.aclose()

    assert known.ok and known.value == {}
    assert persisted.ok and persisted.value == 1
    assert "non-json response" in caplog.text
