"""Thin async adapter over the Nuclia knowledge box REST API.

Every call returns either the decoded response body or a structured error
payload; nothing raises across this boundary. HTTP failures look like
``{"error": <status>, "data": <body>}`` and transport failures like
``{"error": "network_error", "message": <text>}``; a body that cannot be
encoded as JSON comes back as ``{"error": "invalid_request", ...}``. Callers branch on
:func:`is_error` / :func:`is_conflict` and pull identifiers out of the
semi-structured bodies with :func:`extract_resource_id`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_HEADER = "X-NUCLIA-SERVICEACCOUNT"
NETWORK_ERROR = "network_error"
INVALID_REQUEST = "invalid_request"
TEXT_FIELD_ID = "a"
DEFAULT_KB_DESCRIPTION = "Per-user knowledge box created by EduBox sync service"

# Observed response envelopes, in probe order. Add newly seen shapes here.
RESOURCE_ID_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("uuid",),
    ("id",),
    ("patched", "uuid"),
    ("patched", "id"),
    ("created", "uuid"),
    ("created", "id"),
    ("data", "uuid"),
    ("data", "id"),
    ("created", "data", "uuid"),
    ("created", "data", "id"),
)
CONFLICT_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("error",),
    ("created", "error"),
)
CONFLICT_STATUS = 409

GatewayResult = Any


def _lookup(body: Any, path: Sequence[str]) -> Any:
    current = body
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def extract_resource_id(body: Any) -> Optional[str]:
    """Return the first identifier found along :data:`RESOURCE_ID_PATHS`."""
    for path in RESOURCE_ID_PATHS:
        value = _lookup(body, path)
        if value:
            return str(value)
    return None


def is_error(body: Any) -> bool:
    return isinstance(body, Mapping) and bool(body.get("error"))


def is_conflict(body: Any) -> bool:
    return any(_lookup(body, path) == CONFLICT_STATUS for path in CONFLICT_PATHS)


def normalize_service_account(raw: Optional[str]) -> str:
    """Turn ``<token>``, ``Bearer <token>`` or ``Api-Key <token>`` into ``Bearer <token>``."""
    if not raw or not raw.strip():
        return ""
    parts = raw.strip().split()
    return f"Bearer {parts[-1]}"


def mask_credential(header: Optional[str]) -> str:
    if not header:
        return "<none>"
    parts = header.split()
    if len(parts) >= 2:
        scheme = parts[0]
        token = "".join(parts[1:])
        return f"{scheme} {_mask_token(token)}"
    return _mask_token(header.strip())


def _mask_token(token: str) -> str:
    if not token:
        return "<masked>"
    if len(token) <= 8:
        return f"{token[0]}***{token[-1]}"
    return f"{token[:4]}...{token[-4:]}"


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {"text": response.text}


class NucliaGateway:
    """One coroutine per remote endpoint, sharing a single authenticated client."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        *,
        verify_tls: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._auth_header = normalize_service_account(api_key)
        if not self._auth_header:
            logger.warning("NUCLIA_API_KEY not set. Requests will likely fail.")
        if not verify_tls:
            logger.warning("NUCLIA_INSECURE_SKIP_TLS=true: skipping TLS certificate validation (dev only)")

        headers: Dict[str, str] = {
            "Accept": "application/json, text/plain, */*",
            "Content-Type": "application/json",
        }
        if self._auth_header:
            headers[SERVICE_ACCOUNT_HEADER] = self._auth_header

        self._client = httpx.AsyncClient(
            headers=headers,
            verify=verify_tls,
            timeout=timeout,
            transport=transport,
            event_hooks={"request": [self._log_request]},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "NucliaGateway":
        return cls(
            settings.nuclia_api_url,
            settings.nuclia_api_key,
            verify_tls=not settings.nuclia_insecure_skip_tls,
            timeout=settings.http_timeout_seconds,
        )

    @property
    def masked_credential(self) -> str:
        return mask_credential(self._auth_header)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _log_request(self, request: httpx.Request) -> None:
        logger.debug(
            "%s %s Authorization=%s",
            request.method,
            request.url,
            mask_credential(request.headers.get(SERVICE_ACCOUNT_HEADER)),
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> GatewayResult:
        url = f"{self._api_url}{path}"
        try:
            response = await self._client.request(method, url, json=json, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            return {"error": exc.response.status_code, "data": _decode(exc.response)}
        except httpx.HTTPError as exc:
            return {"error": NETWORK_ERROR, "message": str(exc) or exc.__class__.__name__}
        except (TypeError, ValueError) as exc:
            # body not JSON-encodable, e.g. NaN floats from a lenient client
            logger.warning("%s %s rejected before sending: %s", method, path, exc)
            return {"error": INVALID_REQUEST, "message": str(exc) or exc.__class__.__name__}
        return _decode(response)

    async def get_kb_by_slug(self, slug: str) -> GatewayResult:
        return await self._request("GET", f"/kb/s/{_segment(slug)}")

    async def create_kb(self, slug: str, title: Optional[str] = None) -> GatewayResult:
        payload = {
            "slug": slug,
            "title": title or f"EduBox {slug}",
            "description": DEFAULT_KB_DESCRIPTION,
        }
        return await self._request("POST", "/kb", json=payload)

    async def create_resource(self, kbid: str, payload: Mapping[str, Any]) -> GatewayResult:
        return await self._request("POST", f"/kb/{_segment(kbid)}/resources", json=dict(payload))

    async def patch_resource_by_slug(self, kbid: str, slug: str, payload: Mapping[str, Any]) -> GatewayResult:
        return await self._request("PATCH", f"/kb/{_segment(kbid)}/slug/{_segment(slug)}", json=dict(payload))

    async def patch_resource_by_id(self, kbid: str, resource_id: str, payload: Mapping[str, Any]) -> GatewayResult:
        return await self._request(
            "PATCH",
            f"/kb/{_segment(kbid)}/resources/{_segment(resource_id)}",
            json=dict(payload),
        )

    async def put_text_field_by_slug(
        self, kbid: str, slug: str, field_id: str, payload: Mapping[str, Any]
    ) -> GatewayResult:
        return await self._request(
            "PUT",
            f"/kb/{_segment(kbid)}/slug/{_segment(slug)}/text/{_segment(field_id)}",
            json=dict(payload),
        )

    async def put_text_field_by_resource_id(
        self, kbid: str, resource_id: str, field_id: str, payload: Mapping[str, Any]
    ) -> GatewayResult:
        return await self._request(
            "PUT",
            f"/kb/{_segment(kbid)}/resources/{_segment(resource_id)}/text/{_segment(field_id)}",
            json=dict(payload),
        )

    async def list_resources(self, kbid: str, page: int = 0, size: int = 50) -> GatewayResult:
        return await self._request(
            "GET",
            f"/kb/{_segment(kbid)}/resources",
            params={"page": page, "size": size},
        )

    async def get_resource_by_slug(self, kbid: str, slug: str) -> GatewayResult:
        return await self._request("GET", f"/kb/{_segment(kbid)}/slug/{_segment(slug)}")


__all__ = [
    "CONFLICT_PATHS",
    "INVALID_REQUEST",
    "NETWORK_ERROR",
    "NucliaGateway",
    "RESOURCE_ID_PATHS",
    "SERVICE_ACCOUNT_HEADER",
    "TEXT_FIELD_ID",
    "extract_resource_id",
    "is_conflict",
    "is_error",
    "mask_credential",
    "normalize_service_account",
]
