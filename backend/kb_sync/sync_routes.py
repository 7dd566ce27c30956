"""HTTP triggers for background and immediate knowledge box syncs."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from .errors import SyncError
from .service import KbSyncService, get_sync_service
from .sync_models import SyncRequest

router = APIRouter(tags=["sync"])
logger = logging.getLogger(__name__)


def _blank(payload: Any) -> bool:
    # empty containers are valid payloads; null, "", 0 and false are not
    if isinstance(payload, (dict, list)):
        return False
    return not payload


def _require(request: SyncRequest) -> None:
    if not request.user_id or _blank(request.payload):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="userId and payload required",
        )


@router.post("/sync", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_sync(
    request: SyncRequest,
    service: KbSyncService = Depends(get_sync_service),
) -> Dict[str, Any]:
    _require(request)
    task_id = service.enqueue_sync(request.user_id or "", request.merged_payload())
    return {"ok": True, "enqueued": True, "id": task_id}


@router.post("/sync/manual")
async def manual_sync(
    request: SyncRequest,
    service: KbSyncService = Depends(get_sync_service),
) -> Any:
    _require(request)
    try:
        result = await service.process_now(request.user_id or "", request.merged_payload())
    except Exception as exc:  # noqa: BLE001
        logger.error("/sync/manual failed for %s: %s", request.user_id, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "sync_failed", "details": str(exc)},
        )
    return {"ok": True, "result": result.as_payload()}


@router.get("/kb/{user_id}/resources")
async def list_user_resources(
    user_id: str,
    service: KbSyncService = Depends(get_sync_service),
) -> Any:
    try:
        return await service.resolve_kb_and_list(user_id)
    except SyncError as exc:
        logger.warning("Failed to get KB for user %s: %s", user_id, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "kb_error", "details": str(exc)},
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("/kb/%s/resources failed: %s", user_id, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "internal", "details": str(exc)},
        )


__all__ = ["router"]
