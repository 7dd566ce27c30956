import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .gateway import mask_credential, normalize_service_account
from .logging_config import configure_logging
from .service import KbSyncService, close_sync_service, get_sync_service
from .sync_routes import router as sync_router


configure_logging()
logger = logging.getLogger(__name__)

settings_snapshot = get_settings()
logger.info("KB sync starting with Nuclia API URL: %s", settings_snapshot.nuclia_api_url)
logger.info(
    "Nuclia credential: %s",
    mask_credential(normalize_service_account(settings_snapshot.nuclia_api_key)),
)
logger.info("Default KB override configured: %s", bool(settings_snapshot.nuclia_default_kb))


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await close_sync_service()


app = FastAPI(title="EduBox KB Sync", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(sync_router)


@app.get("/healthz")
def health(service: KbSyncService = Depends(get_sync_service)) -> Dict[str, Any]:
    return {
        "status": "ok",
        "queue": {"state": service.queue.state.value, "pending": service.queue.pending},
    }
