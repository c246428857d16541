from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from app.api.routes import api_router, download_router, upload_router
from app.core.config import get_settings
from app.dependencies import build_storage, get_sweeper, set_storage
from app.services.scheduler import CleanupScheduler

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.app_name, version="1.0.0")

set_storage(build_storage(settings))
scheduler: Optional[CleanupScheduler] = None


@app.on_event("startup")
async def on_startup() -> None:
    global scheduler
    settings.ensure_directories()
    if not settings.cleanup_enabled:
        logger.info("Scheduled orphaned files cleanup is disabled.")
        return
    scheduler = CleanupScheduler(get_sweeper(), days=settings.retention_days, run_at=settings.cleanup_time)
    scheduler.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if scheduler:
        await scheduler.stop()


@app.get("/health", tags=["Health"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(upload_router)
app.include_router(api_router)
app.include_router(download_router)
