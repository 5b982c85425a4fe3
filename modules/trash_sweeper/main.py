"""Trash sweeper module - FastAPI service with background worker."""

from __future__ import annotations

import asyncio

import structlog
from fastapi import Depends, FastAPI
from pydantic import BaseModel

from modules.trash_sweeper.worker import run_sweep_once, sweeper_loop
from shared.auth import require_service_auth
from shared.config import get_settings
from shared.database import dispose_engine, get_session_factory
from shared.redis import close_redis, get_redis
from shared.schemas.common import HealthResponse
from shared.storage import MinioBlobStore

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()
app = FastAPI(title="Trash Sweeper", version="1.0.0")

blob_store: MinioBlobStore | None = None
_worker_task: asyncio.Task | None = None


class SweepResponse(BaseModel):
    skipped: bool
    purged: int = 0


@app.on_event("startup")
async def startup():
    global blob_store, _worker_task
    settings = get_settings()
    blob_store = MinioBlobStore(settings)

    _worker_task = asyncio.create_task(
        sweeper_loop(get_session_factory(), blob_store, settings, settings.redis_url)
    )
    logger.info("trash_sweeper_module_ready", retention_days=settings.trash_retention_days)


@app.on_event("shutdown")
async def shutdown():
    global _worker_task
    if _worker_task and not _worker_task.done():
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass
    await close_redis()
    await dispose_engine()
    logger.info("trash_sweeper_module_shutdown")


@app.post("/run", response_model=SweepResponse)
async def run_now(_=Depends(require_service_auth)):
    """Run one sweep immediately (same lock as the scheduled run)."""
    settings = get_settings()
    store = blob_store or MinioBlobStore(settings)
    purged = await run_sweep_once(get_session_factory(), store, await get_redis(), settings)
    if purged is None:
        return SweepResponse(skipped=True)
    return SweepResponse(skipped=False, purged=purged)


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", service="trash_sweeper")
