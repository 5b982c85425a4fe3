"""Web portal - FastAPI app serving the task API."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from portal.routers import dashboard, tasks
from shared.database import dispose_engine
from shared.errors import TaskError, ValidationError
from shared.schemas.common import ErrorResponse, HealthResponse

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()

app = FastAPI(title="Taskdeck Portal", version="1.0.0")

# --------------- Routers ---------------

app.include_router(tasks.router)
app.include_router(dashboard.router)


# --------------- Error mapping ---------------


@app.exception_handler(TaskError)
async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
    body = ErrorResponse(
        detail=exc.message,
        errors=exc.errors if isinstance(exc, ValidationError) else None,
    )
    if exc.status_code >= 500:
        logger.error("task_request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


@app.on_event("shutdown")
async def shutdown() -> None:
    await dispose_engine()
    logger.info("portal_shutdown")


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", service="portal")
