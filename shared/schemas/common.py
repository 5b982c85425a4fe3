"""Response schemas shared by the portal and the sweeper service."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = ""


class ErrorResponse(BaseModel):
    """Body of every task-domain error response."""

    detail: str
    # Field name -> messages; only present for validation failures
    errors: dict[str, list[str]] | None = None
