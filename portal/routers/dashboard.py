"""Dashboard summary endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from modules.tasks.dashboard import DashboardAggregator
from modules.tasks.formatting import task_to_dict
from portal.auth import PortalUser, require_auth
from portal.deps import get_blob_store, get_dashboard
from shared.config import get_settings
from shared.storage import BlobStore

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("")
async def dashboard(
    user: PortalUser = Depends(require_auth),
    aggregator: DashboardAggregator = Depends(get_dashboard),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    """Status counts, this month's completion rate and the latest tasks."""
    summary = await aggregator.summary(
        user.user_id, recent_limit=get_settings().recent_tasks_limit
    )
    return {
        "stats": summary["stats"],
        "completion_rate": summary["completion_rate"],
        "recent_tasks": [task_to_dict(t, blob_store) for t in summary["recent_tasks"]],
    }
