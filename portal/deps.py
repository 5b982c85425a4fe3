"""Service providers for the portal routers (overridable in tests)."""

from __future__ import annotations

from functools import lru_cache

from modules.tasks.dashboard import DashboardAggregator
from modules.tasks.service import TaskLifecycleService
from shared.config import get_settings
from shared.database import get_session_factory
from shared.storage import MinioBlobStore


@lru_cache
def get_blob_store() -> MinioBlobStore:
    return MinioBlobStore(get_settings())


def get_task_service() -> TaskLifecycleService:
    return TaskLifecycleService(get_session_factory(), get_blob_store(), get_settings())


def get_dashboard() -> DashboardAggregator:
    return DashboardAggregator(get_session_factory())
