"""Read-only dashboard rollups for a single user's active tasks."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.tasks.repository import TaskRepository
from shared.clock import Clock, utcnow
from shared.models.task import Task
from shared.status import TaskStatus

logger = structlog.get_logger()


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[start, end) of the calendar month containing ``now``, in UTC."""
    now = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def completion_rate(completed: int, created: int) -> float:
    if created == 0:
        return 0.0
    return round(completed / created * 100, 1)


class DashboardAggregator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def get_stats(self, owner_id: uuid.UUID) -> dict:
        async with self.session_factory() as session:
            counts = await TaskRepository(session).count_by_status(owner_id)

        by_status = {s.value: counts.get(s.value, 0) for s in TaskStatus}
        return {
            "total_tasks": sum(counts.values()),
            "by_status": by_status,
            "completed_tasks": by_status[TaskStatus.DONE.value],
            "in_progress_tasks": by_status[TaskStatus.IN_PROGRESS.value],
            "pending_tasks": by_status[TaskStatus.TODO.value],
        }

    async def get_completion_rate(self, owner_id: uuid.UUID) -> float:
        """Share of this month's new tasks that are DONE, as a percentage."""
        start, end = month_bounds(self.clock())
        async with self.session_factory() as session:
            repo = TaskRepository(session)
            created = await repo.count_created_between(owner_id, start, end)
            if created == 0:
                return 0.0
            completed = await repo.count_created_between(
                owner_id, start, end, status=TaskStatus.DONE
            )
        return completion_rate(completed, created)

    async def get_recent_tasks(self, owner_id: uuid.UUID, limit: int = 5) -> list[Task]:
        async with self.session_factory() as session:
            return await TaskRepository(session).recent_for_user(owner_id, limit=limit)

    async def summary(self, owner_id: uuid.UUID, recent_limit: int = 5) -> dict:
        stats = await self.get_stats(owner_id)
        rate = await self.get_completion_rate(owner_id)
        recent = await self.get_recent_tasks(owner_id, limit=recent_limit)
        logger.debug("dashboard_summary", user_id=str(owner_id), total=stats["total_tasks"])
        return {"stats": stats, "completion_rate": rate, "recent_tasks": recent}
