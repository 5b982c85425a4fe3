"""Read-side query layer over the ``tasks`` table.

Every user-facing query is scoped to one owner. Active and trashed views are
kept apart: default listings never include rows with ``deleted_at`` set.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.task import Task
from shared.schemas.tasks import TaskFilters
from shared.status import TaskStatus

MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = 10

_ORDER_COLUMNS = {
    "created_at": Task.created_at,
    "title": Task.title,
    "updated_at": Task.updated_at,
}


def clamp_per_page(
    per_page: int | None, maximum: int = MAX_PER_PAGE, default: int = DEFAULT_PER_PAGE
) -> int:
    if per_page is None:
        return default
    return max(1, min(int(per_page), maximum))


def clamp_page(page: int | None) -> int:
    return max(1, int(page or 1))


def like_pattern(term: str) -> str:
    """Substring pattern for ILIKE with the wildcard characters escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def order_clauses(order_by: str = "created_at", direction: str = "desc") -> list:
    """Sort key plus ``id`` as tie-breaker so pages never overlap."""
    column = _ORDER_COLUMNS.get(order_by, Task.created_at)
    if direction == "asc":
        return [column.asc(), Task.id.asc()]
    return [column.desc(), Task.id.desc()]


def active_tasks_for(owner_id: uuid.UUID) -> Select:
    return select(Task).where(Task.user_id == owner_id, Task.deleted_at.is_(None))


def trashed_tasks_for(owner_id: uuid.UUID) -> Select:
    return select(Task).where(Task.user_id == owner_id, Task.deleted_at.isnot(None))


def build_list_query(owner_id: uuid.UUID, filters: TaskFilters) -> Select:
    """Filtered (but unordered, unpaginated) query over the owner's active tasks."""
    stmt = active_tasks_for(owner_id)
    if filters.search:
        stmt = stmt.where(Task.title.ilike(like_pattern(filters.search), escape="\\"))
    if filters.status is not None:
        stmt = stmt.where(Task.status == TaskStatus.coerce(filters.status).value)
    if filters.is_published is not None:
        stmt = stmt.where(Task.is_published.is_(filters.is_published))
    return stmt


@dataclass
class TaskPage:
    items: list[Task] = field(default_factory=list)
    total: int = 0
    page: int = 1
    per_page: int = 10

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page)) if self.per_page else 1

    @property
    def has_more(self) -> bool:
        return self.page < self.last_page


class TaskRepository:
    """Queries over a single session. No writes happen here."""

    def __init__(
        self,
        session: AsyncSession,
        max_per_page: int = MAX_PER_PAGE,
        default_per_page: int = DEFAULT_PER_PAGE,
    ):
        self.session = session
        self.max_per_page = max_per_page
        self.default_per_page = default_per_page

    def _per_page(self, per_page: int | None) -> int:
        return clamp_per_page(per_page, self.max_per_page, self.default_per_page)

    async def _paginate(self, stmt: Select, ordering: list, page: int, per_page: int) -> TaskPage:
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()

        result = await self.session.execute(
            stmt.order_by(*ordering).offset((page - 1) * per_page).limit(per_page)
        )
        items = list(result.scalars().all())
        return TaskPage(items=items, total=int(total or 0), page=page, per_page=per_page)

    # ── Listings ────────────────────────────────────────────────────────

    async def list_for_user(self, owner_id: uuid.UUID, filters: TaskFilters) -> TaskPage:
        return await self._paginate(
            build_list_query(owner_id, filters),
            order_clauses(filters.order_by, filters.order_direction),
            clamp_page(filters.page),
            self._per_page(filters.per_page),
        )

    async def list_trashed_for_user(
        self, owner_id: uuid.UUID, page: int = 1, per_page: int | None = None
    ) -> TaskPage:
        return await self._paginate(
            trashed_tasks_for(owner_id),
            order_clauses("created_at", "desc"),
            clamp_page(page),
            self._per_page(per_page),
        )

    async def recent_for_user(self, owner_id: uuid.UUID, limit: int = 5) -> list[Task]:
        result = await self.session.execute(
            active_tasks_for(owner_id).order_by(*order_clauses("created_at", "desc")).limit(limit)
        )
        return list(result.scalars().all())

    async def list_expired_trash(self, cutoff: datetime) -> list[Task]:
        """Trashed tasks of every owner with ``deleted_at <= cutoff``."""
        result = await self.session.execute(
            select(Task)
            .where(Task.deleted_at.isnot(None), Task.deleted_at <= cutoff)
            .order_by(Task.deleted_at.asc(), Task.id.asc())
        )
        return list(result.scalars().all())

    # ── Single-row lookups ──────────────────────────────────────────────

    async def _get(self, task_id: uuid.UUID, *criteria, for_update: bool = False) -> Task | None:
        stmt = select(Task).where(Task.id == task_id, *criteria)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active(self, task_id: uuid.UUID, *, for_update: bool = False) -> Task | None:
        return await self._get(task_id, Task.deleted_at.is_(None), for_update=for_update)

    async def get_trashed(self, task_id: uuid.UUID, *, for_update: bool = False) -> Task | None:
        return await self._get(task_id, Task.deleted_at.isnot(None), for_update=for_update)

    async def get_any(self, task_id: uuid.UUID, *, for_update: bool = False) -> Task | None:
        return await self._get(task_id, for_update=for_update)

    async def get_expired(
        self, task_id: uuid.UUID, cutoff: datetime, *, for_update: bool = False
    ) -> Task | None:
        """The task if it is still trashed with ``deleted_at <= cutoff``."""
        return await self._get(
            task_id,
            Task.deleted_at.isnot(None),
            Task.deleted_at <= cutoff,
            for_update=for_update,
        )

    async def title_taken(
        self, owner_id: uuid.UUID, title: str, exclude_id: uuid.UUID | None = None
    ) -> bool:
        """Whether another active task of this owner already uses ``title``."""
        stmt = select(Task.id).where(
            Task.user_id == owner_id,
            Task.title == title,
            Task.deleted_at.is_(None),
        )
        if exclude_id is not None:
            stmt = stmt.where(Task.id != exclude_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    # ── Aggregates ──────────────────────────────────────────────────────

    async def count_by_status(self, owner_id: uuid.UUID) -> dict[str, int]:
        result = await self.session.execute(
            select(Task.status, func.count(Task.id))
            .where(Task.user_id == owner_id, Task.deleted_at.is_(None))
            .group_by(Task.status)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    async def count_created_between(
        self,
        owner_id: uuid.UUID,
        start: datetime,
        end: datetime,
        status: TaskStatus | None = None,
    ) -> int:
        stmt = select(func.count(Task.id)).where(
            Task.user_id == owner_id,
            Task.deleted_at.is_(None),
            Task.created_at >= start,
            Task.created_at < end,
        )
        if status is not None:
            stmt = stmt.where(Task.status == status.value)
        return int((await self.session.execute(stmt)).scalar() or 0)
