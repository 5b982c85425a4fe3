"""Task model: a user's task with an embedded checklist of subtasks."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from shared.models.base import Base
from shared.status import TaskStatus

TITLE_MAX_LENGTH = 100
SUBTASK_TITLE_MAX_LENGTH = 255


class TaskLifecycle(str, Enum):
    """Whether a task is live or sitting in the trash."""

    ACTIVE = "active"
    TRASHED = "trashed"


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )

    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH))
    content: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.TODO.value)
    is_published: Mapped[bool] = mapped_column(Boolean, default=True)
    image_path: Mapped[str | None] = mapped_column(String, default=None)

    # Ordered list of {"id", "title", "completed", "created_at"}
    subtasks: Mapped[list[dict] | None] = mapped_column(JSON, default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    # Set -> trashed; NULL -> active
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None, index=True
    )

    __table_args__ = (
        Index(
            "uq_tasks_user_title_active",
            "user_id",
            "title",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_tasks_user_created", "user_id", "created_at"),
    )

    # ── Lifecycle ───────────────────────────────────────────────────────

    @property
    def lifecycle(self) -> TaskLifecycle:
        return TaskLifecycle.TRASHED if self.deleted_at is not None else TaskLifecycle.ACTIVE

    @property
    def is_trashed(self) -> bool:
        return self.lifecycle is TaskLifecycle.TRASHED

    @property
    def status_enum(self) -> TaskStatus:
        return TaskStatus.coerce(self.status)

    # ── Derived subtask counters ────────────────────────────────────────

    @property
    def has_subtasks(self) -> bool:
        return bool(self.subtasks)

    @property
    def total_subtasks_count(self) -> int:
        return len(self.subtasks) if self.subtasks else 0

    @property
    def completed_subtasks_count(self) -> int:
        if not self.subtasks:
            return 0
        return sum(1 for s in self.subtasks if s.get("completed") is True)

    @property
    def subtasks_progress(self) -> float:
        """Percentage of completed subtasks; 0 when there are none."""
        total = self.total_subtasks_count
        if total == 0:
            return 0.0
        return self.completed_subtasks_count / total * 100

    @property
    def all_subtasks_completed(self) -> bool:
        return self.has_subtasks and self.completed_subtasks_count == self.total_subtasks_count
