"""Payload schemas for task operations.

These validate caller input only. Cross-record rules (title uniqueness,
status derivation from subtasks) are enforced by the lifecycle service.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from shared.models.task import SUBTASK_TITLE_MAX_LENGTH, TITLE_MAX_LENGTH
from shared.status import TaskStatus


def _strip(v: object) -> object:
    return v.strip() if isinstance(v, str) else v


class SubtaskIn(BaseModel):
    id: str | None = None
    title: str = Field(min_length=1, max_length=SUBTASK_TITLE_MAX_LENGTH)
    completed: bool = False
    created_at: datetime | None = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: object) -> object:
        return _strip(v)

    @field_validator("id", mode="before")
    @classmethod
    def blank_id_is_missing(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    content: str = Field(min_length=1)
    status: TaskStatus = TaskStatus.TODO
    is_published: bool = True
    subtasks: list[SubtaskIn] | None = None

    @field_validator("title", "content", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        return _strip(v)


class TaskUpdate(BaseModel):
    """Partial update. Only fields the caller actually sent are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    content: str | None = Field(default=None, min_length=1)
    status: TaskStatus | None = None
    is_published: bool | None = None
    subtasks: list[SubtaskIn] | None = None

    @field_validator("title", "content", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        return _strip(v)


class StatusUpdate(BaseModel):
    status: TaskStatus


class SubtasksUpdate(BaseModel):
    subtasks: list[SubtaskIn] = Field(default_factory=list)


class SubtaskToggle(BaseModel):
    subtask_id: str


class TaskFilters(BaseModel):
    """Listing options for a user's active tasks.

    ``per_page`` and ``page`` are clamped by the repository, not rejected.
    """

    search: str | None = Field(default=None, max_length=255)
    status: TaskStatus | None = None
    # None means "no filter"; the sentinel "all" maps to None
    is_published: bool | None = None
    order_by: Literal["created_at", "title", "updated_at"] = "created_at"
    order_direction: Literal["asc", "desc"] = "desc"
    per_page: int | None = None
    page: int = 1

    @field_validator("search", mode="before")
    @classmethod
    def blank_search_is_none(cls, v: object) -> object:
        v = _strip(v)
        return v or None

    @field_validator("status", mode="before")
    @classmethod
    def blank_status_is_none(cls, v: object) -> object:
        return v or None

    @field_validator("is_published", mode="before")
    @classmethod
    def all_means_no_filter(cls, v: object) -> object:
        if v is None or (isinstance(v, str) and v.strip().lower() in ("", "all")):
            return None
        return v
