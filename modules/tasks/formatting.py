"""Presentation projections for tasks (what the portal returns as JSON)."""

from __future__ import annotations

from datetime import datetime

from modules.tasks.repository import TaskPage
from shared.models.task import Task
from shared.status import TaskStatus
from shared.storage import BlobStore

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: datetime | None) -> str | None:
    return value.strftime(TIMESTAMP_FORMAT) if value else None


def status_to_dict(status: TaskStatus | str) -> dict:
    status = TaskStatus.coerce(status)
    return {"value": status.value, "label": status.label}


def task_to_dict(t: Task, blob_store: BlobStore | None = None) -> dict:
    d = {
        "id": str(t.id),
        "title": t.title,
        "content": t.content,
        "status": status_to_dict(t.status),
        "is_published": t.is_published,
        "image_url": blob_store.url_for(t.image_path) if (blob_store and t.image_path) else None,
        "subtasks": list(t.subtasks or []),
        "subtasks_progress": t.subtasks_progress,
        "total_subtasks_count": t.total_subtasks_count,
        "completed_subtasks_count": t.completed_subtasks_count,
        "has_subtasks": t.has_subtasks,
        "all_subtasks_completed": t.all_subtasks_completed,
        "created_at": format_timestamp(t.created_at),
        "updated_at": format_timestamp(t.updated_at),
    }
    if t.deleted_at is not None:
        d["deleted_at"] = format_timestamp(t.deleted_at)
    return d


def page_to_dict(page: TaskPage, blob_store: BlobStore | None = None) -> dict:
    return {
        "data": [task_to_dict(t, blob_store) for t in page.items],
        "meta": {
            "total": page.total,
            "page": page.page,
            "per_page": page.per_page,
            "last_page": page.last_page,
        },
    }
