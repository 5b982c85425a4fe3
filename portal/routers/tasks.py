"""Task management endpoints."""

from __future__ import annotations

import json
import uuid

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from modules.tasks.formatting import page_to_dict, task_to_dict
from modules.tasks.service import ImageUpload, TaskLifecycleService
from portal.auth import PortalUser, require_auth
from portal.deps import get_blob_store, get_task_service
from shared.errors import ValidationError
from shared.schemas.tasks import StatusUpdate, SubtasksUpdate, SubtaskToggle
from shared.status import TaskStatus
from shared.storage import BlobStore

logger = structlog.get_logger()
router = APIRouter(prefix="/api/tasks", tags=["tasks"])

PER_PAGE_OPTIONS = [10, 20, 50, 100]


# --------------- Form helpers ---------------


def _parse_subtasks_field(raw: str | None) -> list | None:
    """Multipart forms carry the subtask list as a JSON string."""
    if raw is None:
        return None
    if not raw.strip():
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError.for_field("subtasks", "The subtasks field must be valid JSON.")
    if not isinstance(value, list):
        raise ValidationError.for_field("subtasks", "The subtasks field must be a list.")
    return value


async def _read_image(image: UploadFile | None) -> ImageUpload | None:
    # Browsers send an empty part when no file was picked
    if image is None or not image.filename:
        return None
    data = await image.read()
    return ImageUpload(data=data, filename=image.filename, content_type=image.content_type)


def _form_fields(**values) -> dict:
    """Only the fields the client actually sent."""
    return {k: v for k, v in values.items() if v is not None}


# --------------- Listings (must be before /{task_id} routes) ---------------


@router.get("")
async def list_tasks(
    search: str | None = Query(None),
    status: str | None = Query(None),
    is_published: str | None = Query(None),
    order_by: str = Query("created_at"),
    order_direction: str = Query("desc"),
    per_page: int | None = Query(None),
    page: int = Query(1),
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    """List the caller's active tasks with filters, sort and pagination."""
    filters = {
        "search": search,
        "status": status,
        "is_published": is_published,
        "order_by": order_by,
        "order_direction": order_direction,
        "per_page": per_page,
        "page": page,
    }
    result = await service.list_tasks(user.user_id, filters)
    body = page_to_dict(result, blob_store)
    body["filters"] = {k: v for k, v in filters.items() if v is not None}
    body["status_options"] = TaskStatus.options()
    body["per_page_options"] = PER_PAGE_OPTIONS
    return body


@router.get("/trash")
async def list_trash(
    per_page: int | None = Query(None),
    page: int = Query(1),
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    result = await service.list_trashed(user.user_id, page=page, per_page=per_page)
    return page_to_dict(result, blob_store)


# --------------- CRUD ---------------


@router.post("", status_code=201)
async def create_task(
    title: str = Form(...),
    content: str = Form(...),
    status: str | None = Form(None),
    is_published: str | None = Form(None),
    subtasks: str | None = Form(None),
    image: UploadFile | None = File(None),
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    fields = _form_fields(
        title=title,
        content=content,
        status=status,
        is_published=is_published,
        subtasks=_parse_subtasks_field(subtasks),
    )
    task = await service.create(user.user_id, fields, image=await _read_image(image))
    return {"message": "Task created successfully.", "task": task_to_dict(task, blob_store)}


@router.get("/{task_id}")
async def show_task(
    task_id: uuid.UUID,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    task = await service.get(user.user_id, task_id)
    return {"task": task_to_dict(task, blob_store)}


@router.put("/{task_id}")
async def update_task(
    task_id: uuid.UUID,
    title: str | None = Form(None),
    content: str | None = Form(None),
    status: str | None = Form(None),
    is_published: str | None = Form(None),
    subtasks: str | None = Form(None),
    image: UploadFile | None = File(None),
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    fields = _form_fields(
        title=title,
        content=content,
        status=status,
        is_published=is_published,
        subtasks=_parse_subtasks_field(subtasks),
    )
    task = await service.update(user.user_id, task_id, fields, image=await _read_image(image))
    return {"message": "Task updated successfully.", "task": task_to_dict(task, blob_store)}


@router.delete("/{task_id}")
async def delete_task(
    task_id: uuid.UUID,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
) -> dict:
    """Move a task to the trash."""
    outcome = await service.delete(user.user_id, task_id)
    return {
        "message": "Task moved to trash.",
        "already_trashed": outcome.already_trashed,
        "image_deleted": outcome.image_deleted,
    }


# --------------- Partial updates ---------------


@router.patch("/{task_id}/status")
async def update_status(
    task_id: uuid.UUID,
    body: StatusUpdate,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    task = await service.update_status(user.user_id, task_id, body.status)
    return {"message": "Task status updated.", "task": task_to_dict(task, blob_store)}


@router.patch("/{task_id}/toggle-published")
async def toggle_published(
    task_id: uuid.UUID,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    task = await service.toggle_published(user.user_id, task_id)
    state = "published" if task.is_published else "unpublished"
    return {"message": f"Task {state}.", "task": task_to_dict(task, blob_store)}


@router.patch("/{task_id}/subtasks")
async def update_subtasks(
    task_id: uuid.UUID,
    body: SubtasksUpdate,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    task = await service.update_subtasks(user.user_id, task_id, body)
    return {"message": "Subtasks updated.", "task": task_to_dict(task, blob_store)}


@router.patch("/{task_id}/subtask/toggle")
async def toggle_subtask(
    task_id: uuid.UUID,
    body: SubtaskToggle,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    task = await service.toggle_subtask(user.user_id, task_id, body.subtask_id)
    return {"message": "Subtask updated.", "task": task_to_dict(task, blob_store)}


# --------------- Trash ---------------


@router.patch("/{task_id}/restore")
async def restore_task(
    task_id: uuid.UUID,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
    blob_store: BlobStore = Depends(get_blob_store),
) -> dict:
    task = await service.restore(user.user_id, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found in trash")
    return {"message": "Task restored successfully.", "task": task_to_dict(task, blob_store)}


@router.delete("/{task_id}/force-delete")
async def force_delete_task(
    task_id: uuid.UUID,
    user: PortalUser = Depends(require_auth),
    service: TaskLifecycleService = Depends(get_task_service),
) -> dict:
    if not await service.force_delete(user.user_id, task_id):
        raise HTTPException(status_code=404, detail="Task not found in trash")
    return {"message": "Task permanently deleted."}
