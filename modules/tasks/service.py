"""Task lifecycle service: the only component that writes to ``tasks``.

Each public method is one unit of work in its own session. Methods that
address a task by id lock the row (``SELECT ... FOR UPDATE``) so that
read-modify-write sequences such as toggling a subtask cannot lose updates.

Post-conditions enforced here rather than in model hooks:

- titles are unique among an owner's active tasks
- whenever the subtask list is written and every subtask is completed, the
  status becomes DONE in the same write
- removing a task's image reference deletes the stored image once
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

import pydantic
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from modules.tasks.repository import TaskPage, TaskRepository
from modules.tasks.subtasks import derive_status, normalize_subtasks, toggle_subtask
from shared.clock import Clock, utcnow
from shared.config import Settings, get_settings, parse_list
from shared.errors import NotFound, OwnershipError, StorageError, ValidationError
from shared.models.task import Task
from shared.schemas.tasks import SubtasksUpdate, TaskCreate, TaskFilters, TaskUpdate
from shared.status import TaskStatus
from shared.storage import BlobStore

logger = structlog.get_logger()

DUPLICATE_TITLE_MESSAGE = "You already have a task with this title."


@dataclass
class ImageUpload:
    """An uploaded image as received from the caller."""

    data: bytes
    filename: str
    content_type: str | None = None

    @property
    def extension(self) -> str:
        return PurePosixPath(self.filename or "").suffix.lower().lstrip(".")

    def validate(self, max_bytes: int, allowed_extensions: list[str]) -> None:
        if not self.data:
            raise ValidationError.for_field("image", "The image file is empty.")
        if len(self.data) > max_bytes:
            raise ValidationError.for_field(
                "image", f"The image must not be larger than {max_bytes // (1024 * 1024)}MB."
            )
        if self.extension not in allowed_extensions:
            raise ValidationError.for_field(
                "image", f"The image must be a file of type: {', '.join(allowed_extensions)}."
            )


@dataclass
class DeleteOutcome:
    task: Task
    # False when the stored image could not be removed (left orphaned)
    image_deleted: bool = True
    already_trashed: bool = False


def _validation_errors(exc: pydantic.ValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "__all__"
        errors.setdefault(loc, []).append(err.get("msg", "Invalid value"))
    return errors


def _parse(model: type[pydantic.BaseModel], fields: Mapping[str, Any] | pydantic.BaseModel):
    if isinstance(fields, model):
        return fields
    if isinstance(fields, pydantic.BaseModel):
        fields = fields.model_dump(exclude_unset=True)
    try:
        return model.model_validate(dict(fields))
    except pydantic.ValidationError as e:
        raise ValidationError(_validation_errors(e)) from e


def _duplicate_title() -> ValidationError:
    return ValidationError.for_field("title", DUPLICATE_TITLE_MESSAGE)


class TaskLifecycleService:
    """Create/update/delete/restore/purge operations for a user's tasks."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.settings = settings or get_settings()
        self.clock = clock

    # ── Helpers ─────────────────────────────────────────────────────────

    def _repo(self, session: AsyncSession) -> TaskRepository:
        return TaskRepository(
            session,
            max_per_page=self.settings.max_per_page,
            default_per_page=self.settings.default_per_page,
        )

    async def _load_owned(
        self,
        repo: TaskRepository,
        owner_id: uuid.UUID,
        task_id: uuid.UUID,
        scope: str = "active",
        for_update: bool = True,
    ) -> Task:
        lookup = {
            "active": repo.get_active,
            "trashed": repo.get_trashed,
            "any": repo.get_any,
        }[scope]
        task = await lookup(task_id, for_update=for_update)
        if task is None:
            raise NotFound(f"Task not found: {task_id}")
        if task.user_id != owner_id:
            logger.warning("task_ownership_denied", task_id=str(task_id), user_id=str(owner_id))
            raise OwnershipError()
        return task

    def _store_image(self, image: ImageUpload) -> str:
        image.validate(
            self.settings.max_image_bytes,
            parse_list(self.settings.allowed_image_extensions),
        )
        return self.blob_store.store(image.data, image.filename, content_type=image.content_type)

    def _delete_image(self, path: str, task_id: uuid.UUID) -> bool:
        """Best-effort image removal; failures are logged, never raised."""
        try:
            return bool(self.blob_store.delete(path))
        except StorageError as e:
            logger.warning("image_delete_failed", task_id=str(task_id), path=path, error=str(e))
            return False

    # ── Reads ───────────────────────────────────────────────────────────

    async def get(self, owner_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        async with self.session_factory() as session:
            return await self._load_owned(self._repo(session), owner_id, task_id, for_update=False)

    async def list_tasks(
        self, owner_id: uuid.UUID, filters: TaskFilters | Mapping[str, Any] | None = None
    ) -> TaskPage:
        filters = _parse(TaskFilters, filters or {})
        async with self.session_factory() as session:
            return await self._repo(session).list_for_user(owner_id, filters)

    async def list_trashed(
        self, owner_id: uuid.UUID, page: int = 1, per_page: int | None = None
    ) -> TaskPage:
        async with self.session_factory() as session:
            return await self._repo(session).list_trashed_for_user(
                owner_id, page=page, per_page=per_page
            )

    # ── Writes ──────────────────────────────────────────────────────────

    async def create(
        self,
        owner_id: uuid.UUID,
        fields: TaskCreate | Mapping[str, Any],
        image: ImageUpload | None = None,
    ) -> Task:
        data: TaskCreate = _parse(TaskCreate, fields)
        now = self.clock()

        async with self.session_factory() as session:
            repo = self._repo(session)
            if await repo.title_taken(owner_id, data.title):
                raise _duplicate_title()

            subtasks = normalize_subtasks(data.subtasks, now) if data.subtasks is not None else None
            status = derive_status(data.status, subtasks)

            # Stored before the insert so a storage failure leaves no row behind
            image_path = self._store_image(image) if image is not None else None

            task = Task(
                id=uuid.uuid4(),
                user_id=owner_id,
                title=data.title,
                content=data.content,
                status=status.value,
                is_published=data.is_published,
                image_path=image_path,
                subtasks=subtasks,
                created_at=now,
                updated_at=now,
                deleted_at=None,
            )
            session.add(task)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if image_path:
                    self._delete_image(image_path, task.id)
                raise _duplicate_title() from e
            except Exception:
                await session.rollback()
                if image_path:
                    self._delete_image(image_path, task.id)
                raise

        logger.info(
            "task_created",
            task_id=str(task.id),
            user_id=str(owner_id),
            status=task.status,
            subtasks=task.total_subtasks_count,
            has_image=image_path is not None,
        )
        return task

    async def update(
        self,
        owner_id: uuid.UUID,
        task_id: uuid.UUID,
        fields: TaskUpdate | Mapping[str, Any],
        image: ImageUpload | None = None,
    ) -> Task:
        data: TaskUpdate = _parse(TaskUpdate, fields)
        provided = data.model_fields_set
        now = self.clock()

        async with self.session_factory() as session:
            repo = self._repo(session)
            task = await self._load_owned(repo, owner_id, task_id)

            if data.title is not None and data.title != task.title:
                if await repo.title_taken(owner_id, data.title, exclude_id=task.id):
                    raise _duplicate_title()
                task.title = data.title
            if data.content is not None:
                task.content = data.content
            if data.is_published is not None:
                task.is_published = data.is_published
            if data.status is not None:
                task.status = data.status.value

            if "subtasks" in provided:
                task.subtasks = normalize_subtasks(data.subtasks or [], now, previous=task.subtasks)
                task.status = derive_status(task.status, task.subtasks).value

            old_path = task.image_path
            new_path = self._store_image(image) if image is not None else None
            if new_path is not None:
                task.image_path = new_path

            task.updated_at = now
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if new_path:
                    self._delete_image(new_path, task_id)
                raise _duplicate_title() from e
            except Exception:
                await session.rollback()
                if new_path:
                    self._delete_image(new_path, task_id)
                raise

        # The replaced image goes only once the new path is committed
        if new_path is not None and old_path:
            self._delete_image(old_path, task_id)

        logger.info("task_updated", task_id=str(task_id), fields=sorted(provided), new_image=new_path is not None)
        return task

    async def delete(self, owner_id: uuid.UUID, task_id: uuid.UUID) -> DeleteOutcome:
        """Move a task to the trash and drop its image."""
        async with self.session_factory() as session:
            task = await self._load_owned(self._repo(session), owner_id, task_id, scope="any")
            if task.is_trashed:
                return DeleteOutcome(task=task, already_trashed=True)

            image_deleted = True
            if task.image_path:
                image_deleted = self._delete_image(task.image_path, task.id)
                task.image_path = None

            task.deleted_at = self.clock()
            await session.commit()

        logger.info("task_trashed", task_id=str(task.id), user_id=str(owner_id), image_deleted=image_deleted)
        return DeleteOutcome(task=task, image_deleted=image_deleted)

    async def update_status(
        self, owner_id: uuid.UUID, task_id: uuid.UUID, status: TaskStatus | str
    ) -> Task:
        """Set the status directly. Subtask completion is not consulted here."""
        try:
            new_status = TaskStatus.coerce(status)
        except ValueError as e:
            raise ValidationError.for_field("status", str(e)) from e

        async with self.session_factory() as session:
            task = await self._load_owned(self._repo(session), owner_id, task_id)
            task.status = new_status.value
            task.updated_at = self.clock()
            await session.commit()

        logger.info("task_status_updated", task_id=str(task.id), status=new_status.value)
        return task

    async def toggle_published(self, owner_id: uuid.UUID, task_id: uuid.UUID) -> Task:
        async with self.session_factory() as session:
            task = await self._load_owned(self._repo(session), owner_id, task_id)
            task.is_published = not task.is_published
            task.updated_at = self.clock()
            await session.commit()

        logger.info("task_publish_toggled", task_id=str(task.id), is_published=task.is_published)
        return task

    async def update_subtasks(
        self,
        owner_id: uuid.UUID,
        task_id: uuid.UUID,
        subtasks: list[Mapping[str, Any]] | SubtasksUpdate,
    ) -> Task:
        """Replace the whole subtask list."""
        if not isinstance(subtasks, SubtasksUpdate):
            subtasks = _parse(SubtasksUpdate, {"subtasks": list(subtasks)})
        now = self.clock()

        async with self.session_factory() as session:
            task = await self._load_owned(self._repo(session), owner_id, task_id)
            task.subtasks = normalize_subtasks(subtasks.subtasks, now, previous=task.subtasks)
            task.status = derive_status(task.status, task.subtasks).value
            task.updated_at = now
            await session.commit()

        logger.info(
            "task_subtasks_updated",
            task_id=str(task.id),
            total=task.total_subtasks_count,
            completed=task.completed_subtasks_count,
            status=task.status,
        )
        return task

    async def toggle_subtask(
        self, owner_id: uuid.UUID, task_id: uuid.UUID, subtask_id: str
    ) -> Task:
        """Flip one subtask. An unknown ``subtask_id`` leaves the task untouched."""
        async with self.session_factory() as session:
            task = await self._load_owned(self._repo(session), owner_id, task_id)
            toggled = toggle_subtask(task.subtasks, subtask_id)
            if toggled is None:
                # TODO: confirm with product whether an unknown id should be a 404 instead of a no-op
                logger.info("subtask_toggle_unknown_id", task_id=str(task.id), subtask_id=subtask_id)
                return task

            task.subtasks = toggled
            task.status = derive_status(task.status, toggled).value
            task.updated_at = self.clock()
            await session.commit()

        logger.info("subtask_toggled", task_id=str(task.id), subtask_id=subtask_id, status=task.status)
        return task

    async def restore(self, owner_id: uuid.UUID, task_id: uuid.UUID) -> Task | None:
        """Bring a trashed task back. Returns None when no trashed task matches."""
        async with self.session_factory() as session:
            repo = self._repo(session)
            try:
                task = await self._load_owned(repo, owner_id, task_id, scope="trashed")
            except NotFound:
                return None

            if await repo.title_taken(owner_id, task.title, exclude_id=task.id):
                raise _duplicate_title()

            task.deleted_at = None
            task.updated_at = self.clock()
            await session.commit()

        logger.info("task_restored", task_id=str(task.id), user_id=str(owner_id))
        return task

    async def force_delete(self, owner_id: uuid.UUID, task_id: uuid.UUID) -> bool:
        """Permanently remove a trashed task. Active tasks are never matched."""
        async with self.session_factory() as session:
            try:
                task = await self._load_owned(self._repo(session), owner_id, task_id, scope="trashed")
            except NotFound:
                return False

            if task.image_path:
                self._delete_image(task.image_path, task.id)
            await session.delete(task)
            await session.commit()

        logger.info("task_purged", task_id=str(task_id), user_id=str(owner_id), reason="force_delete")
        return True
