"""Pure helpers for a task's embedded subtask checklist.

Subtasks are stored as plain dicts on ``Task.subtasks``:
``{"id": str, "title": str, "completed": bool, "created_at": iso8601}``.
List order is insertion order and is kept as given.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime

from shared.errors import ValidationError
from shared.schemas.tasks import SubtaskIn
from shared.status import TaskStatus


def new_subtask_id() -> str:
    return uuid.uuid4().hex


def normalize_subtasks(
    entries: Iterable[SubtaskIn],
    now: datetime,
    previous: Sequence[dict] | None = None,
) -> list[dict]:
    """Turn validated entries into stored subtask dicts.

    - entries without an id get a fresh one
    - ids must be unique within the list
    - ``created_at`` is kept from ``previous`` for known ids, else taken
      from the entry, else stamped with ``now``
    """
    known_created = {
        s["id"]: s.get("created_at") for s in (previous or []) if isinstance(s, dict) and s.get("id")
    }

    result: list[dict] = []
    seen: set[str] = set()
    for idx, entry in enumerate(entries):
        sid = entry.id or new_subtask_id()
        if sid in seen:
            raise ValidationError.for_field(
                f"subtasks.{idx}.id", f"Duplicate subtask id: {sid}"
            )
        seen.add(sid)

        if known_created.get(sid):
            created_at = known_created[sid]
        elif entry.created_at is not None:
            created_at = entry.created_at.isoformat()
        else:
            created_at = now.isoformat()

        result.append(
            {
                "id": sid,
                "title": entry.title,
                "completed": bool(entry.completed),
                "created_at": created_at,
            }
        )
    return result


def all_completed(subtasks: Sequence[dict] | None) -> bool:
    """True only for a non-empty list where every entry is completed."""
    if not subtasks:
        return False
    return all(s.get("completed") is True for s in subtasks)


def derive_status(current: TaskStatus | str, subtasks: Sequence[dict] | None) -> TaskStatus:
    """Status after a subtask mutation: DONE when every subtask is completed."""
    if all_completed(subtasks):
        return TaskStatus.DONE
    return TaskStatus.coerce(current)


def toggle_subtask(subtasks: Sequence[dict] | None, subtask_id: str) -> list[dict] | None:
    """Return a copy with one subtask's ``completed`` flipped.

    Returns None when no subtask has ``subtask_id``.
    """
    if not subtasks:
        return None

    updated: list[dict] = []
    found = False
    for s in subtasks:
        if not found and s.get("id") == subtask_id:
            s = {**s, "completed": not bool(s.get("completed"))}
            found = True
        updated.append(dict(s))
    return updated if found else None
