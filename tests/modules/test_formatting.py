"""Tests for task JSON projections."""

from __future__ import annotations

from datetime import timedelta

from modules.tasks.formatting import format_timestamp, page_to_dict, task_to_dict
from modules.tasks.repository import TaskPage
from tests.conftest import FIXED_NOW, make_subtask


class TestTaskToDict:
    def test_shape(self, make_task, blob_store):
        task = make_task(
            status="in-progress",
            image_path="tasks/a.png",
            subtasks=[make_subtask("a", True), make_subtask("b", False)],
        )
        d = task_to_dict(task, blob_store)
        assert d["status"] == {"value": "in-progress", "label": "In Progress"}
        assert d["image_url"] == "https://cdn.test/tasks/a.png"
        assert d["subtasks_progress"] == 50.0
        assert d["completed_subtasks_count"] == 1
        assert d["created_at"] == "2026-03-15 12:00:00"
        assert "deleted_at" not in d

    def test_trashed_includes_deleted_at(self, make_task):
        task = make_task(deleted_at=FIXED_NOW - timedelta(days=1))
        d = task_to_dict(task)
        assert d["deleted_at"] == "2026-03-14 12:00:00"
        assert d["image_url"] is None

    def test_format_timestamp_none(self):
        assert format_timestamp(None) is None


class TestPageToDict:
    def test_meta(self, make_task):
        page = TaskPage(items=[make_task()], total=21, page=3, per_page=10)
        body = page_to_dict(page)
        assert len(body["data"]) == 1
        assert body["meta"] == {"total": 21, "page": 3, "per_page": 10, "last_page": 3}
