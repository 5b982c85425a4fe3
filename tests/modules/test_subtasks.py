"""Tests for the subtask checklist helpers."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from modules.tasks.subtasks import (
    all_completed,
    derive_status,
    normalize_subtasks,
    toggle_subtask,
)
from shared.errors import ValidationError
from shared.schemas.tasks import SubtaskIn
from shared.status import TaskStatus
from tests.conftest import FIXED_NOW, make_subtask


class TestNormalizeSubtasks:
    def test_assigns_ids_and_timestamps(self):
        result = normalize_subtasks([SubtaskIn(title="Draft"), SubtaskIn(title="Review")], FIXED_NOW)
        assert [s["title"] for s in result] == ["Draft", "Review"]
        assert all(s["id"] for s in result)
        assert result[0]["id"] != result[1]["id"]
        assert result[0]["created_at"] == FIXED_NOW.isoformat()
        assert result[0]["completed"] is False

    def test_keeps_created_at_for_known_ids(self):
        previous = [{"id": "s1", "title": "Old", "completed": False, "created_at": "2025-01-01T00:00:00+00:00"}]
        result = normalize_subtasks([SubtaskIn(id="s1", title="Renamed", completed=True)], FIXED_NOW, previous)
        assert result == [
            {"id": "s1", "title": "Renamed", "completed": True, "created_at": "2025-01-01T00:00:00+00:00"}
        ]

    def test_uses_entry_created_at_for_new_ids(self):
        ts = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        result = normalize_subtasks([SubtaskIn(id="n1", title="x", created_at=ts)], FIXED_NOW)
        assert result[0]["created_at"] == ts.isoformat()

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError) as exc:
            normalize_subtasks([SubtaskIn(id="a", title="x"), SubtaskIn(id="a", title="y")], FIXED_NOW)
        assert "subtasks.1.id" in exc.value.errors

    def test_blank_id_gets_generated(self):
        result = normalize_subtasks([SubtaskIn(id="  ", title="x")], FIXED_NOW)
        assert result[0]["id"].strip()


class TestDeriveStatus:
    def test_all_completed_forces_done(self):
        subtasks = [make_subtask("a", True), make_subtask("b", True)]
        assert derive_status("in-progress", subtasks) is TaskStatus.DONE

    def test_partial_keeps_current(self):
        subtasks = [make_subtask("a", True), make_subtask("b", False)]
        assert derive_status(TaskStatus.TODO, subtasks) is TaskStatus.TODO

    def test_empty_list_keeps_current(self):
        assert all_completed([]) is False
        assert derive_status("in-progress", []) is TaskStatus.IN_PROGRESS

    def test_never_moves_done_backwards(self):
        subtasks = [make_subtask("a", False)]
        assert derive_status("done", subtasks) is TaskStatus.DONE


class TestToggleSubtask:
    def test_flips_only_the_matching_entry(self):
        subtasks = [make_subtask("a", False, sid="s1"), make_subtask("b", False, sid="s2")]
        result = toggle_subtask(subtasks, "s2")
        assert [s["completed"] for s in result] == [False, True]
        # Input untouched
        assert subtasks[1]["completed"] is False

    def test_unknown_id_returns_none(self):
        assert toggle_subtask([make_subtask("a", sid="s1")], "nope") is None
        assert toggle_subtask(None, "s1") is None
