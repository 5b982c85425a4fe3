"""Tests for the task status model."""

from __future__ import annotations

import pytest

from shared.status import TaskStatus


class TestTaskStatus:
    def test_values_in_declaration_order(self):
        assert TaskStatus.values() == ["to-do", "in-progress", "done"]

    def test_labels(self):
        assert TaskStatus.TODO.label == "To Do"
        assert TaskStatus.IN_PROGRESS.label == "In Progress"
        assert TaskStatus.DONE.label == "Done"

    def test_options_pairs(self):
        assert TaskStatus.options()[1] == {"value": "in-progress", "label": "In Progress"}
        assert len(TaskStatus.options()) == 3

    def test_coerce_accepts_value_and_member(self):
        assert TaskStatus.coerce("done") is TaskStatus.DONE
        assert TaskStatus.coerce(TaskStatus.TODO) is TaskStatus.TODO

    @pytest.mark.parametrize("raw", ["finished", "", "DONE", "To Do"])
    def test_coerce_rejects_unknown(self, raw):
        with pytest.raises(ValueError, match="Invalid status"):
            TaskStatus.coerce(raw)

    def test_compares_equal_to_machine_value(self):
        assert TaskStatus.IN_PROGRESS == "in-progress"
