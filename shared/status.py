"""Task status values and their display labels."""

from __future__ import annotations

from enum import Enum


class TaskStatus(str, Enum):
    TODO = "to-do"
    IN_PROGRESS = "in-progress"
    DONE = "done"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def values(cls) -> list[str]:
        """All machine values, in declaration order."""
        return [s.value for s in cls]

    @classmethod
    def options(cls) -> list[dict[str, str]]:
        """``[{value, label}]`` pairs for status pickers."""
        return [{"value": s.value, "label": s.label} for s in cls]

    @classmethod
    def coerce(cls, raw: TaskStatus | str) -> TaskStatus:
        """Accept an enum member or its machine value.

        Raises ValueError for anything else.
        """
        if isinstance(raw, cls):
            return raw
        try:
            return cls(raw)
        except ValueError:
            raise ValueError(
                f"Invalid status {raw!r}; expected one of {', '.join(cls.values())}"
            ) from None


_LABELS = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.DONE: "Done",
}
