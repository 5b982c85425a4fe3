"""Pydantic schemas for the task services."""

from shared.schemas.common import ErrorResponse, HealthResponse
from shared.schemas.tasks import (
    StatusUpdate,
    SubtaskIn,
    SubtasksUpdate,
    SubtaskToggle,
    TaskCreate,
    TaskFilters,
    TaskUpdate,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "StatusUpdate",
    "SubtaskIn",
    "SubtaskToggle",
    "SubtasksUpdate",
    "TaskCreate",
    "TaskFilters",
    "TaskUpdate",
]
