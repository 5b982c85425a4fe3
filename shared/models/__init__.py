"""SQLAlchemy models."""

from shared.models.base import Base
from shared.models.task import Task, TaskLifecycle
from shared.models.user import User

__all__ = [
    "Base",
    "Task",
    "TaskLifecycle",
    "User",
]
