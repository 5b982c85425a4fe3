"""Error taxonomy shared by the task services and the portal.

None of these are process-fatal. The portal maps each class to an HTTP
status in ``portal.main``:

    ValidationError  -> 422
    NotFound         -> 404
    OwnershipError   -> 403
    StorageError     -> 502
"""

from __future__ import annotations


class TaskError(Exception):
    """Base class for all task-domain errors."""

    status_code = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TaskError):
    """Bad, missing or duplicate input. ``errors`` maps field -> messages."""

    status_code = 422

    def __init__(self, errors: dict[str, list[str]] | str, message: str = "") -> None:
        if isinstance(errors, str):
            errors = {"__all__": [errors]}
        self.errors = errors
        if not message:
            first_field = next(iter(errors))
            message = errors[first_field][0] if errors[first_field] else "Invalid input"
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls({field: [message]})


class NotFound(TaskError):
    """Identifier does not resolve within the expected scope (active vs trashed)."""

    status_code = 404


class OwnershipError(TaskError):
    """Caller is authenticated but does not own the resource."""

    status_code = 403

    def __init__(self, message: str = "You do not have permission to access this task.") -> None:
        super().__init__(message)


class StorageError(TaskError):
    """Blob store unreachable or the write failed."""

    status_code = 502
