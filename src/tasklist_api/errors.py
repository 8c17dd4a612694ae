from __future__ import annotations

from typing import Optional


class TaskDirectoryError(Exception):
    """Base class for failures surfaced by the task directory."""

    code = "task_directory_error"
    status_code = 400

    def __init__(self, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class UserNotFoundError(TaskDirectoryError):
    """The caller's user record does not exist."""

    code = "user_not_found"
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


class TaskNotFoundError(TaskDirectoryError):
    """The task does not exist or is not owned by the caller."""

    code = "task_not_found"
    status_code = 404

    def __init__(self, task_id: str):
        super().__init__("Task not found")
        self.task_id = task_id


class StoreError(TaskDirectoryError):
    """The document store is unavailable or rejected the operation."""

    code = "store_unavailable"
    status_code = 503
