"""Typed failures raised by the task storage engine.

Everything derives from TaskStoreError so adapters can catch the whole
family in one place. Lookups that simply find nothing (TaskStorage.get_task)
return None instead of raising.
"""

from __future__ import annotations


class TaskStoreError(Exception):
    """Base class for task storage errors."""


class TaskValidationError(TaskStoreError, ValueError):
    """A required field is missing or a value is outside its allowed set."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class TaskNotFoundError(TaskStoreError, LookupError):
    """Referenced task does not exist."""

    def __init__(self, task_id: str, message: str | None = None):
        super().__init__(message or f"Task {task_id} not found")
        self.task_id = task_id


class CollisionExhaustedError(TaskStoreError, RuntimeError):
    """Identifier allocation kept colliding with existing ids."""

    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate unique task ID after {attempts} attempts")
        self.attempts = attempts


class CircularDependencyError(TaskStoreError, ValueError):
    """Setting the parent would make a task its own ancestor."""

    def __init__(self, task_id: str, parent_id: str):
        super().__init__(
            f"Cannot set parent of task {task_id} to {parent_id}: circular dependency"
        )
        self.task_id = task_id
        self.parent_id = parent_id


class VersionNotFoundError(TaskStoreError, LookupError):
    """Rollback target is not in the task's version history."""

    def __init__(self, task_id: str, version: int):
        super().__init__(f"Version {version} not found for task {task_id}")
        self.task_id = task_id
        self.version = version


class TaskFileConflictError(TaskStoreError, FileExistsError):
    """A file with the task's name already exists where it is being moved."""

    def __init__(self, task_id: str, target: str):
        super().__init__(f"Cannot move task {task_id}: {target} already exists")
        self.task_id = task_id
        self.target = target
