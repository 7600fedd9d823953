"""knowns task storage - file-per-task repository with version history.

TaskStorage is the entry point for every caller (CLI, MCP server, HTTP
routes). The model, id and version modules are importable on their own for
tools that only read task files.
"""

from knowns.errors import (
    CircularDependencyError,
    CollisionExhaustedError,
    TaskFileConflictError,
    TaskNotFoundError,
    TaskStoreError,
    TaskValidationError,
    VersionNotFoundError,
)
from knowns.task_model import AcceptanceCriterion, Task, TaskPriority, TimeEntry, decode_task, encode_task
from knowns.task_patch import TaskPatch
from knowns.task_storage import TaskStorage
from knowns.task_versions import TaskChange, TaskVersion

__all__ = [
    "AcceptanceCriterion",
    "CircularDependencyError",
    "CollisionExhaustedError",
    "Task",
    "TaskChange",
    "TaskFileConflictError",
    "TaskNotFoundError",
    "TaskPatch",
    "TaskPriority",
    "TaskStorage",
    "TaskStoreError",
    "TaskValidationError",
    "TaskVersion",
    "TimeEntry",
    "VersionNotFoundError",
    "decode_task",
    "encode_task",
]
