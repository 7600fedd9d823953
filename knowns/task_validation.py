#!/usr/bin/env python3
"""Task field and hierarchy validation.

Checks run by TaskStorage before anything is written:
- Status must belong to the project's configured status set
- Priority must be low, medium or high
- A parent assignment must not make a task its own ancestor

Usage:
    from knowns.task_validation import would_create_cycle

    parents = {"b": "a", "c": "b"}
    would_create_cycle("a", "c", parents.get)  # True: a -> c -> b -> a
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from knowns.errors import TaskValidationError
from knowns.task_model import TaskPriority


def would_create_cycle(
    task_id: str,
    candidate_parent_id: str,
    get_parent: Callable[[str], str | None],
) -> bool:
    """Check whether making candidate_parent_id the parent of task_id creates a cycle.

    Walks the parent chain upward from the candidate. Reaching task_id means
    the candidate is task_id itself or one of its descendants.

    Args:
        task_id: Task whose parent is being set
        candidate_parent_id: Proposed parent
        get_parent: Returns the parent id of a task (None for roots/unknown ids)

    Returns:
        True if the assignment would create a cycle
    """
    if task_id == candidate_parent_id:
        return True

    visited: set[str] = set()
    current: str | None = candidate_parent_id
    while current is not None:
        if current == task_id:
            return True
        # An existing loop above the candidate that never reaches task_id
        if current in visited:
            return False
        visited.add(current)
        current = get_parent(current)

    return False


def validate_status(status: str, allowed: Iterable[str]) -> str:
    """Return status if it is in the allowed set, else raise TaskValidationError."""
    allowed = list(allowed)
    if status not in allowed:
        raise TaskValidationError(
            f"Invalid status '{status}'. Allowed statuses: {', '.join(allowed)}",
            field="status",
        )
    return status


def validate_priority(priority: str | TaskPriority) -> TaskPriority:
    """Parse a priority, raising TaskValidationError for unknown values."""
    if isinstance(priority, TaskPriority):
        return priority
    try:
        return TaskPriority(priority)
    except ValueError as e:
        valid = [p.value for p in TaskPriority]
        raise TaskValidationError(
            f"Invalid priority '{priority}'. Must be one of: {', '.join(valid)}",
            field="priority",
        ) from e


def validate_title(title: str | None) -> str:
    if title is None or not title.strip():
        raise TaskValidationError("Task title is required", field="title")
    return title
