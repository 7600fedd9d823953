"""Partial task updates.

A TaskPatch names only the fields a caller wants to change. Fields that were
not provided are left alone; passing None for an optional field (assignee,
parent, description, ...) clears it. Keys may be snake_case or the camelCase
names used in task files and adapter payloads.

Usage:
    from knowns.task_patch import TaskPatch

    patch = TaskPatch.model_validate({"status": "done", "assignee": None})
    patch.changes()  # {"status": "done", "assignee": None}
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from knowns.errors import TaskValidationError
from knowns.task_ids import normalize_task_id
from knowns.task_model import AcceptanceCriterion, TaskPriority, TimeEntry

# Fields that cannot be cleared, only replaced
_REQUIRED_WHEN_SET = (
    "title",
    "status",
    "priority",
    "labels",
    "acceptance_criteria",
    "time_spent",
    "time_entries",
)


class TaskPatch(BaseModel):
    """Explicit partial update for a Task. id and timestamps are not patchable."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    title: str | None = None
    description: str | None = None
    status: str | None = None
    priority: TaskPriority | None = None
    assignee: str | None = None
    labels: list[str] | None = None
    parent: str | None = None
    acceptance_criteria: list[AcceptanceCriterion] | None = None
    implementation_plan: str | None = None
    implementation_notes: str | None = None
    time_spent: int | float | None = None
    time_entries: list[TimeEntry] | None = None

    @field_validator(*_REQUIRED_WHEN_SET, mode="before")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("cannot be cleared")
        return value

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("Task title is required")
        return value

    @field_validator("parent", mode="before")
    @classmethod
    def _normalize_parent(cls, value: Any) -> Any:
        # "" clears the parent, like None
        if isinstance(value, str):
            return normalize_task_id(value) or None
        return value

    @field_validator("time_entries", mode="before")
    @classmethod
    def _parse_time_entries(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [
                TimeEntry.from_dict(entry) if isinstance(entry, dict) and "startedAt" in entry else entry
                for entry in value
            ]
        return value

    @classmethod
    def coerce(cls, patch: TaskPatch | dict[str, Any]) -> TaskPatch:
        """Accept a TaskPatch or a plain dict, raising TaskValidationError on bad input."""
        if isinstance(patch, TaskPatch):
            return patch
        try:
            return cls.model_validate(patch)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or None
            raise TaskValidationError(f"Invalid task update: {e}", field=field) from e

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided, keyed by Task attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}
