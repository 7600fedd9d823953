#!/usr/bin/env python3
"""Task version history: field-level diffs and rollback snapshots.

Every update or rollback of a task appends one TaskVersion to that task's
history file. Version numbers start at 1 and increase by one. Each entry
records the tracked fields that changed and a snapshot of the whole task
*after* the change, so version N's snapshot is the state that the Nth
recorded mutation produced.

Storage:
    .knowns/versions/task-{id}.json
    {
      "taskId": "k3x9qa",
      "currentVersion": 2,
      "versions": [
        {"id": "v1", "taskId": "k3x9qa", "version": 1, "timestamp": "...",
         "author": null, "changes": [{"field": "status", "oldValue": "todo",
         "newValue": "done"}], "snapshot": {...}},
        ...
      ]
    }

History is keyed by task id, not by file location, so it stays attached to
a task that is archived and later restored.

Usage:
    from knowns.task_versions import VersionStore

    versions = VersionStore(project_root)
    versions.record_version(task.id, before, after, author="@alice")
    versions.get_versions(task.id)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from knowns.fileutil import atomic_write_text, remove_file
from knowns.paths import get_versions_dir
from knowns.task_model import Task

logger = logging.getLogger(__name__)

# Task attributes compared when building a version's change list
TRACKED_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "status",
    "priority",
    "assignee",
    "labels",
    "acceptance_criteria",
    "implementation_plan",
    "implementation_notes",
)

# Attributes a rollback never touches
PRESERVED_FIELDS: tuple[str, ...] = (
    "id",
    "created_at",
    "parent",
    "subtasks",
    "time_spent",
    "time_entries",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskChange(_CamelModel):
    """One tracked field that differs between two task states.

    field is the camelCase key (e.g. "acceptanceCriteria"); values are in
    their JSON form.
    """

    field: str
    old_value: Any = None
    new_value: Any = None


class TaskVersion(_CamelModel):
    """One committed mutation of a task."""

    id: str
    task_id: str
    version: int = Field(ge=1)
    timestamp: datetime
    author: str | None = None
    changes: list[TaskChange] = Field(default_factory=list)
    snapshot: dict[str, Any] = Field(default_factory=dict)


class TaskVersionHistory(_CamelModel):
    """All versions of one task, oldest first."""

    task_id: str
    current_version: int = 0
    versions: list[TaskVersion] = Field(default_factory=list)


def create_task_diff(previous: Task | None, updated: Task) -> list[TaskChange]:
    """List tracked fields whose values are not deep-equal.

    Args:
        previous: State before the mutation (None for a brand-new task)
        updated: State after the mutation

    Returns:
        One TaskChange per differing field, in TRACKED_FIELDS order
    """
    old = previous.to_dict() if previous is not None else {}
    new = updated.to_dict()

    changes = []
    for name in TRACKED_FIELDS:
        key = to_camel(name)
        old_value = old.get(key)
        new_value = new.get(key)
        if old_value != new_value:
            changes.append(TaskChange(field=key, old_value=old_value, new_value=new_value))
    return changes


def apply_version_snapshot(current: Task, snapshot: dict[str, Any], updated_at: datetime) -> Task:
    """Restore tracked fields from a snapshot onto the current task.

    A tracked field absent from the snapshot was unset at that version and
    is cleared. PRESERVED_FIELDS keep their current values.

    Args:
        current: Task as it is now
        snapshot: Snapshot dict from a TaskVersion
        updated_at: New modification timestamp

    Returns:
        New Task instance (current is not modified)
    """
    data = current.to_dict()
    for name in TRACKED_FIELDS:
        key = to_camel(name)
        data[key] = snapshot.get(key)
    data["updatedAt"] = updated_at.isoformat()
    return Task.from_dict(data)


class VersionStore:
    """Append-only per-task version history stored as JSON files."""

    def __init__(self, project_root: Path):
        self.versions_dir = get_versions_dir(project_root)

    def _history_path(self, task_id: str) -> Path:
        return self.versions_dir / f"task-{task_id}.json"

    def get_version_history(self, task_id: str) -> TaskVersionHistory:
        """Load history for a task (empty history if none recorded yet).

        Raises:
            ValueError: If the history file exists but cannot be parsed
        """
        path = self._history_path(task_id)
        if not path.exists():
            return TaskVersionHistory(task_id=task_id)

        try:
            history = TaskVersionHistory.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise ValueError(f"Corrupt version history for task {task_id}: {path}") from e

        history.versions.sort(key=lambda v: v.version)
        return history

    def _save(self, history: TaskVersionHistory) -> None:
        atomic_write_text(
            self._history_path(history.task_id),
            history.model_dump_json(by_alias=True, indent=2) + "\n",
        )

    def record_version(
        self,
        task_id: str,
        previous: Task | None,
        updated: Task,
        author: str | None = None,
    ) -> TaskVersion:
        """Append a version for a committed mutation.

        A version is written for every call, even when no tracked field
        changed, so each update or rollback advances the version number.

        Args:
            task_id: Task being versioned
            previous: State before the mutation (None if unknown/new)
            updated: State after the mutation (becomes the snapshot)
            author: Who made the change

        Returns:
            The new TaskVersion
        """
        history = self.get_version_history(task_id)
        number = history.current_version + 1

        version = TaskVersion(
            id=f"v{number}",
            task_id=task_id,
            version=number,
            timestamp=datetime.now(UTC),
            author=author,
            changes=create_task_diff(previous, updated),
            snapshot=updated.to_dict(),
        )
        history.versions.append(version)
        history.current_version = number
        self._save(history)

        logger.debug(
            "Recorded version %d for task %s (%d changes)", number, task_id, len(version.changes)
        )
        return version

    def get_versions(self, task_id: str) -> list[TaskVersion]:
        """All versions of a task in ascending order."""
        return self.get_version_history(task_id).versions

    def get_version(self, task_id: str, version: int) -> TaskVersion | None:
        for entry in self.get_versions(task_id):
            if entry.version == version:
                return entry
        return None

    def get_current_version(self, task_id: str) -> int:
        """Latest version number (0 when the task has never been updated)."""
        return self.get_version_history(task_id).current_version

    def get_snapshot_at(self, task_id: str, version: int) -> dict[str, Any] | None:
        entry = self.get_version(task_id, version)
        return entry.snapshot if entry else None

    def get_changes_between(self, task_id: str, from_version: int, to_version: int) -> list[TaskChange]:
        """Changes recorded after from_version up to and including to_version."""
        changes: list[TaskChange] = []
        for entry in self.get_versions(task_id):
            if from_version < entry.version <= to_version:
                changes.extend(entry.changes)
        return changes

    def delete_version_history(self, task_id: str) -> None:
        remove_file(self._history_path(task_id))
