#!/usr/bin/env python3
"""Task Storage: file-per-task repository for a knowns project.

Directory Structure:
    <project_root>/
    ├── .knowns/
    │   ├── config.json            # project settings (statuses, defaults)
    │   ├── time-entries.json      # time entries keyed by task id
    │   ├── tasks/
    │   │   ├── task-k3x9qa - Write-parser.md
    │   │   └── ...
    │   ├── archive/
    │   │   └── task-1 - Old-work.md
    │   └── versions/
    │       └── task-k3x9qa.json   # version history (see task_versions)
    └── backlog/
        └── tasks/                 # legacy location, read-only

Hierarchy lives in each task's `parent` field. The `subtasks` list written
to a parent's file is a cache: every read re-derives it from the tasks that
point at the parent, so a crash between writing a child and its parent
heals on the next read.

Writes are atomic per file, but multi-file operations (child + parent) are
not transactional and concurrent processes are last-writer-wins.

Usage:
    from knowns.task_storage import TaskStorage

    storage = TaskStorage(project_root)
    storage.init_project("My Project")

    task = storage.create_task("Write parser", labels=["core"])
    storage.update_task(task.id, {"status": "in-progress"})
    storage.rollback_task(task.id, 1)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from knowns.errors import (
    CircularDependencyError,
    TaskFileConflictError,
    TaskNotFoundError,
    TaskStoreError,
    VersionNotFoundError,
)
from knowns.fileutil import atomic_write_text, move_file, read_json, remove_file, write_json
from knowns.paths import (
    get_archive_dir,
    get_knowns_dir,
    get_legacy_tasks_dir,
    get_tasks_dir,
    get_time_entries_path,
    get_versions_dir,
)
from knowns.project_config import (
    Project,
    ProjectSettings,
    load_project,
    load_settings,
    save_project,
)
from knowns.task_ids import generate_id, normalize_task_id
from knowns.task_model import DEFAULT_STATUS, AcceptanceCriterion, Task, TaskPriority, TimeEntry
from knowns.task_patch import TaskPatch
from knowns.task_validation import (
    validate_priority,
    validate_status,
    validate_title,
    would_create_cycle,
)
from knowns.task_versions import TaskVersion, VersionStore, apply_version_snapshot

logger = logging.getLogger(__name__)

# "task-{id} - {title}.md" -> id
_FILENAME_ID_PATTERN = re.compile(r"^task-(\S+) - ")


def _now() -> datetime:
    return datetime.now(UTC)


def _next_timestamp(previous: datetime) -> datetime:
    """Current time, forced strictly past previous (clock ties and skew)."""
    now = _now()
    if now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def _merge_subtasks(cached: list[str], derived: list[str]) -> list[str]:
    """Keep cached order for still-valid children, then append new ones."""
    derived_set = set(derived)
    merged = [child for child in cached if child in derived_set]
    merged += [child for child in derived if child not in merged]
    return merged


class TaskStorage:
    """Task repository backed by Markdown files in <project_root>/.knowns/.

    All collaborators (CLI, MCP server, HTTP routes) go through this class.
    The project root is explicit; there is no process-wide current project.
    """

    def __init__(self, project_root: Path, *, id_factory: Callable[[], str] | None = None):
        """Initialize task storage.

        Args:
            project_root: Directory containing (or to contain) .knowns/
            id_factory: Candidate id source for new tasks. Defaults to
                random 6-char base-36 tokens.
        """
        self.project_root = Path(project_root)
        self.tasks_dir = get_tasks_dir(self.project_root)
        self.archive_dir = get_archive_dir(self.project_root)
        self.legacy_dir = get_legacy_tasks_dir(self.project_root)
        self.time_entries_path = get_time_entries_path(self.project_root)
        self.versions = VersionStore(self.project_root)
        self.id_factory = id_factory

        # (path, error) for files the last get_all_tasks() could not parse
        self.skipped_files: list[tuple[Path, str]] = []

    # =========================================================================
    # Project
    # =========================================================================

    def init_project(self, name: str, settings: ProjectSettings | None = None) -> Project:
        """Create the .knowns/ layout and config.json.

        Args:
            name: Project name
            settings: Project settings (defaults when omitted)

        Returns:
            The saved Project
        """
        get_knowns_dir(self.project_root).mkdir(parents=True, exist_ok=True)
        self.tasks_dir.mkdir(exist_ok=True)
        get_versions_dir(self.project_root).mkdir(exist_ok=True)

        project = Project.create(name, settings=settings)
        save_project(self.project_root, project)
        logger.info("init_project: %s at %s", project.id, self.project_root)
        return project

    def get_project(self) -> Project | None:
        return load_project(self.project_root)

    @property
    def settings(self) -> ProjectSettings:
        """Current project settings (re-read on access; config is owned externally)."""
        return load_settings(self.project_root)

    # =========================================================================
    # File lookup
    # =========================================================================

    def _search_dirs(self) -> list[Path]:
        """Directories holding tasks that count as active."""
        return [self.tasks_dir, self.legacy_dir]

    def _iter_task_files(self, dirs: Iterable[Path]) -> Iterator[Path]:
        for directory in dirs:
            if directory.is_dir():
                yield from sorted(p for p in directory.glob("task-*.md") if p.is_file())

    def _find_task_path(self, task_id: str, dirs: Iterable[Path] | None = None) -> Path | None:
        """Find a task file by id.

        Fast path matches the "task-{id} - " filename prefix; the slow path
        parses frontmatter to catch files whose name no longer matches.

        Args:
            task_id: Normalized task id
            dirs: Directories to search (defaults to active + legacy)

        Returns:
            Path if found, None otherwise
        """
        dirs = list(dirs) if dirs is not None else self._search_dirs()
        prefix = f"task-{task_id} - "

        for directory in dirs:
            if not directory.is_dir():
                continue
            matches = sorted(p for p in directory.glob("task-*.md") if p.name.startswith(prefix))
            if len(matches) > 1:
                logger.warning(
                    "Found %d files for task-%s, using %s. Files: %s",
                    len(matches),
                    task_id,
                    matches[0].name,
                    ", ".join(p.name for p in matches),
                )
            if matches:
                return matches[0]

        for path in self._iter_task_files(dirs):
            try:
                if Task.from_file(path).id == task_id:
                    return path
            except (ValueError, OSError):
                continue

        return None

    def _load_tasks(self, dirs: Iterable[Path]) -> tuple[dict[str, tuple[Task, Path]], list[tuple[Path, str]]]:
        """Parse every task file in dirs.

        Returns:
            ({id: (task, path)}, [(path, error) for unreadable files]).
            The first file wins when two files claim the same id.
        """
        loaded: dict[str, tuple[Task, Path]] = {}
        skipped: list[tuple[Path, str]] = []

        for path in self._iter_task_files(dirs):
            try:
                task = Task.from_file(path)
            except (ValueError, OSError) as e:
                skipped.append((path, str(e)))
                continue

            if task.id in loaded:
                logger.warning(
                    "Duplicate task id %s in %s (already loaded from %s)",
                    task.id,
                    path,
                    loaded[task.id][1],
                )
                continue
            loaded[task.id] = (task, path)

        return loaded, skipped

    def _existing_ids(self) -> set[str]:
        """Every id in use: active, legacy and archived, parsed or not."""
        dirs = [*self._search_dirs(), self.archive_dir]
        ids = set()
        for path in self._iter_task_files(dirs):
            match = _FILENAME_ID_PATTERN.match(path.name)
            if match:
                ids.add(match.group(1))
        loaded, _ = self._load_tasks(dirs)
        ids.update(loaded)
        return ids

    # =========================================================================
    # Time entries (.knowns/time-entries.json)
    # =========================================================================

    def _load_time_entries(self) -> dict[str, list[dict[str, Any]]]:
        data = read_json(self.time_entries_path, {})
        return data if isinstance(data, dict) else {}

    def _save_task_time_entries(self, task_id: str, entries: list[TimeEntry]) -> None:
        all_entries = self._load_time_entries()
        if entries:
            all_entries[task_id] = [entry.to_dict() for entry in entries]
        elif task_id in all_entries:
            del all_entries[task_id]
        else:
            return
        write_json(self.time_entries_path, all_entries)

    def _hydrate(self, task: Task, siblings: Iterable[Task], time_entries: dict[str, list[dict[str, Any]]]) -> Task:
        """Fill derived fields: subtasks from parent links, time entries from the side store."""
        children = [other.id for other in siblings if other.parent == task.id and other.id != task.id]
        task.subtasks = _merge_subtasks(task.subtasks, children)
        task.time_entries = [TimeEntry.from_dict(e) for e in time_entries.get(task.id, [])]
        return task

    # =========================================================================
    # Reads
    # =========================================================================

    def _get_task_with_path(self, task_id: str) -> tuple[Task, Path] | None:
        path = self._find_task_path(task_id)
        if path is None:
            return None

        task = Task.from_file(path)
        loaded, _ = self._load_tasks(self._search_dirs())
        siblings = [other for other, _ in loaded.values()]
        return self._hydrate(task, siblings, self._load_time_entries()), path

    def get_task(self, task_id: str) -> Task | None:
        """Load an active task by id ("task-" prefix optional).

        Args:
            task_id: Task ID to load

        Returns:
            Task if found, None otherwise
        """
        found = self._get_task_with_path(normalize_task_id(task_id))
        return found[0] if found else None

    def get_all_tasks(self) -> list[Task]:
        """Load every active task (active + legacy directories).

        Files that fail to parse are skipped and listed in skipped_files.
        Order follows sorted filenames within each directory.
        """
        loaded, skipped = self._load_tasks(self._search_dirs())
        self.skipped_files = skipped
        if skipped:
            logger.warning(
                "Skipped %d unreadable task file(s): %s",
                len(skipped),
                ", ".join(path.name for path, _ in skipped),
            )

        tasks = [task for task, _ in loaded.values()]
        time_entries = self._load_time_entries()
        return [self._hydrate(task, tasks, time_entries) for task in tasks]

    def get_archived_tasks(self) -> list[Task]:
        loaded, _ = self._load_tasks([self.archive_dir])
        tasks = [task for task, _ in loaded.values()]
        time_entries = self._load_time_entries()
        return [self._hydrate(task, tasks, time_entries) for task in tasks]

    # =========================================================================
    # Writes
    # =========================================================================

    def _write_task(self, task: Task, previous_path: Path | None = None) -> Path:
        """Write a task to .knowns/tasks/, removing previous_path if the name changed.

        Args:
            task: Task to write
            previous_path: Where the task currently lives, if anywhere

        Returns:
            Path where the task was written
        """
        path = self.tasks_dir / task.filename
        atomic_write_text(path, task.to_markdown())

        if previous_path is not None and previous_path != path:
            remove_file(previous_path)
            logger.debug("Renamed %s -> %s", previous_path.name, path.name)

        return path

    def _refresh_subtasks(self, parent_id: str) -> None:
        """Rewrite a parent's cached subtasks list from current parent links."""
        found = self._get_task_with_path(parent_id)
        if found is None:
            logger.warning("Parent task %s not found while updating its subtasks", parent_id)
            return
        parent, path = found
        self._write_task(parent, previous_path=path)

    def _check_parent(self, task_id: str | None, parent_id: str) -> Task:
        """Validate a parent assignment before anything is written.

        Raises:
            TaskNotFoundError: If the parent does not exist
            CircularDependencyError: If task_id would become its own ancestor
        """
        parent = self.get_task(parent_id)
        if parent is None:
            raise TaskNotFoundError(parent_id, f"Parent task {parent_id} not found")

        if task_id is not None:
            loaded, _ = self._load_tasks(self._search_dirs())
            parents = {other_id: other.parent for other_id, (other, _) in loaded.items()}
            if would_create_cycle(task_id, parent_id, parents.get):
                raise CircularDependencyError(task_id, parent_id)

        return parent

    def create_task(
        self,
        title: str,
        *,
        description: str | None = None,
        status: str | None = None,
        priority: str | TaskPriority | None = None,
        assignee: str | None = None,
        labels: list[str] | None = None,
        parent: str | None = None,
        acceptance_criteria: list[AcceptanceCriterion] | None = None,
        implementation_plan: str | None = None,
        implementation_notes: str | None = None,
        time_spent: int = 0,
        time_entries: list[TimeEntry] | None = None,
    ) -> Task:
        """Create and save a new task with an auto-generated id.

        Args:
            title: Task title (required, non-empty)
            description: Free-text description
            status: One of the project's statuses (default "todo")
            priority: low / medium / high (default from project settings)
            assignee: Owner (default from project settings)
            labels: Labels
            parent: Parent task id; the parent must exist
            acceptance_criteria: Checklist items
            implementation_plan: Free-text plan
            implementation_notes: Free-text notes
            time_spent: Seconds already spent
            time_entries: Tracked intervals

        Returns:
            The saved Task. No version is recorded for creation.

        Raises:
            TaskValidationError: Empty title, unknown status or priority
            TaskNotFoundError: Parent does not exist
            CollisionExhaustedError: No unique id after 10 attempts
        """
        settings = self.settings
        validate_title(title)
        status = validate_status(status or DEFAULT_STATUS, settings.statuses)
        resolved_priority = validate_priority(priority or settings.default_priority)
        if assignee is None:
            assignee = settings.default_assignee

        parent_id = normalize_task_id(parent) if parent else None
        if parent_id:
            self._check_parent(None, parent_id)

        task_id = generate_id(self._existing_ids(), self.id_factory)
        now = _now()
        task = Task(
            id=task_id,
            title=title,
            description=description,
            status=status,
            priority=resolved_priority,
            assignee=assignee,
            labels=list(labels or []),
            parent=parent_id,
            acceptance_criteria=list(acceptance_criteria or []),
            implementation_plan=implementation_plan,
            implementation_notes=implementation_notes,
            time_spent=time_spent,
            time_entries=list(time_entries or []),
            created_at=now,
            updated_at=now,
        )

        path = self._write_task(task)
        if task.time_entries:
            self._save_task_time_entries(task.id, task.time_entries)
        if parent_id:
            self._refresh_subtasks(parent_id)

        logger.info("create_task: %s -> %s", task.id, path.name)
        return task

    def update_task(
        self,
        task_id: str,
        patch: TaskPatch | dict[str, Any],
        *,
        author: str | None = None,
    ) -> Task:
        """Apply a partial update and record it as a new version.

        Only fields present in the patch change. updated_at always moves
        forward. The file is renamed only when the title (and so the
        filename) changes; otherwise it is rewritten in place.

        Args:
            task_id: Task to update
            patch: TaskPatch, or dict validated into one
            author: Recorded on the version entry

        Returns:
            The updated Task

        Raises:
            TaskNotFoundError: Task (or new parent) does not exist
            TaskValidationError: Invalid field values
            CircularDependencyError: New parent is the task or a descendant
        """
        task_id = normalize_task_id(task_id)
        found = self._get_task_with_path(task_id)
        if found is None:
            raise TaskNotFoundError(task_id)
        current, current_path = found

        patch = TaskPatch.coerce(patch)
        fields = patch.changes()

        if "status" in fields:
            validate_status(fields["status"], self.settings.statuses)

        old_parent = current.parent
        new_parent = fields.get("parent", old_parent)
        parent_changed = new_parent != old_parent
        if parent_changed and new_parent is not None:
            self._check_parent(task_id, new_parent)

        updated = replace(current, **fields, updated_at=_next_timestamp(current.updated_at))

        self._write_task(updated, previous_path=current_path)
        version = self.versions.record_version(task_id, current, updated, author)

        if "time_entries" in fields:
            self._save_task_time_entries(task_id, updated.time_entries)

        if parent_changed:
            if old_parent:
                self._refresh_subtasks(old_parent)
            if new_parent:
                self._refresh_subtasks(new_parent)

        logger.info(
            "update_task: %s - modified %s (version %d)", task_id, sorted(fields), version.version
        )
        return updated

    def delete_task(self, task_id: str) -> None:
        """Permanently delete an active task, its version history and time entries.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        task_id = normalize_task_id(task_id)
        found = self._get_task_with_path(task_id)
        if found is None:
            raise TaskNotFoundError(task_id)
        task, path = found

        remove_file(path)
        self.versions.delete_version_history(task_id)
        self._save_task_time_entries(task_id, [])
        if task.parent:
            self._refresh_subtasks(task.parent)

        logger.info("delete_task: %s", task_id)

    # =========================================================================
    # Archive
    # =========================================================================

    def _move_task_file(self, task_id: str, path: Path, target_dir: Path) -> None:
        try:
            move_file(path, target_dir / path.name)
        except FileExistsError as e:
            raise TaskFileConflictError(task_id, str(target_dir / path.name)) from e

    def archive_task(self, task_id: str) -> Task:
        """Move a task file into .knowns/archive/.

        Version history is keyed by id and stays available.

        Returns:
            The archived task

        Raises:
            TaskNotFoundError: If no active task has this id
            TaskFileConflictError: If the archive already holds a file with this name
        """
        task_id = normalize_task_id(task_id)
        found = self._get_task_with_path(task_id)
        if found is None:
            raise TaskNotFoundError(task_id)
        task, path = found

        self._move_task_file(task_id, path, self.archive_dir)
        if task.parent:
            self._refresh_subtasks(task.parent)

        logger.info("archive_task: %s", task_id)
        return task

    def unarchive_task(self, task_id: str) -> Task:
        """Move an archived task back into .knowns/tasks/.

        Raises:
            TaskNotFoundError: If no archived task has this id
            TaskFileConflictError: If an active file with this name already exists
        """
        task_id = normalize_task_id(task_id)
        path = self._find_task_path(task_id, [self.archive_dir])
        if path is None:
            raise TaskNotFoundError(task_id, f"Archived task {task_id} not found")

        self._move_task_file(task_id, path, self.tasks_dir)

        restored = self.get_task(task_id)
        if restored is None:
            raise TaskNotFoundError(task_id)
        if restored.parent:
            self._refresh_subtasks(restored.parent)

        logger.info("unarchive_task: %s", task_id)
        return restored

    def batch_archive_tasks(self, older_than_ms: float) -> list[Task]:
        """Archive done tasks last updated more than older_than_ms ago.

        A task that fails to archive is logged and skipped; the rest are
        still processed.

        Args:
            older_than_ms: Age threshold in milliseconds

        Returns:
            Tasks that were archived
        """
        cutoff = _now() - timedelta(milliseconds=older_than_ms)
        candidates = [
            task for task in self.get_all_tasks() if task.status == "done" and task.updated_at < cutoff
        ]

        archived = []
        for task in candidates:
            try:
                self.archive_task(task.id)
            except (TaskStoreError, OSError) as e:
                logger.warning("Failed to archive task %s: %s", task.id, e)
                continue
            archived.append(task)

        logger.info("batch_archive_tasks: archived %d of %d candidates", len(archived), len(candidates))
        return archived

    # =========================================================================
    # Version history
    # =========================================================================

    def get_task_version_history(self, task_id: str) -> list[TaskVersion]:
        """All versions of a task, oldest first."""
        return self.versions.get_versions(normalize_task_id(task_id))

    def get_task_version(self, task_id: str, version: int) -> TaskVersion | None:
        return self.versions.get_version(normalize_task_id(task_id), version)

    def get_task_current_version(self, task_id: str) -> int:
        return self.versions.get_current_version(normalize_task_id(task_id))

    def rollback_task(self, task_id: str, version: int, *, author: str | None = None) -> Task:
        """Restore a task's tracked fields to the state recorded at a version.

        The rollback itself is recorded as a new version, so history only
        moves forward.

        Args:
            task_id: Task to roll back
            version: Version number whose snapshot to restore
            author: Recorded on the new version (default "rollback")

        Returns:
            The restored Task

        Raises:
            TaskNotFoundError: If the task does not exist
            VersionNotFoundError: If the version is not in the task's history
        """
        task_id = normalize_task_id(task_id)
        found = self._get_task_with_path(task_id)
        if found is None:
            raise TaskNotFoundError(task_id)
        current, path = found

        snapshot = self.versions.get_snapshot_at(task_id, version)
        if snapshot is None:
            raise VersionNotFoundError(task_id, version)

        restored = apply_version_snapshot(current, snapshot, _next_timestamp(current.updated_at))
        self._write_task(restored, previous_path=path)
        new_version = self.versions.record_version(task_id, current, restored, author or "rollback")

        logger.info(
            "rollback_task: %s -> version %d (recorded as version %d)",
            task_id,
            version,
            new_version.version,
        )
        return restored
