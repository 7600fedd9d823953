#!/usr/bin/env python3
"""Task Model: task record and its Markdown file format.

Each task is one Markdown file with YAML frontmatter for structured fields
and marked body sections for free text:

    ---
    id: k3x9qa
    title: Write parser
    status: todo
    priority: medium
    labels: []
    subtasks: []
    createdAt: '2026-01-12T10:00:00+00:00'
    updatedAt: '2026-01-12T10:00:00+00:00'
    timeSpent: 0
    ---
    # Write parser

    ## Description

    <!-- SECTION:DESCRIPTION:BEGIN -->
    ...
    <!-- SECTION:DESCRIPTION:END -->

The file is named "task-{id} - {Sanitized-Title}.md". Frontmatter keys are
camelCase so files stay readable by other knowns tools; Python attributes
are snake_case.

Usage:
    from knowns.task_model import Task, encode_task, decode_task

    task = Task(id="k3x9qa", title="Write parser")
    filename, content = encode_task(task)
    assert decode_task(content) == task
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from knowns.errors import TaskValidationError
from knowns.markdown_sections import (
    SECTION_MARKERS,
    extract_section_content,
    format_acceptance_criteria,
    has_section_markers,
    parse_acceptance_criteria,
    wrap_section_content,
)

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "todo"

_FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)(.*)\Z", re.DOTALL)
_ID_PATTERN = re.compile(r"^[\w-]+$")

# Body heading -> attribute, for files written without section markers
_SECTION_HEADINGS = {
    "Description": "description",
    "Acceptance Criteria": "acceptance_criteria",
    "Implementation Plan": "implementation_plan",
    "Implementation Notes": "implementation_notes",
}


class TaskPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def _now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO string (trailing Z allowed) or YAML datetime into an aware datetime.

    Naive values are taken as UTC. None yields the current time.
    """
    if value is None:
        return _now()
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_priority(value: Any, task_id: str | None = None) -> TaskPriority:
    """Parse a priority, coercing unknown values to MEDIUM with a warning."""
    if isinstance(value, TaskPriority):
        return value
    if value is None:
        return TaskPriority.MEDIUM
    try:
        return TaskPriority(str(value).lower())
    except ValueError:
        task_ref = f" (task: {task_id})" if task_id else ""
        logger.warning("Invalid priority '%s'%s, coercing to 'medium'", value, task_ref)
        return TaskPriority.MEDIUM


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _reject_section_markers(text: str | None, field_name: str) -> None:
    """Free text may not contain the markers that delimit body sections."""
    if not text:
        return
    for begin, end in SECTION_MARKERS.values():
        if begin in text or end in text:
            raise TaskValidationError(f"{field_name} must not contain section marker {begin!r}", field=field_name)


@dataclass
class AcceptanceCriterion:
    """One checklist item. Text is a single non-blank line (outer whitespace is trimmed)."""

    text: str
    completed: bool = False

    def __post_init__(self) -> None:
        self.text = str(self.text).strip()
        if not self.text:
            raise TaskValidationError("Acceptance criterion text is required", field="acceptance_criteria")
        if "\n" in self.text or "\r" in self.text:
            raise TaskValidationError(
                f"Acceptance criterion must be a single line: {self.text!r}",
                field="acceptance_criteria",
            )
        _reject_section_markers(self.text, "acceptance_criteria")

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AcceptanceCriterion:
        return cls(text=str(data["text"]), completed=bool(data.get("completed", False)))


@dataclass
class TimeEntry:
    """One tracked work interval. duration is in seconds."""

    id: str
    started_at: datetime
    ended_at: datetime | None = None
    duration: int = 0
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "startedAt": self.started_at.isoformat(),
            "endedAt": self.ended_at.isoformat() if self.ended_at else None,
            "duration": self.duration,
        }
        if self.note:
            data["note"] = self.note
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimeEntry:
        ended_at = data.get("endedAt")
        return cls(
            id=str(data["id"]),
            started_at=parse_timestamp(data["startedAt"]),
            ended_at=parse_timestamp(ended_at) if ended_at else None,
            duration=int(data.get("duration") or 0),
            note=data.get("note"),
        )


@dataclass
class Task:
    """A unit of trackable work.

    subtasks is a cache of the ids whose parent is this task; TaskStorage
    re-derives it from parent links on every read. time_entries live in
    .knowns/time-entries.json rather than in the task file.
    """

    # Required fields
    id: str
    title: str

    # Core metadata
    status: str = DEFAULT_STATUS  # Validated against project settings by TaskStorage
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee: str | None = None
    labels: list[str] = field(default_factory=list)

    # Hierarchy
    parent: str | None = None
    subtasks: list[str] = field(default_factory=list)

    # Body sections
    description: str | None = None
    acceptance_criteria: list[AcceptanceCriterion] = field(default_factory=list)
    implementation_plan: str | None = None
    implementation_notes: str | None = None

    # Time tracking
    time_spent: int = 0
    time_entries: list[TimeEntry] = field(default_factory=list)

    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        """Normalize optional text, then validate."""
        # Written files cannot distinguish "" from unset, or keep outer whitespace
        self.assignee = self.assignee or None
        self.parent = self.parent or None
        self.description = _optional_text(self.description)
        self.implementation_plan = _optional_text(self.implementation_plan)
        self.implementation_notes = _optional_text(self.implementation_notes)
        self._validate()

    def _validate(self) -> None:
        if not self.id:
            raise TaskValidationError("Task id is required", field="id")
        if not _ID_PATTERN.match(self.id):
            raise TaskValidationError(f"Task id must be alphanumeric: {self.id}", field="id")
        if not self.title or not self.title.strip():
            raise TaskValidationError("Task title is required", field="title")
        if not isinstance(self.priority, TaskPriority):
            raise TaskValidationError(f"Invalid priority: {self.priority}", field="priority")
        for name in ("description", "implementation_plan", "implementation_notes"):
            _reject_section_markers(getattr(self, name), name)

    @staticmethod
    def sanitize_title(title: str) -> str:
        """Make a title safe for use in a filename.

        Drops everything except ASCII letters, digits, whitespace and dashes,
        then turns each whitespace run into a single dash.
        """
        cleaned = re.sub(r"[^a-zA-Z0-9\s-]", "", title)
        return re.sub(r"\s+", "-", cleaned)

    @property
    def filename(self) -> str:
        """File name derived from id and title (recomputed on every write)."""
        return f"task-{self.id} - {self.sanitize_title(self.title)}.md"

    # =========================================================================
    # JSON form (snapshots, side stores, adapter responses)
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict with camelCase keys."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority.value,
            "assignee": self.assignee,
            "labels": list(self.labels),
            "parent": self.parent,
            "subtasks": list(self.subtasks),
            "acceptanceCriteria": [ac.to_dict() for ac in self.acceptance_criteria],
            "implementationPlan": self.implementation_plan,
            "implementationNotes": self.implementation_notes,
            "timeSpent": self.time_spent,
            "timeEntries": [entry.to_dict() for entry in self.time_entries],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Inverse of to_dict. Missing optional keys take their defaults."""
        task_id = str(data["id"])
        return cls(
            id=task_id,
            title=data["title"],
            description=data.get("description"),
            status=data.get("status") or DEFAULT_STATUS,
            priority=parse_priority(data.get("priority"), task_id),
            assignee=data.get("assignee"),
            labels=list(data.get("labels") or []),
            parent=data.get("parent"),
            subtasks=[str(s) for s in data.get("subtasks") or []],
            acceptance_criteria=[
                AcceptanceCriterion.from_dict(ac) for ac in data.get("acceptanceCriteria") or []
            ],
            implementation_plan=data.get("implementationPlan"),
            implementation_notes=data.get("implementationNotes"),
            time_spent=data.get("timeSpent") or 0,
            time_entries=[TimeEntry.from_dict(e) for e in data.get("timeEntries") or []],
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    # =========================================================================
    # Markdown file format
    # =========================================================================

    def to_frontmatter(self) -> dict[str, Any]:
        """Convert task to frontmatter dictionary.

        Returns:
            Dictionary suitable for YAML serialization
        """
        fm: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority.value,
            "labels": list(self.labels),
            "subtasks": list(self.subtasks),
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "timeSpent": self.time_spent,
        }

        # Optional fields (only include if set)
        if self.assignee:
            fm["assignee"] = self.assignee
        if self.parent:
            fm["parent"] = self.parent

        return fm

    @classmethod
    def from_frontmatter(cls, fm: dict[str, Any], body: str = "") -> Task:
        """Create Task from frontmatter dictionary and Markdown body.

        Args:
            fm: Frontmatter dictionary from YAML
            body: Markdown body below the frontmatter

        Returns:
            Task instance
        """
        if fm.get("id") is None:
            raise ValueError("Task frontmatter missing id")
        # Legacy numeric ids may be unquoted in YAML
        task_id = str(fm["id"])

        sections = _parse_body_sections(body)
        criteria = [
            AcceptanceCriterion(text=text, completed=completed)
            for text, completed in parse_acceptance_criteria(sections.get("acceptance_criteria") or "")
        ]

        parent = fm.get("parent")

        return cls(
            id=task_id,
            title=str(fm.get("title") or ""),
            status=str(fm.get("status") or DEFAULT_STATUS),
            priority=parse_priority(fm.get("priority"), task_id),
            assignee=fm.get("assignee") or None,
            labels=[str(label) for label in fm.get("labels") or []],
            parent=str(parent) if parent is not None else None,
            subtasks=[str(s) for s in fm.get("subtasks") or []],
            description=_optional_text(sections.get("description")),
            acceptance_criteria=criteria,
            implementation_plan=_optional_text(sections.get("implementation_plan")),
            implementation_notes=_optional_text(sections.get("implementation_notes")),
            time_spent=fm.get("timeSpent") or 0,
            created_at=parse_timestamp(fm.get("createdAt")),
            updated_at=parse_timestamp(fm.get("updatedAt")),
        )

    def _render_body(self) -> str:
        parts = [f"# {self.title}", ""]

        description = wrap_section_content(self.description or "", "description")
        if description:
            parts += ["## Description", "", description, ""]

        criteria = format_acceptance_criteria(
            (ac.text, ac.completed) for ac in self.acceptance_criteria
        )
        if criteria:
            parts += ["## Acceptance Criteria", criteria, ""]

        plan = wrap_section_content(self.implementation_plan or "", "plan")
        if plan:
            parts += ["## Implementation Plan", "", plan, ""]

        notes = wrap_section_content(self.implementation_notes or "", "notes")
        if notes:
            parts += ["## Implementation Notes", "", notes, ""]

        return "\n".join(parts)

    def to_markdown(self) -> str:
        """Convert task to markdown with YAML frontmatter.

        Returns:
            Full markdown content with frontmatter and body
        """
        fm = self.to_frontmatter()
        yaml_str = yaml.safe_dump(fm, default_flow_style=False, sort_keys=False, allow_unicode=True)
        return "\n".join(["---", yaml_str.rstrip(), "---", self._render_body()])

    @classmethod
    def from_markdown(cls, content: str) -> Task:
        """Parse task from markdown with YAML frontmatter.

        Args:
            content: Full markdown content

        Returns:
            Task instance

        Raises:
            ValueError: If frontmatter is missing or invalid
        """
        match = _FRONTMATTER_PATTERN.match(content)
        if not match:
            raise ValueError("Task file must start with YAML frontmatter (---)")

        try:
            fm = yaml.safe_load(match.group(1))
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML frontmatter: {e}") from e

        if not isinstance(fm, dict) or not fm:
            raise ValueError("Empty frontmatter")
        if "title" not in fm:
            raise ValueError("Task frontmatter missing required field: title")

        return cls.from_frontmatter(fm, match.group(2))

    @classmethod
    def from_file(cls, path: Path) -> Task:
        """Load task from file.

        Args:
            path: File path to read from

        Returns:
            Task instance
        """
        return cls.from_markdown(path.read_text(encoding="utf-8"))

    def __repr__(self) -> str:
        return f"Task(id={self.id!r}, title={self.title!r}, status={self.status!r})"


def _parse_body_sections(body: str) -> dict[str, str]:
    """Split a task body into its sections.

    A body with any section marker is read from markers only, so headings
    inside free text never become sections. "## Heading" parsing is the
    fallback for files written entirely without markers.
    """
    if any(begin in body for begin, _ in SECTION_MARKERS.values()):
        return _parse_marked_sections(body)

    headed: dict[str, str] = {}
    current: str | None = None
    lines: list[str] = []

    for line in body.splitlines():
        if line.startswith("## "):
            if current and lines:
                headed[current] = "\n".join(lines).strip()
            heading = line[3:].strip()
            current = _SECTION_HEADINGS.get(heading, heading.lower().replace(" ", "_"))
            lines = []
        elif current:
            lines.append(line)
    if current and lines:
        headed[current] = "\n".join(lines).strip()

    return {key: headed[key] for key in _SECTION_HEADINGS.values() if key in headed}


def _parse_marked_sections(body: str) -> dict[str, str]:
    sections: dict[str, str] = {}
    for key, marker in (
        ("description", "description"),
        ("implementation_plan", "plan"),
        ("implementation_notes", "notes"),
        ("acceptance_criteria", "ac"),
    ):
        if has_section_markers(body, marker):
            sections[key] = extract_section_content(body, marker)
    return sections


def encode_task(task: Task) -> tuple[str, str]:
    """Serialize a task to (filename, file content)."""
    return task.filename, task.to_markdown()


def decode_task(content: str) -> Task:
    """Parse file content back into a Task (time entries are not part of the file)."""
    return Task.from_markdown(content)
