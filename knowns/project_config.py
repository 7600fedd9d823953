"""Project configuration stored in .knowns/config.json.

The task engine consumes, but does not own, the project's settings: the set
of valid statuses, the default priority and the default assignee. Projects
without a config file fall back to DEFAULT_STATUSES / medium priority.

File format (camelCase keys, shared with other knowns tools):
    {
      "name": "My Project",
      "id": "my-project",
      "createdAt": "2026-01-12T10:00:00+00:00",
      "settings": {
        "defaultPriority": "medium",
        "statuses": ["todo", "in-progress", "in-review", "done", "blocked"]
      }
    }
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from knowns.fileutil import atomic_write_text
from knowns.paths import get_config_path

logger = logging.getLogger(__name__)

DEFAULT_STATUSES: tuple[str, ...] = ("todo", "in-progress", "in-review", "done", "blocked")
DEFAULT_PRIORITY = "medium"


class ProjectSettings(BaseModel):
    """Per-project task settings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    default_assignee: str | None = None
    default_priority: str = DEFAULT_PRIORITY
    statuses: list[str] = Field(default_factory=lambda: list(DEFAULT_STATUSES))

    @field_validator("statuses")
    @classmethod
    def _statuses_not_empty(cls, value: list[str]) -> list[str]:
        # An empty list in config means "not configured"
        return value or list(DEFAULT_STATUSES)


class Project(BaseModel):
    """Project record (name, slug id, creation time, settings)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    settings: ProjectSettings = Field(default_factory=ProjectSettings)

    @classmethod
    def create(cls, name: str, id: str | None = None, settings: ProjectSettings | None = None) -> Project:
        """Create a new project, deriving the id from the name when omitted."""
        return cls(
            name=name,
            id=id or re.sub(r"\s+", "-", name.strip().lower()),
            settings=settings or ProjectSettings(),
        )


def load_project(project_root: Path) -> Project | None:
    """Load project config.

    Returns:
        Project, or None if config.json is missing or invalid
    """
    path = get_config_path(project_root)
    if not path.exists():
        return None

    try:
        return Project.model_validate_json(path.read_text(encoding="utf-8"))
    except (ValidationError, OSError) as e:
        logger.error("Failed to load project config %s: %s", path, e)
        return None


def load_settings(project_root: Path) -> ProjectSettings:
    """Settings for the project, or defaults when no usable config exists."""
    project = load_project(project_root)
    return project.settings if project else ProjectSettings()


def save_project(project_root: Path, project: Project) -> None:
    path = get_config_path(project_root)
    atomic_write_text(path, project.model_dump_json(by_alias=True, indent=2) + "\n")
