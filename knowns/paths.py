#!/usr/bin/env python3
"""
Path resolution for a knowns project.

All storage lives under <project_root>/.knowns/. The project root is passed
explicitly to TaskStorage; get_project_root() exists for adapters that need
a default.

Optional environment variables:
- $KNOWNS_PROJECT_ROOT: Project directory (skips the upward search)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

KNOWNS_DIR_NAME = ".knowns"

# Upward search limit when looking for .knowns/
MAX_SEARCH_DEPTH = 20


def find_project_root(start: Path | None = None) -> Path | None:
    """
    Find the nearest directory containing a .knowns/ folder.

    Args:
        start: Directory to start from (defaults to cwd)

    Returns:
        Project root, or None if no .knowns/ folder is found
    """
    current = (start or Path.cwd()).resolve()

    for _ in range(MAX_SEARCH_DEPTH):
        if (current / KNOWNS_DIR_NAME).is_dir():
            return current
        if current.parent == current:
            return None
        current = current.parent

    return None


def get_project_root() -> Path:
    """
    Get the project root for the current invocation.

    Returns:
        Path: Absolute path to the project root

    Raises:
        RuntimeError: If $KNOWNS_PROJECT_ROOT points nowhere, or no .knowns/
            folder exists above the working directory
    """
    env_root = os.environ.get("KNOWNS_PROJECT_ROOT")
    if env_root:
        path = Path(env_root).resolve()
        if not path.exists():
            raise RuntimeError(f"KNOWNS_PROJECT_ROOT path doesn't exist: {path}")
        return path

    root = find_project_root()
    if root is None:
        raise RuntimeError(
            "Not inside a knowns project (no .knowns/ directory found).\n"
            "Initialize one with TaskStorage(root).init_project(name) "
            "or set KNOWNS_PROJECT_ROOT."
        )
    logger.debug("Resolved project root: %s", root)
    return root


def get_knowns_dir(project_root: Path) -> Path:
    """Get the .knowns/ directory."""
    return project_root / KNOWNS_DIR_NAME


def get_tasks_dir(project_root: Path) -> Path:
    """Get active tasks directory (.knowns/tasks)."""
    return get_knowns_dir(project_root) / "tasks"


def get_archive_dir(project_root: Path) -> Path:
    """Get archived tasks directory (.knowns/archive)."""
    return get_knowns_dir(project_root) / "archive"


def get_versions_dir(project_root: Path) -> Path:
    """Get version history directory (.knowns/versions)."""
    return get_knowns_dir(project_root) / "versions"


def get_config_path(project_root: Path) -> Path:
    return get_knowns_dir(project_root) / "config.json"


def get_time_entries_path(project_root: Path) -> Path:
    return get_knowns_dir(project_root) / "time-entries.json"


def get_legacy_tasks_dir(project_root: Path) -> Path:
    """
    Get the pre-.knowns task directory (backlog/tasks).

    Older projects kept task files here. They are still read so that
    existing ids keep resolving, but new files are always written to
    .knowns/tasks.
    """
    return project_root / "backlog" / "tasks"
