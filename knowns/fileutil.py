"""Locked, atomic file writes for task records and side stores."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from filelock import FileLock

logger = logging.getLogger(__name__)

LOCK_TIMEOUT_SECONDS = 10


def lock_for(path: Path) -> FileLock:
    """Return the lock guarding writes to path (<name>.lock beside it)."""
    return FileLock(path.with_suffix(path.suffix + ".lock"), timeout=LOCK_TIMEOUT_SECONDS)


def atomic_write_text(path: Path, content: str) -> bool:
    """Write content to path atomically under a file lock.

    Writes to a temp file in the same directory, then renames over the
    target, so readers see either the old or the new content. No-op when the
    file already holds exactly this content.

    Args:
        path: Target file path
        content: Full file content

    Returns:
        True if the file was written, False if content was unchanged

    Raises:
        OSError: If the write or rename fails (temp file is removed first)
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    with lock_for(path):
        if path.exists() and path.read_text(encoding="utf-8") == content:
            return False

        fd, temp_path = tempfile.mkstemp(
            suffix=".tmp",
            prefix=path.stem + "_",
            dir=path.parent,
        )
        try:
            os.close(fd)
            temp = Path(temp_path)
            temp.write_text(content, encoding="utf-8")
            temp.replace(path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

        if not path.exists():
            raise OSError(f"Write failed: {path} does not exist after rename")

    return True


def move_file(source: Path, target: Path) -> None:
    """Move source to target (same filesystem), dropping source's lock file.

    Raises:
        FileExistsError: If target already exists
    """
    if target.exists():
        raise FileExistsError(f"Refusing to overwrite {target}")
    target.parent.mkdir(parents=True, exist_ok=True)
    with lock_for(source):
        source.replace(target)
    source.with_suffix(source.suffix + ".lock").unlink(missing_ok=True)


def remove_file(path: Path) -> None:
    """Delete path and its lock file, if present."""
    path.unlink(missing_ok=True)
    path.with_suffix(path.suffix + ".lock").unlink(missing_ok=True)


def read_json(path: Path, default: Any) -> Any:
    """Load JSON from path, returning default when the file is missing or invalid."""
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to read %s, using default: %s", path, e)
        return default


def write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")
