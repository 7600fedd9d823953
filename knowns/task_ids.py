"""Task identifier allocation.

New tasks get a 6-character lowercase base-36 token (about 2.2 billion
combinations). Projects created by older releases used sequential numeric
ids ("1", "2", ...); those stay valid and count as taken.

Usage:
    from knowns.task_ids import generate_id

    task_id = generate_id({"1", "2", "k3x9qa"})
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Callable, Collection

from knowns.errors import CollisionExhaustedError

ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
ID_LENGTH = 6
MAX_ID_ATTEMPTS = 10

_TASK_PREFIX_PATTERN = re.compile(r"^task-", re.IGNORECASE)


def generate_random_id() -> str:
    """Draw one random base-36 token, zero-padded to ID_LENGTH."""
    value = secrets.randbelow(len(ID_ALPHABET) ** ID_LENGTH)
    digits = []
    while value:
        value, remainder = divmod(value, len(ID_ALPHABET))
        digits.append(ID_ALPHABET[remainder])
    return "".join(reversed(digits)).rjust(ID_LENGTH, "0")


def generate_id(
    existing_ids: Collection[str],
    factory: Callable[[], str] | None = None,
) -> str:
    """Generate an id that is not in existing_ids.

    Args:
        existing_ids: Every id already in use (active, archived and legacy)
        factory: Candidate source; defaults to generate_random_id

    Returns:
        A fresh id

    Raises:
        CollisionExhaustedError: If MAX_ID_ATTEMPTS candidates all collided
    """
    for _ in range(MAX_ID_ATTEMPTS):
        candidate = factory() if factory is not None else generate_random_id()
        if candidate not in existing_ids:
            return candidate

    raise CollisionExhaustedError(MAX_ID_ATTEMPTS)


def normalize_task_id(value: str) -> str:
    """Strip an optional "task-" prefix: "task-42", "TASK-42" and "42" are equivalent."""
    return _TASK_PREFIX_PATTERN.sub("", value.strip())


def is_legacy_id(value: str) -> bool:
    """True for sequential numeric ids from older projects."""
    return value.isdigit()
