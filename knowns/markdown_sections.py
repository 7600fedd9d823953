"""Section markers used in task file bodies.

Free-text sections are wrapped so they can be extracted exactly even when
the content itself contains Markdown headings:

    <!-- SECTION:DESCRIPTION:BEGIN -->
    ...
    <!-- SECTION:DESCRIPTION:END -->

Acceptance criteria use <!-- AC:BEGIN --> / <!-- AC:END --> around a
numbered checklist ("- [x] #1 text").
"""

from __future__ import annotations

import re
from collections.abc import Iterable

SECTION_MARKERS: dict[str, tuple[str, str]] = {
    "description": ("<!-- SECTION:DESCRIPTION:BEGIN -->", "<!-- SECTION:DESCRIPTION:END -->"),
    "plan": ("<!-- SECTION:PLAN:BEGIN -->", "<!-- SECTION:PLAN:END -->"),
    "notes": ("<!-- SECTION:NOTES:BEGIN -->", "<!-- SECTION:NOTES:END -->"),
    "ac": ("<!-- AC:BEGIN -->", "<!-- AC:END -->"),
}

_CRITERION_PATTERN = re.compile(r"^-\s+\[([xX ])\]\s+(?:#\d+\s+)?(.+)$")


def has_section_markers(markdown: str, section: str) -> bool:
    begin, end = SECTION_MARKERS[section]
    return begin in markdown and end in markdown


def extract_section_content(markdown: str, section: str) -> str:
    """Return the trimmed text between a section's markers.

    Returns the input unchanged when the markers are absent.
    """
    begin, end = SECTION_MARKERS[section]
    begin_index = markdown.find(begin)
    end_index = markdown.find(end)
    if begin_index == -1 or end_index == -1:
        return markdown
    return markdown[begin_index + len(begin) : end_index].strip()


def wrap_section_content(content: str, section: str) -> str:
    """Wrap content in a section's markers ("" for blank content)."""
    if not content or not content.strip():
        return ""
    begin, end = SECTION_MARKERS[section]
    return f"{begin}\n{content.strip()}\n{end}"


def format_acceptance_criteria(criteria: Iterable[tuple[str, bool]]) -> str:
    """Render (text, completed) pairs as a marked, numbered checklist."""
    items = [
        f"- [{'x' if completed else ' '}] #{index} {text}"
        for index, (text, completed) in enumerate(criteria, start=1)
    ]
    if not items:
        return ""
    return wrap_section_content("\n".join(items), "ac")


def parse_acceptance_criteria(markdown: str) -> list[tuple[str, bool]]:
    """Parse checklist lines into (text, completed) pairs.

    Reads inside the AC markers when present, otherwise the whole input.
    """
    content = extract_section_content(markdown, "ac") if has_section_markers(markdown, "ac") else markdown

    criteria = []
    for line in content.splitlines():
        match = _CRITERION_PATTERN.match(line.strip())
        if match:
            criteria.append((match.group(2).strip(), match.group(1).lower() == "x"))
    return criteria
