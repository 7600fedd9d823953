"""Tests for the task record and its Markdown file format."""

from datetime import UTC, datetime

import pytest

from knowns.errors import TaskValidationError
from knowns.task_model import (
    AcceptanceCriterion,
    Task,
    TaskPriority,
    TimeEntry,
    decode_task,
    encode_task,
)


def _full_task() -> Task:
    created = datetime(2026, 1, 12, 10, 0, tzinfo=UTC)
    return Task(
        id="k3x9qa",
        title="Write parser",
        status="in-progress",
        priority=TaskPriority.HIGH,
        assignee="@alice",
        labels=["core", "parser"],
        parent="p4rent",
        subtasks=["ch1ld1"],
        description="Parse the input.\n\n## Not a real section\n\nStill description.",
        acceptance_criteria=[
            AcceptanceCriterion("Handles empty input", completed=True),
            AcceptanceCriterion("Reports line numbers"),
        ],
        implementation_plan="1. Tokenize\n2. Parse",
        implementation_notes="Used a recursive descent parser.",
        time_spent=120,
        created_at=created,
        updated_at=datetime(2026, 1, 13, 9, 30, 15, 123456, tzinfo=UTC),
    )


def test_encode_decode_preserves_every_file_field() -> None:
    """A decoded file equals the task that produced it."""
    task = _full_task()

    filename, content = encode_task(task)
    decoded = decode_task(content)

    assert filename == "task-k3x9qa - Write-parser.md"
    assert decoded == task, f"Round trip changed the task:\n{content}"


def test_body_uses_section_markers() -> None:
    """Free-text sections and criteria are wrapped in markers."""
    _, content = encode_task(_full_task())

    assert content.startswith("---\n")
    assert "# Write parser" in content
    assert "<!-- SECTION:DESCRIPTION:BEGIN -->" in content
    assert "<!-- SECTION:PLAN:BEGIN -->" in content
    assert "<!-- SECTION:NOTES:END -->" in content
    assert "- [x] #1 Handles empty input" in content
    assert "- [ ] #2 Reports line numbers" in content


def test_minimal_task_omits_empty_sections_and_optional_keys() -> None:
    task = Task(id="abc123", title="Small")

    content = task.to_markdown()

    assert "## Description" not in content
    assert "assignee:" not in content
    assert "parent:" not in content
    assert decode_task(content) == task


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Fix: the bug!", "task-abc123 - Fix-the-bug.md"),
        ("Multiple   spaces here", "task-abc123 - Multiple-spaces-here.md"),
        ("Keep-dashes and 123", "task-abc123 - Keep-dashes-and-123.md"),
        ("Café déjà vu", "task-abc123 - Caf-dj-vu.md"),
    ],
)
def test_filename_sanitizes_title(title: str, expected: str) -> None:
    assert Task(id="abc123", title=title).filename == expected


def test_legacy_numeric_id_is_read_as_string() -> None:
    """Unquoted numeric ids from older files decode to strings."""
    content = (
        "---\n"
        "id: 42\n"
        "title: Old task\n"
        "status: done\n"
        "priority: low\n"
        "parent: 7\n"
        "createdAt: 2025-03-01T08:00:00Z\n"
        "updatedAt: 2025-03-02T08:00:00Z\n"
        "---\n"
        "# Old task\n"
    )

    task = decode_task(content)

    assert task.id == "42"
    assert task.parent == "7"
    assert task.priority is TaskPriority.LOW
    assert task.created_at == datetime(2025, 3, 1, 8, 0, tzinfo=UTC)


def test_body_without_markers_falls_back_to_headings() -> None:
    """Files written by hand (no markers) still yield their sections."""
    content = (
        "---\n"
        "id: abc123\n"
        "title: Hand written\n"
        "---\n"
        "# Hand written\n"
        "\n"
        "## Description\n"
        "\n"
        "Some text.\n"
        "\n"
        "## Acceptance Criteria\n"
        "- [ ] First\n"
        "- [X] Second\n"
        "\n"
        "## Implementation Notes\n"
        "\n"
        "Done quickly.\n"
    )

    task = decode_task(content)

    assert task.description == "Some text."
    assert task.acceptance_criteria == [
        AcceptanceCriterion("First", completed=False),
        AcceptanceCriterion("Second", completed=True),
    ]
    assert task.implementation_notes == "Done quickly."
    assert task.implementation_plan is None


def test_unknown_priority_in_file_is_coerced_to_medium() -> None:
    content = "---\nid: abc123\ntitle: T\npriority: urgent\n---\n"

    assert decode_task(content).priority is TaskPriority.MEDIUM


@pytest.mark.parametrize(
    "content",
    [
        "# No frontmatter\n",
        "---\nid: abc123\n---\n",
        "---\ntitle: [unclosed\n---\n",
        "---\ntitle: No id\n---\n",
    ],
)
def test_decode_rejects_malformed_files(content: str) -> None:
    with pytest.raises(ValueError):
        decode_task(content)


def test_blank_title_is_rejected() -> None:
    with pytest.raises(TaskValidationError) as exc_info:
        Task(id="abc123", title="   ")

    assert exc_info.value.field == "title"


def test_to_dict_uses_camel_case_and_round_trips() -> None:
    task = _full_task()
    task.time_entries = [
        TimeEntry(
            id="te1",
            started_at=datetime(2026, 1, 12, 11, 0, tzinfo=UTC),
            ended_at=datetime(2026, 1, 12, 11, 2, tzinfo=UTC),
            duration=120,
        )
    ]

    data = task.to_dict()

    assert data["acceptanceCriteria"][0] == {"text": "Handles empty input", "completed": True}
    assert data["timeEntries"][0]["startedAt"] == "2026-01-12T11:00:00+00:00"
    assert Task.from_dict(data) == task


@pytest.mark.parametrize(
    "description",
    [
        "Intro\n\n## Implementation Plan\n1. step",
        "## Acceptance Criteria\n- [ ] sneaky",
        "## Implementation Notes\n\nnot notes",
    ],
)
def test_headings_inside_description_stay_in_description(description: str) -> None:
    """Section headings written inside free text are not read back as sections."""
    task = Task(id="abc123", title="T", description=description)

    decoded = decode_task(task.to_markdown())

    assert decoded.description == description
    assert decoded.implementation_plan is None
    assert decoded.implementation_notes is None
    assert decoded.acceptance_criteria == []


@pytest.mark.parametrize(
    "task",
    [
        Task(
            id="abc123",
            title="Headings everywhere",
            description="# Top\n\n## Implementation Plan\n\n- [x] #1 not a criterion",
            implementation_plan="## Description\n\nstill the plan",
            implementation_notes="## Acceptance Criteria\n- [ ] still notes",
        ),
        Task(
            id="abc123",
            title="Numbered criteria",
            acceptance_criteria=[
                AcceptanceCriterion("#3 starts with a number"),
                AcceptanceCriterion("#12", completed=True),
                AcceptanceCriterion("[x] bracketed"),
            ],
        ),
        Task(id="42", title="Legacy numeric id", parent="7"),
        Task(id="abc123", title="日本語のタスク", description="Ünïcödé body"),
    ],
    ids=["headings-in-free-text", "numbered-criteria", "legacy-id", "unicode-title"],
)
def test_round_trip_cases(task: Task) -> None:
    filename, content = encode_task(task)

    assert decode_task(content) == task, f"Round trip changed the task:\n{content}"
    assert filename.startswith(f"task-{task.id} - ")


def test_unicode_title_gives_empty_filename_stem() -> None:
    """Titles with no ASCII letters still produce a resolvable name."""
    assert Task(id="abc123", title="日本語").filename == "task-abc123 - .md"


@pytest.mark.parametrize("text", ["", "   ", "two\nlines", "carriage\rreturn", "<!-- AC:END -->"])
def test_invalid_criterion_text_is_rejected(text: str) -> None:
    """Criteria are single non-blank lines, so they cannot be silently rewritten."""
    with pytest.raises(TaskValidationError) as exc_info:
        AcceptanceCriterion(text)

    assert exc_info.value.field == "acceptance_criteria"


def test_criterion_text_is_trimmed() -> None:
    criterion = AcceptanceCriterion("  padded  ")
    task = Task(id="abc123", title="T", acceptance_criteria=[criterion])

    assert criterion.text == "padded"
    assert decode_task(task.to_markdown()).acceptance_criteria == [AcceptanceCriterion("padded")]


def test_free_text_is_normalized_on_construction() -> None:
    """Outer whitespace and empty strings are normalized before they reach a file."""
    task = Task(
        id="abc123",
        title="T",
        description="\n  padded text  \n",
        implementation_plan="   ",
        implementation_notes="",
        assignee="",
        parent="",
    )

    assert task.description == "padded text"
    assert task.implementation_plan is None
    assert task.implementation_notes is None
    assert task.assignee is None
    assert task.parent is None
    assert decode_task(task.to_markdown()) == task


@pytest.mark.parametrize(
    "field_name",
    ["description", "implementation_plan", "implementation_notes"],
)
def test_section_markers_in_free_text_are_rejected(field_name: str) -> None:
    with pytest.raises(TaskValidationError) as exc_info:
        Task(id="abc123", title="T", **{field_name: "text <!-- SECTION:DESCRIPTION:END --> more"})

    assert exc_info.value.field == field_name
