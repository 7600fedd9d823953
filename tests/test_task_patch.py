"""Tests for partial-update parsing."""

import pytest

from knowns.errors import TaskValidationError
from knowns.task_model import AcceptanceCriterion, TaskPriority
from knowns.task_patch import TaskPatch


def test_only_provided_fields_are_changes() -> None:
    patch = TaskPatch.coerce({"status": "done", "assignee": None})

    assert patch.changes() == {"status": "done", "assignee": None}


def test_camel_case_keys_are_accepted() -> None:
    patch = TaskPatch.coerce(
        {
            "implementationNotes": "Notes",
            "acceptanceCriteria": [{"text": "Works", "completed": True}],
            "priority": "high",
        }
    )

    changes = patch.changes()
    assert changes["implementation_notes"] == "Notes"
    assert changes["acceptance_criteria"] == [AcceptanceCriterion("Works", completed=True)]
    assert changes["priority"] is TaskPriority.HIGH


def test_parent_is_normalized_and_empty_clears() -> None:
    assert TaskPatch.coerce({"parent": "task-abc123"}).changes() == {"parent": "abc123"}
    assert TaskPatch.coerce({"parent": ""}).changes() == {"parent": None}


@pytest.mark.parametrize(
    "payload",
    [
        {"title": None},
        {"title": "  "},
        {"status": None},
        {"priority": "urgent"},
        {"id": "other"},
        {"createdAt": "2026-01-01T00:00:00Z"},
    ],
)
def test_invalid_patches_raise_validation_error(payload: dict) -> None:
    with pytest.raises(TaskValidationError):
        TaskPatch.coerce(payload)


def test_existing_patch_is_passed_through() -> None:
    patch = TaskPatch(title="New")

    assert TaskPatch.coerce(patch) is patch
