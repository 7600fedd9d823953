"""Tests for .knowns/config.json loading and path resolution."""

import json
from pathlib import Path

import pytest

from knowns.paths import find_project_root, get_project_root
from knowns.project_config import (
    DEFAULT_STATUSES,
    Project,
    ProjectSettings,
    load_project,
    load_settings,
    save_project,
)


def test_missing_config_gives_default_settings(tmp_path: Path) -> None:
    settings = load_settings(tmp_path)

    assert settings.statuses == list(DEFAULT_STATUSES)
    assert settings.default_priority == "medium"
    assert settings.default_assignee is None


def test_save_and_load_project(tmp_path: Path) -> None:
    project = Project.create(
        "My Project",
        settings=ProjectSettings(statuses=["todo", "done"], default_assignee="@bob"),
    )

    save_project(tmp_path, project)
    data = json.loads((tmp_path / ".knowns" / "config.json").read_text())
    loaded = load_project(tmp_path)

    assert data["id"] == "my-project"
    assert data["settings"]["defaultAssignee"] == "@bob"
    assert loaded == project


def test_empty_status_list_means_defaults(tmp_path: Path) -> None:
    config = tmp_path / ".knowns" / "config.json"
    config.parent.mkdir()
    config.write_text(json.dumps({"name": "P", "id": "p", "settings": {"statuses": []}}))

    assert load_settings(tmp_path).statuses == list(DEFAULT_STATUSES)


def test_invalid_config_falls_back_to_defaults(tmp_path: Path) -> None:
    config = tmp_path / ".knowns" / "config.json"
    config.parent.mkdir()
    config.write_text("{broken")

    assert load_project(tmp_path) is None
    assert load_settings(tmp_path) == ProjectSettings()


def test_find_project_root_walks_upward(tmp_path: Path) -> None:
    (tmp_path / ".knowns").mkdir()
    nested = tmp_path / "src" / "deep"
    nested.mkdir(parents=True)

    assert find_project_root(nested) == tmp_path.resolve()


def test_get_project_root_prefers_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KNOWNS_PROJECT_ROOT", str(tmp_path))

    assert get_project_root() == tmp_path.resolve()


def test_get_project_root_rejects_missing_env_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KNOWNS_PROJECT_ROOT", str(tmp_path / "nope"))

    with pytest.raises(RuntimeError):
        get_project_root()
