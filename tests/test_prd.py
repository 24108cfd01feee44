from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest
from conftest import make_prd, make_story

from agent_loop.prd import PRD, UserStory

pytestmark = [
    allure.epic("Loop Execution"),
    allure.feature("PRD Backlog"),
]


def test_next_story_prefers_lowest_priority_then_stored_order() -> None:
    prd = make_prd(
        make_story("US-001", priority=2),
        make_story("US-002", priority=1),
        make_story("US-003", priority=1),
    )

    story = prd.next_story()

    assert story is not None
    assert story.id == "US-002"


def test_next_story_skips_passing_and_excluded_stories() -> None:
    prd = make_prd(
        make_story("US-001", priority=1, passes=True),
        make_story("US-002", priority=2),
        make_story("US-003", priority=3),
    )

    assert prd.next_story().id == "US-002"
    assert prd.next_story(exclude=["US-002"]).id == "US-003"
    assert prd.next_story(exclude=["US-002", "US-003"]) is None


def test_mark_passing_updates_counts_and_completion() -> None:
    prd = make_prd(make_story("US-001"), make_story("US-002"))

    prd.mark_passing("US-001")

    assert prd.get_story("US-001").passes
    assert prd.tasks_completed == 1
    assert prd.tasks_total == 2
    assert prd.remaining == 1
    assert not prd.is_complete()

    prd.mark_passing("US-002")

    assert prd.is_complete()
    assert prd.next_story() is None


def test_mark_passing_unknown_id_raises_key_error() -> None:
    prd = make_prd(make_story("US-001"))

    with pytest.raises(KeyError, match="US-404"):
        prd.mark_passing("US-404")


def test_duplicate_story_ids_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate user story id"):
        make_prd(make_story("US-001"), make_story("US-001"))


def test_save_and_load_preserve_stories(tmp_path: Path) -> None:
    path = tmp_path / "prd.json"
    prd = make_prd(make_story("US-001", priority=3), make_story("US-002", passes=True))

    prd.save(path)
    loaded = PRD.load(path)

    assert loaded == prd
    raw = json.loads(path.read_text("utf-8"))
    assert raw["branchName"] == "feature/test"
    assert raw["userStories"][0]["acceptanceCriteria"] == [
        "US-001 criterion A",
        "US-001 criterion B",
    ]
    assert not list(tmp_path.glob(".prd.json.*"))


def test_from_dict_applies_defaults() -> None:
    prd = PRD.from_dict(
        {
            "project": "Demo",
            "branchName": "main",
            "description": "",
            "userStories": [{"id": "US-001", "title": "Login"}],
        },
    )

    story = prd.user_stories[0]
    assert story == UserStory(id="US-001", title="Login", description="")
    assert story.priority == 1
    assert not story.passes


def test_from_dict_rejects_malformed_stories() -> None:
    with pytest.raises(TypeError, match="userStories must be an array"):
        PRD.from_dict({"project": "Demo", "userStories": {}})
    with pytest.raises(ValueError, match="non-empty string"):
        PRD.from_dict({"project": "Demo", "userStories": [{"title": "no id"}]})
    with pytest.raises(TypeError, match="passes must be a boolean"):
        PRD.from_dict(
            {
                "project": "Demo",
                "userStories": [{"id": "US-001", "title": "t", "passes": "yes"}],
            },
        )
