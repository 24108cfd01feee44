"""Shared test fixtures."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path

import pytest

from agent_loop.executor import SingleShotExecutor
from agent_loop.prd import PRD, UserStory
from agent_loop.workdir import TaskWorkdirManager

ECHO_AGENT_COMMAND = f"{shlex.quote(sys.executable)} -m agent_loop.backend.echo_agent"


@pytest.fixture()
def echo_command() -> str:
    return ECHO_AGENT_COMMAND


@pytest.fixture()
def workdir_manager(tmp_path: Path) -> TaskWorkdirManager:
    return TaskWorkdirManager(tmp_path / "tasks")


@pytest.fixture()
def echo_executor(workdir_manager: TaskWorkdirManager) -> SingleShotExecutor:
    return SingleShotExecutor(
        tool_command=ECHO_AGENT_COMMAND,
        workdir=workdir_manager,
        default_timeout_seconds=30,
    )


def make_story(story_id: str, *, priority: int = 1, passes: bool = False) -> UserStory:
    return UserStory(
        id=story_id,
        title=f"Story {story_id}",
        description=f"Description of {story_id}",
        acceptance_criteria=[f"{story_id} criterion A", f"{story_id} criterion B"],
        priority=priority,
        estimated_complexity=2,
        passes=passes,
    )


def make_prd(*stories: UserStory) -> PRD:
    return PRD.create(
        project="Test Project",
        branch_name="feature/test",
        description="Backlog used in tests",
        user_stories=stories,
    )
