"""Backlog of user stories (PRD) driving loop iterations."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agent_loop.contracts import load_json, write_json_atomic


@dataclass(slots=True)
class UserStory:
    """One backlog item; lower priority value means more urgent."""

    id: str
    title: str
    description: str
    acceptance_criteria: list[str] = field(default_factory=list)
    priority: int = 1
    estimated_complexity: int = 1
    passes: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "priority": self.priority,
            "estimatedComplexity": self.estimated_complexity,
            "passes": self.passes,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> UserStory:
        if not isinstance(raw, dict):
            raise TypeError("userStories entry must be an object")
        story_id = raw.get("id")
        title = raw.get("title")
        description = raw.get("description", "")
        criteria = raw.get("acceptanceCriteria", [])
        priority = raw.get("priority", 1)
        complexity = raw.get("estimatedComplexity", 1)
        passes = raw.get("passes", False)
        if not isinstance(story_id, str) or not story_id.strip():
            raise ValueError("userStories.id must be a non-empty string")
        if not isinstance(title, str):
            raise TypeError(f"userStories[{story_id}].title must be a string")
        if not isinstance(description, str):
            raise TypeError(f"userStories[{story_id}].description must be a string")
        if not isinstance(criteria, list) or not all(isinstance(item, str) for item in criteria):
            raise TypeError(f"userStories[{story_id}].acceptanceCriteria must be a string array")
        if not isinstance(priority, int) or isinstance(priority, bool):
            raise TypeError(f"userStories[{story_id}].priority must be an integer")
        if not isinstance(complexity, int | float) or isinstance(complexity, bool):
            raise TypeError(f"userStories[{story_id}].estimatedComplexity must be a number")
        if not isinstance(passes, bool):
            raise TypeError(f"userStories[{story_id}].passes must be a boolean")
        return cls(
            id=story_id,
            title=title,
            description=description,
            acceptance_criteria=list(criteria),
            priority=priority,
            estimated_complexity=complexity,
            passes=passes,
        )


@dataclass(slots=True)
class PRD:
    """Ordered user stories plus project metadata."""

    project: str
    branch_name: str
    description: str
    user_stories: list[UserStory] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for story in self.user_stories:
            if story.id in seen:
                raise ValueError(f"Duplicate user story id: {story.id}")
            seen.add(story.id)

    @classmethod
    def create(
        cls,
        *,
        project: str,
        branch_name: str,
        description: str,
        user_stories: Iterable[UserStory],
    ) -> PRD:
        return cls(
            project=project,
            branch_name=branch_name,
            description=description,
            user_stories=list(user_stories),
        )

    def next_story(self, exclude: Iterable[str] = ()) -> UserStory | None:
        """Most urgent non-passing story; original order breaks priority ties."""

        excluded = set(exclude)
        candidates = [
            story for story in self.user_stories if not story.passes and story.id not in excluded
        ]
        if not candidates:
            return None
        # min() keeps the first of equal keys, which preserves stored order
        return min(candidates, key=lambda story: story.priority)

    def get_story(self, story_id: str) -> UserStory:
        for story in self.user_stories:
            if story.id == story_id:
                return story
        raise KeyError(f"Unknown user story id: {story_id}")

    def mark_passing(self, story_id: str) -> None:
        self.get_story(story_id).passes = True

    @property
    def tasks_total(self) -> int:
        return len(self.user_stories)

    @property
    def tasks_completed(self) -> int:
        return sum(1 for story in self.user_stories if story.passes)

    @property
    def remaining(self) -> int:
        return self.tasks_total - self.tasks_completed

    def is_complete(self) -> bool:
        return self.next_story() is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "branchName": self.branch_name,
            "description": self.description,
            "userStories": [story.to_dict() for story in self.user_stories],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PRD:
        project = raw.get("project", "")
        branch_name = raw.get("branchName", "")
        description = raw.get("description", "")
        stories = raw.get("userStories")
        if not isinstance(project, str):
            raise TypeError("prd.project must be a string")
        if not isinstance(branch_name, str):
            raise TypeError("prd.branchName must be a string")
        if not isinstance(description, str):
            raise TypeError("prd.description must be a string")
        if not isinstance(stories, list):
            raise TypeError("prd.userStories must be an array")
        return cls(
            project=project,
            branch_name=branch_name,
            description=description,
            user_stories=[UserStory.from_dict(item) for item in stories],
        )

    def save(self, path: Path) -> None:
        write_json_atomic(path, self.to_dict())

    @classmethod
    def load(cls, path: Path) -> PRD:
        return cls.from_dict(load_json(path))
