"""Loop controller: drive single-shot attempts across a persisted backlog."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from agent_loop.hooks import LifecycleHooks
from agent_loop.models import ExecuteRequest, ExecuteResult
from agent_loop.prd import PRD, UserStory
from agent_loop.progress import EntryKind, ProgressEntry, ProgressLog, ProgressTracker

logger = logging.getLogger(__name__)

_LEARNINGS_IN_PROMPT = 20


class LoopMode(str, Enum):
    """Prompt flavor for loop iterations."""

    CODE = "code"
    REVIEW = "review"


class StoryOutcome(BaseModel):
    """Output contract the tool fills in for one story attempt."""

    model_config = ConfigDict(populate_by_name=True)

    story_id: str = Field(alias="storyId")
    passes: bool
    summary: str
    files_changed: list[str] = Field(default_factory=list, alias="filesChanged")
    learnings: list[str] = Field(default_factory=list)
    commits: list[str] = Field(default_factory=list)


class TaskExecutor(Protocol):
    def execute(self, request: ExecuteRequest) -> ExecuteResult: ...


@dataclass(slots=True)
class IterationResult:
    """Outcome of one loop iteration."""

    iteration: int
    task_id: str
    success: bool
    duration_ms: int
    commits: list[str] = field(default_factory=list)
    summary: str = ""
    error: str | None = None


@dataclass(slots=True)
class LoopFinalState:
    tasks_completed: int
    tasks_total: int
    remaining: int
    skipped: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LoopResult:
    """Terminal loop report."""

    completed: bool
    iterations: list[IterationResult]
    total_duration_ms: int
    final_state: LoopFinalState
    stop_reason: str = ""


@dataclass(slots=True)
class ExecuteLoopOptions:
    """Inputs for one loop run."""

    task_file: Path
    progress_file: Path
    max_iterations: int = 10
    mode: LoopMode | str = LoopMode.CODE
    on_iteration: Callable[[IterationResult], None] | None = None
    max_attempts_per_story: int | None = None
    timeout_seconds: float | None = None
    skill: str | None = None


class LoopExecutor:
    """Runs iterations strictly one after another against one backlog file."""

    def __init__(
        self,
        *,
        executor: TaskExecutor,
        hooks: LifecycleHooks | None = None,
        global_timeout_seconds: float | None = None,
    ) -> None:
        self.executor = executor
        self.hooks = hooks or LifecycleHooks()
        self.global_timeout_seconds = global_timeout_seconds

    def execute(self, options: ExecuteLoopOptions) -> LoopResult:  # noqa: C901
        if options.max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        if options.max_attempts_per_story is not None and options.max_attempts_per_story < 1:
            raise ValueError("max_attempts_per_story must be >= 1")
        options = replace(options, mode=LoopMode(options.mode))

        start_monotonic = time.monotonic()
        ProgressTracker.initialize(options.progress_file)
        iterations: list[IterationResult] = []
        attempts: dict[str, int] = {}
        skipped: list[str] = []
        stop_reason = ""

        while True:
            prd = PRD.load(options.task_file)
            if prd.next_story() is None:
                stop_reason = "completed"
                break

            if len(iterations) >= options.max_iterations:
                stop_reason = "max_iterations"
                break
            if self._global_deadline_passed(start_monotonic):
                stop_reason = "global_timeout"
                break

            iteration = len(iterations) + 1
            story = self._select_story(
                prd=prd,
                options=options,
                attempts=attempts,
                skipped=skipped,
                iteration=iteration,
            )
            if story is None:
                stop_reason = "all_remaining_skipped"
                break

            attempts[story.id] = attempts.get(story.id, 0) + 1
            outcome = self._run_iteration(
                iteration=iteration,
                story=story,
                prd=prd,
                options=options,
            )
            iterations.append(outcome)

            if options.on_iteration is not None:
                options.on_iteration(outcome)
            self.hooks.after_iteration(outcome)

        prd = PRD.load(options.task_file)
        completed = prd.is_complete()
        total_duration_ms = int((time.monotonic() - start_monotonic) * 1000)
        logger.info(
            "Loop finished: completed=%s reason=%s iterations=%d done=%d/%d",
            completed,
            stop_reason,
            len(iterations),
            prd.tasks_completed,
            prd.tasks_total,
        )
        return LoopResult(
            completed=completed,
            iterations=iterations,
            total_duration_ms=total_duration_ms,
            final_state=LoopFinalState(
                tasks_completed=prd.tasks_completed,
                tasks_total=prd.tasks_total,
                remaining=prd.remaining,
                skipped=skipped,
            ),
            stop_reason=stop_reason,
        )

    def _select_story(
        self,
        *,
        prd: PRD,
        options: ExecuteLoopOptions,
        attempts: dict[str, int],
        skipped: list[str],
        iteration: int,
    ) -> UserStory | None:
        limit = options.max_attempts_per_story
        while True:
            story = prd.next_story(exclude=skipped)
            if story is None or limit is None or attempts.get(story.id, 0) < limit:
                return story
            skipped.append(story.id)
            logger.warning(
                "Skipping story %s after %d failed attempt(s)",
                story.id,
                attempts[story.id],
            )
            ProgressTracker.append(
                options.progress_file,
                ProgressEntry(
                    story_id=story.id,
                    summary=f"Skipped after {attempts[story.id]} failed attempt(s)",
                    kind=EntryKind.SKIPPED,
                    iteration=iteration,
                ),
            )

    def _run_iteration(
        self,
        *,
        iteration: int,
        story: UserStory,
        prd: PRD,
        options: ExecuteLoopOptions,
    ) -> IterationResult:
        self.hooks.before_iteration(iteration, story)
        logger.info("Iteration %d: story %s (%s)", iteration, story.id, story.title)

        progress = ProgressTracker.read(options.progress_file)
        request = ExecuteRequest(
            prompt=build_story_prompt(prd=prd, story=story, mode=options.mode, progress=progress),
            output_contract=StoryOutcome,
            variables={
                "story": story.to_dict(),
                "project": prd.project,
                "branchName": prd.branch_name,
                "mode": options.mode.value,
                "iteration": iteration,
            },
            skill=options.skill,
            timeout_seconds=options.timeout_seconds,
        )

        iteration_start = time.monotonic()
        result = self.executor.execute(request)
        duration_ms = int((time.monotonic() - iteration_start) * 1000)

        if result.success:
            outcome = StoryOutcome.model_validate(result.data)
            passed = outcome.passes
            if passed:
                prd.mark_passing(story.id)
                prd.save(options.task_file)
            ProgressTracker.append(
                options.progress_file,
                ProgressEntry(
                    story_id=story.id,
                    summary=outcome.summary,
                    files_changed=outcome.files_changed,
                    learnings=outcome.learnings,
                    kind=EntryKind.COMPLETED if passed else EntryKind.FAILED,
                    iteration=iteration,
                ),
            )
            return IterationResult(
                iteration=iteration,
                task_id=story.id,
                success=passed,
                duration_ms=duration_ms,
                commits=outcome.commits,
                summary=outcome.summary,
                error=None if passed else "Tool reported acceptance criteria not met",
            )

        error_text = result.error.message if result.error is not None else "unknown error"
        error_kind = result.error.kind if result.error is not None else "unknown"
        ProgressTracker.append(
            options.progress_file,
            ProgressEntry(
                story_id=story.id,
                summary=f"Attempt failed ({error_kind}): {error_text}",
                kind=EntryKind.FAILED,
                iteration=iteration,
            ),
        )
        return IterationResult(
            iteration=iteration,
            task_id=story.id,
            success=False,
            duration_ms=duration_ms,
            summary="",
            error=f"{error_kind}: {error_text}",
        )

    def _global_deadline_passed(self, start_monotonic: float) -> bool:
        if self.global_timeout_seconds is None:
            return False
        return time.monotonic() - start_monotonic >= self.global_timeout_seconds


def build_story_prompt(
    *,
    prd: PRD,
    story: UserStory,
    mode: LoopMode,
    progress: ProgressLog,
) -> str:
    """Render the per-iteration task prompt for one story."""

    criteria = "\n".join(f"- {item}" for item in story.acceptance_criteria) or "- (none)"
    if mode is LoopMode.REVIEW:
        goal = (
            "Review the existing implementation of the user story below. Do not add features; "
            "fix only what prevents the acceptance criteria from being met."
        )
    else:
        goal = "Implement the user story below in the current repository."

    lines = [
        f"Project: {prd.project}",
        f"Branch: {prd.branch_name}",
        "",
        goal,
        "",
        f"Story {story.id}: {story.title}",
        story.description,
        "",
        "Acceptance criteria:",
        criteria,
    ]
    learnings = progress.learnings[-_LEARNINGS_IN_PROMPT:]
    if learnings:
        lines.extend(["", "Learnings from previous iterations:"])
        lines.extend(f"- {item}" for item in learnings)
    lines.extend(
        [
            "",
            f'Set "storyId" to "{story.id}" and "passes" to true only if every acceptance '
            "criterion is met. Report changed files, learnings and any commit ids.",
        ],
    )
    return "\n".join(lines)
