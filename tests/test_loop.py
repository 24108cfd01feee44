from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import allure
import pytest
from conftest import make_prd, make_story

from agent_loop.errors import ProcessError
from agent_loop.hooks import LifecycleHooks
from agent_loop.loop import (
    ExecuteLoopOptions,
    IterationResult,
    LoopExecutor,
    LoopMode,
    StoryOutcome,
    build_story_prompt,
)
from agent_loop.models import ExecuteRequest, ExecuteResult
from agent_loop.prd import PRD
from agent_loop.progress import EntryKind, ProgressLog, ProgressTracker

pytestmark = [
    allure.epic("Loop Execution"),
    allure.feature("Loop Controller"),
]


def _passing(request: ExecuteRequest) -> ExecuteResult:
    story = request.variables["story"]
    return ExecuteResult.succeeded(
        output_dir="/tmp/task",
        logs="",
        duration_ms=1,
        data={
            "storyId": story["id"],
            "passes": True,
            "summary": f"did {story['id']}",
            "filesChanged": [f"src/{story['id']}.py"],
            "learnings": [f"learned from {story['id']}"],
            "commits": ["abc123"],
        },
        artifacts=[],
    )


def _failing(request: ExecuteRequest) -> ExecuteResult:
    return ExecuteResult.failed(
        output_dir="/tmp/task",
        logs="",
        duration_ms=1,
        error=ProcessError("Tool exited with code 1: boom", exit_code=1),
    )


class ScriptedExecutor:
    """Executor double answering each request with a callable."""

    def __init__(self, respond: Callable[[ExecuteRequest], ExecuteResult]) -> None:
        self.respond = respond
        self.requests: list[ExecuteRequest] = []

    def execute(self, request: ExecuteRequest) -> ExecuteResult:
        self.requests.append(request)
        return self.respond(request)

    @property
    def story_ids(self) -> list[str]:
        return [request.variables["story"]["id"] for request in self.requests]


def _write_prd(tmp_path: Path, prd: PRD) -> Path:
    path = tmp_path / "prd.json"
    prd.save(path)
    return path


def _options(tmp_path: Path, task_file: Path, **overrides: Any) -> ExecuteLoopOptions:
    return ExecuteLoopOptions(
        task_file=task_file,
        progress_file=tmp_path / "progress.json",
        **overrides,
    )


def test_loop_stops_at_iteration_budget(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001"), make_story("US-002")))
    executor = ScriptedExecutor(_passing)

    result = LoopExecutor(executor=executor).execute(
        _options(tmp_path, task_file, max_iterations=1),
    )

    assert not result.completed
    assert result.stop_reason == "max_iterations"
    assert len(result.iterations) == 1
    assert result.final_state.tasks_completed == 1
    assert result.final_state.tasks_total == 2
    assert result.final_state.remaining == 1
    assert PRD.load(task_file).get_story("US-001").passes


def test_loop_completes_without_spending_remaining_budget(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001"), make_story("US-002")))
    executor = ScriptedExecutor(_passing)

    result = LoopExecutor(executor=executor).execute(
        _options(tmp_path, task_file, max_iterations=10),
    )

    assert result.completed
    assert result.stop_reason == "completed"
    assert [outcome.iteration for outcome in result.iterations] == [1, 2]
    assert [outcome.task_id for outcome in result.iterations] == ["US-001", "US-002"]
    assert result.iterations[0].commits == ["abc123"]
    assert result.final_state.remaining == 0
    log = ProgressTracker.read(tmp_path / "progress.json")
    assert [entry.kind for entry in log.entries] == [EntryKind.COMPLETED, EntryKind.COMPLETED]
    assert log.learnings == ["learned from US-001", "learned from US-002"]


def test_loop_on_complete_backlog_runs_zero_iterations(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001", passes=True)))
    executor = ScriptedExecutor(_passing)

    result = LoopExecutor(executor=executor).execute(_options(tmp_path, task_file))

    assert result.completed
    assert result.iterations == []
    assert executor.requests == []
    assert (tmp_path / "progress.json").exists()


def test_loop_with_zero_budget_runs_nothing(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001")))
    executor = ScriptedExecutor(_passing)

    result = LoopExecutor(executor=executor).execute(
        _options(tmp_path, task_file, max_iterations=0),
    )

    assert not result.completed
    assert result.stop_reason == "max_iterations"
    assert executor.requests == []


def test_failed_iteration_is_recorded_and_loop_continues(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001")))
    executor = ScriptedExecutor(_failing)

    result = LoopExecutor(executor=executor).execute(
        _options(tmp_path, task_file, max_iterations=3),
    )

    assert not result.completed
    assert len(result.iterations) == 3
    assert all(not outcome.success for outcome in result.iterations)
    assert result.iterations[0].error == "process: Tool exited with code 1: boom"
    assert not PRD.load(task_file).get_story("US-001").passes
    log = ProgressTracker.read(tmp_path / "progress.json")
    assert [entry.kind for entry in log.entries] == [EntryKind.FAILED] * 3
    assert log.entries[0].summary.startswith("Attempt failed (process)")


def test_tool_reporting_not_passing_keeps_story_open(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001")))

    def _not_passing(request: ExecuteRequest) -> ExecuteResult:
        result = _passing(request)
        return ExecuteResult.succeeded(
            output_dir=result.output_dir,
            logs="",
            duration_ms=1,
            data={**result.data, "passes": False},
            artifacts=[],
        )

    result = LoopExecutor(executor=ScriptedExecutor(_not_passing)).execute(
        _options(tmp_path, task_file, max_iterations=1),
    )

    assert not result.iterations[0].success
    assert not PRD.load(task_file).get_story("US-001").passes
    entry = ProgressTracker.read(tmp_path / "progress.json").entries[0]
    assert entry.kind is EntryKind.FAILED


def test_loop_skips_story_after_max_attempts(tmp_path: Path) -> None:
    task_file = _write_prd(
        tmp_path,
        make_prd(make_story("US-001", priority=1), make_story("US-002", priority=2)),
    )

    def _first_always_fails(request: ExecuteRequest) -> ExecuteResult:
        if request.variables["story"]["id"] == "US-001":
            return _failing(request)
        return _passing(request)

    executor = ScriptedExecutor(_first_always_fails)

    result = LoopExecutor(executor=executor).execute(
        _options(tmp_path, task_file, max_iterations=10, max_attempts_per_story=2),
    )

    assert executor.story_ids == ["US-001", "US-001", "US-002"]
    assert result.stop_reason == "all_remaining_skipped"
    assert result.final_state.skipped == ["US-001"]
    assert not result.completed
    kinds = [entry.kind for entry in ProgressTracker.read(tmp_path / "progress.json").entries]
    assert kinds == [EntryKind.FAILED, EntryKind.FAILED, EntryKind.SKIPPED, EntryKind.COMPLETED]


def test_loop_stops_at_global_timeout(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001")))
    executor = ScriptedExecutor(_failing)

    result = LoopExecutor(executor=executor, global_timeout_seconds=1e-9).execute(
        _options(tmp_path, task_file, max_iterations=5),
    )

    assert result.stop_reason == "global_timeout"
    assert executor.requests == []


def test_on_iteration_and_hooks_fire_in_order(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001"), make_story("US-002")))
    events: list[str] = []

    class RecordingHooks(LifecycleHooks):
        def before_iteration(self, iteration, story) -> None:
            events.append(f"before:{iteration}:{story.id}")

        def after_iteration(self, outcome: IterationResult) -> None:
            events.append(f"after:{outcome.iteration}")

    def _on_iteration(outcome: IterationResult) -> None:
        events.append(f"callback:{outcome.iteration}")

    LoopExecutor(executor=ScriptedExecutor(_passing), hooks=RecordingHooks()).execute(
        _options(tmp_path, task_file, on_iteration=_on_iteration),
    )

    assert events == [
        "before:1:US-001",
        "callback:1",
        "after:1",
        "before:2:US-002",
        "callback:2",
        "after:2",
    ]


def test_loop_request_carries_story_contract_and_options(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001")))
    executor = ScriptedExecutor(_passing)

    LoopExecutor(executor=executor).execute(
        _options(
            tmp_path,
            task_file,
            mode=LoopMode.REVIEW,
            timeout_seconds=12.5,
            skill="frontend-design",
        ),
    )

    request = executor.requests[0]
    assert request.output_contract is StoryOutcome
    assert request.skill == "frontend-design"
    assert request.timeout_seconds == 12.5
    assert request.variables["mode"] == "review"
    assert request.variables["iteration"] == 1
    assert request.variables["branchName"] == "feature/test"
    assert "Review the existing implementation" in request.prompt


def test_loop_rejects_negative_budget(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001")))

    with pytest.raises(ValueError, match="max_iterations"):
        LoopExecutor(executor=ScriptedExecutor(_passing)).execute(
            _options(tmp_path, task_file, max_iterations=-1),
        )


def test_build_story_prompt_includes_criteria_and_learnings() -> None:
    prd = make_prd(make_story("US-001"))
    story = prd.get_story("US-001")
    progress = ProgressLog()

    prompt = build_story_prompt(prd=prd, story=story, mode=LoopMode.CODE, progress=progress)

    assert "Story US-001: Story US-001" in prompt
    assert "- US-001 criterion A" in prompt
    assert "Learnings from previous iterations" not in prompt
    assert '"storyId" to "US-001"' in prompt


def test_loop_with_echo_agent_completes_backlog(
    tmp_path: Path,
    echo_executor,
) -> None:
    task_file = _write_prd(
        tmp_path,
        make_prd(make_story("US-001", priority=2), make_story("US-002", priority=1)),
    )

    result = LoopExecutor(executor=echo_executor).execute(
        _options(tmp_path, task_file, max_iterations=5),
    )

    assert result.completed
    assert [outcome.task_id for outcome in result.iterations] == ["US-002", "US-001"]
    assert PRD.load(task_file).is_complete()
    log = ProgressTracker.read(tmp_path / "progress.json")
    assert "Checked: US-002 criterion A" in log.learnings


def test_loop_accepts_mode_given_as_plain_string(tmp_path: Path) -> None:
    task_file = _write_prd(tmp_path, make_prd(make_story("US-001")))
    executor = ScriptedExecutor(_passing)

    result = LoopExecutor(executor=executor).execute(
        _options(tmp_path, task_file, mode="review"),
    )

    assert result.completed
    assert executor.requests[0].variables["mode"] == "review"
    assert "Review the existing implementation" in executor.requests[0].prompt
