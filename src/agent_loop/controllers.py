"""Controllers for agent-loop CLI commands."""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from agent_loop.config import Settings
from agent_loop.contracts import load_json
from agent_loop.errors import ValidationError
from agent_loop.loop import ExecuteLoopOptions, IterationResult, LoopMode
from agent_loop.manager import TaskManager
from agent_loop.models import ExecuteRequest, ExecuteResult
from agent_loop.prd import PRD
from agent_loop.progress import ProgressTracker
from agent_loop.schema import JsonSchemaContract

_ARTIFACTS_SHOWN = 20


@dataclass(slots=True)
class RunTaskCommand:
    """CLI input for one single-shot execution."""

    prompt: str
    schema_path: Path
    variables: tuple[str, ...] = ()
    skill: str | None = None
    timeout_seconds: float | None = None
    tool_command: str | None = None
    staging_root: Path | None = None


@dataclass(slots=True)
class RunLoopCommand:
    """CLI input for loop execution."""

    prd_path: Path
    progress_path: Path
    max_iterations: int
    mode: str
    max_attempts_per_story: int | None = None
    timeout_seconds: float | None = None
    skill: str | None = None
    tool_command: str | None = None
    staging_root: Path | None = None


@dataclass(slots=True)
class PrdCommand:
    """CLI input for backlog inspection."""

    prd_path: Path


@dataclass(slots=True)
class ProgressCommand:
    """CLI input for progress ledger operations."""

    progress_path: Path


@dataclass(slots=True)
class CommandResult:
    """Lines to render plus overall status."""

    lines: list[str]
    success: bool


class AgentLoopCliController:
    """Coordinates execution, loop and inspection CLI operations."""

    def run_task(self, command: RunTaskCommand) -> CommandResult:
        manager = TaskManager(
            _settings(tool_command=command.tool_command, staging_root=command.staging_root),
        )
        request = ExecuteRequest(
            prompt=command.prompt,
            output_contract=JsonSchemaContract(load_json(command.schema_path)),
            variables=parse_variables(command.variables),
            skill=command.skill,
            timeout_seconds=command.timeout_seconds,
        )
        result = manager.execute(request)
        return CommandResult(lines=render_execute_result(result), success=result.success)

    def run_loop(self, command: RunLoopCommand) -> CommandResult:
        manager = TaskManager(
            _settings(tool_command=command.tool_command, staging_root=command.staging_root),
        )
        lines: list[str] = []

        def _on_iteration(outcome: IterationResult) -> None:
            lines.append(render_iteration(outcome))

        result = manager.execute_loop(
            ExecuteLoopOptions(
                task_file=command.prd_path,
                progress_file=command.progress_path,
                max_iterations=command.max_iterations,
                mode=LoopMode(command.mode),
                on_iteration=_on_iteration,
                max_attempts_per_story=command.max_attempts_per_story,
                timeout_seconds=command.timeout_seconds,
                skill=command.skill,
            ),
        )
        state = result.final_state
        if result.completed:
            lines.append(
                f"All stories completed: iterations={len(result.iterations)} "
                f"duration_ms={result.total_duration_ms}",
            )
        else:
            lines.append(
                f"Loop ended before completion: reason={result.stop_reason} "
                f"completed={state.tasks_completed}/{state.tasks_total} "
                f"remaining={state.remaining}",
            )
        if state.skipped:
            lines.append(f"Skipped stories: {', '.join(state.skipped)}")
        return CommandResult(lines=lines, success=result.completed)

    def prd_status(self, command: PrdCommand) -> list[str]:
        prd = PRD.load(command.prd_path)
        lines = [
            f"Project: {prd.project} branch={prd.branch_name}",
            f"Stories: completed={prd.tasks_completed}/{prd.tasks_total}",
        ]
        for story in prd.user_stories:
            mark = "x" if story.passes else " "
            lines.append(f"[{mark}] {story.id} p={story.priority} {story.title}")
        return lines

    def prd_next(self, command: PrdCommand) -> list[str]:
        prd = PRD.load(command.prd_path)
        story = prd.next_story()
        if story is None:
            return ["All stories pass."]
        lines = [f"Next story: {story.id} - {story.title} (priority={story.priority})"]
        lines.extend(f"  - {item}" for item in story.acceptance_criteria)
        return lines

    def progress_init(self, command: ProgressCommand) -> list[str]:
        ProgressTracker.initialize(command.progress_path)
        return [f"Progress ledger ready: {command.progress_path}"]

    def progress_show(self, command: ProgressCommand) -> list[str]:
        log = ProgressTracker.read(command.progress_path)
        lines = [f"Entries: {len(log.entries)}"]
        for entry in log.entries:
            lines.append(
                f"#{entry.iteration if entry.iteration is not None else '-'} "
                f"{entry.story_id} [{entry.kind.value}] {entry.summary}",
            )
        if log.learnings:
            lines.append("Learnings:")
            lines.extend(f"  - {item}" for item in log.learnings)
        return lines


def parse_variables(values: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` pairs; values that are valid JSON are decoded."""

    variables: dict[str, Any] = {}
    for token in values:
        if "=" not in token:
            raise ValueError(f"Invalid variable {token!r}. Expected format KEY=VALUE.")
        key, raw_value = token.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid variable {token!r}: empty key.")
        try:
            variables[key] = json.loads(raw_value)
        except json.JSONDecodeError:
            variables[key] = raw_value
    return variables


def render_execute_result(result: ExecuteResult) -> list[str]:
    lines = [
        f"Task {'succeeded' if result.success else 'failed'}: duration_ms={result.duration_ms}",
        f"Output dir: {result.output_dir or '-'}",
    ]
    if result.success:
        lines.append(f"Artifacts: {len(result.artifacts)}")
        lines.extend(f"  - {path}" for path in result.artifacts[:_ARTIFACTS_SHOWN])
        lines.append(json.dumps(result.data, ensure_ascii=False, indent=2, sort_keys=True))
        return lines

    error = result.error
    if error is None:
        return lines
    lines.append(f"Error [{error.kind}]: {error.message}")
    if isinstance(error, ValidationError):
        lines.extend(f"  - {violation}" for violation in error.violations)
    return lines


def render_iteration(outcome: IterationResult) -> str:
    line = (
        f"Iteration {outcome.iteration}: story={outcome.task_id} "
        f"success={outcome.success} duration_ms={outcome.duration_ms}"
    )
    if outcome.commits:
        line += f" commits={','.join(outcome.commits)}"
    if outcome.error:
        line += f" error={outcome.error}"
    return line


def _settings(*, tool_command: str | None, staging_root: Path | None) -> Settings:
    settings = Settings.from_env()
    if tool_command is not None:
        settings = replace(settings, tool_command=tool_command)
    if staging_root is not None:
        settings = replace(settings, staging_root=staging_root)
    return settings
