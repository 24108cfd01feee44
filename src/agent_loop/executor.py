"""Single-shot executor: stage, invoke, validate, never raise."""

from __future__ import annotations

import logging
import shlex
import time
from pathlib import Path

from agent_loop.backend import ProcessRunner, ProcessRunRequest, ProcessRunResult, SubprocessRunner
from agent_loop.errors import (
    ProcessError,
    ProcessTimeoutError,
    StagingError,
    TaskError,
    UnexpectedError,
)
from agent_loop.models import ExecuteRequest, ExecuteResult
from agent_loop.result import assemble, read_logs
from agent_loop.workdir import StagedTask, TaskWorkdirManager

logger = logging.getLogger(__name__)

WORKING_DIR_ENV = "AGENT_LOOP_WORKING_DIR"


class SingleShotExecutor:
    """Runs one request against the external tool and folds every failure into the result."""

    def __init__(
        self,
        *,
        tool_command: str,
        workdir: TaskWorkdirManager,
        runner: ProcessRunner | None = None,
        default_timeout_seconds: float | None = None,
        working_dir: Path | None = None,
    ) -> None:
        self.tool_command = tool_command
        self.workdir = workdir
        self.runner = runner or SubprocessRunner()
        self.default_timeout_seconds = default_timeout_seconds
        self.working_dir = working_dir

    def execute(self, request: ExecuteRequest) -> ExecuteResult:
        start_monotonic = time.monotonic()
        staged: StagedTask | None = None
        try:
            try:
                contract = request.contract
            except TypeError as error:
                raise StagingError(str(error)) from error
            staged = self.workdir.stage(request, contract)
            timeout_seconds = self._timeout_for(request)
            execution = self.runner.run(
                ProcessRunRequest(
                    argv=self.build_argv(staged, skill=request.skill),
                    cwd=staged.task_dir,
                    timeout_seconds=timeout_seconds,
                    stdout_path=staged.stdout_path,
                    stderr_path=staged.stderr_path,
                    env=self._tool_env(),
                ),
            )
            _raise_for_execution(execution, timeout_seconds=timeout_seconds)
            assembled = assemble(staged, contract)
            logs = _combine_logs(execution, tool_logs=read_logs(staged))
        except TaskError as error:
            return self._failed(error, staged=staged, start_monotonic=start_monotonic)
        except Exception as error:  # noqa: BLE001
            logger.exception("Unexpected failure while executing task")
            return self._failed(
                UnexpectedError(f"{type(error).__name__}: {error}", cause=error),
                staged=staged,
                start_monotonic=start_monotonic,
            )

        duration_ms = _elapsed_ms(start_monotonic)
        logger.info(
            "Task succeeded: task_id=%s artifacts=%d duration_ms=%d",
            staged.task_id,
            len(assembled.artifacts),
            duration_ms,
        )
        return ExecuteResult.succeeded(
            output_dir=str(staged.task_dir),
            logs=logs,
            duration_ms=duration_ms,
            data=assembled.data,
            artifacts=assembled.artifacts,
        )

    def _failed(
        self,
        error: TaskError,
        *,
        staged: StagedTask | None,
        start_monotonic: float,
    ) -> ExecuteResult:
        duration_ms = _elapsed_ms(start_monotonic)
        logger.warning(
            "Task failed: kind=%s task_dir=%s duration_ms=%d error=%s",
            error.kind,
            staged.task_dir if staged is not None else "-",
            duration_ms,
            error.message,
        )
        return ExecuteResult.failed(
            output_dir=str(staged.task_dir) if staged is not None else "",
            logs=_failure_logs(staged),
            duration_ms=duration_ms,
            error=error,
        )

    def build_argv(self, staged: StagedTask, *, skill: str | None = None) -> list[str]:
        """Render tool argv: command, optional ``--skill NAME`` pair, then the prompt."""

        argv = shlex.split(self.tool_command)
        if skill:
            argv.extend(["--skill", skill])
        argv.append(build_invocation_prompt(staged.task_dir))
        return argv

    def _tool_env(self) -> dict[str, str] | None:
        if self.working_dir is None:
            return None
        return {WORKING_DIR_ENV: str(self.working_dir)}

    def _timeout_for(self, request: ExecuteRequest) -> float | None:
        if request.timeout_seconds is not None:
            return request.timeout_seconds
        return self.default_timeout_seconds


def build_invocation_prompt(task_dir: Path) -> str:
    """Fixed instruction telling the tool where to read inputs and write outputs."""

    return (
        f"Execute the task described in {task_dir}/instructions.json "
        f"following the schema in {task_dir}/schema.json. "
        f"Write the result to {task_dir}/result.json and logs to {task_dir}/logs.txt. "
        f"Place any artifacts in {task_dir}/artifacts/."
    )


def _raise_for_execution(execution: ProcessRunResult, *, timeout_seconds: float | None) -> None:
    if execution.timed_out:
        raise ProcessTimeoutError(
            f"Tool timed out after {timeout_seconds}s",
            timeout_seconds=timeout_seconds or 0,
            stderr=execution.stderr,
        )
    if execution.signal is not None:
        raise ProcessError(
            f"Tool terminated by signal {execution.signal}: {execution.stderr.strip()}",
            exit_code=execution.exit_code,
            signal=execution.signal,
            stderr=execution.stderr,
        )
    if execution.exit_code != 0:
        raise ProcessError(
            f"Tool exited with code {execution.exit_code}: {execution.stderr.strip()}",
            exit_code=execution.exit_code,
            signal=None,
            stderr=execution.stderr,
        )


def _combine_logs(execution: ProcessRunResult, *, tool_logs: str) -> str:
    logs = execution.stdout
    if execution.stderr:
        logs += "\nERRORS:\n" + execution.stderr
    if tool_logs:
        logs += "\nTOOL LOGS:\n" + tool_logs
    return logs


def _failure_logs(staged: StagedTask | None) -> str:
    if staged is None:
        return ""
    parts: list[str] = []
    for path in (staged.stdout_path, staged.stderr_path):
        try:
            text = path.read_text("utf-8", errors="replace")
        except OSError:
            continue
        if text:
            parts.append(text)
    return "\n".join(parts)


def _elapsed_ms(start_monotonic: float) -> int:
    return int((time.monotonic() - start_monotonic) * 1000)
