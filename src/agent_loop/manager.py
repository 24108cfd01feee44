"""Facade wiring settings, hooks, executor and loop controller together."""

from __future__ import annotations

import logging
from pathlib import Path

from agent_loop.backend import ProcessRunner, SubprocessRunner
from agent_loop.config import Settings
from agent_loop.executor import SingleShotExecutor
from agent_loop.hooks import LifecycleHooks
from agent_loop.loop import ExecuteLoopOptions, LoopExecutor, LoopResult
from agent_loop.models import ExecuteRequest, ExecuteResult
from agent_loop.workdir import StagedTask, TaskWorkdirManager

logger = logging.getLogger(__name__)


class TaskManager:
    """Entry point for single-shot and loop execution."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        hooks: LifecycleHooks | None = None,
        runner: ProcessRunner | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.settings.validate()
        self.hooks = hooks or LifecycleHooks()
        self.workdir = TaskWorkdirManager(self.settings.staging_root)
        self.executor = SingleShotExecutor(
            tool_command=self.settings.tool_command,
            workdir=self.workdir,
            runner=runner
            or SubprocessRunner(terminate_grace_seconds=self.settings.terminate_grace_seconds),
            default_timeout_seconds=self.settings.default_timeout_seconds,
            working_dir=self.settings.working_dir,
        )
        # loop attempts go through execute() so attempt hooks fire for them too
        self.loop = LoopExecutor(
            executor=self,
            hooks=self.hooks,
            global_timeout_seconds=self.settings.global_timeout_seconds,
        )

    def execute(self, request: ExecuteRequest) -> ExecuteResult:
        """Run one attempt between the execute hooks.

        With `cleanup_on_success` the task directory is deleted before returning,
        so `output_dir` and `artifacts` of a successful result name removed paths.
        Read anything needed from the task directory in `after_execute`.
        """

        self.hooks.before_execute(request)
        result = self.executor.execute(request)
        self.hooks.after_execute(result)
        if result.success and self.settings.cleanup_on_success and result.output_dir:
            task_dir = Path(result.output_dir)
            self.workdir.remove(StagedTask(task_id=task_dir.name, task_dir=task_dir))
            logger.debug("Removed task directory %s", task_dir)
        return result

    def execute_loop(self, options: ExecuteLoopOptions) -> LoopResult:
        return self.loop.execute(options)
