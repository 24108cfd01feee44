"""Task directory staging for file-based tool execution."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from agent_loop.contracts import (
    ARTIFACTS_DIR,
    INSTRUCTIONS_FILE,
    LOGS_FILE,
    RESULT_FILE,
    SCHEMA_FILE,
    STDERR_FILE,
    STDOUT_FILE,
    TaskInstructions,
    write_instructions,
    write_json,
)
from agent_loop.errors import StagingError
from agent_loop.models import ExecuteRequest
from agent_loop.schema import OutputContract

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class StagedTask:
    """Paths of one staged task directory."""

    task_id: str
    task_dir: Path

    @property
    def instructions_path(self) -> Path:
        return self.task_dir / INSTRUCTIONS_FILE

    @property
    def schema_path(self) -> Path:
        return self.task_dir / SCHEMA_FILE

    @property
    def result_path(self) -> Path:
        return self.task_dir / RESULT_FILE

    @property
    def logs_path(self) -> Path:
        return self.task_dir / LOGS_FILE

    @property
    def artifacts_dir(self) -> Path:
        return self.task_dir / ARTIFACTS_DIR

    @property
    def stdout_path(self) -> Path:
        return self.task_dir / STDOUT_FILE

    @property
    def stderr_path(self) -> Path:
        return self.task_dir / STDERR_FILE


class TaskWorkdirManager:
    """Creates one fresh, uniquely named directory per attempt."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = root_dir

    def stage(self, request: ExecuteRequest, contract: OutputContract | None = None) -> StagedTask:
        """Create the task directory and write instructions and schema into it."""

        contract = contract or request.contract
        task_id = uuid4().hex
        task_dir = self.root_dir / task_id
        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
            task_dir.mkdir(exist_ok=False)
            staged = StagedTask(task_id=task_id, task_dir=task_dir.resolve())
            write_instructions(
                staged.instructions_path,
                TaskInstructions(prompt=request.prompt, variables=dict(request.variables)),
            )
            write_json(staged.schema_path, contract.compile())
            staged.artifacts_dir.mkdir()
        except OSError as error:
            raise StagingError(f"Failed to stage task directory {task_dir}: {error}") from error
        except (TypeError, ValueError) as error:
            raise StagingError(f"Failed to serialize task {task_id}: {error}") from error

        logger.debug("Staged task %s at %s", task_id, staged.task_dir)
        return staged

    def remove(self, staged: StagedTask) -> None:
        """Delete a task directory after its result was consumed."""

        shutil.rmtree(staged.task_dir, ignore_errors=True)
