"""Typed failures raised while staging, running and validating one task attempt."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agent_loop.schema import Violation


class TaskError(Exception):
    """Base class for failures normalized into a failed `ExecuteResult`."""

    kind = "task"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logs and CLI output."""

        return {"kind": self.kind, "message": self.message}


class StagingError(TaskError):
    """Task directory could not be created or written."""

    kind = "staging"


class ProcessError(TaskError):
    """External tool exited non-zero, was killed, or could not start."""

    kind = "process"

    def __init__(
        self,
        message: str,
        *,
        exit_code: int | None,
        signal: str | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.signal = signal
        self.stderr = stderr

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["exit_code"] = self.exit_code
        payload["signal"] = self.signal
        return payload


class ProcessTimeoutError(ProcessError):
    """External tool exceeded its deadline and was forcibly terminated."""

    kind = "timeout"

    def __init__(self, message: str, *, timeout_seconds: float, stderr: str = "") -> None:
        super().__init__(message, exit_code=None, signal="TIMEOUT", stderr=stderr)
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["timeout_seconds"] = self.timeout_seconds
        return payload


class ResultMissingError(TaskError):
    """Tool did not write the result document."""

    kind = "result_missing"

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path


class ResultMalformedError(TaskError):
    """Result document exists but is not a parsable JSON value."""

    kind = "result_malformed"

    def __init__(self, message: str, *, path: Path) -> None:
        super().__init__(message)
        self.path = path


class ValidationError(TaskError):
    """Result document parsed but violates the output contract."""

    kind = "validation"

    def __init__(self, message: str, *, violations: list[Violation]) -> None:
        super().__init__(message)
        self.violations = violations

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["violations"] = [violation.to_dict() for violation in self.violations]
        return payload


class UnexpectedError(TaskError):
    """Failure outside the known kinds, captured at the executor boundary."""

    kind = "unexpected"

    def __init__(self, message: str, *, cause: BaseException) -> None:
        super().__init__(message)
        self.cause = cause
