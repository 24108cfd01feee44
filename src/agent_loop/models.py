"""Request/result records for single-shot execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from agent_loop.errors import TaskError
from agent_loop.schema import OutputContract, as_contract


@dataclass(slots=True, frozen=True)
class ExecuteRequest:
    """One unit of work handed to the external tool."""

    prompt: str
    output_contract: Any
    variables: dict[str, Any] = field(default_factory=dict)
    skill: str | None = None
    timeout_seconds: float | None = None

    @property
    def contract(self) -> OutputContract:
        return as_contract(self.output_contract)


@dataclass(slots=True, frozen=True)
class ExecuteResult:
    """Terminal outcome of one attempt.

    `data` and `artifacts` are populated only on success, `error` only on failure.
    """

    success: bool
    output_dir: str
    logs: str
    duration_ms: int
    data: Any = None
    artifacts: tuple[str, ...] = ()
    error: TaskError | None = None

    @classmethod
    def succeeded(
        cls,
        *,
        output_dir: str,
        logs: str,
        duration_ms: int,
        data: Any,
        artifacts: list[str],
    ) -> ExecuteResult:
        return cls(
            success=True,
            output_dir=output_dir,
            logs=logs,
            duration_ms=duration_ms,
            data=data,
            artifacts=tuple(artifacts),
        )

    @classmethod
    def failed(
        cls,
        *,
        output_dir: str,
        logs: str,
        duration_ms: int,
        error: TaskError,
    ) -> ExecuteResult:
        return cls(
            success=False,
            output_dir=output_dir,
            logs=logs,
            duration_ms=duration_ms,
            error=error,
        )
