"""Process runner interface for external tool invocation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

TIMEOUT_SIGNAL = "TIMEOUT"


@dataclass(slots=True)
class ProcessRunRequest:
    """Inputs required to run the tool once."""

    argv: list[str]
    cwd: Path
    timeout_seconds: float | None
    stdout_path: Path
    stderr_path: Path
    env: dict[str, str] | None = None


@dataclass(slots=True)
class ProcessRunResult:
    """Exit status and captured streams of one run."""

    exit_code: int | None
    stdout: str
    stderr: str
    signal: str | None
    timed_out: bool
    duration_ms: int


class ProcessRunner(Protocol):
    """Protocol implemented by process runners."""

    def run(self, request: ProcessRunRequest) -> ProcessRunResult:
        """Run the command to completion or timeout and return its status."""
