"""Process runner implementations."""

from agent_loop.backend.base import (
    TIMEOUT_SIGNAL,
    ProcessRunner,
    ProcessRunRequest,
    ProcessRunResult,
)
from agent_loop.backend.subprocess_runner import SubprocessRunner

__all__ = [
    "TIMEOUT_SIGNAL",
    "ProcessRunRequest",
    "ProcessRunResult",
    "ProcessRunner",
    "SubprocessRunner",
]
