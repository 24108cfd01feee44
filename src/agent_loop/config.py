"""Runtime configuration for the executor and loop controller."""

from __future__ import annotations

import os
import shlex
import tempfile
from dataclasses import dataclass, field
from pathlib import Path


def _default_staging_root() -> Path:
    return Path(tempfile.gettempdir()) / "agent-loop-tasks"


@dataclass(slots=True)
class Settings:
    """Application settings."""

    tool_command: str = "claude -p"
    working_dir: Path = field(default_factory=Path.cwd)
    staging_root: Path = field(default_factory=_default_staging_root)
    default_timeout_seconds: float | None = 600.0
    global_timeout_seconds: float | None = None
    # deletes the task directory, artifacts included, after a successful attempt
    cleanup_on_success: bool = False
    terminate_grace_seconds: float = 2.0

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            tool_command=os.getenv("AGENT_LOOP_TOOL_COMMAND", "claude -p"),
            working_dir=Path(os.getenv("AGENT_LOOP_WORKING_DIR", str(Path.cwd()))),
            staging_root=Path(
                os.getenv("AGENT_LOOP_STAGING_ROOT", str(_default_staging_root())),
            ),
            default_timeout_seconds=_env_optional_float(
                "AGENT_LOOP_TIMEOUT_SECONDS",
                default=600.0,
            ),
            global_timeout_seconds=_env_optional_float(
                "AGENT_LOOP_GLOBAL_TIMEOUT_SECONDS",
                default=None,
            ),
            cleanup_on_success=_env_bool("AGENT_LOOP_CLEANUP_ON_SUCCESS", default=False),
            terminate_grace_seconds=float(
                os.getenv("AGENT_LOOP_TERMINATE_GRACE_SECONDS", "2.0"),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for unusable values."""

        if not shlex.split(self.tool_command):
            raise ValueError("AGENT_LOOP_TOOL_COMMAND must not be empty.")
        if self.default_timeout_seconds is not None and self.default_timeout_seconds <= 0:
            raise ValueError("AGENT_LOOP_TIMEOUT_SECONDS must be > 0.")
        if self.global_timeout_seconds is not None and self.global_timeout_seconds <= 0:
            raise ValueError("AGENT_LOOP_GLOBAL_TIMEOUT_SECONDS must be > 0.")
        if self.terminate_grace_seconds < 0:
            raise ValueError("AGENT_LOOP_TERMINATE_GRACE_SECONDS must be >= 0.")


def _env_optional_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"", "none", "off", "0"}:
        return None
    try:
        return float(normalized)
    except ValueError as error:
        raise ValueError(f"Invalid number for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
