"""Subprocess-based runner for the external CLI tool."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from pathlib import Path

from agent_loop.backend.base import (
    TIMEOUT_SIGNAL,
    ProcessRunRequest,
    ProcessRunResult,
)
from agent_loop.errors import ProcessError

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND_EXIT_CODE = 127
_USE_PROCESS_GROUPS = os.name == "posix"


class SubprocessRunner:
    """Spawn one child process per call, rooted at the task directory.

    Streams go to files rather than pipes so arbitrarily large output never
    blocks the child.
    """

    def __init__(
        self,
        *,
        poll_interval_seconds: float = 0.05,
        terminate_grace_seconds: float = 2.0,
    ) -> None:
        self.poll_interval_seconds = poll_interval_seconds
        self.terminate_grace_seconds = terminate_grace_seconds

    def run(self, request: ProcessRunRequest) -> ProcessRunResult:
        if not request.argv:
            raise ProcessError("Tool command is empty.", exit_code=None)
        request.stdout_path.parent.mkdir(parents=True, exist_ok=True)
        request.stderr_path.parent.mkdir(parents=True, exist_ok=True)

        env = os.environ.copy()
        if request.env:
            env.update(request.env)

        start_monotonic = time.monotonic()
        try:
            with (
                request.stdout_path.open("w", encoding="utf-8") as stdout_handle,
                request.stderr_path.open("w", encoding="utf-8") as stderr_handle,
            ):
                exit_code, timed_out = self._wait(
                    request=request,
                    env=env,
                    stdout_handle=stdout_handle,
                    stderr_handle=stderr_handle,
                    start_monotonic=start_monotonic,
                )
        except FileNotFoundError as error:
            raise ProcessError(
                f"Tool command not found: {request.argv[0]}",
                exit_code=COMMAND_NOT_FOUND_EXIT_CODE,
            ) from error
        except OSError as error:
            raise ProcessError(f"Tool failed to start: {error}", exit_code=None) from error

        duration_ms = int((time.monotonic() - start_monotonic) * 1000)
        stdout = _read_capture(request.stdout_path)
        stderr = _read_capture(request.stderr_path)

        if timed_out:
            logger.warning(
                "Tool timed out after %.1fs: %s",
                request.timeout_seconds,
                request.argv[0],
            )
            return ProcessRunResult(
                exit_code=None,
                stdout=stdout,
                stderr=stderr,
                signal=TIMEOUT_SIGNAL,
                timed_out=True,
                duration_ms=duration_ms,
            )

        signal_name: str | None = None
        if exit_code is not None and exit_code < 0:
            signal_name = _signal_name(-exit_code)
            exit_code = None

        return ProcessRunResult(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            signal=signal_name,
            timed_out=False,
            duration_ms=duration_ms,
        )

    def _wait(
        self,
        *,
        request: ProcessRunRequest,
        env: dict[str, str],
        stdout_handle,
        stderr_handle,
        start_monotonic: float,
    ) -> tuple[int | None, bool]:
        process = subprocess.Popen(  # noqa: S603
            request.argv,
            cwd=request.cwd,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=stdout_handle,
            stderr=stderr_handle,
            text=True,
            start_new_session=_USE_PROCESS_GROUPS,
        )
        logger.debug("Started tool pid=%s cwd=%s", process.pid, request.cwd)

        while True:
            returncode = process.poll()
            if returncode is not None:
                return returncode, False

            elapsed = time.monotonic() - start_monotonic
            if request.timeout_seconds is not None and elapsed >= request.timeout_seconds:
                self._terminate_process(process)
                return None, True

            time.sleep(self.poll_interval_seconds)

    def _terminate_process(self, process: subprocess.Popen[str]) -> None:
        """Stop the tool and everything it spawned: SIGTERM, grace period, SIGKILL."""

        _signal_tree(process, force=False)
        try:
            process.wait(timeout=self.terminate_grace_seconds)
        except subprocess.TimeoutExpired:
            _signal_tree(process, force=True)
            process.wait()
        else:
            # group members that survived SIGTERM
            _signal_tree(process, force=True)


def _signal_tree(process: subprocess.Popen[str], *, force: bool) -> None:
    try:
        if _USE_PROCESS_GROUPS:
            os.killpg(process.pid, signal.SIGKILL if force else signal.SIGTERM)
        elif force:
            process.kill()
        else:
            process.terminate()
    except OSError:
        logger.debug("Process group %s already gone", process.pid)


def _read_capture(path: Path) -> str:
    try:
        return path.read_text("utf-8", errors="replace")
    except FileNotFoundError:
        return ""


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"
