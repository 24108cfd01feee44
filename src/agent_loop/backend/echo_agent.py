"""Local deterministic stand-in for the external tool, used by tests and smoke runs.

Reads ``instructions.json`` from the working directory and writes
``result.json``, ``logs.txt`` and artifacts the way a real tool would.
Behavior is steered by optional instruction variables:

- ``echo_result``: object written verbatim as the result document
- ``echo_raw_result``: raw text written as the result document
- ``echo_skip_result``: do not write a result document
- ``echo_exit_code``: exit with this code before writing anything
- ``echo_sleep_seconds``: sleep before doing anything
- ``echo_stderr``: text printed to stderr
- ``echo_artifacts``: mapping of relative file name to text content
- ``story``: user story object; a passing story outcome is written
"""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

from agent_loop.contracts import (
    ARTIFACTS_DIR,
    INSTRUCTIONS_FILE,
    LOGS_FILE,
    RESULT_FILE,
    read_instructions,
    write_json,
)


def main(argv: list[str] | None = None) -> int:
    """Run local deterministic task execution."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--skill", default=None)
    parser.add_argument("prompt", nargs="?", default="")
    args = parser.parse_args(argv)

    task_dir = Path.cwd()
    instructions = read_instructions(task_dir / INSTRUCTIONS_FILE)
    variables = instructions.variables

    sleep_seconds = float(variables.get("echo_sleep_seconds", 0))
    if sleep_seconds > 0:
        time.sleep(sleep_seconds)

    print(f"echo_agent: {args.prompt}")
    if args.skill:
        print(f"echo_agent skill: {args.skill}")
    stderr_text = variables.get("echo_stderr")
    if stderr_text:
        print(stderr_text, file=sys.stderr)

    exit_code = int(variables.get("echo_exit_code", 0))
    if exit_code != 0:
        return exit_code

    (task_dir / LOGS_FILE).write_text(f"prompt: {instructions.prompt}\n", "utf-8")

    artifacts = variables.get("echo_artifacts") or {}
    for name, content in artifacts.items():
        artifact_path = task_dir / ARTIFACTS_DIR / name
        artifact_path.parent.mkdir(parents=True, exist_ok=True)
        artifact_path.write_text(str(content), "utf-8")

    result_path = task_dir / RESULT_FILE
    if variables.get("echo_skip_result"):
        return 0
    if "echo_raw_result" in variables:
        result_path.write_text(str(variables["echo_raw_result"]), "utf-8")
        return 0
    write_json(result_path, _build_result(instructions.prompt, variables))
    return 0


def _build_result(prompt: str, variables: dict[str, object]) -> dict[str, object]:
    if "echo_result" in variables:
        return dict(variables["echo_result"])  # type: ignore[arg-type]

    story = variables.get("story")
    if isinstance(story, dict):
        criteria = story.get("acceptanceCriteria") or []
        return {
            "storyId": story.get("id", ""),
            "passes": True,
            "summary": f"Implemented {story.get('title', '')}".strip(),
            "filesChanged": [],
            "learnings": [f"Checked: {item}" for item in criteria],
            "commits": [],
        }

    return {"message": prompt}


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
