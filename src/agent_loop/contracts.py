"""File-based contract between the executor and the external tool."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

INSTRUCTIONS_FILE = "instructions.json"
SCHEMA_FILE = "schema.json"
RESULT_FILE = "result.json"
LOGS_FILE = "logs.txt"
ARTIFACTS_DIR = "artifacts"
STDOUT_FILE = "stdout.log"
STDERR_FILE = "stderr.log"


@dataclass(slots=True)
class TaskInstructions:
    """Instruction document read by the tool."""

    prompt: str
    variables: dict[str, Any] = field(default_factory=dict)


def write_json(path: Path, payload: dict[str, Any]) -> None:
    """Persist JSON payload using deterministic formatting."""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Write JSON next to `path` and rename it into place once flushed to disk."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def write_instructions(path: Path, payload: TaskInstructions) -> None:
    """Serialize instruction document."""

    write_json(path, asdict(payload))


def read_instructions(path: Path) -> TaskInstructions:
    """Deserialize and validate instruction document."""

    raw = load_json(path)
    prompt = raw.get("prompt")
    variables = raw.get("variables", {})
    if not isinstance(prompt, str):
        raise TypeError("instructions.prompt must be a string")
    if not isinstance(variables, dict):
        raise TypeError("instructions.variables must be an object")
    return TaskInstructions(prompt=prompt, variables=variables)
