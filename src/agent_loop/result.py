"""Result assembly: read, validate and collect what the tool produced."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from agent_loop.errors import ResultMalformedError, ResultMissingError, ValidationError
from agent_loop.schema import OutputContract
from agent_loop.workdir import StagedTask

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AssembledResult:
    """Validated data plus artifact paths of one attempt."""

    data: Any
    artifacts: list[str] = field(default_factory=list)


def assemble(staged: StagedTask, contract: OutputContract) -> AssembledResult:
    """Validate the result document and enumerate artifacts.

    Raises `ResultMissingError`, `ResultMalformedError` or `ValidationError`.
    """

    raw = read_result_document(staged.result_path)
    check = contract.validate(raw)
    if not check.ok:
        summary = "; ".join(str(violation) for violation in check.violations[:5])
        raise ValidationError(
            f"Result validation failed with {len(check.violations)} violation(s): {summary}",
            violations=check.violations,
        )
    return AssembledResult(data=check.data, artifacts=list_artifacts(staged.artifacts_dir))


def read_result_document(path: Path) -> Any:
    """Load the tool-written result document."""

    try:
        text = path.read_text("utf-8")
    except FileNotFoundError as error:
        raise ResultMissingError(f"Result file not found: {path}", path=path) from error
    except (OSError, UnicodeDecodeError) as error:
        raise ResultMalformedError(f"Result file unreadable: {error}", path=path) from error
    try:
        return json.loads(text)
    except json.JSONDecodeError as error:
        raise ResultMalformedError(f"Result is not valid JSON: {error}", path=path) from error


def list_artifacts(artifacts_dir: Path) -> list[str]:
    """Return absolute paths of every file under the artifacts directory."""

    if not artifacts_dir.is_dir():
        return []
    return sorted(str(path) for path in artifacts_dir.rglob("*") if path.is_file())


def read_logs(staged: StagedTask) -> str:
    """Return tool-written log text, or empty string when absent."""

    try:
        return staged.logs_path.read_text("utf-8", errors="replace")
    except FileNotFoundError:
        return ""
    except OSError as error:
        logger.warning("Tool log unreadable at %s: %s", staged.logs_path, error)
        return ""
