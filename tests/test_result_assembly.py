from __future__ import annotations

import allure
import pytest

from agent_loop.errors import ResultMalformedError, ResultMissingError, ValidationError
from agent_loop.models import ExecuteRequest
from agent_loop.result import assemble, list_artifacts, read_logs
from agent_loop.workdir import StagedTask, TaskWorkdirManager

pytestmark = [
    allure.epic("Single-Shot Execution"),
    allure.feature("Result Assembly"),
]

SCHEMA = {
    "type": "object",
    "properties": {"result": {"type": "string"}},
    "required": ["result"],
}


@pytest.fixture()
def staged(workdir_manager: TaskWorkdirManager) -> StagedTask:
    return workdir_manager.stage(ExecuteRequest(prompt="p", output_contract=SCHEMA))


def test_assemble_returns_validated_data_and_artifacts(staged: StagedTask) -> None:
    staged.result_path.write_text('{"result": "ok"}', "utf-8")
    (staged.artifacts_dir / "nested").mkdir()
    (staged.artifacts_dir / "nested" / "Button.tsx").write_text("export {}", "utf-8")
    (staged.artifacts_dir / "notes.md").write_text("# notes", "utf-8")

    assembled = assemble(staged, ExecuteRequest(prompt="p", output_contract=SCHEMA).contract)

    assert assembled.data == {"result": "ok"}
    assert assembled.artifacts == sorted(
        [
            str(staged.artifacts_dir / "nested" / "Button.tsx"),
            str(staged.artifacts_dir / "notes.md"),
        ],
    )


def test_assemble_raises_missing_when_result_absent(staged: StagedTask) -> None:
    contract = ExecuteRequest(prompt="p", output_contract=SCHEMA).contract

    with pytest.raises(ResultMissingError) as error_info:
        assemble(staged, contract)

    assert error_info.value.kind == "result_missing"
    assert error_info.value.path == staged.result_path


def test_assemble_raises_malformed_for_invalid_json(staged: StagedTask) -> None:
    staged.result_path.write_text("{not json", "utf-8")
    contract = ExecuteRequest(prompt="p", output_contract=SCHEMA).contract

    with pytest.raises(ResultMalformedError, match="not valid JSON"):
        assemble(staged, contract)


def test_assemble_raises_validation_error_with_violations(staged: StagedTask) -> None:
    staged.result_path.write_text('{"result": 42}', "utf-8")
    contract = ExecuteRequest(prompt="p", output_contract=SCHEMA).contract

    with pytest.raises(ValidationError) as error_info:
        assemble(staged, contract)

    violations = error_info.value.violations
    assert [violation.path for violation in violations] == ["result"]
    assert "1 violation(s)" in error_info.value.message
    payload = error_info.value.to_dict()
    assert payload["kind"] == "validation"
    assert payload["violations"][0]["path"] == "result"


def test_list_artifacts_handles_missing_directory(staged: StagedTask) -> None:
    staged.artifacts_dir.rmdir()

    assert list_artifacts(staged.artifacts_dir) == []


def test_read_logs_returns_tool_log_or_empty(staged: StagedTask) -> None:
    assert read_logs(staged) == ""

    staged.logs_path.write_text("step 1\n", "utf-8")

    assert read_logs(staged) == "step 1\n"
