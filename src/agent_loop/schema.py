"""Output contracts: compile to a JSON Schema document and validate tool results.

The executor only depends on the `OutputContract` protocol. Two implementations
are provided: `PydanticContract` for typed contracts declared as pydantic
models, and `JsonSchemaContract` for raw JSON Schema documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import jsonschema
import pydantic
from jsonschema.validators import validator_for
from referencing.exceptions import Unresolvable

from agent_loop.errors import StagingError

ROOT_PATH = "(root)"
_ACTUAL_PREVIEW_CHARS = 80


@dataclass(slots=True, frozen=True)
class Violation:
    """One field-level contract violation."""

    path: str
    message: str
    expected: str | None = None
    actual: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "path": self.path,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
        }

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass(slots=True)
class ContractCheck:
    """Outcome of validating one value against a contract."""

    ok: bool
    data: Any = None
    violations: list[Violation] = field(default_factory=list)


@runtime_checkable
class OutputContract(Protocol):
    """Structural contract the tool's result document must satisfy."""

    def compile(self) -> dict[str, Any]:
        """Return the canonical JSON Schema document written to the task directory."""

    def validate(self, value: Any) -> ContractCheck:
        """Validate a parsed result document."""


class PydanticContract:
    """Contract backed by a pydantic model class."""

    def __init__(self, model: type[pydantic.BaseModel]) -> None:
        self.model = model

    def compile(self) -> dict[str, Any]:
        return self.model.model_json_schema(by_alias=True)

    def validate(self, value: Any) -> ContractCheck:
        try:
            instance = self.model.model_validate(value)
        except pydantic.ValidationError as error:
            return ContractCheck(
                ok=False,
                violations=[_violation_from_pydantic(item) for item in error.errors()],
            )
        return ContractCheck(ok=True, data=instance.model_dump(mode="json", by_alias=True))


class JsonSchemaContract:
    """Contract backed by a raw JSON Schema document."""

    def __init__(self, schema: dict[str, Any]) -> None:
        self.schema = schema

    def compile(self) -> dict[str, Any]:
        validator_cls = self._validator_cls()
        try:
            validator_cls.check_schema(self.schema)
        except jsonschema.SchemaError as error:
            raise StagingError(
                f"Output contract is not a valid JSON Schema: {error.message}",
            ) from error
        return self.schema

    def validate(self, value: Any) -> ContractCheck:
        validator = self._validator_cls()(self.schema)
        try:
            errors = sorted(
                validator.iter_errors(value),
                key=lambda item: [str(part) for part in item.absolute_path],
            )
        except jsonschema.SchemaError as error:
            raise StagingError(
                f"Output contract is not a valid JSON Schema: {error.message}",
            ) from error
        except Unresolvable as error:
            raise StagingError(
                f"Output contract has an unresolvable reference: {error}",
            ) from error
        if errors:
            return ContractCheck(
                ok=False,
                violations=[_violation_from_jsonschema(error) for error in errors],
            )
        return ContractCheck(ok=True, data=value)

    def _validator_cls(self) -> type[Any]:
        return validator_for(self.schema, default=jsonschema.Draft202012Validator)


def as_contract(contract: Any) -> OutputContract:
    """Coerce a pydantic model class, a schema dict, or a contract into `OutputContract`."""

    if isinstance(contract, type) and issubclass(contract, pydantic.BaseModel):
        return PydanticContract(contract)
    if isinstance(contract, dict):
        return JsonSchemaContract(contract)
    if isinstance(contract, OutputContract):
        return contract
    raise TypeError(f"Unsupported output contract: {contract!r}")


def _format_path(parts: Any) -> str:
    rendered = ".".join(str(part) for part in parts)
    return rendered or ROOT_PATH


def _preview(value: Any) -> str:
    text = repr(value)
    if len(text) <= _ACTUAL_PREVIEW_CHARS:
        return text
    return text[:_ACTUAL_PREVIEW_CHARS] + "..."


def _violation_from_pydantic(item: Any) -> Violation:
    actual = None if item["type"] == "missing" else _preview(item.get("input"))
    return Violation(
        path=_format_path(item.get("loc", ())),
        message=item["msg"],
        expected=item["type"],
        actual=actual,
    )


def _violation_from_jsonschema(error: jsonschema.ValidationError) -> Violation:
    path_parts = list(error.absolute_path)
    if error.validator == "required":
        # jsonschema reports missing properties on the parent object
        missing = _missing_property(error)
        if missing is not None:
            path_parts.append(missing)
        return Violation(
            path=_format_path(path_parts),
            message=error.message,
            expected="required",
            actual=None,
        )
    return Violation(
        path=_format_path(path_parts),
        message=error.message,
        expected=f"{error.validator}: {error.validator_value!r}",
        actual=_preview(error.instance),
    )


def _missing_property(error: jsonschema.ValidationError) -> str | None:
    if not isinstance(error.instance, dict):
        return None
    missing = [name for name in error.validator_value if name not in error.instance]
    for name in missing:
        if error.message.startswith(repr(name)):
            return str(name)
    return str(missing[0]) if missing else None
