from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from runner_core.errors import ErrorKind

MAX_TEST_CASES = 25
MAX_TEST_JSON = 4000
FUNCTION_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")

LogType = Literal["log", "error", "warn", "info"]

# number | bool | str | None | list[JSONValue]; dicts are tolerated and degrade downstream
JSONValue = Any

TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


def _is_json_value(value: object) -> bool:
    if value is None or isinstance(value, (bool, int, float, str)):
        return True
    if isinstance(value, list):
        return all(_is_json_value(item) for item in value)
    if isinstance(value, Mapping):
        return all(isinstance(key, str) and _is_json_value(item) for key, item in value.items())
    return False


def _json_size(value: object) -> int:
    return len(json.dumps(value, separators=(",", ":"), ensure_ascii=False))


class BaseSchema(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


class TestCase(BaseSchema):
    model_config = ConfigDict(frozen=True)
    __test__ = False

    name: str
    input: list[JSONValue] = Field(default_factory=list)
    expected: JSONValue = None

    @field_validator("input", "expected")
    @classmethod
    def json_shaped(cls, value: object) -> object:
        if not _is_json_value(value):
            raise ValueError("test case values must be JSON-shaped")
        return value


class TestCaseResult(BaseSchema):
    __test__ = False

    name: str
    passed: bool
    actual: JSONValue = None
    expected: JSONValue = None
    error: bool = False


class TestRunReport(BaseSchema):
    __test__ = False

    results: list[TestCaseResult] = Field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return bool(self.results) and all(result.passed for result in self.results)


class ExecutionResult(BaseSchema):
    model_config = ConfigDict(frozen=True)

    stdout: list[str] = Field(default_factory=list)
    stderr: list[str] = Field(default_factory=list)
    duration_ms: float = 0.0
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class LanguageConfig(BaseSchema):
    model_config = ConfigDict(frozen=True)

    extension: str
    name: str
    runtime_id: str = ""
    runtime_version: str = ""
    editor_language_id: str
    source_template: str = ""

    @property
    def remote_capable(self) -> bool:
        return bool(self.runtime_id and self.runtime_version)


class RunRequest(BaseSchema):
    files: dict[str, str]
    entry_file: str

    @field_validator("entry_file")
    @classmethod
    def entry_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("entry_file is required")
        return value


class TestRunRequest(RunRequest):
    __test__ = False

    function_name: str
    test_cases: list[TestCase]

    @field_validator("function_name")
    @classmethod
    def function_name_shape(cls, value: str) -> str:
        value = value.strip()
        if not FUNCTION_NAME_RE.match(value):
            raise ValueError("Function name must match [A-Za-z_][A-Za-z0-9_]{0,63}")
        return value

    @field_validator("test_cases")
    @classmethod
    def test_case_limits(cls, value: list[TestCase]) -> list[TestCase]:
        if len(value) > MAX_TEST_CASES:
            raise ValueError(f"Too many test cases (max {MAX_TEST_CASES})")
        for index, case in enumerate(value, start=1):
            if not case.name.strip():
                raise ValueError(f"Test case {index}: name is required")
            if _json_size(case.input) > MAX_TEST_JSON:
                raise ValueError(f"Test case {index}: input payload too large")
            if _json_size(case.expected) > MAX_TEST_JSON:
                raise ValueError(f"Test case {index}: expected payload too large")
        return value
