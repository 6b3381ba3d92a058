import pytest
from pydantic import ValidationError

from runner_core.errors import ErrorKind
from runner_core.schemas import (
    MAX_TEST_CASES,
    ExecutionResult,
    TestCase,
    TestCaseResult,
    TestRunReport,
    TestRunRequest,
)


def _request(**overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "files": {"main.py": "def add(a, b):\n    return a + b\n"},
        "entry_file": "main.py",
        "function_name": "add",
        "test_cases": [{"name": "adds", "input": [1, 2], "expected": 3}],
    }
    data.update(overrides)
    return data


def test_test_case_round_trip() -> None:
    case = TestCase(name="nested", input=[[1, 2], {"k": "v"}, None], expected=[True, 1.5])

    restored = TestCase.from_json(case.to_json())

    assert restored == case
    assert restored.to_dict() == {"name": "nested", "input": [[1, 2], {"k": "v"}, None], "expected": [True, 1.5]}


def test_test_case_rejects_non_json_values() -> None:
    with pytest.raises(ValidationError):
        TestCase(name="bad", input=[object()], expected=None)


def test_execution_result_defaults() -> None:
    result = ExecutionResult()

    assert result.ok is True
    assert result.stdout == []
    assert result.stderr == []
    assert result.error_kind is None


def test_execution_result_error_kind_serializes_as_value() -> None:
    result = ExecutionResult(stderr=["Timeout"], error="Timeout", error_kind=ErrorKind.TIMEOUT)

    assert result.ok is False
    assert ExecutionResult.from_json(result.to_json()).error_kind is ErrorKind.TIMEOUT


def test_report_all_passed_requires_results() -> None:
    assert TestRunReport().all_passed is False
    report = TestRunReport(
        results=[
            TestCaseResult(name="a", passed=True, actual=1, expected=1),
            TestCaseResult(name="b", passed=False, actual=2, expected=3),
        ]
    )
    assert report.all_passed is False
    assert TestRunReport(results=report.results[:1]).all_passed is True


def test_test_run_request_valid() -> None:
    request = TestRunRequest.from_dict(_request(function_name="  add  "))

    assert request.function_name == "add"
    assert request.test_cases[0].input == [1, 2]


@pytest.mark.parametrize("name", ["", "1abc", "has-dash", "a" * 65, "drop table"])
def test_test_run_request_rejects_bad_function_names(name: str) -> None:
    with pytest.raises(ValidationError):
        TestRunRequest.from_dict(_request(function_name=name))


def test_test_run_request_limits_case_count() -> None:
    cases = [{"name": f"c{i}", "input": [], "expected": None} for i in range(MAX_TEST_CASES + 1)]

    with pytest.raises(ValidationError, match="Too many test cases"):
        TestRunRequest.from_dict(_request(test_cases=cases))


def test_test_run_request_limits_payload_size() -> None:
    cases = [{"name": "big", "input": ["x" * 5000], "expected": None}]

    with pytest.raises(ValidationError, match="input payload too large"):
        TestRunRequest.from_dict(_request(test_cases=cases))


def test_test_run_request_requires_case_names() -> None:
    with pytest.raises(ValidationError, match="name is required"):
        TestRunRequest.from_dict(_request(test_cases=[{"name": "  ", "input": [], "expected": 1}]))


def test_blank_entry_file_rejected() -> None:
    with pytest.raises(ValidationError, match="entry_file is required"):
        TestRunRequest.from_dict(_request(entry_file=" "))
