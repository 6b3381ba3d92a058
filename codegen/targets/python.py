"""Python harness: cases embedded as JSON and decoded at runtime."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from runner_core.schemas import TestCase

from ..base import HarnessGenerator, cases_json, fill, format_float, format_int, scalar_kind
from ..markers import END_MARKER, START_MARKER

DRIVER = '''

# --- test driver ---
import json as __pg_json


def __pg_dump(value):
    return __pg_json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def __pg_run_cases():
    results = []
    for case in __pg_json.loads(@@CASES@@):
        try:
            actual = @@FUNCTION@@(*case["input"])
            actual = __pg_json.loads(__pg_dump(actual))
            results.append({
                "name": case["name"],
                "passed": __pg_dump(actual) == __pg_dump(case["expected"]),
                "actual": actual,
                "expected": case["expected"],
            })
        except Exception as exc:
            results.append({
                "name": case["name"],
                "passed": False,
                "actual": f"{exc.__class__.__name__}: {exc}",
                "expected": case["expected"],
                "error": True,
            })
    print()
    print(@@START@@)
    print(__pg_dump(results))
    print(@@END@@)


__pg_run_cases()
'''


class PythonGenerator(HarnessGenerator):
    language = "py"
    function_patterns = (re.compile(r"^\s*(?:async\s+)?def\s+([A-Za-z_]\w*)\s*\(", re.M),)

    def encode_literal(self, value: object) -> str:
        kind = scalar_kind(value)
        if kind == "null":
            return "None"
        if kind == "bool":
            return "True" if value else "False"
        if kind == "int":
            return format_int(value)
        if kind == "float":
            return format_float(value)
        if kind == "string":
            return repr(str(value))
        if kind == "list":
            return "[" + ", ".join(self.encode_literal(item) for item in value) + "]"  # type: ignore[union-attr]
        if isinstance(value, Mapping):
            items = ", ".join(
                f"{self.encode_literal(str(key))}: {self.encode_literal(item)}" for key, item in value.items()
            )
            return "{" + items + "}"
        return repr(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        return user_source.rstrip() + "\n" + fill(
            DRIVER,
            cases=repr(cases_json(test_cases)),
            function=function_name,
            start=repr(START_MARKER),
            end=repr(END_MARKER),
        )
