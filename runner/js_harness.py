"""In-process test driver appended to a JavaScript bundle."""

from __future__ import annotations

import json
from collections.abc import Sequence

from codegen.base import fill
from runner_core.compare import canonical_json
from runner_core.schemas import TestCase

HARNESS = """
;(async function () {
  var __pgCases = @@CASES@@;
  var __pgTarget = typeof @@FUNCTION@@ === "function" ? @@FUNCTION@@ : globalThis[@@NAME@@];
  if (typeof __pgTarget !== "function") {
    throw new Error("Function '" + @@NAME@@ + "' not found in bundle.");
  }
  var __pgStable = function (value) {
    if (Array.isArray(value)) {
      return "[" + value.map(function (item) { return item === undefined ? "null" : __pgStable(item); }).join(",") + "]";
    }
    if (value !== null && typeof value === "object") {
      return "{" + Object.keys(value).sort().filter(function (key) { return value[key] !== undefined; })
        .map(function (key) { return JSON.stringify(key) + ":" + __pgStable(value[key]); }).join(",") + "}";
    }
    var text = JSON.stringify(value);
    return text === undefined ? "null" : text;
  };
  var __pgResults = [];
  for (var i = 0; i < __pgCases.length; i++) {
    var tc = __pgCases[i];
    try {
      var actual = await __pgTarget.apply(null, tc.input);
      try {
        actual = JSON.parse(__pgStable(actual));
      } catch (err) {
        actual = String(actual);
      }
      __pgResults.push({ name: tc.name, passed: __pgStable(actual) === tc.expectedJson, actual: actual, expected: tc.expected });
    } catch (err) {
      __pgResults.push({
        name: tc.name,
        passed: false,
        actual: err && err.message !== undefined ? String(err.message) : String(err),
        expected: tc.expected,
        error: true
      });
    }
  }
  __pgPost({ type: "test-results", results: __pgResults });
})().catch(function (err) {
  console.error(err && err.message !== undefined ? err.message : String(err));
});
"""


def build_js_harness(function_name: str, test_cases: Sequence[TestCase]) -> str:
    cases = [
        {
            "name": case.name,
            "input": list(case.input),
            "expected": case.expected,
            "expectedJson": canonical_json(case.expected),
        }
        for case in test_cases
    ]
    return fill(
        HARNESS,
        cases=json.dumps(cases, ensure_ascii=False, default=str),
        function=function_name,
        name=json.dumps(function_name),
    )


def append_harness(bundled: str, function_name: str, test_cases: Sequence[TestCase]) -> str:
    return bundled.rstrip() + "\n" + build_js_harness(function_name, test_cases)
