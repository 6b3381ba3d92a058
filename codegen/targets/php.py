"""PHP harness: cases decoded with ``json_decode`` at runtime."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from runner_core.schemas import TestCase

from ..base import (
    HarnessGenerator,
    cases_json,
    fill,
    find_owner,
    format_float,
    format_int,
    quote_string,
    scalar_kind,
    single_quoted,
)
from ..markers import END_MARKER, START_MARKER

_FUNCTION_RE = re.compile(r"\bfunction\s+&?\s*([A-Za-z_]\w*)\s*\(")
_OWNER_RE = re.compile(r"\b(class|trait|enum)\s+([A-Za-z_]\w*)[^{;]*\{")

DRIVER = """
function pg_normalize($value) {
    if (is_float($value) && is_finite($value) && floor($value) == $value && abs($value) < 1e15) {
        return (int) $value;
    }
    if (is_array($value)) {
        $is_list = $value === [] || array_keys($value) === range(0, count($value) - 1);
        $out = [];
        foreach ($value as $key => $item) {
            $out[$is_list ? $key : (string) $key] = pg_normalize($item);
        }
        if (!$is_list) {
            ksort($out, SORT_STRING);
        }
        return $out;
    }
    return $value;
}

function pg_encode($value) {
    $json = json_encode(pg_normalize($value), JSON_UNESCAPED_UNICODE | JSON_UNESCAPED_SLASHES);
    if ($json === false) {
        throw new RuntimeException('Result is not JSON-serializable: ' . json_last_error_msg());
    }
    return $json;
}

$pg_results = [];
foreach (json_decode(@@CASES@@, true) as $pg_case) {
    try {
        $pg_actual = call_user_func_array(@@CALLEE@@, $pg_case['input']);
        $pg_results[] = [
            'name' => $pg_case['name'],
            'passed' => pg_encode($pg_actual) === pg_encode($pg_case['expected']),
            'actual' => pg_normalize($pg_actual),
            'expected' => $pg_case['expected'],
        ];
    } catch (\\Throwable $e) {
        $pg_results[] = [
            'name' => $pg_case['name'],
            'passed' => false,
            'actual' => get_class($e) . ': ' . $e->getMessage(),
            'expected' => $pg_case['expected'],
            'error' => true,
        ];
    }
}

echo "\\n" . @@START@@ . "\\n";
echo json_encode($pg_results, JSON_UNESCAPED_UNICODE | JSON_UNESCAPED_SLASHES | JSON_PARTIAL_OUTPUT_ON_ERROR) . "\\n";
echo @@END@@ . "\\n";
"""


def _php_string(text: str) -> str:
    return quote_string(text, control=lambda ch: "\\x%02x" % ord(ch), extra={"$": "\\$"})


def _reopens_php(source: str) -> bool:
    """True when the source ends outside a ``<?php`` block."""
    return source.rfind("?>") > source.rfind("<?php")


class PhpGenerator(HarnessGenerator):
    language = "php"
    function_patterns = (_FUNCTION_RE,)

    def encode_literal(self, value: object) -> str:
        kind = scalar_kind(value)
        if kind == "null":
            return "null"
        if kind == "bool":
            return "true" if value else "false"
        if kind == "int":
            return format_int(value)
        if kind == "float":
            return format_float(value)
        if kind == "string":
            return _php_string(str(value))
        if kind == "list":
            return "[" + ", ".join(self.encode_literal(item) for item in value) + "]"  # type: ignore[union-attr]
        if isinstance(value, Mapping):
            items = ", ".join(f"{_php_string(str(key))} => {self.encode_literal(item)}" for key, item in value.items())
            return "[" + items + "]"
        return _php_string(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        owner = find_owner(user_source, function_name, _OWNER_RE)
        if owner is None:
            callee = single_quoted(function_name)
        elif re.search(rf"\bstatic\s+function\s+{re.escape(function_name)}\b", user_source):
            callee = f"[{single_quoted(owner[1])}, {single_quoted(function_name)}]"
        else:
            callee = f"[new {owner[1]}(), {single_quoted(function_name)}]"
        driver = fill(
            DRIVER,
            cases=single_quoted(cases_json(test_cases)),
            callee=callee,
            start=single_quoted(START_MARKER),
            end=single_quoted(END_MARKER),
        )
        source = user_source.rstrip()
        if "<?php" not in source:
            source = "<?php\n" + source
        opener = "\n<?php\n" if _reopens_php(source) else "\n"
        return source + opener + driver
