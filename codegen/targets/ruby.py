"""Ruby harness: cases decoded from an embedded JSON string at runtime."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from runner_core.schemas import TestCase

from ..base import (
    HarnessGenerator,
    cases_json,
    fill,
    format_float,
    format_int,
    hex_escape,
    quote_string,
    scalar_kind,
    single_quoted,
)
from ..markers import END_MARKER, START_MARKER

_DEF_RE = re.compile(r"^\s*def\s+(?:self\.)?([A-Za-z_]\w*[?!]?)", re.M)
_CLASS_LINE_RE = re.compile(r"^(\s*)(?:class|module)\s+([A-Z]\w*)")

DRIVER = """

# --- test driver ---
require 'json'

def pg_normalize(value)
  case value
  when Float
    value.finite? && value == value.floor && value.abs < 1e15 ? value.to_i : value
  when Array
    value.map { |item| pg_normalize(item) }
  when Hash
    value.map { |key, item| [key.to_s, pg_normalize(item)] }.sort_by(&:first).to_h
  when Symbol
    value.to_s
  else
    value
  end
end

pg_results = JSON.parse(@@CASES@@).map do |pg_case|
  begin
    actual = pg_normalize(@@CALL@@)
    {
      'name' => pg_case['name'],
      'passed' => JSON.generate(actual) == JSON.generate(pg_normalize(pg_case['expected'])),
      'actual' => actual,
      'expected' => pg_case['expected']
    }
  rescue StandardError, ScriptError, SystemStackError => e
    {
      'name' => pg_case['name'],
      'passed' => false,
      'actual' => "#{e.class}: #{e.message}",
      'expected' => pg_case['expected'],
      'error' => true
    }
  end
end

puts
puts @@START@@
puts JSON.generate(pg_results)
puts @@END@@
"""


def _ruby_string(text: str) -> str:
    return quote_string(text, control=hex_escape, extra={"#": "\\#"})


def method_owner(source: str, function_name: str) -> tuple[str, bool] | None:
    """Enclosing class/module of an indented ``def`` and whether it is a ``self.`` method."""
    owners: list[tuple[int, str]] = []
    pattern = re.compile(rf"^(\s*)def\s+(self\.)?{re.escape(function_name)}\b")
    for line in source.splitlines():
        opened = _CLASS_LINE_RE.match(line)
        if opened:
            indent = len(opened.group(1))
            owners = [owner for owner in owners if owner[0] < indent]
            owners.append((indent, opened.group(2)))
            continue
        match = pattern.match(line)
        if match:
            indent = len(match.group(1))
            enclosing = [name for level, name in owners if level < indent]
            if not enclosing or indent == 0:
                return None
            return enclosing[-1], bool(match.group(2))
    return None


class RubyGenerator(HarnessGenerator):
    language = "rb"
    function_patterns = (_DEF_RE,)

    def encode_literal(self, value: object) -> str:
        kind = scalar_kind(value)
        if kind == "null":
            return "nil"
        if kind == "bool":
            return "true" if value else "false"
        if kind == "int":
            return format_int(value)
        if kind == "float":
            return format_float(value)
        if kind == "string":
            return _ruby_string(str(value))
        if kind == "list":
            return "[" + ", ".join(self.encode_literal(item) for item in value) + "]"  # type: ignore[union-attr]
        if isinstance(value, Mapping):
            items = ", ".join(f"{_ruby_string(str(key))} => {self.encode_literal(item)}" for key, item in value.items())
            return "{" + items + "}"
        return _ruby_string(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        owner = method_owner(user_source, function_name)
        if owner is None:
            receiver = ""
        elif owner[1]:
            receiver = f"{owner[0]}."
        else:
            receiver = f"{owner[0]}.new."
        driver = fill(
            DRIVER,
            cases=single_quoted(cases_json(test_cases)),
            call=f"{receiver}send(:{function_name}, *pg_case['input'])",
            start=single_quoted(START_MARKER),
            end=single_quoted(END_MARKER),
        )
        return user_source.rstrip() + "\n" + driver
