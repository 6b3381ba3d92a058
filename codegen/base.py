"""Shared interface and helpers for per-language harness generators."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from runner_core.compare import canonical_json
from runner_core.schemas import TestCase

INT32_MAX = 2**31 - 1

_PLACEHOLDER_RE = re.compile(r"@@([A-Z_]+)@@")


def fill(template: str, **values: str) -> str:
    """Substitute ``@@KEY@@`` placeholders; unknown keys are an error."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1).lower()
        if key not in values:
            raise KeyError(f"Missing template value: {key}")
        return values[key]

    return _PLACEHOLDER_RE.sub(_replace, template)


def scalar_kind(value: object) -> str:
    """Classify a JSON value; integral floats count as ints."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "int" if value.is_integer() else "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, Mapping):
        return "object"
    return "string"


def needs_wide_int(values: Sequence[object]) -> bool:
    return any(
        scalar_kind(value) == "int" and abs(int(value)) > INT32_MAX  # type: ignore[arg-type]
        for value in values
    )


_NUMERIC_SHAPES = {"int", "long", "float"}


def value_shape(value: object) -> str | None:
    """Static shape of a value: ``int``, ``long``, ``float``, ``string``, ``bool``
    or ``list[<shape>]``; None when it has no single static type (nulls, objects,
    heterogeneous arrays).

    Empty arrays take their element shape from their siblings and default to
    ``list[int]``.
    """
    kind = scalar_kind(value)
    if kind == "int":
        return "long" if needs_wide_int([value]) else "int"
    if kind in ("float", "string", "bool"):
        return kind
    if kind != "list":
        return None
    shapes: list[str | None] = []
    saw_empty = False
    for item in value:  # type: ignore[union-attr]
        if isinstance(item, (list, tuple)) and not item:
            saw_empty = True
            continue
        shapes.append(value_shape(item))
    if None in shapes:
        return None
    inner = unify_shapes([shape for shape in shapes if shape is not None])
    if inner is None:
        return None
    if saw_empty and not inner.startswith("list["):
        if shapes:
            return None
        inner = "list[int]"
    return f"list[{inner}]"


def unify_shapes(shapes: Sequence[str]) -> str | None:
    if not shapes:
        return "int"
    unique = set(shapes)
    if len(unique) == 1:
        return shapes[0]
    if unique <= _NUMERIC_SHAPES:
        return "float" if "float" in unique else "long"
    if all(shape.startswith("list[") for shape in unique):
        inner = unify_shapes([element_shape(shape) for shape in unique])
        return None if inner is None else f"list[{inner}]"
    return None


def element_shape(shape: str) -> str:
    return shape[len("list[") : -1]


def list_depth(shape: str) -> tuple[str, int]:
    """Split ``list[list[int]]`` into (``int``, 2)."""
    depth = 0
    while shape.startswith("list["):
        shape = element_shape(shape)
        depth += 1
    return shape, depth


def render_shaped(
    value: object,
    shape: str,
    scalar: Callable[[object, str], str],
    opener: Callable[[str], str] = lambda shape: "{",
    closer: str = "}",
) -> str:
    """Render ``value`` following ``shape``; ``opener`` gets the shape of each array level."""
    if shape.startswith("list["):
        inner = element_shape(shape)
        items = ", ".join(render_shaped(item, inner, scalar, opener, closer) for item in value)  # type: ignore[union-attr]
        return opener(shape) + items + closer
    return scalar(value, shape)


def format_int(value: object) -> str:
    return str(int(value))  # type: ignore[call-overload]


def format_float(value: object) -> str:
    text = repr(float(value))  # type: ignore[arg-type]
    if "inf" in text or "nan" in text:
        raise ValueError(f"Non-finite number cannot be encoded: {value}")
    if "." not in text and "e" not in text:
        text += ".0"
    return text


def quote_string(
    text: str,
    quote: str = '"',
    control: Callable[[str], str] = lambda ch: "\\u%04x" % ord(ch),
    extra: Mapping[str, str] | None = None,
) -> str:
    """Render ``text`` as a backslash-escaped string literal."""
    table = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t", quote: "\\" + quote}
    if extra:
        table.update(extra)
    out: list[str] = []
    for ch in text:
        if ch in table:
            out.append(table[ch])
        elif ord(ch) < 0x20:
            out.append(control(ch))
        else:
            out.append(ch)
    return quote + "".join(out) + quote


def single_quoted(text: str) -> str:
    """Single-quoted literal in which only backslash and the quote are special (Ruby, PHP)."""
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


def octal_escape(ch: str) -> str:
    return "\\%03o" % ord(ch)


def hex_escape(ch: str) -> str:
    return "\\x%02x" % ord(ch)


def braced_unicode_escape(ch: str) -> str:
    return "\\u{%x}" % ord(ch)


def object_as_json_text(value: object) -> str:
    """Fallback text for values a language subset cannot express literally."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


@dataclass(frozen=True)
class CaseFragments:
    name_json: str
    expected_json: str
    inputs: tuple[object, ...]


def case_fragments(test_cases: Sequence[TestCase]) -> list[CaseFragments]:
    return [
        CaseFragments(
            name_json=json.dumps(case.name, ensure_ascii=False),
            expected_json=canonical_json(case.expected),
            inputs=tuple(case.input),
        )
        for case in test_cases
    ]


def cases_json(test_cases: Sequence[TestCase]) -> str:
    """All cases as one JSON document for runtime decoding."""
    payload = [
        {"name": case.name, "input": list(case.input), "expected": case.expected}
        for case in test_cases
    ]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _matching_brace(source: str, open_index: int) -> int:
    depth = 0
    for index in range(open_index, len(source)):
        ch = source[index]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return index
    return len(source)


def find_owner(source: str, function_name: str, header: re.Pattern[str]) -> tuple[str, str] | None:
    """Return (keyword, name) of the brace block that declares ``function_name``.

    ``header`` must capture the keyword as group 1 and the type name as group 2
    and end at the opening brace.
    """
    call = re.compile(rf"\b{re.escape(function_name)}\s*(?:<[^>]*>)?\s*\(")
    for match in header.finditer(source):
        open_index = match.end() - 1
        close_index = _matching_brace(source, open_index)
        if call.search(source, open_index, close_index):
            return match.group(1), match.group(2)
    return None


def split_top_level(text: str, sep: str = ",") -> list[str]:
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in text:
        if ch in "<([{":
            depth += 1
        elif ch in ">)]}":
            depth -= 1
        if ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts


def parameter_list(source: str, function_name: str, keyword: str) -> list[str] | None:
    """Raw parameter declarations of ``keyword function_name(...)``."""
    match = re.search(rf"\b{keyword}\s+{re.escape(function_name)}\s*(?:<[^>]*>)?\s*\(", source)
    if match is None:
        return None
    depth = 1
    start = match.end()
    for index in range(start, len(source)):
        ch = source[index]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return split_top_level(source[start:index])
    return None


class HarnessGenerator(ABC):
    """One target language: literal encoding plus driver generation."""

    language: str = ""
    function_patterns: tuple[re.Pattern[str], ...] = ()

    @abstractmethod
    def encode_literal(self, value: object) -> str:
        """Render ``value`` as a literal expression in the target language."""

    @abstractmethod
    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        """Return user source plus a driver printing the marker-framed results."""
