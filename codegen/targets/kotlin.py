"""Kotlin harness.

Literals follow the declared parameter types when they can be read from the
signature (``IntArray`` gets ``intArrayOf``, ``List<Int>`` gets ``listOf``),
otherwise the value's own shape decides.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from runner_core.schemas import TestCase

from ..base import (
    HarnessGenerator,
    case_fragments,
    element_shape,
    fill,
    find_owner,
    format_float,
    format_int,
    needs_wide_int,
    object_as_json_text,
    parameter_list,
    quote_string,
    scalar_kind,
    value_shape,
)
from ..markers import END_MARKER, START_MARKER

_FUN_RE = re.compile(r"\bfun\s+(?:<[^>]*>\s*)?(?:[\w.]+\.)?([A-Za-z_]\w*)\s*\(")
_MAIN_RE = re.compile(r"\bfun\s+main\s*\(")
_OWNER_RE = re.compile(r"\b(class|object)\s+([A-Za-z_]\w*)[^{=]*\{")

_PRIMITIVE_ARRAYS = {
    "IntArray": ("intArrayOf", "Int"),
    "LongArray": ("longArrayOf", "Long"),
    "DoubleArray": ("doubleArrayOf", "Double"),
    "FloatArray": ("floatArrayOf", "Float"),
    "BooleanArray": ("booleanArrayOf", "Boolean"),
    "CharArray": ("charArrayOf", "Char"),
}
_GENERIC_CONTAINERS = {
    "Array": "arrayOf",
    "List": "listOf",
    "Collection": "listOf",
    "Iterable": "listOf",
    "MutableList": "mutableListOf",
    "ArrayList": "arrayListOf",
}
_SHAPE_TYPES = {"int": "Int", "long": "Long", "float": "Double", "string": "String", "bool": "Boolean"}
_SHAPE_ARRAYS = {"int": "IntArray", "long": "LongArray", "float": "DoubleArray", "bool": "BooleanArray"}

DRIVER = r"""
fun pgEsc(s: String): String {
    val b = StringBuilder()
    for (c in s) {
        when (c) {
            '"' -> b.append("\\\"")
            '\\' -> b.append("\\\\")
            '\n' -> b.append("\\n")
            '\r' -> b.append("\\r")
            '\t' -> b.append("\\t")
            else -> if (c < ' ') b.append(String.format("\\u%04x", c.code)) else b.append(c)
        }
    }
    return b.toString()
}

fun pgNum(d: Double): String = when {
    !d.isFinite() -> "null"
    d == Math.floor(d) && Math.abs(d) < 1e15 -> d.toLong().toString()
    else -> d.toString()
}

fun pgJson(v: Any?): String = when (v) {
    null, is Unit -> "null"
    is String -> "\"" + pgEsc(v) + "\""
    is Char -> "\"" + pgEsc(v.toString()) + "\""
    is Boolean -> v.toString()
    is Double -> pgNum(v)
    is Float -> pgNum(v.toString().toDouble())
    is Number -> v.toString()
    is IntArray -> v.joinToString(",", "[", "]") { pgJson(it) }
    is LongArray -> v.joinToString(",", "[", "]") { pgJson(it) }
    is DoubleArray -> v.joinToString(",", "[", "]") { pgJson(it) }
    is FloatArray -> v.joinToString(",", "[", "]") { pgJson(it) }
    is BooleanArray -> v.joinToString(",", "[", "]") { pgJson(it) }
    is CharArray -> v.joinToString(",", "[", "]") { pgJson(it) }
    is Array<*> -> v.joinToString(",", "[", "]") { pgJson(it) }
    is Map<*, *> -> v.entries.map { it.key.toString() to pgJson(it.value) }.sortedBy { it.first }
        .joinToString(",", "{", "}") { pgJson(it.first) + ":" + it.second }
    is Iterable<*> -> v.joinToString(",", "[", "]") { pgJson(it) }
    is Pair<*, *> -> "[" + pgJson(v.first) + "," + pgJson(v.second) + "]"
    else -> "\"" + pgEsc(v.toString()) + "\""
}

fun pgRecord(out: MutableList<String>, name: String, expected: String, call: () -> Any?) {
    try {
        val actual = pgJson(call())
        out.add("{\"name\":" + name + ",\"passed\":" + (actual == expected) + ",\"actual\":" + actual + ",\"expected\":" + expected + "}")
    } catch (e: Throwable) {
        out.add("{\"name\":" + name + ",\"passed\":false,\"actual\":" + pgJson(e.toString()) + ",\"expected\":" + expected + ",\"error\":true}")
    }
}

fun main() {
    val pgOut = mutableListOf<String>()
@@CASES@@
    println()
    println(@@START@@)
    println(pgOut.joinToString(",", "[", "]"))
    println(@@END@@)
}
"""


def _kotlin_string(text: str) -> str:
    return quote_string(text, extra={"$": "\\$"})


def _shape_type(shape: str) -> str:
    if shape.startswith("list["):
        inner = element_shape(shape)
        if inner in _SHAPE_ARRAYS:
            return _SHAPE_ARRAYS[inner]
        return f"Array<{_shape_type(inner)}>"
    return _SHAPE_TYPES[shape]


def _split_generic(type_name: str) -> tuple[str, str | None]:
    match = re.fullmatch(r"([\w.]+)\s*<(.*)>", type_name)
    if match is None:
        return type_name, None
    return match.group(1).rsplit(".", 1)[-1], match.group(2).strip()


def parameter_types(source: str, function_name: str) -> list[str]:
    params = parameter_list(source, function_name, "fun") or []
    types = []
    for param in params:
        declared = param.split("=", 1)[0]
        types.append(declared.split(":", 1)[1].strip() if ":" in declared else "")
    return types


class KotlinGenerator(HarnessGenerator):
    language = "kt"
    function_patterns = (_FUN_RE,)

    def encode_literal(self, value: object) -> str:
        return self.encode_hinted(value, None)

    def encode_hinted(self, value: object, type_hint: str | None) -> str:
        core = type_hint.strip().rstrip("?").strip() if type_hint else None
        kind = scalar_kind(value)
        if kind == "null":
            return "null"
        if kind == "bool":
            return "true" if value else "false"
        if kind in ("int", "float"):
            if core == "Float":
                return format_float(value) + "f"
            if core == "Double" or kind == "float":
                return format_float(value)
            if core == "Long" or (core is None and needs_wide_int([value])):
                return format_int(value) + "L"
            return format_int(value)
        if kind == "string":
            text = str(value)
            if core == "Char" and len(text) == 1:
                return quote_string(text, quote="'")
            return _kotlin_string(text)
        if kind == "list":
            return self._encode_list(list(value), core)  # type: ignore[arg-type]
        if isinstance(value, Mapping):
            pairs = ", ".join(
                f"{_kotlin_string(str(key))} to {self.encode_hinted(item, None)}" for key, item in value.items()
            )
            return f"mapOf({pairs})"
        return _kotlin_string(object_as_json_text(value))

    def _encode_list(self, values: list[object], core: str | None) -> str:
        if not core:
            shape = value_shape(values)
            if shape is None:
                items = ", ".join(self.encode_hinted(item, None) for item in values)
                return f"listOf<Any?>({items})"
            core = _shape_type(shape)
        if core in _PRIMITIVE_ARRAYS:
            factory, element = _PRIMITIVE_ARRAYS[core]
            return f"{factory}({', '.join(self.encode_hinted(item, element) for item in values)})"
        container, element = _split_generic(core)
        factory = _GENERIC_CONTAINERS.get(container, "listOf")
        items = ", ".join(self.encode_hinted(item, element) for item in values)
        if not values:
            return f"{factory}<{element or 'Any?'}>()"
        return f"{factory}({items})"

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        types = parameter_types(user_source, function_name)
        owner = find_owner(user_source, function_name, _OWNER_RE)
        if owner is None:
            callee = function_name
        elif owner[0] == "object":
            callee = f"{owner[1]}.{function_name}"
        else:
            callee = f"{owner[1]}().{function_name}"

        blocks = []
        for case in case_fragments(test_cases):
            args = ", ".join(
                self.encode_hinted(item, types[index] if index < len(types) and types[index] else None)
                for index, item in enumerate(case.inputs)
            )
            blocks.append(
                f"    pgRecord(pgOut, {_kotlin_string(case.name_json)}, {_kotlin_string(case.expected_json)}) "
                f"{{ {callee}({args}) }}"
            )
        driver = fill(
            DRIVER,
            cases="\n".join(blocks),
            start=_kotlin_string(START_MARKER),
            end=_kotlin_string(END_MARKER),
        )
        source = _MAIN_RE.sub("fun polyglotUserMain(", user_source)
        return source.rstrip() + "\n" + driver
