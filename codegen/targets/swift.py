"""Swift harness.

Argument labels are read from the function signature. Literals are written
inline in the call so Swift infers their element types from the parameters.
Only thrown errors can be isolated per case; runtime traps (index out of range,
force unwrap of nil) still end the process.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from runner_core.schemas import TestCase

from ..base import (
    HarnessGenerator,
    braced_unicode_escape,
    case_fragments,
    fill,
    find_owner,
    format_float,
    format_int,
    parameter_list,
    quote_string,
    scalar_kind,
    value_shape,
)
from ..markers import END_MARKER, START_MARKER

_FUNC_RE = re.compile(r"\bfunc\s+([A-Za-z_]\w*)\s*(?:<[^>]*>)?\s*\(")
_OWNER_RE = re.compile(r"\b(class|struct|enum|extension)\s+([A-Za-z_]\w*)[^{]*\{")

DRIVER = r"""
func pgEsc(_ s: String) -> String {
    var out = ""
    for scalar in s.unicodeScalars {
        switch scalar {
        case "\"": out += "\\\""
        case "\\": out += "\\\\"
        case "\n": out += "\\n"
        case "\r": out += "\\r"
        case "\t": out += "\\t"
        default:
            if scalar.value < 0x20 {
                out += String(format: "\\u%04x", scalar.value)
            } else {
                out.unicodeScalars.append(scalar)
            }
        }
    }
    return out
}

func pgNum(_ d: Double) -> String {
    if !d.isFinite { return "null" }
    if d == d.rounded() && abs(d) < 1e15 { return String(Int64(d)) }
    return "\(d)"
}

func pgJson(_ value: Any?) -> String {
    guard let v = value else { return "null" }
    let mirror = Mirror(reflecting: v)
    if mirror.displayStyle == .optional {
        guard let child = mirror.children.first else { return "null" }
        return pgJson(child.value)
    }
    switch v {
    case is Void: return "null"
    case let b as Bool: return b ? "true" : "false"
    case let s as String: return "\"" + pgEsc(s) + "\""
    case let c as Character: return "\"" + pgEsc(String(c)) + "\""
    case let i as Int: return String(i)
    case let i as Int64: return String(i)
    case let i as Int32: return String(i)
    case let i as UInt: return String(i)
    case let d as Double: return pgNum(d)
    case let f as Float: return pgNum(Double("\(f)") ?? Double(f))
    case let dict as [String: Any]:
        let items = dict.keys.sorted().map { pgJson($0) + ":" + pgJson(dict[$0]) }
        return "{" + items.joined(separator: ",") + "}"
    case let list as [Any]:
        return "[" + list.map { pgJson($0) }.joined(separator: ",") + "]"
    default:
        if mirror.displayStyle == .collection || mirror.displayStyle == .set || mirror.displayStyle == .tuple {
            return "[" + mirror.children.map { pgJson($0.value) }.joined(separator: ",") + "]"
        }
        return "\"" + pgEsc("\(v)") + "\""
    }
}

func pgRecord(_ out: inout [String], _ name: String, _ expected: String, _ call: () throws -> Any?) {
    do {
        let actual = pgJson(try call())
        out.append("{\"name\":\(name),\"passed\":\(actual == expected),\"actual\":\(actual),\"expected\":\(expected)}")
    } catch {
        out.append("{\"name\":\(name),\"passed\":false,\"actual\":\(pgJson("\(error)")),\"expected\":\(expected),\"error\":true}")
    }
}

var pgOut: [String] = []
@@CASES@@
print()
print(@@START@@)
print("[" + pgOut.joined(separator: ",") + "]")
print(@@END@@)
"""


def _swift_string(text: str) -> str:
    return quote_string(text, control=braced_unicode_escape)


def argument_labels(source: str, function_name: str) -> list[str | None]:
    """External argument labels of ``func function_name``; None where the label is ``_``."""
    labels: list[str | None] = []
    for param in parameter_list(source, function_name, "func") or []:
        names = param.split(":", 1)[0].split()
        label = names[0] if names else "_"
        labels.append(None if label == "_" else label)
    return labels


class SwiftGenerator(HarnessGenerator):
    language = "swift"
    function_patterns = (_FUNC_RE,)

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
            return _swift_string(str(value))
        if kind == "list":
            items = "[" + ", ".join(self.encode_literal(item) for item in value) + "]"  # type: ignore[union-attr]
            if value and value_shape(value) is None:
                return f"({items} as [Any])"
            return items
        if isinstance(value, Mapping):
            if not value:
                return "[String: Any]()"
            items = ", ".join(f"{_swift_string(str(key))}: {self.encode_literal(item)}" for key, item in value.items())
            return f"([{items}] as [String: Any])"
        return _swift_string(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        labels = argument_labels(user_source, function_name)
        owner = find_owner(user_source, function_name, _OWNER_RE)
        if owner is None:
            callee = function_name
        elif re.search(rf"\b(?:static|class)\s+func\s+{re.escape(function_name)}\b", user_source):
            callee = f"{owner[1]}.{function_name}"
        else:
            callee = f"{owner[1]}().{function_name}"

        blocks = []
        for case in case_fragments(test_cases):
            args = []
            for index, item in enumerate(case.inputs):
                label = labels[index] if index < len(labels) else None
                literal = self.encode_literal(item)
                args.append(f"{label}: {literal}" if label else literal)
            blocks.append(
                f"pgRecord(&pgOut, {_swift_string(case.name_json)}, {_swift_string(case.expected_json)}) "
                f"{{ try {callee}({', '.join(args)}) }}"
            )
        driver = fill(
            DRIVER,
            cases="\n".join(blocks),
            start=_swift_string(START_MARKER),
            end=_swift_string(END_MARKER),
        )
        return "import Foundation\n" + user_source.rstrip() + "\n" + driver
