"""C++ harness.

The user's ``main`` is renamed with a macro so the driver can own the entry
point. Results are serialized through ``pg::to_json`` overloads; void
functions serialize as ``null``. Sticks to C++14.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from runner_core.schemas import TestCase

from ..base import (
    HarnessGenerator,
    case_fragments,
    element_shape,
    fill,
    find_owner,
    format_float,
    format_int,
    object_as_json_text,
    octal_escape,
    quote_string,
    render_shaped,
    value_shape,
)
from ..markers import END_MARKER, START_MARKER

_FUNCTION_RE = re.compile(
    r"^[ \t]*(?:template\s*<[^>]*>\s*)?(?:(?:static|inline|constexpr|virtual)\s+)*"
    r"[\w:<>,\s*&]+?[\s*&]([A-Za-z_]\w*)\s*\([^;{}]*\)\s*(?:const\s*)?(?:noexcept\s*)?\{",
    re.M,
)
_OWNER_RE = re.compile(r"\b(class|struct)\s+([A-Za-z_]\w*)[^;{()]*\{")

_CPP_TYPES = {"int": "int", "long": "long long", "float": "double", "string": "std::string", "bool": "bool"}

PRELUDE = """#include <cmath>
#include <cstdio>
#include <exception>
#include <iostream>
#include <map>
#include <sstream>
#include <string>
#include <type_traits>
#include <utility>
#include <vector>
#define main polyglot_user_main
"""

DRIVER = r"""
#undef main

namespace pg {
inline std::string esc(const std::string& s) {
    std::string out;
    for (char c : s) {
        switch (c) {
            case '"': out += "\\\""; break;
            case '\\': out += "\\\\"; break;
            case '\n': out += "\\n"; break;
            case '\r': out += "\\r"; break;
            case '\t': out += "\\t"; break;
            default:
                if (static_cast<unsigned char>(c) < 0x20) {
                    char buf[8];
                    std::snprintf(buf, sizeof buf, "\\u%04x", c);
                    out += buf;
                } else {
                    out += c;
                }
        }
    }
    return out;
}

inline std::string to_json(const std::string& s) { return "\"" + esc(s) + "\""; }
inline std::string to_json(const char* s) { return to_json(std::string(s)); }
inline std::string to_json(char c) { return to_json(std::string(1, c)); }
inline std::string to_json(bool b) { return b ? "true" : "false"; }
inline std::string to_json(std::nullptr_t) { return "null"; }

template <typename T>
typename std::enable_if<std::is_integral<T>::value, std::string>::type to_json(T v) {
    return std::to_string(v);
}

template <typename T>
typename std::enable_if<std::is_floating_point<T>::value, std::string>::type to_json(T v) {
    if (std::isfinite(v) && v == std::floor(v) && std::fabs(v) < 1e15) {
        return std::to_string(static_cast<long long>(v));
    }
    char buf[32];
    std::snprintf(buf, sizeof buf, "%.15g", static_cast<double>(v));
    return buf;
}

inline std::string key(const std::string& k) { return k; }
template <typename K>
std::string key(const K& k) {
    std::ostringstream out;
    out << k;
    return out.str();
}

template <typename T> std::string to_json(const std::vector<T>& v);
template <typename K, typename V> std::string to_json(const std::map<K, V>& m);
template <typename A, typename B> std::string to_json(const std::pair<A, B>& p);

template <typename T>
std::string to_json(const std::vector<T>& v) {
    std::string out = "[";
    for (std::size_t i = 0; i < v.size(); ++i) {
        if (i) out += ",";
        out += to_json(v[i]);
    }
    return out + "]";
}

template <typename K, typename V>
std::string to_json(const std::map<K, V>& m) {
    std::string out = "{";
    for (const auto& entry : m) {
        if (out.size() > 1) out += ",";
        out += to_json(key(entry.first)) + ":" + to_json(entry.second);
    }
    return out + "}";
}

template <typename A, typename B>
std::string to_json(const std::pair<A, B>& p) {
    return "[" + to_json(p.first) + "," + to_json(p.second) + "]";
}

template <typename F>
auto capture(F&& f) -> typename std::enable_if<std::is_void<decltype(f())>::value, std::string>::type {
    f();
    return "null";
}

template <typename F>
auto capture(F&& f) -> typename std::enable_if<!std::is_void<decltype(f())>::value, std::string>::type {
    return to_json(f());
}

inline void record(std::string& out, const std::string& name, const std::string& expected,
                   const std::string& actual, bool error) {
    if (out.size() > 1) out += ",";
    out += "{\"name\":" + name + ",\"passed\":" + ((!error && actual == expected) ? "true" : "false");
    out += ",\"actual\":" + actual + ",\"expected\":" + expected;
    out += error ? ",\"error\":true}" : "}";
}
}  // namespace pg

int main() {
    std::string pg_out = "[";
@@CASES@@
    pg_out += "]";
    std::cout << "\n" << @@START@@ << "\n" << pg_out << "\n" << @@END@@ << std::endl;
    return 0;
}
"""

CASE = r"""    {
        const std::string pg_name = @@NAME@@;
        const std::string pg_expected = @@EXPECTED@@;
        try {
@@ARGS@@
            pg::record(pg_out, pg_name, pg_expected, pg::capture([&]() { return @@CALL@@; }), false);
        } catch (const std::exception& e) {
            pg::record(pg_out, pg_name, pg_expected, pg::to_json(std::string(e.what())), true);
        } catch (...) {
            pg::record(pg_out, pg_name, pg_expected, pg::to_json(std::string("unknown exception")), true);
        }
    }"""


def _cpp_string(text: str) -> str:
    return quote_string(text, control=octal_escape)


def _cpp_type(shape: str) -> str:
    if shape.startswith("list["):
        return f"std::vector<{_cpp_type(element_shape(shape))}>"
    return _CPP_TYPES[shape]


class CppGenerator(HarnessGenerator):
    language = "cpp"
    function_patterns = (_FUNCTION_RE,)

    def encode_literal(self, value: object) -> str:
        shape = value_shape(value)
        if shape is not None and shape.startswith("list["):
            return _cpp_type(shape) + render_shaped(value, shape, self._scalar)
        if shape is not None:
            return self._scalar(value, shape, top_level=True)
        if value is None:
            return "nullptr"
        if isinstance(value, (list, tuple)):
            items = ", ".join(_cpp_string(object_as_json_text(item)) for item in value)
            return "std::vector<std::string>{" + items + "}"
        return f"std::string({_cpp_string(object_as_json_text(value))})"

    def _scalar(self, value: object, shape: str, top_level: bool = False) -> str:
        if shape == "int":
            return format_int(value)
        if shape == "long":
            return format_int(value) + "LL"
        if shape == "float":
            return format_float(value)
        if shape == "bool":
            return "true" if value else "false"
        text = _cpp_string(str(value))
        return f"std::string({text})" if top_level else text

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        owner = find_owner(user_source, function_name, _OWNER_RE)
        callee = f"{owner[1]}().{function_name}" if owner else function_name
        blocks = []
        for case in case_fragments(test_cases):
            names = [f"pg_arg{index}" for index in range(len(case.inputs))]
            args = "\n".join(
                f"            auto {name} = {self.encode_literal(item)};" for name, item in zip(names, case.inputs)
            )
            blocks.append(
                fill(
                    CASE,
                    name=_cpp_string(case.name_json),
                    expected=_cpp_string(case.expected_json),
                    args=args,
                    call=f"{callee}({', '.join(names)})",
                )
            )
        driver = fill(
            DRIVER,
            cases="\n".join(blocks),
            start=_cpp_string(START_MARKER),
            end=_cpp_string(END_MARKER),
        )
        return PRELUDE + user_source.rstrip() + "\n" + driver
