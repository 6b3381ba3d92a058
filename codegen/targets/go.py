"""Go harness.

Aliased imports are inserted right after the package clause and the user's
``main`` is renamed. The driver calls the function through reflection so
argument literals can be converted to the declared parameter types, and a
trailing ``error`` result is reported as a failure.
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
    format_float,
    format_int,
    hex_escape,
    object_as_json_text,
    quote_string,
    render_shaped,
    value_shape,
)
from ..markers import END_MARKER, START_MARKER

_FUNC_RE = re.compile(r"\bfunc\s+(?:\([^)]*\)\s*)?([A-Za-z_]\w*)\s*(?:\[[^\]]*\])?\s*\(")
_PACKAGE_RE = re.compile(r"^\s*package\s+\w+[^\n]*\n?", re.M)
_MAIN_RE = re.compile(r"\bfunc\s+main\s*\(")

_GO_TYPES = {"int": "int", "long": "int64", "float": "float64", "string": "string", "bool": "bool"}

IMPORTS = """
import (
	pgbytes "bytes"
	pgjson "encoding/json"
	pgfmt "fmt"
	pgreflect "reflect"
	pgstrings "strings"
)
"""

DRIVER = r"""
var pgErrorType = pgreflect.TypeOf((*error)(nil)).Elem()

func pgNormalize(v pgreflect.Value) interface{} {
	if !v.IsValid() {
		return nil
	}
	switch v.Kind() {
	case pgreflect.Ptr, pgreflect.Interface:
		if v.IsNil() {
			return nil
		}
		return pgNormalize(v.Elem())
	case pgreflect.Slice, pgreflect.Array:
		out := make([]interface{}, v.Len())
		for i := range out {
			out[i] = pgNormalize(v.Index(i))
		}
		return out
	case pgreflect.Map:
		out := make(map[string]interface{}, v.Len())
		iter := v.MapRange()
		for iter.Next() {
			out[pgfmt.Sprint(iter.Key().Interface())] = pgNormalize(iter.Value())
		}
		return out
	case pgreflect.Float32, pgreflect.Float64:
		f := v.Float()
		if f == float64(int64(f)) && f < 1e15 && f > -1e15 {
			return int64(f)
		}
		return f
	}
	return v.Interface()
}

func pgEncode(value interface{}) (string, error) {
	var buf pgbytes.Buffer
	enc := pgjson.NewEncoder(&buf)
	enc.SetEscapeHTML(false)
	if err := enc.Encode(pgNormalize(pgreflect.ValueOf(value))); err != nil {
		return "", err
	}
	return pgstrings.TrimRight(buf.String(), "\n"), nil
}

func pgQuote(text string) string {
	encoded, err := pgEncode(text)
	if err != nil {
		return "\"\""
	}
	return encoded
}

func pgConvert(arg interface{}, t pgreflect.Type) pgreflect.Value {
	if arg == nil {
		return pgreflect.Zero(t)
	}
	v := pgreflect.ValueOf(arg)
	if v.Type().AssignableTo(t) {
		return v
	}
	switch t.Kind() {
	case pgreflect.Slice:
		if v.Kind() == pgreflect.Slice {
			out := pgreflect.MakeSlice(t, v.Len(), v.Len())
			for i := 0; i < v.Len(); i++ {
				out.Index(i).Set(pgConvert(v.Index(i).Interface(), t.Elem()))
			}
			return out
		}
	case pgreflect.Array:
		if v.Kind() == pgreflect.Slice && v.Len() == t.Len() {
			out := pgreflect.New(t).Elem()
			for i := 0; i < v.Len(); i++ {
				out.Index(i).Set(pgConvert(v.Index(i).Interface(), t.Elem()))
			}
			return out
		}
	}
	if v.Type().ConvertibleTo(t) {
		return v.Convert(t)
	}
	return v
}

func pgInvoke(fn interface{}, args ...interface{}) (result string, failed bool) {
	defer func() {
		if r := recover(); r != nil {
			result, failed = pgQuote(pgfmt.Sprint(r)), true
		}
	}()
	fv := pgreflect.ValueOf(fn)
	ft := fv.Type()
	if ft.NumIn() != len(args) {
		return pgQuote(pgfmt.Sprintf("expected %d argument(s), got %d", ft.NumIn(), len(args))), true
	}
	in := make([]pgreflect.Value, len(args))
	for i, arg := range args {
		in[i] = pgConvert(arg, ft.In(i))
	}
	out := fv.Call(in)
	if len(out) > 0 {
		last := out[len(out)-1]
		if last.Type().Implements(pgErrorType) {
			if !last.IsNil() {
				return pgQuote(last.Interface().(error).Error()), true
			}
			out = out[:len(out)-1]
		}
	}
	var value interface{}
	switch len(out) {
	case 0:
		value = nil
	case 1:
		value = pgNormalize(out[0])
	default:
		tuple := make([]interface{}, len(out))
		for i, item := range out {
			tuple[i] = pgNormalize(item)
		}
		value = tuple
	}
	text, err := pgEncode(value)
	if err != nil {
		return pgQuote(err.Error()), true
	}
	return text, false
}

func pgRecord(out *[]string, name string, expected string, fn interface{}, args ...interface{}) {
	actual, failed := pgInvoke(fn, args...)
	extra := ""
	if failed {
		extra = ",\"error\":true"
	}
	*out = append(*out, pgfmt.Sprintf("{\"name\":%s,\"passed\":%t,\"actual\":%s,\"expected\":%s%s}",
		name, !failed && actual == expected, actual, expected, extra))
}

func main() {
	pgOut := []string{}
@@CASES@@
	pgfmt.Println()
	pgfmt.Println(@@START@@)
	pgfmt.Println("[" + pgstrings.Join(pgOut, ",") + "]")
	pgfmt.Println(@@END@@)
}
"""


def _go_string(text: str) -> str:
    return quote_string(text, control=hex_escape)


def _go_type(shape: str) -> str:
    if shape.startswith("list["):
        return "[]" + _go_type(element_shape(shape))
    return _GO_TYPES[shape]


def _receiver_type(source: str, function_name: str) -> str | None:
    match = re.search(
        rf"\bfunc\s*\(\s*\w*\s*(\*?)\s*([A-Za-z_]\w*)\s*\)\s*{re.escape(function_name)}\s*\(",
        source,
    )
    if match is None:
        return None
    return match.group(2)


class GoGenerator(HarnessGenerator):
    language = "go"
    function_patterns = (_FUNC_RE,)

    def encode_literal(self, value: object) -> str:
        shape = value_shape(value)
        if shape is not None and shape.startswith("list["):
            return _go_type(shape) + render_shaped(value, shape, self._scalar)
        if shape is not None:
            return self._scalar(value, shape)
        if value is None:
            return "nil"
        if isinstance(value, (list, tuple)):
            return "[]interface{}{" + ", ".join(self.encode_literal(item) for item in value) + "}"
        if isinstance(value, Mapping):
            items = ", ".join(f"{_go_string(str(key))}: {self.encode_literal(item)}" for key, item in value.items())
            return "map[string]interface{}{" + items + "}"
        return _go_string(object_as_json_text(value))

    def _scalar(self, value: object, shape: str) -> str:
        if shape in ("int", "long"):
            return format_int(value)
        if shape == "float":
            return format_float(value)
        if shape == "bool":
            return "true" if value else "false"
        return _go_string(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        receiver = _receiver_type(user_source, function_name)
        callee = f"(&{receiver}{{}}).{function_name}" if receiver else function_name
        blocks = []
        for case in case_fragments(test_cases):
            args = "".join(", " + self.encode_literal(item) for item in case.inputs)
            blocks.append(
                f"\tpgRecord(&pgOut, {_go_string(case.name_json)}, {_go_string(case.expected_json)}, {callee}{args})"
            )
        driver = fill(
            DRIVER,
            cases="\n".join(blocks),
            start=_go_string(START_MARKER),
            end=_go_string(END_MARKER),
        )
        source = _MAIN_RE.sub("func polyglotUserMain(", user_source)
        match = _PACKAGE_RE.search(source)
        if match is None:
            head, rest = "package main\n", source
        else:
            head, rest = "package main\n", source[: match.start()] + source[match.end() :]
        return head + IMPORTS + rest.rstrip() + "\n" + driver
