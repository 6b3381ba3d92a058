"""C# harness: reflection lookup over the executing assembly.

A user ``Main`` is renamed so the driver's entry point is the only one.
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
    object_as_json_text,
    quote_string,
    render_shaped,
    value_shape,
)
from ..markers import END_MARKER, START_MARKER

_METHOD_RE = re.compile(
    r"\b(?:public|private|protected|internal|static|async|override|virtual)\s+"
    r"(?:[\w<>\[\],.?]+\s+)*?([A-Za-z_]\w*)\s*\([^;{}()]*\)\s*\{"
)
_MAIN_RE = re.compile(r"\bstatic\s+((?:async\s+)?[\w<>]+)\s+Main\s*\(")

_CS_TYPES = {"int": "int", "long": "long", "float": "double", "string": "string", "bool": "bool"}

USINGS = """using System;
using System.Collections;
using System.Collections.Generic;
using System.Globalization;
using System.Linq;
using System.Reflection;
using System.Text;
"""

DRIVER = r"""
public static class PolyglotHarness
{
    static string Esc(string s)
    {
        var b = new StringBuilder();
        foreach (var c in s)
        {
            switch (c)
            {
                case '"': b.Append("\\\""); break;
                case '\\': b.Append("\\\\"); break;
                case '\n': b.Append("\\n"); break;
                case '\r': b.Append("\\r"); break;
                case '\t': b.Append("\\t"); break;
                default:
                    if (c < 0x20) b.Append("\\u" + ((int)c).ToString("x4"));
                    else b.Append(c);
                    break;
            }
        }
        return b.ToString();
    }

    static string ToJson(object v)
    {
        if (v == null) return "null";
        if (v is string || v is char) return "\"" + Esc(v.ToString()) + "\"";
        if (v is bool) return ((bool)v) ? "true" : "false";
        if (v is double || v is float || v is decimal)
        {
            double d = Convert.ToDouble(v, CultureInfo.InvariantCulture);
            if (d == Math.Floor(d) && !double.IsInfinity(d) && Math.Abs(d) < 1e15) return ((long)d).ToString(CultureInfo.InvariantCulture);
            return d.ToString("R", CultureInfo.InvariantCulture);
        }
        if (v is IConvertible && v.GetType().IsPrimitive) return Convert.ToString(v, CultureInfo.InvariantCulture);
        if (v is IDictionary)
        {
            var dict = (IDictionary)v;
            var entries = new SortedDictionary<string, object>(StringComparer.Ordinal);
            foreach (DictionaryEntry e in dict) entries[Convert.ToString(e.Key, CultureInfo.InvariantCulture)] = e.Value;
            return "{" + string.Join(",", entries.Select(e => ToJson(e.Key) + ":" + ToJson(e.Value))) + "}";
        }
        if (v is IEnumerable)
        {
            return "[" + string.Join(",", ((IEnumerable)v).Cast<object>().Select(x => ToJson(x))) + "]";
        }
        return "\"" + Esc(v.ToString()) + "\"";
    }

    static object Coerce(object v, Type t)
    {
        if (v == null || t.IsInstanceOfType(v)) return v;
        if (t.IsArray && v is Array)
        {
            var source = (Array)v;
            var element = t.GetElementType();
            var result = Array.CreateInstance(element, source.Length);
            for (int i = 0; i < source.Length; i++) result.SetValue(Coerce(source.GetValue(i), element), i);
            return result;
        }
        if (t.IsGenericType && v is Array)
        {
            var element = t.GetGenericArguments()[0];
            var list = (IList)Activator.CreateInstance(typeof(List<>).MakeGenericType(element));
            foreach (var item in (Array)v) list.Add(Coerce(item, element));
            return list;
        }
        if (t == typeof(char) && v is string && ((string)v).Length == 1) return ((string)v)[0];
        if (v is IConvertible && (t.IsPrimitive || t == typeof(decimal)))
        {
            return Convert.ChangeType(v, t, CultureInfo.InvariantCulture);
        }
        return v;
    }

    static object Invoke(string name, object[] args)
    {
        foreach (var type in Assembly.GetExecutingAssembly().GetTypes())
        {
            if (type == typeof(PolyglotHarness)) continue;
            var flags = BindingFlags.Public | BindingFlags.NonPublic | BindingFlags.Static | BindingFlags.Instance | BindingFlags.DeclaredOnly;
            foreach (var m in type.GetMethods(flags))
            {
                if (m.Name != name || m.GetParameters().Length != args.Length || m.ContainsGenericParameters) continue;
                var parameters = m.GetParameters();
                var call = new object[args.Length];
                for (int i = 0; i < args.Length; i++) call[i] = Coerce(args[i], parameters[i].ParameterType);
                object target = m.IsStatic ? null : Activator.CreateInstance(type, true);
                try
                {
                    var result = m.Invoke(target, call);
                    return m.ReturnType == typeof(void) ? null : result;
                }
                catch (TargetInvocationException e)
                {
                    throw e.InnerException ?? e;
                }
            }
        }
        throw new MissingMethodException("Method '" + name + "' with " + args.Length + " parameter(s) not found");
    }

    static void Record(StringBuilder out_, string name, string expected, object[] args)
    {
        if (out_.Length > 1) out_.Append(",");
        out_.Append("{\"name\":").Append(name);
        try
        {
            var actual = ToJson(Invoke(@@FUNCTION@@, args));
            out_.Append(",\"passed\":").Append(actual == expected ? "true" : "false");
            out_.Append(",\"actual\":").Append(actual).Append(",\"expected\":").Append(expected).Append("}");
        }
        catch (Exception e)
        {
            out_.Append(",\"passed\":false,\"actual\":").Append(ToJson(e.GetType().Name + ": " + e.Message));
            out_.Append(",\"expected\":").Append(expected).Append(",\"error\":true}");
        }
    }

    public static void Main(string[] args)
    {
        var out_ = new StringBuilder("[");
@@CASES@@
        out_.Append("]");
        Console.WriteLine();
        Console.WriteLine(@@START@@);
        Console.WriteLine(out_.ToString());
        Console.WriteLine(@@END@@);
    }
}
"""


def _cs_string(text: str) -> str:
    return quote_string(text)


def _cs_type(shape: str) -> str:
    if shape.startswith("list["):
        return _cs_type(element_shape(shape)) + "[]"
    return _CS_TYPES[shape]


class CSharpGenerator(HarnessGenerator):
    language = "cs"
    function_patterns = (_METHOD_RE,)

    def encode_literal(self, value: object) -> str:
        shape = value_shape(value)
        if shape is not None and shape.startswith("list["):
            return render_shaped(value, shape, self._scalar, opener=lambda level: f"new {_cs_type(level)} {{ ", closer=" }")
        if shape is not None:
            return self._scalar(value, shape)
        if value is None:
            return "null"
        if isinstance(value, (list, tuple)):
            return "new object[] { " + ", ".join(self.encode_literal(item) for item in value) + " }"
        if isinstance(value, Mapping):
            items = ", ".join(
                f"{{ {_cs_string(str(key))}, {self.encode_literal(item)} }}" for key, item in value.items()
            )
            return "new Dictionary<string, object> { " + items + " }"
        return _cs_string(object_as_json_text(value))

    def _scalar(self, value: object, shape: str) -> str:
        if shape == "int":
            return format_int(value)
        if shape == "long":
            return format_int(value) + "L"
        if shape == "float":
            return format_float(value)
        if shape == "bool":
            return "true" if value else "false"
        return _cs_string(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        blocks = []
        for case in case_fragments(test_cases):
            args = ", ".join(f"(object)({self.encode_literal(item)})" for item in case.inputs)
            blocks.append(
                f"        Record(out_, {_cs_string(case.name_json)}, {_cs_string(case.expected_json)}, "
                f"new object[] {{ {args} }});"
            )
        driver = fill(
            DRIVER,
            function=_cs_string(function_name),
            cases="\n".join(blocks),
            start=_cs_string(START_MARKER),
            end=_cs_string(END_MARKER),
        )
        source = _MAIN_RE.sub(r"static \1 PolyglotUserMain(", user_source)
        return USINGS + source.rstrip() + "\n" + driver
