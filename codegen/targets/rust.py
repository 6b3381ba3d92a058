"""Rust harness.

Parameter types are read from the function signature and used as literal
hints: borrowed parameters get an owned binding passed by reference, float
parameters get float literals, ``&str`` parameters get plain string literals.
Each case runs under ``catch_unwind`` with the panic hook silenced.
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
    list_depth,
    needs_wide_int,
    object_as_json_text,
    parameter_list,
    quote_string,
    scalar_kind,
    split_top_level,
    value_shape,
)
from ..markers import END_MARKER, START_MARKER

_FN_RE = re.compile(r"\bfn\s+([A-Za-z_]\w*)")
_MAIN_RE = re.compile(r"\bfn\s+main\s*\(")
_OWNER_RE = re.compile(r"\b(impl)\s*(?:<[^>]*>\s*)?(?:[\w:<>]+\s+for\s+)?([A-Za-z_]\w*)[^{;]*\{")
_REF_PREFIX_RE = re.compile(r"^(?:&\s*(?:'\w+\s+)?(?:mut\s+)?)+")
_INT_TYPE_RE = re.compile(r"\b([iu](?:8|16|32|64|128|size))\b")
_FLOAT_TYPE_RE = re.compile(r"\b(f32|f64)\b")

DRIVER = r"""
trait PgJson {
    fn pg_json(&self) -> String;
}

fn pg_quote(s: &str) -> String {
    let mut out = String::from("\"");
    for c in s.chars() {
        match c {
            '"' => out.push_str("\\\""),
            '\\' => out.push_str("\\\\"),
            '\n' => out.push_str("\\n"),
            '\r' => out.push_str("\\r"),
            '\t' => out.push_str("\\t"),
            c if (c as u32) < 0x20 => out.push_str(&format!("\\u{:04x}", c as u32)),
            c => out.push(c),
        }
    }
    out.push('"');
    out
}

macro_rules! pg_json_display {
    ($($t:ty),*) => {
        $(impl PgJson for $t {
            fn pg_json(&self) -> String {
                self.to_string()
            }
        })*
    };
}

pg_json_display!(i8, i16, i32, i64, i128, isize, u8, u16, u32, u64, u128, usize, bool);

impl PgJson for f64 {
    fn pg_json(&self) -> String {
        if self.is_finite() { format!("{}", self) } else { "null".to_string() }
    }
}

impl PgJson for f32 {
    fn pg_json(&self) -> String {
        if self.is_finite() { format!("{}", self) } else { "null".to_string() }
    }
}

impl PgJson for char {
    fn pg_json(&self) -> String {
        pg_quote(&self.to_string())
    }
}

impl PgJson for str {
    fn pg_json(&self) -> String {
        pg_quote(self)
    }
}

impl PgJson for String {
    fn pg_json(&self) -> String {
        pg_quote(self)
    }
}

impl PgJson for () {
    fn pg_json(&self) -> String {
        "null".to_string()
    }
}

impl<T: PgJson + ?Sized> PgJson for &T {
    fn pg_json(&self) -> String {
        (**self).pg_json()
    }
}

impl<T: PgJson + ?Sized> PgJson for Box<T> {
    fn pg_json(&self) -> String {
        (**self).pg_json()
    }
}

impl<T: PgJson> PgJson for [T] {
    fn pg_json(&self) -> String {
        let items: Vec<String> = self.iter().map(|item| item.pg_json()).collect();
        format!("[{}]", items.join(","))
    }
}

impl<T: PgJson, const N: usize> PgJson for [T; N] {
    fn pg_json(&self) -> String {
        self[..].pg_json()
    }
}

impl<T: PgJson> PgJson for Vec<T> {
    fn pg_json(&self) -> String {
        self[..].pg_json()
    }
}

impl<T: PgJson> PgJson for std::collections::VecDeque<T> {
    fn pg_json(&self) -> String {
        let items: Vec<String> = self.iter().map(|item| item.pg_json()).collect();
        format!("[{}]", items.join(","))
    }
}

impl<T: PgJson> PgJson for Option<T> {
    fn pg_json(&self) -> String {
        match self {
            Some(value) => value.pg_json(),
            None => "null".to_string(),
        }
    }
}

impl<T: PgJson, E: std::fmt::Debug> PgJson for Result<T, E> {
    fn pg_json(&self) -> String {
        match self {
            Ok(value) => value.pg_json(),
            Err(err) => pg_quote(&format!("Err({:?})", err)),
        }
    }
}

impl<A: PgJson, B: PgJson> PgJson for (A, B) {
    fn pg_json(&self) -> String {
        format!("[{},{}]", self.0.pg_json(), self.1.pg_json())
    }
}

impl<A: PgJson, B: PgJson, C: PgJson> PgJson for (A, B, C) {
    fn pg_json(&self) -> String {
        format!("[{},{},{}]", self.0.pg_json(), self.1.pg_json(), self.2.pg_json())
    }
}

fn pg_object<'a, K: ToString + 'a, V: PgJson + 'a>(entries: impl Iterator<Item = (&'a K, &'a V)>) -> String {
    let mut pairs: Vec<(String, String)> = entries.map(|(k, v)| (k.to_string(), v.pg_json())).collect();
    pairs.sort();
    let items: Vec<String> = pairs.iter().map(|(k, v)| format!("{}:{}", pg_quote(k), v)).collect();
    format!("{{{}}}", items.join(","))
}

impl<K: ToString, V: PgJson, S> PgJson for std::collections::HashMap<K, V, S> {
    fn pg_json(&self) -> String {
        pg_object(self.iter())
    }
}

impl<K: ToString, V: PgJson> PgJson for std::collections::BTreeMap<K, V> {
    fn pg_json(&self) -> String {
        pg_object(self.iter())
    }
}

fn pg_record(out: &mut Vec<String>, name: &str, expected: &str, outcome: std::thread::Result<String>) {
    match outcome {
        Ok(actual) => out.push(format!(
            "{{\"name\":{},\"passed\":{},\"actual\":{},\"expected\":{}}}",
            name,
            actual == expected,
            actual,
            expected
        )),
        Err(payload) => {
            let message = if let Some(text) = payload.downcast_ref::<&str>() {
                text.to_string()
            } else if let Some(text) = payload.downcast_ref::<String>() {
                text.clone()
            } else {
                "panic".to_string()
            };
            out.push(format!(
                "{{\"name\":{},\"passed\":false,\"actual\":{},\"expected\":{},\"error\":true}}",
                name,
                pg_quote(&message),
                expected
            ));
        }
    }
}

fn main() {
    std::panic::set_hook(Box::new(|_| {}));
    let mut pg_out: Vec<String> = Vec::new();
@@CASES@@
    println!();
    println!("{}", @@START@@);
    println!("[{}]", pg_out.join(","));
    println!("{}", @@END@@);
}
"""

CASE = """    {
        let pg_outcome = std::panic::catch_unwind(std::panic::AssertUnwindSafe(|| {
@@BINDINGS@@
            PgJson::pg_json(&@@CALL@@)
        }));
        pg_record(&mut pg_out, @@NAME@@, @@EXPECTED@@, pg_outcome);
    }"""


def _rust_string(text: str) -> str:
    return quote_string(text, control=braced_unicode_escape)


def _strip_ref(type_hint: str) -> str:
    return _REF_PREFIX_RE.sub("", type_hint.strip()).strip()


def _element_hint(core: str) -> str | None:
    core = _strip_ref(core)
    if core.startswith("Vec<") and core.endswith(">"):
        return core[4:-1].strip()
    if core.startswith("[") and core.endswith("]"):
        return split_top_level(core[1:-1], ";")[0]
    return None


def parameter_types(source: str, function_name: str) -> list[str] | None:
    """Declared parameter types of ``fn function_name``; ``self`` receivers are kept as-is."""
    params = parameter_list(source, function_name, "fn")
    if params is None:
        return None
    types = []
    for param in params:
        if re.fullmatch(r"&?\s*(?:'\w+\s+)?(?:mut\s+)?self", param):
            types.append("self")
        elif ":" in param:
            types.append(param.split(":", 1)[1].strip())
        else:
            types.append("")
    return types


class RustGenerator(HarnessGenerator):
    language = "rs"
    function_patterns = (_FN_RE,)

    def encode_literal(self, value: object) -> str:
        return self.encode_hinted(value, None)

    def encode_hinted(self, value: object, type_hint: str | None) -> str:
        core = _strip_ref(type_hint) if type_hint else None
        if core and core.startswith("Option<") and core.endswith(">") and value is not None:
            return f"Some({self.encode_hinted(value, core[len('Option<') : -1])})"
        kind = scalar_kind(value)
        if kind == "null":
            return "None"
        if kind == "bool":
            return "true" if value else "false"
        if kind in ("int", "float"):
            float_type = _FLOAT_TYPE_RE.search(core) if core else None
            if kind == "float" or float_type:
                return format_float(value) + (float_type.group(1) if float_type else "f64")
            if needs_wide_int([value]):
                int_type = _INT_TYPE_RE.search(core) if core else None
                return format_int(value) + (int_type.group(1) if int_type else "i64")
            return format_int(value)
        if kind == "string":
            text = str(value)
            if core == "char" and len(text) == 1:
                return quote_string(text, quote="'", control=braced_unicode_escape)
            if type_hint and core == "str":
                return _rust_string(text)
            if core and "&str" in core:
                return _rust_string(text)
            return f"String::from({_rust_string(text)})"
        if kind == "list":
            if core is None:
                shape = value_shape(value)
                if shape is None:
                    return f"String::from({_rust_string(object_as_json_text(value))})"
                base, depth = list_depth(shape)
                if base == "float":
                    core = "Vec<" * depth + "f64" + ">" * depth
            inner = _element_hint(core) if core else None
            items = ", ".join(self.encode_hinted(item, inner) for item in value)  # type: ignore[union-attr]
            if core and core.startswith("[") and ";" in core:
                return f"[{items}]"
            return f"vec![{items}]"
        if isinstance(value, Mapping):
            return f"String::from({_rust_string(object_as_json_text(value))})"
        return f"String::from({_rust_string(str(value))})"

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        types = parameter_types(user_source, function_name) or []
        receiver = bool(types) and types[0] == "self"
        if receiver:
            types = types[1:]
        owner = find_owner(user_source, function_name, _OWNER_RE)
        if owner and receiver:
            callee = f"{owner[1]}::default().{function_name}"
        elif owner:
            callee = f"{owner[1]}::{function_name}"
        else:
            callee = function_name

        blocks = []
        for case in case_fragments(test_cases):
            bindings = []
            call_args = []
            for index, item in enumerate(case.inputs):
                hint = types[index] if index < len(types) and types[index] else None
                name = f"pg_arg{index}"
                bindings.append(f"            let mut {name} = {self.encode_hinted(item, hint)};")
                call_args.append(_pass_argument(name, item, hint))
            blocks.append(
                fill(
                    CASE,
                    bindings="\n".join(bindings),
                    call=f"{callee}({', '.join(call_args)})",
                    name=_rust_string(case.name_json),
                    expected=_rust_string(case.expected_json),
                )
            )
        driver = fill(
            DRIVER,
            cases="\n".join(blocks),
            start=_rust_string(START_MARKER),
            end=_rust_string(END_MARKER),
        )
        source = _MAIN_RE.sub("fn polyglot_user_main(", user_source)
        return "#![allow(unused_mut, dead_code, unused_variables)]\n" + source.rstrip() + "\n" + driver


def _pass_argument(name: str, value: object, type_hint: str | None) -> str:
    if not type_hint:
        return name
    hint = type_hint.strip()
    if re.match(r"&\s*(?:'\w+\s+)?mut\b", hint):
        return f"&mut {name}"
    if hint.startswith("&"):
        if isinstance(value, str) and _strip_ref(hint) == "str":
            return name
        return f"&{name}"
    return name
