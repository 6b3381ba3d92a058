"""Lua harness: literal tables, ``pcall`` per case, hand-written serializer.

Lua tables cannot hold ``nil`` array slots, so nulls inside arrays shorten
the array.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from runner_core.schemas import TestCase

from ..base import (
    HarnessGenerator,
    case_fragments,
    fill,
    format_float,
    format_int,
    quote_string,
    scalar_kind,
)
from ..markers import END_MARKER, START_MARKER

_FUNCTION_RES = (
    re.compile(r"\bfunction\s+(?:[\w.]+[.:])?([A-Za-z_]\w*)\s*\("),
    re.compile(r"\b(?:local\s+)?([A-Za-z_]\w*)\s*=\s*function\s*\("),
)

DRIVER = r"""

-- test driver
local function pg_escape(s)
  local map = { ['"'] = '\\"', ['\\'] = '\\\\', ['\n'] = '\\n', ['\r'] = '\\r', ['\t'] = '\\t' }
  return (s:gsub('[%c"\\]', function(c)
    return map[c] or string.format('\\u%04x', c:byte())
  end))
end

local function pg_is_array(t)
  local count = 0
  for _ in pairs(t) do count = count + 1 end
  for i = 1, count do
    if t[i] == nil then return false end
  end
  return true
end

local pg_json
pg_json = function(v)
  local kind = type(v)
  if v == nil then return 'null' end
  if kind == 'boolean' then return tostring(v) end
  if kind == 'number' then
    if v ~= v or v == math.huge or v == -math.huge then return 'null' end
    if v == math.floor(v) and math.abs(v) < 1e15 then return string.format('%d', v) end
    return string.format('%.14g', v)
  end
  if kind == 'string' then return '"' .. pg_escape(v) .. '"' end
  if kind == 'table' then
    local items = {}
    if pg_is_array(v) then
      for i = 1, #v do items[i] = pg_json(v[i]) end
      return '[' .. table.concat(items, ',') .. ']'
    end
    local keys = {}
    for k in pairs(v) do keys[#keys + 1] = k end
    table.sort(keys, function(a, b) return tostring(a) < tostring(b) end)
    for i, k in ipairs(keys) do items[i] = pg_json(tostring(k)) .. ':' .. pg_json(v[k]) end
    return '{' .. table.concat(items, ',') .. '}'
  end
  return '"' .. pg_escape(tostring(v)) .. '"'
end

local pg_out = {}
local function pg_record(name, expected, call)
  local ok, result = pcall(function() return pg_json(call()) end)
  if ok then
    pg_out[#pg_out + 1] = '{"name":' .. name .. ',"passed":' .. tostring(result == expected)
      .. ',"actual":' .. result .. ',"expected":' .. expected .. '}'
  else
    pg_out[#pg_out + 1] = '{"name":' .. name .. ',"passed":false,"actual":' .. pg_json(tostring(result))
      .. ',"expected":' .. expected .. ',"error":true}'
  end
end

@@CASES@@
print()
print(@@START@@)
print('[' .. table.concat(pg_out, ',') .. ']')
print(@@END@@)
"""


def _lua_string(text: str) -> str:
    return quote_string(text, control=lambda ch: "\\%03d" % ord(ch))


def qualified_name(source: str, function_name: str) -> str:
    """``M.name``/``M:name`` when the function is declared on a table, else the bare name."""
    match = re.search(rf"\bfunction\s+([\w.]+)([.:]){re.escape(function_name)}\s*\(", source)
    if match is None:
        return function_name
    return f"{match.group(1)}{match.group(2)}{function_name}"


class LuaGenerator(HarnessGenerator):
    language = "lua"
    function_patterns = _FUNCTION_RES

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
            return _lua_string(str(value))
        if kind == "list":
            return "{" + ", ".join(self.encode_literal(item) for item in value) + "}"  # type: ignore[union-attr]
        if isinstance(value, Mapping):
            items = ", ".join(f"[{_lua_string(str(key))}] = {self.encode_literal(item)}" for key, item in value.items())
            return "{" + items + "}"
        return _lua_string(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        callee = qualified_name(user_source, function_name)
        blocks = []
        for case in case_fragments(test_cases):
            args = ", ".join(self.encode_literal(item) for item in case.inputs)
            blocks.append(
                f"pg_record({_lua_string(case.name_json)}, {_lua_string(case.expected_json)}, "
                f"function() return {callee}({args}) end)"
            )
        driver = fill(
            DRIVER,
            cases="\n".join(blocks),
            start=_lua_string(START_MARKER),
            end=_lua_string(END_MARKER),
        )
        return user_source.rstrip() + "\n" + driver
