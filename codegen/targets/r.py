"""R harness.

R has no scalar type distinct from a length-one vector, so a function
returning a one-element vector serializes as a scalar.
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
    hex_escape,
    quote_string,
    scalar_kind,
    value_shape,
)
from ..markers import END_MARKER, START_MARKER

_FUNCTION_RE = re.compile(r"([A-Za-z_.][\w.]*)\s*(?:<-|<<-|=)\s*function\s*\(")

DRIVER = r"""

# --- test driver ---
pg_escape <- function(s) {
  s <- gsub("\\", "\\\\", s, fixed = TRUE)
  s <- gsub("\"", "\\\"", s, fixed = TRUE)
  s <- gsub("\n", "\\n", s, fixed = TRUE)
  s <- gsub("\r", "\\r", s, fixed = TRUE)
  gsub("\t", "\\t", s, fixed = TRUE)
}

pg_scalar <- function(x) {
  if (is.factor(x)) x <- as.character(x)
  if (is.na(x)) return("null")
  if (is.logical(x)) return(if (x) "true" else "false")
  if (is.numeric(x)) {
    if (!is.finite(x)) return("null")
    if (x == round(x) && abs(x) < 1e15) return(sprintf("%.0f", x))
    return(format(x, digits = 15))
  }
  paste0("\"", pg_escape(as.character(x)), "\"")
}

pg_json <- function(v) {
  if (is.null(v)) return("null")
  if (is.list(v)) {
    keys <- names(v)
    if (!is.null(keys) && length(keys) > 0 && all(keys != "")) {
      items <- vapply(order(keys), function(i) paste0(pg_scalar(keys[i]), ":", pg_json(v[[i]])), character(1))
      return(paste0("{", paste(items, collapse = ","), "}"))
    }
    items <- vapply(v, pg_json, character(1))
    return(paste0("[", paste(items, collapse = ","), "]"))
  }
  if (is.matrix(v)) {
    rows <- vapply(seq_len(nrow(v)), function(i) {
      paste0("[", paste(vapply(v[i, ], pg_scalar, character(1)), collapse = ","), "]")
    }, character(1))
    return(paste0("[", paste(rows, collapse = ","), "]"))
  }
  if (length(v) == 1) return(pg_scalar(v))
  paste0("[", paste(vapply(seq_along(v), function(i) pg_scalar(v[[i]]), character(1)), collapse = ","), "]")
}

pg_out <- character(0)
pg_record <- function(name, expected, call) {
  entry <- tryCatch({
    actual <- pg_json(call())
    passed <- if (identical(actual, expected)) "true" else "false"
    paste0("{\"name\":", name, ",\"passed\":", passed, ",\"actual\":", actual, ",\"expected\":", expected, "}")
  }, error = function(e) {
    paste0("{\"name\":", name, ",\"passed\":false,\"actual\":", pg_scalar(conditionMessage(e)),
           ",\"expected\":", expected, ",\"error\":true}")
  })
  pg_out <<- c(pg_out, entry)
}

@@CASES@@
cat("\n", @@START@@, "\n", "[", paste(pg_out, collapse = ","), "]", "\n", @@END@@, "\n", sep = "")
"""


def _r_string(text: str) -> str:
    return quote_string(text, control=hex_escape)


class RGenerator(HarnessGenerator):
    language = "r"
    function_patterns = (_FUNCTION_RE,)

    def encode_literal(self, value: object) -> str:
        kind = scalar_kind(value)
        if kind == "null":
            return "NULL"
        if kind == "bool":
            return "TRUE" if value else "FALSE"
        if kind == "int":
            return format_int(value) + "L" if abs(int(value)) < 2**31 else format_float(value)  # type: ignore[call-overload]
        if kind == "float":
            return format_float(value)
        if kind == "string":
            return _r_string(str(value))
        if kind == "list":
            items = ", ".join(self.encode_literal(item) for item in value)  # type: ignore[union-attr]
            shape = value_shape(value)
            if value and shape is not None and not shape.startswith("list[list["):
                return f"c({items})"
            return f"list({items})"
        if isinstance(value, Mapping):
            items = ", ".join(f"{_r_string(str(key))} = {self.encode_literal(item)}" for key, item in value.items())
            return f"list({items})"
        return _r_string(str(value))

    def generate_harness(
        self,
        user_source: str,
        function_name: str,
        test_cases: Sequence[TestCase],
    ) -> str:
        blocks = []
        for case in case_fragments(test_cases):
            args = ", ".join(self.encode_literal(item) for item in case.inputs)
            blocks.append(
                f"pg_record({_r_string(case.name_json)}, {_r_string(case.expected_json)}, "
                f"function() {function_name}({args}))"
            )
        driver = fill(
            DRIVER,
            cases="\n".join(blocks),
            start=_r_string(START_MARKER),
            end=_r_string(END_MARKER),
        )
        return user_source.rstrip() + "\n" + driver
