"""Structural comparison and canonical serialization of JSON-shaped values."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping

REL_TOL = 1e-9
ABS_TOL = 1e-9


def normalize(value: object) -> object:
    """Collapse integral floats to ints and tuples to lists, recursively."""
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, (list, tuple)):
        return [normalize(item) for item in value]
    if isinstance(value, Mapping):
        return {str(key): normalize(item) for key, item in value.items()}
    return str(value)


def canonical_json(value: object) -> str:
    """Compact, key-sorted JSON text of the normalized value."""
    return json.dumps(normalize(value), separators=(",", ":"), sort_keys=True, ensure_ascii=False)


def values_equal(actual: object, expected: object) -> bool:
    """Structural equality with tolerant float comparison.

    Booleans never compare equal to numbers.
    """
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if isinstance(actual, (int, float)) and isinstance(expected, (int, float)):
        if isinstance(actual, int) and isinstance(expected, int):
            return actual == expected
        if math.isnan(actual) or math.isnan(expected):
            return math.isnan(actual) and math.isnan(expected)
        return math.isclose(actual, expected, rel_tol=REL_TOL, abs_tol=ABS_TOL)
    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        if len(actual) != len(expected):
            return False
        return all(values_equal(a, e) for a, e in zip(actual, expected))
    if isinstance(actual, Mapping) and isinstance(expected, Mapping):
        if set(map(str, actual)) != set(map(str, expected)):
            return False
        expected_by_key = {str(key): item for key, item in expected.items()}
        return all(values_equal(item, expected_by_key[str(key)]) for key, item in actual.items())
    return actual == expected
