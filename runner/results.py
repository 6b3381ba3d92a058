"""Extraction of marker-delimited test results from raw program output."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence

from pydantic import ValidationError

from codegen.markers import END_MARKER, START_MARKER
from runner_core.compare import values_equal
from runner_core.schemas import TestCaseResult

logger = logging.getLogger(__name__)


def extract_block(raw: str, start_marker: str = START_MARKER, end_marker: str = END_MARKER) -> str | None:
    """Text between the first start marker and the first end marker after it."""
    start = raw.find(start_marker)
    if start == -1:
        return None
    body_start = start + len(start_marker)
    end = raw.find(end_marker, body_start)
    if end == -1:
        return None
    return raw[body_start:end]


def results_from_entries(entries: Iterable[object]) -> list[TestCaseResult]:
    """Convert decoded result entries; entries that are not objects are dropped."""
    results: list[TestCaseResult] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.debug(f"Dropping non-object result entry: {entry!r}")
            continue
        try:
            results.append(
                TestCaseResult(
                    name=str(entry.get("name", "")),
                    passed=entry.get("passed") is True,
                    actual=entry.get("actual"),
                    expected=entry.get("expected"),
                    error=bool(entry.get("error", False)),
                )
            )
        except ValidationError as e:
            logger.debug(f"Dropping malformed result entry: {e}")
    return results


def extract_results(
    raw: str,
    start_marker: str = START_MARKER,
    end_marker: str = END_MARKER,
) -> list[TestCaseResult] | None:
    """Parse the result block out of ``raw``.

    Returns:
        Typed results, or None when a marker is missing or the block is not a JSON array
    """
    block = extract_block(raw, start_marker, end_marker)
    if block is None:
        return None
    try:
        data = json.loads(block.strip())
    except json.JSONDecodeError as e:
        logger.debug(f"Result block is not valid JSON: {e}")
        return None
    if not isinstance(data, list):
        return None
    return results_from_entries(data)


def reconcile_results(results: Sequence[TestCaseResult]) -> list[TestCaseResult]:
    """Upgrade failures whose values are structurally equal under tolerant comparison.

    Harnesses compare serialized text, which misses float rounding noise and
    key order; error entries are never upgraded.
    """
    reconciled: list[TestCaseResult] = []
    for result in results:
        if not result.passed and not result.error and values_equal(result.actual, result.expected):
            result = result.model_copy(update={"passed": True})
        reconciled.append(result)
    return reconciled
