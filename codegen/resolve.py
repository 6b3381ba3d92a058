"""Best-effort resolution of the function a test run should call."""

from __future__ import annotations

import logging
import re

from .registry import get_generator

logger = logging.getLogger(__name__)

SCRIPT_FUNCTION_PATTERNS = (
    re.compile(r"\bfunction\s*\*?\s*([A-Za-z_$][\w$]*)\s*\("),
    re.compile(r"\b(?:const|let|var)\s+([A-Za-z_$][\w$]*)\s*(?::[^=]+)?=\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*(?::[^=]+)?=>|[A-Za-z_$][\w$]*\s*=>)"),
)

EXCLUDED_NAMES = frozenset(
    {
        "main",
        "if",
        "else",
        "elif",
        "for",
        "foreach",
        "while",
        "do",
        "switch",
        "case",
        "catch",
        "try",
        "return",
        "new",
        "function",
        "sizeof",
        "typeof",
        "unless",
        "until",
        "when",
        "match",
        "loop",
        "repeat",
        "synchronized",
        "using",
        "lock",
        "fixed",
        "defer",
        "go",
        "select",
    }
)

_TYPE_DECLARATION_RE = re.compile(r"\b(?:class|struct|interface|enum|record|object|trait|impl)\s+([A-Za-z_]\w*)")


def _patterns_for(language: str) -> tuple[re.Pattern[str], ...]:
    generator = get_generator(language)
    if generator is not None:
        return generator.function_patterns
    return SCRIPT_FUNCTION_PATTERNS


def candidate_names(language: str, source: str) -> list[str]:
    """Declared function names in source order, minus entry points, keywords and type names."""
    type_names = set(_TYPE_DECLARATION_RE.findall(source))
    found: list[tuple[int, str]] = []
    for pattern in _patterns_for(language):
        for match in pattern.finditer(source):
            name = match.group(1)
            if name in EXCLUDED_NAMES or name in type_names:
                continue
            found.append((match.start(1), name))
    ordered: list[str] = []
    for _, name in sorted(found):
        if name not in ordered:
            ordered.append(name)
    return ordered


def resolve_function_name(language: str, source: str, requested: str) -> str:
    """Return the callable to invoke: the requested name if declared, else the first declared one.

    Never raises; falls back to ``requested``.
    """
    try:
        candidates = candidate_names(language, source)
    except Exception as e:  # resolution is advisory only
        logger.warning(f"Function name resolution failed for '{language}': {e}")
        return requested

    if requested in candidates:
        return requested
    if candidates:
        logger.info(f"Function '{requested}' not found; using '{candidates[0]}'")
        return candidates[0]
    return requested
