"""Language-keyed entry point of the literal encoder."""

from __future__ import annotations

import json

from runner_core.errors import HarnessUnsupported

from .registry import get_generator

# JSON text is a valid expression in these languages
JSON_LITERAL_LANGUAGES = frozenset({"js", "mjs", "ts", "tsx", "jsx"})


def encode(language: str, value: object) -> str:
    """Render ``value`` as a literal expression in ``language``.

    Raises:
        HarnessUnsupported: If no encoder exists for the language
        ValueError: If the value holds a non-finite number
    """
    language = language.lower()
    if language in JSON_LITERAL_LANGUAGES:
        return json.dumps(value, ensure_ascii=False, allow_nan=False, default=str)
    generator = get_generator(language)
    if generator is None:
        raise HarnessUnsupported(f"No literal encoder for language '{language}'")
    return generator.encode_literal(value)
