"""Generator table keyed by file extension."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from types import MappingProxyType

from runner_core.schemas import TestCase

from .base import HarnessGenerator
from .targets import (
    CppGenerator,
    CSharpGenerator,
    GoGenerator,
    JavaGenerator,
    KotlinGenerator,
    LuaGenerator,
    PhpGenerator,
    PythonGenerator,
    RGenerator,
    RubyGenerator,
    RustGenerator,
    SwiftGenerator,
)

logger = logging.getLogger(__name__)

GENERATORS: MappingProxyType[str, HarnessGenerator] = MappingProxyType(
    {
        generator.language: generator
        for generator in (
            PythonGenerator(),
            JavaGenerator(),
            CppGenerator(),
            CSharpGenerator(),
            GoGenerator(),
            RustGenerator(),
            KotlinGenerator(),
            SwiftGenerator(),
            RubyGenerator(),
            PhpGenerator(),
            LuaGenerator(),
            RGenerator(),
        )
    }
)


def get_generator(language: str) -> HarnessGenerator | None:
    return GENERATORS.get(language.lower())


def supported_languages() -> list[str]:
    return sorted(GENERATORS)


def generate_harness(
    language: str,
    user_source: str,
    function_name: str,
    test_cases: Sequence[TestCase],
) -> str | None:
    """Build the driver program for ``language``, or None when no generator exists."""
    generator = get_generator(language)
    if generator is None:
        logger.debug("No harness generator for '%s'", language)
        return None
    return generator.generate_harness(user_source, function_name, test_cases)
