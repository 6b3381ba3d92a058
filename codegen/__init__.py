"""
Codegen Module

Per-language source generation for test runs.

This module provides:
- Literal encoding of JSON-shaped values for each target language
- Test-driver (harness) generation appended to user source
- Best-effort resolution of the callable the user actually wrote
- The marker pair framing machine-readable results in program output
"""

__version__ = "0.1.0"

from .literals import encode
from .markers import END_MARKER, START_MARKER
from .registry import generate_harness, get_generator, supported_languages
from .resolve import resolve_function_name

__all__ = [
    "END_MARKER",
    "START_MARKER",
    "encode",
    "generate_harness",
    "get_generator",
    "resolve_function_name",
    "supported_languages",
]
