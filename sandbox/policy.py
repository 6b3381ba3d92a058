"""
Sandbox policy definitions and import/builtin guards for the Python worker.
"""

from __future__ import annotations

import builtins
from collections.abc import Callable, Iterable, Sequence
from types import ModuleType
from typing import cast

BLOCKED_MODULES = [
    "os",
    "sys",
    "subprocess",
    "socket",
    "urllib",
    "requests",
    "http",
    "ctypes",
    "importlib",
    "multiprocessing",
    "threading",
    "shutil",
    "pathlib",
    "__import__",
    "eval",
    "exec",
    "compile",
    "open",
    "file",
    "input",
    "raw_input",
]

ALLOWED_MODULES = [
    "__future__",
    "abc",
    "array",
    "bisect",
    "cmath",
    "collections",
    "contextlib",
    "copy",
    "dataclasses",
    "datetime",
    "decimal",
    "enum",
    "fractions",
    "functools",
    "heapq",
    "itertools",
    "json",
    "math",
    "numbers",
    "operator",
    "pprint",
    "random",
    "re",
    "statistics",
    "string",
    "textwrap",
    "time",
    "typing",
    "unicodedata",
]

ImportHook = Callable[[str, dict[str, object] | None, dict[str, object] | None, Sequence[str], int], ModuleType]


def _normalize_modules(modules: Iterable[str] | None) -> set[str]:
    return {name for name in (modules or [])}


def build_import_guard(
    allowed_modules: Iterable[str] | None = None,
    blocked_modules: Iterable[str] | None = None,
) -> ImportHook:
    """
    Build a restricted __import__ hook that only allows allowlisted modules
    and explicitly blocks denied modules.
    """
    allowed = _normalize_modules(allowed_modules or ALLOWED_MODULES)
    blocked = _normalize_modules(blocked_modules or BLOCKED_MODULES)
    original_import = cast(ImportHook, builtins.__import__)

    def guarded_import(
        name: str,
        globals: dict[str, object] | None = None,
        locals: dict[str, object] | None = None,
        fromlist: Sequence[str] = (),
        level: int = 0,
    ) -> ModuleType:
        root = name.split(".")[0]
        if root in blocked or name in blocked:
            raise ImportError(f"Import of '{root}' blocked by sandbox policy")
        if root not in allowed:
            raise ImportError(f"Import of '{root}' is not allowlisted")
        return original_import(name, globals, locals, fromlist, level)

    return guarded_import


def restricted_builtins(
    allowed_modules: Iterable[str] | None = None,
    blocked_modules: Iterable[str] | None = None,
) -> dict[str, object]:
    """
    Builtins mapping for the user namespace: guarded __import__ and dangerous
    builtins (open/eval/exec/compile/input) disabled.

    The process-wide builtins module is left untouched, so library code the
    user imports keeps working normally.
    """
    blocked = _normalize_modules(blocked_modules or BLOCKED_MODULES)

    def _blocked(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError("Blocked by sandbox policy")

    namespace = dict(vars(builtins))
    for name in blocked - {"__import__"}:
        if name in namespace:
            namespace[name] = _blocked
    namespace["__import__"] = build_import_guard(allowed_modules=allowed_modules, blocked_modules=blocked)
    return namespace
