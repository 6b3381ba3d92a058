"""Specifier classification and virtual-file-map lookup."""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from urllib.parse import urljoin

EXTENSION_FALLBACKS = (".js", ".mjs", ".ts", ".tsx", ".jsx")

NODE_BUILTINS = frozenset(
    {
        "assert",
        "buffer",
        "child_process",
        "crypto",
        "events",
        "fs",
        "http",
        "https",
        "net",
        "os",
        "path",
        "process",
        "querystring",
        "readline",
        "stream",
        "string_decoder",
        "timers",
        "tty",
        "url",
        "util",
        "worker_threads",
        "zlib",
    }
)


def is_url(specifier: str) -> bool:
    return specifier.startswith(("http://", "https://"))


def is_relative(specifier: str) -> bool:
    return specifier.startswith(("./", "../", "/")) or specifier in (".", "..")


def is_builtin(specifier: str) -> bool:
    return specifier.startswith("node:") or specifier.split("/", 1)[0] in NODE_BUILTINS


def normalize_path(path: str) -> str:
    """VFS key form: POSIX separators, no leading ``./`` or ``/``."""
    normalized = posixpath.normpath(path.replace("\\", "/"))
    return normalized.lstrip("/") if normalized != "." else ""


def join_relative(importer: str, specifier: str) -> str:
    if specifier.startswith("/"):
        return normalize_path(specifier)
    return normalize_path(posixpath.join(posixpath.dirname(importer), specifier))


def resolve_vfs(files: Mapping[str, str], path: str) -> str | None:
    """Return the VFS key for ``path``, trying the literal path, extension fallbacks, then index files."""
    index = {normalize_path(key): key for key in files}
    candidate = normalize_path(path)
    for suffix in ("", *EXTENSION_FALLBACKS):
        if candidate + suffix in index:
            return index[candidate + suffix]
    for suffix in EXTENSION_FALLBACKS:
        key = posixpath.join(candidate, "index" + suffix)
        if key in index:
            return index[key]
    return None


def join_url(base_url: str, specifier: str) -> str:
    """Resolve a relative specifier inside a fetched module; extensionless paths get ``.js``."""
    url = urljoin(base_url, specifier)
    last = url.rsplit("/", 1)[-1]
    if "." not in last:
        url += ".js"
    return url
