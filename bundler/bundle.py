"""Resolve a virtual file map into one self-contained script.

Every non-entry module becomes a function in a ``__pgModules`` registry keyed
by its VFS path or URL, with a per-module dependency map that pins each
literal ``require`` specifier to a registry id. The entry module is emitted
last, outside any wrapper, so that code appended after the bundle (the test
harness) sees its top-level declarations.
"""

from __future__ import annotations

import json
import logging
import posixpath
from collections.abc import Mapping

import requests

from runner_core.errors import BundleError

from .fetch import ModuleFetcher
from .resolve import is_builtin, is_relative, is_url, join_relative, join_url, resolve_vfs
from .transform import find_requires, to_commonjs, transpile

logger = logging.getLogger(__name__)

DEFAULT_CDN_BASE_URL = "https://cdn.jsdelivr.net/npm/"
ENTRY_REQUIRE = "__pgEntryRequire"

_RUNTIME = """\
var __pgCache = {};
function __pgDefault(m) { return m && m.__esModule ? m["default"] : m; }
function __pgLoad(id) {
  if (Object.prototype.hasOwnProperty.call(__pgCache, id)) return __pgCache[id].exports;
  var factory = __pgModules[id];
  if (!factory) throw new Error("Cannot find module '" + id + "'");
  var module = { exports: {} };
  __pgCache[id] = module;
  factory.call(module.exports, module, module.exports, __pgRequireFrom(id));
  return module.exports;
}
function __pgRequireFrom(from) {
  var deps = __pgDeps[from] || {};
  return function (specifier) {
    if (Object.prototype.hasOwnProperty.call(deps, specifier)) return __pgLoad(deps[specifier]);
    if (typeof require === "function") return require(specifier);
    throw new Error("Cannot find module '" + specifier + "'");
  };
}
"""


class Bundler:
    """One bundling pass over a virtual file map."""

    def __init__(
        self,
        files: Mapping[str, str],
        *,
        cdn_base_url: str = DEFAULT_CDN_BASE_URL,
        fetcher: ModuleFetcher | None = None,
        esbuild_binary: str = "esbuild",
    ) -> None:
        self.files = files
        self.cdn_base_url = cdn_base_url if cdn_base_url.endswith("/") else cdn_base_url + "/"
        self.fetcher = fetcher or ModuleFetcher()
        self.esbuild_binary = esbuild_binary
        self.modules: dict[str, str] = {}
        self.deps: dict[str, dict[str, str]] = {}

    def bundle(self, entry: str) -> str:
        """Bundle starting from ``entry``.

        Raises:
            BundleError: If a relative import is missing from the file map or a fetch fails
        """
        entry_id = resolve_vfs(self.files, entry)
        if entry_id is None:
            raise BundleError(f"File not found in VFS: {entry}", entry)

        entry_code = to_commonjs(self._local_source(entry_id), require_name=ENTRY_REQUIRE, entry=True)
        self.deps[entry_id] = {}
        pending = self._link(entry_id, entry_code, ENTRY_REQUIRE)
        while pending:
            module_id = pending.pop(0)
            if module_id in self.modules:
                continue
            if is_url(module_id):
                code = to_commonjs(self.fetcher.fetch(module_id).text)
            else:
                code = to_commonjs(self._local_source(module_id))
            self.modules[module_id] = code
            self.deps[module_id] = {}
            pending.extend(self._link(module_id, code, "require"))

        logger.debug(f"Bundled '{entry_id}' with {len(self.modules)} module(s)")
        return self._emit(entry_id, entry_code)

    def _local_source(self, key: str) -> str:
        source = self.files[key]
        extension = posixpath.splitext(key)[1].lstrip(".").lower()
        if extension == "json":
            return f"module.exports = {source.strip() or 'null'};"
        return transpile(source, extension, key, self.esbuild_binary)

    def _link(self, module_id: str, code: str, require_name: str) -> list[str]:
        """Record the dependency map of ``module_id`` and return ids still to load."""
        found = []
        for specifier in find_requires(code, require_name):
            target = self._resolve(module_id, specifier)
            if target is None:
                continue
            self.deps[module_id][specifier] = target
            if target not in self.modules and target != module_id:
                found.append(target)
        return found

    def _resolve(self, importer: str, specifier: str) -> str | None:
        if is_url(specifier):
            return specifier
        if is_url(importer):
            if is_relative(specifier):
                return join_url(self.fetcher.fetch(importer).url, specifier)
            if is_builtin(specifier):
                return None
            return self.cdn_base_url + specifier
        if is_relative(specifier):
            path = join_relative(importer, specifier)
            key = resolve_vfs(self.files, path)
            if key is None:
                raise BundleError(f"File not found in VFS: {path}", path)
            return key
        if is_builtin(specifier):
            return None
        return self.cdn_base_url + specifier

    def _emit(self, entry_id: str, entry_code: str) -> str:
        parts = ["var __pgModules = {"]
        for module_id, code in self.modules.items():
            parts.append(f"{json.dumps(module_id)}: function (module, exports, require) {{\n{code}\n}},")
        parts.append("};")
        parts.append(f"var __pgDeps = {json.dumps(self.deps, sort_keys=True)};")
        parts.append(_RUNTIME)
        parts.append(f"var {ENTRY_REQUIRE} = __pgRequireFrom({json.dumps(entry_id)});")
        parts.append(entry_code)
        return "\n".join(parts)


def bundle(
    files: Mapping[str, str],
    entry: str,
    *,
    cdn_base_url: str = DEFAULT_CDN_BASE_URL,
    session: requests.Session | None = None,
    esbuild_binary: str = "esbuild",
) -> str:
    """Produce one script from ``files`` rooted at ``entry``; fetch cache is scoped to this call."""
    fetcher = ModuleFetcher(session=session)
    bundler = Bundler(files, cdn_base_url=cdn_base_url, fetcher=fetcher, esbuild_binary=esbuild_binary)
    return bundler.bundle(entry)
