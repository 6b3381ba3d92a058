import shutil
import subprocess
from unittest.mock import MagicMock

import pytest
import requests

from bundler import Bundler, ModuleFetcher, bundle
from bundler.resolve import is_builtin, join_relative, join_url, normalize_path, resolve_vfs
from bundler.transform import find_requires, to_commonjs, transpile
from runner_core.errors import BundleError


def _response(url: str, text: str) -> MagicMock:
    resp = MagicMock()
    resp.url = url
    resp.text = text
    resp.raise_for_status.return_value = None
    return resp


def _session(pages: dict[str, str]) -> MagicMock:
    session = MagicMock()
    session.get.side_effect = lambda url, timeout=None: _response(url, pages[url])
    return session


def _node(code: str) -> str:
    completed = subprocess.run(["node", "-e", code], capture_output=True, text=True, timeout=30)
    assert completed.returncode == 0, completed.stderr
    return completed.stdout


def test_resolve_vfs_fallbacks() -> None:
    files = {"src/util.ts": "", "lib/index.js": "", "data.json": "{}", "./top.js": ""}

    assert resolve_vfs(files, "src/util") == "src/util.ts"
    assert resolve_vfs(files, "./lib") == "lib/index.js"
    assert resolve_vfs(files, "data.json") == "data.json"
    assert resolve_vfs(files, "top") == "./top.js"
    assert resolve_vfs(files, "missing") is None


def test_path_helpers() -> None:
    assert normalize_path("./a//b/../c.js") == "a/c.js"
    assert join_relative("src/main.js", "../lib/x") == "lib/x"
    assert join_relative("src/main.js", "/root.js") == "root.js"
    assert join_url("https://cdn.example/npm/pkg@1/lib/index.js", "./util") == "https://cdn.example/npm/pkg@1/lib/util.js"
    assert is_builtin("node:fs") and is_builtin("fs/promises") and not is_builtin("lodash")


def test_to_commonjs_rewrites_imports() -> None:
    source = (
        "import React, { useState as useS, useEffect } from 'react';\n"
        "import * as path from \"./path\";\n"
        "import './side-effect';\n"
    )

    code = to_commonjs(source)

    assert 'var __pgImport1 = require("react");' in code
    assert "var React = __pgDefault(__pgImport1);" in code
    assert "var { useState: useS, useEffect } = __pgImport1;" in code
    assert 'var path = require("./path");' in code
    assert 'require("./side-effect");' in code
    assert "import " not in code


def test_to_commonjs_collects_exports() -> None:
    source = "export const a = 1;\nexport function b() {}\nconst c = 2;\nexport { c as d };\nexport default 42;\n"

    code = to_commonjs(source)

    assert code.startswith('Object.defineProperty(exports, "__esModule", { value: true });')
    assert "const a = 1;" in code
    assert "exports.a = a;" in code
    assert "exports.b = b;" in code
    assert "exports.d = c;" in code
    assert "var __pgDefaultExport = 42;" in code
    assert "exports.default = __pgDefaultExport;" in code


def test_entry_module_keeps_plain_globals() -> None:
    code = to_commonjs("export function add(a, b) { return a + b; }\nconst x = require('./x');\n", "__pgEntryRequire", entry=True)

    assert code.startswith("function add(a, b)")
    assert "exports." not in code
    assert '__pgEntryRequire(\'./x\')' in code


def test_commonjs_source_is_untouched() -> None:
    source = "const fs = require('fs');\nmodule.exports = { x: 1 };\n"

    assert to_commonjs(source) == source


def test_find_requires_order_and_dedup() -> None:
    code = "require('a'); foo.require('skip'); require(\"b\"); require('a'); require(dynamic);"

    assert find_requires(code) == ["a", "b"]


def test_transpile_passes_through_without_esbuild(caplog: pytest.LogCaptureFixture) -> None:
    source = "const x: number = 1;"

    assert transpile(source, "ts", "main.ts", esbuild_binary="definitely-not-esbuild") == source
    assert "esbuild not found" in caplog.text
    assert transpile(source, "js", "main.js") == source


def test_bundle_missing_entry() -> None:
    with pytest.raises(BundleError, match="File not found in VFS: main.js"):
        bundle({"other.js": ""}, "main.js")


def test_bundle_missing_relative_import() -> None:
    with pytest.raises(BundleError) as excinfo:
        bundle({"main.js": "import { x } from './nope';"}, "main.js")
    assert excinfo.value.path == "nope"


def test_bundle_layout() -> None:
    files = {
        "main.js": "import { greet } from './lib/greet';\nimport data from './data.json';\nconsole.log(greet(data.name));\n",
        "lib/greet.js": "export function greet(name) { return 'hi ' + name; }\n",
        "data.json": '{"name": "ada"}',
    }

    code = bundle(files, "main.js")

    assert '"lib/greet.js": function (module, exports, require)' in code
    assert '"data.json": function (module, exports, require)' in code
    assert 'module.exports = {"name": "ada"};' in code
    assert 'var __pgEntryRequire = __pgRequireFrom("main.js");' in code
    assert code.rstrip().endswith("console.log(greet(data.name));")


def test_bundle_fetches_cdn_modules_once() -> None:
    pages = {
        "https://cdn.test/npm/left-pad": "var util = require('./util');\nmodule.exports = util.pad;\n",
        "https://cdn.test/npm/util.js": "exports.pad = function (s) { return '  ' + s; };\n",
    }
    session = _session(pages)
    files = {
        "main.js": "import pad from 'left-pad';\nimport fs from 'fs';\n",
        "other.js": "const pad = require('left-pad');\n",
    }
    fetcher = ModuleFetcher(session=session)
    bundler = Bundler(files, cdn_base_url="https://cdn.test/npm", fetcher=fetcher)

    code = bundler.bundle("main.js")

    assert session.get.call_count == 2
    assert fetcher.fetched_urls == list(pages)
    assert '"https://cdn.test/npm/left-pad": function' in code
    assert bundler.deps["https://cdn.test/npm/left-pad"] == {"./util": "https://cdn.test/npm/util.js"}
    assert "fs" not in bundler.deps["main.js"]


def test_fetch_failure_becomes_bundle_error() -> None:
    session = MagicMock()
    session.get.side_effect = requests.exceptions.ConnectionError("offline")

    with pytest.raises(BundleError, match="Failed to fetch https://cdn.jsdelivr.net/npm/lodash"):
        bundle({"main.js": "const _ = require('lodash');"}, "main.js", session=session)


def test_fetch_http_error_becomes_bundle_error() -> None:
    resp = MagicMock()
    resp.raise_for_status.side_effect = requests.exceptions.HTTPError("404 Client Error")
    session = MagicMock()
    session.get.return_value = resp

    with pytest.raises(BundleError, match="404"):
        ModuleFetcher(session=session).fetch("https://cdn.test/npm/missing")


@pytest.mark.skipif(shutil.which("node") is None, reason="node not installed")
def test_bundle_runs_under_node() -> None:
    files = {
        "main.mjs": (
            "import total, { double } from './math';\n"
            "import * as strings from './strings/index.js';\n"
            "console.log(total([1, 2, 3]), double(4), strings.shout('x'));\n"
        ),
        "math.js": "export const double = (n) => n * 2;\nexport default function total(xs) { return xs.reduce((a, b) => a + b, 0); }\n",
        "strings/index.js": "export * from './shout';\n",
        "strings/shout.js": "export function shout(s) { return s.toUpperCase() + '!'; }\n",
    }

    assert _node(bundle(files, "main.mjs")).strip() == "6 8 X!"
