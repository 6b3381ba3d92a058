"""
Worker protocol for sandbox execution.

Host and worker exchange newline-delimited JSON. The host writes a single
``{"type": "execute", "code": ...}`` request to the worker's stdin; the worker
answers on stdout with any number of ``log`` messages, at most one ``render``,
at most one ``test-results`` and exactly one terminal ``done``.
"""

from __future__ import annotations

import builtins
import io
import json
import sys
import time
from collections.abc import Callable
from typing import cast

from sandbox import policy

MSG_EXECUTE = "execute"
MSG_LOG = "log"
MSG_RENDER = "render"
MSG_TEST_RESULTS = "test-results"
MSG_DONE = "done"

PYTHON_CHILD_TEMPLATE = """
from sandbox.protocol import child_main
child_main()
""".strip()

NODE_WORKER = r"""
"use strict";
const util = require("util");
globalThis.require = require;

const post = (message) => { process.stdout.write(JSON.stringify(message) + "\n"); };
const describe = (err) => (err && err.message !== undefined ? String(err.message) : String(err));

const plain = (value) => {
  if (value === undefined) return "undefined";
  if (value instanceof Error) return value.stack || String(value);
  if (typeof value === "number" && !Number.isFinite(value)) return String(value);
  if (typeof value === "bigint" || typeof value === "symbol" || typeof value === "function") return String(value);
  if (value === null || typeof value !== "object") return value;
  try {
    return JSON.parse(JSON.stringify(value));
  } catch (err) {
    return util.inspect(value);
  }
};

for (const logType of ["log", "error", "warn", "info"]) {
  console[logType] = (...args) => post({ type: "log", logType, content: args.map(plain) });
}
console.debug = console.log;

let started = performance.now();
let finished = false;
let failure = null;

const fail = (err) => {
  if (failure === null) failure = describe(err);
  post({ type: "log", logType: "error", content: [describe(err)] });
};

const finish = () => {
  if (finished) return;
  finished = true;
  post({ type: "done", durationMs: performance.now() - started, error: failure });
};

process.on("uncaughtException", fail);
process.on("unhandledRejection", fail);
process.on("beforeExit", finish);
process.on("exit", finish);

globalThis.__pgPost = post;

const execute = (request) => {
  const code = String(request.code || "");
  const patterns = request.renderPatterns || [];
  if (patterns.some((pattern) => code.includes(pattern))) {
    const shell = request.renderShell || ["", ""];
    post({ type: "render", html: shell[0] + code.replace(/<\/script/gi, "<\\/script") + shell[1] });
    finish();
    return;
  }
  started = performance.now();
  try {
    (0, eval)(code);
  } catch (err) {
    fail(err);
  }
};

let raw = "";
process.stdin.setEncoding("utf8");
process.stdin.on("data", (chunk) => { raw += chunk; });
process.stdin.on("end", () => {
  let request;
  try {
    request = JSON.parse(raw);
  } catch (err) {
    fail("Invalid request: " + describe(err));
    finish();
    return;
  }
  if (request.type !== "execute") {
    fail("Unknown message type: " + request.type);
    finish();
    return;
  }
  execute(request);
});
""".strip()


def _load_payload() -> dict[str, object]:
    raw = sys.stdin.read()
    if not raw:
        return {}
    try:
        loaded = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return cast(dict[str, object], loaded) if isinstance(loaded, dict) else {}


def _format_error(exc: BaseException) -> str:
    return f"{exc.__class__.__name__}: {exc}"


class LogStream(io.TextIOBase):
    """Text stream that turns every written line into a ``log`` message."""

    def __init__(self, post: Callable[[dict[str, object]], None], log_type: str) -> None:
        super().__init__()
        self._post = post
        self._log_type = log_type
        self._pending = ""

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        self._pending += text
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            self._emit(line)
        return len(text)

    def flush(self) -> None:
        if self._pending:
            line, self._pending = self._pending, ""
            self._emit(line)

    def _emit(self, line: str) -> None:
        self._post({"type": MSG_LOG, "logType": self._log_type, "content": [line]})


def child_main() -> None:
    """Entry point for the Python worker process."""
    channel = sys.stdout

    def post(message: dict[str, object]) -> None:
        channel.write(json.dumps(message, default=str) + "\n")
        channel.flush()

    payload = _load_payload()
    if payload.get("type") != MSG_EXECUTE:
        post({"type": MSG_LOG, "logType": "error", "content": ["Invalid request"]})
        post({"type": MSG_DONE, "durationMs": 0, "error": "Invalid request"})
        return

    code = str(payload.get("code", ""))
    allowed_modules = cast(list[str], payload.get("allowedModules", list(policy.ALLOWED_MODULES)))
    stdout_stream = LogStream(post, "log")
    stderr_stream = LogStream(post, "error")
    sys.stdout, sys.stderr = stdout_stream, stderr_stream

    error: str | None = None
    start = time.perf_counter()
    try:
        exec_fn = builtins.exec
        compiled = compile(code, "main.py", "exec")
        namespace: dict[str, object] = {
            "__name__": "__main__",
            "__builtins__": policy.restricted_builtins(
                allowed_modules=allowed_modules,
                blocked_modules=policy.BLOCKED_MODULES,
            ),
        }
        start = time.perf_counter()
        exec_fn(compiled, namespace, namespace)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            error = f"SystemExit: {exc.code}"
    except BaseException as exc:  # noqa: BLE001 - capture all child errors
        error = _format_error(exc)
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        stdout_stream.flush()
        stderr_stream.flush()
        sys.stdout, sys.stderr = sys.__stdout__, sys.__stderr__

    if error is not None:
        post({"type": MSG_LOG, "logType": "error", "content": [error]})
    post({"type": MSG_DONE, "durationMs": duration_ms, "error": error})


if __name__ == "__main__":
    child_main()
