"""
Subprocess-based sandbox executor.

A :class:`SandboxSession` owns one worker process for one run. Worker stdout
is read on a daemon thread; the run settles exactly once, either on the
worker's ``done`` message, on the wall-clock timer, on an unexpected worker
exit, or on :meth:`SandboxSession.terminate`. Whoever settles first wins and
the worker is always killed and reaped.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

from runner_core.config import EngineConfig
from runner_core.errors import ErrorKind
from runner_core.schemas import ExecutionResult, LogType
from sandbox import policy, protocol, render

logger = logging.getLogger(__name__)

LogCallback = Callable[[LogType, list[object]], None]
RenderCallback = Callable[[str], None]

TIMEOUT_ERROR = "Timeout"
STOPPED_ERROR = "Stopped"
REAP_TIMEOUT_S = 5.0

_LOG_TYPES = ("log", "error", "warn", "info")


@dataclass
class WorkerRun:
    """Everything a settled session produced."""

    result: ExecutionResult
    test_results: list[object] | None = None
    rendered: bool = False
    stdout_lines: list[str] = field(default_factory=list)


def _content_text(content: Sequence[object]) -> str:
    return " ".join(item if isinstance(item, str) else json.dumps(item, default=str) for item in content)


class SandboxSession:
    """
    One worker process and the single settlement of its run.

    On Unix platforms, CPU and memory limits are enforced via resource.setrlimit.
    On Windows, these limits degrade gracefully and only wall-clock timeout applies.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        timeout_ms: int = 5000,
        memory_limit_mb: int | None = 256,
        on_log: LogCallback | None = None,
        on_render: RenderCallback | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.command = list(command)
        self.timeout_ms = timeout_ms
        self.memory_limit_mb = memory_limit_mb
        self.on_log = on_log
        self.on_render = on_render
        self.env = dict(env) if env is not None else None

        self.future: Future[WorkerRun] = Future()
        self.process: subprocess.Popen[str] | None = None
        self._lock = threading.Lock()
        # Held while callbacks run and while the timeout notice is emitted
        self._delivery = threading.RLock()
        self._settled = False
        self._timer: threading.Timer | None = None
        self._stderr_reader: threading.Thread | None = None
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._worker_stderr: list[str] = []
        self._test_results: list[object] | None = None
        self._rendered = False
        self._started_at = 0.0

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def start(self, payload: Mapping[str, object]) -> Future[WorkerRun]:
        """Spawn the worker, post the request and arm the timeout."""
        self._started_at = time.perf_counter()
        try:
            self.process = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=self.env,
                preexec_fn=self._limit_resources() if os.name != "nt" else None,
            )
        except OSError as e:
            message = f"Could not start worker '{self.command[0]}': {e}"
            logger.error(message)
            self._settle(self._result(error=message, stderr=[message], kind=ErrorKind.INTERNAL))
            return self.future

        logger.debug(f"Worker {self.process.pid} started: {self.command[0]}")
        self._stderr_reader = threading.Thread(target=self._drain_stderr, daemon=True)
        self._stderr_reader.start()
        reader = threading.Thread(target=self._read_stdout, daemon=True)
        reader.start()

        self._timer = threading.Timer(self.timeout_ms / 1000, self.expire)
        self._timer.daemon = True
        self._timer.start()

        try:
            assert self.process.stdin is not None
            self.process.stdin.write(json.dumps(payload))
            self.process.stdin.close()
        except OSError as e:
            # The reader settles once the dead worker's stdout closes
            logger.warning(f"Could not deliver request to worker: {e}")
        return self.future

    def wait(self) -> WorkerRun:
        return self.future.result()

    def run(self, payload: Mapping[str, object]) -> WorkerRun:
        return self.start(payload).result()

    def expire(self) -> None:
        """Settle as timed out; a no-op when the run already settled."""
        seconds = self.timeout_ms / 1000
        result = ExecutionResult(
            stdout=[],
            stderr=[TIMEOUT_ERROR],
            duration_ms=float(self.timeout_ms),
            error=TIMEOUT_ERROR,
            error_kind=ErrorKind.TIMEOUT,
        )
        with self._delivery:
            if not self._claim():
                return
            logger.warning(f"Worker timed out after {seconds:g}s")
            self._emit_log("error", [f"Execution timed out after {seconds:g} seconds"])
        self._resolve(WorkerRun(result=result))

    def terminate(self) -> None:
        """Hard-kill the worker; an unsettled run settles as stopped."""
        self._settle(self._result(error=STOPPED_ERROR, stderr=[STOPPED_ERROR], kind=ErrorKind.RUNTIME))

    def handle_message(self, message: Mapping[str, object]) -> None:
        kind = message.get("type")
        if kind == protocol.MSG_LOG:
            log_type = message.get("logType")
            content = message.get("content")
            if log_type not in _LOG_TYPES:
                log_type = "log"
            if not isinstance(content, list):
                content = [content]
            with self._delivery:
                with self._lock:
                    if self._settled:
                        return
                    target = self._stderr if log_type in ("error", "warn") else self._stdout
                    target.append(_content_text(content))
                self._emit_log(cast(LogType, log_type), content)
        elif kind == protocol.MSG_RENDER:
            with self._delivery:
                with self._lock:
                    if self._settled or self._rendered:
                        return
                    self._rendered = True
                if self.on_render is not None:
                    self.on_render(str(message.get("html", "")))
        elif kind == protocol.MSG_TEST_RESULTS:
            results = message.get("results")
            with self._lock:
                if not self._settled and self._test_results is None and isinstance(results, list):
                    self._test_results = results
        elif kind == protocol.MSG_DONE:
            duration = message.get("durationMs")
            error = message.get("error")
            duration_ms = float(duration) if isinstance(duration, (int, float)) else self._elapsed_ms()
            self._settle(
                self._result(
                    error=str(error) if error else None,
                    duration_ms=duration_ms,
                    kind=ErrorKind.RUNTIME if error else None,
                )
            )
        else:
            logger.debug(f"Ignoring unknown worker message: {kind!r}")

    def _read_stdout(self) -> None:
        process = self.process
        assert process is not None and process.stdout is not None
        for line in process.stdout:
            line = line.rstrip("\n")
            if not line:
                continue
            try:
                message = json.loads(line)
            except json.JSONDecodeError:
                message = None
            if isinstance(message, dict) and "type" in message:
                self.handle_message(message)
            else:
                # Raw writes that bypassed the console hooks
                self.handle_message({"type": protocol.MSG_LOG, "logType": "log", "content": [line]})
            if self._settled:
                return

        process.wait()
        if self._stderr_reader is not None:
            self._stderr_reader.join(timeout=1.0)
        stderr = [line for line in self._worker_stderr if line.strip()]
        message = f"Worker exited with code {process.returncode} before finishing"
        self._settle(self._result(error=message, stderr=stderr or [message], kind=ErrorKind.RUNTIME))

    def _drain_stderr(self) -> None:
        process = self.process
        assert process is not None and process.stderr is not None
        for line in process.stderr:
            self._worker_stderr.append(line.rstrip("\n"))

    def _settle(self, run: WorkerRun) -> bool:
        if not self._claim():
            return False
        self._resolve(run)
        return True

    def _claim(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            return True

    def _resolve(self, run: WorkerRun) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._kill()
        self.future.set_result(run)

    def _kill(self) -> None:
        process = self.process
        if process is None:
            return
        if process.poll() is None:
            process.kill()
        try:
            process.wait(timeout=REAP_TIMEOUT_S)
        except subprocess.TimeoutExpired:
            logger.error(f"Worker {process.pid} did not exit after kill")

    def _result(
        self,
        *,
        error: str | None = None,
        stderr: list[str] | None = None,
        duration_ms: float | None = None,
        kind: ErrorKind | None = None,
    ) -> WorkerRun:
        result = ExecutionResult(
            stdout=list(self._stdout),
            stderr=list(self._stderr) + (stderr or []),
            duration_ms=duration_ms if duration_ms is not None else self._elapsed_ms(),
            error=error,
            error_kind=kind,
        )
        return WorkerRun(
            result=result,
            test_results=self._test_results,
            rendered=self._rendered,
            stdout_lines=list(self._stdout),
        )

    def _elapsed_ms(self) -> float:
        if not self._started_at:
            return 0.0
        return (time.perf_counter() - self._started_at) * 1000

    def _emit_log(self, log_type: LogType, content: list[object]) -> None:
        if self.on_log is None:
            return
        try:
            self.on_log(log_type, content)
        except Exception:
            logger.exception("Log callback failed")

    def _limit_resources(self):
        """Return a preexec_fn to enforce resource limits on Unix."""
        timeout_seconds = self.timeout_ms / 1000
        memory_limit_mb = self.memory_limit_mb

        def _apply_limits():
            try:
                import resource
            except ImportError:
                return
            cpu_seconds = max(1, int(timeout_seconds) + 1)
            resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds + 1))
            if memory_limit_mb is None:
                return
            memory_bytes = int(memory_limit_mb * 1024 * 1024)
            if hasattr(resource, "RLIMIT_AS"):
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
            elif hasattr(resource, "RLIMIT_DATA"):
                resource.setrlimit(resource.RLIMIT_DATA, (memory_bytes, memory_bytes))

        return _apply_limits


class SandboxExecutor:
    """Builds worker sessions for the JS family (Node) and for Python."""

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()

    def node_session(
        self,
        on_log: LogCallback | None = None,
        on_render: RenderCallback | None = None,
    ) -> SandboxSession:
        command = [
            self.config.node_binary,
            f"--max-old-space-size={self.config.sandbox_memory_limit_mb}",
            "-e",
            protocol.NODE_WORKER,
        ]
        # V8 reserves far more address space than it uses, so only the CPU limit applies
        return SandboxSession(
            command,
            timeout_ms=self.config.sandbox_timeout_ms,
            memory_limit_mb=None,
            on_log=on_log,
            on_render=on_render,
        )

    def python_session(self, on_log: LogCallback | None = None) -> SandboxSession:
        env = os.environ.copy()
        project_root = str(Path(__file__).resolve().parents[1])
        existing_pythonpath = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = (
            f"{project_root}{os.pathsep}{existing_pythonpath}"
            if existing_pythonpath
            else project_root
        )
        command = [self.config.python_binary or sys.executable, "-c", protocol.PYTHON_CHILD_TEMPLATE]
        return SandboxSession(
            command,
            timeout_ms=self.config.sandbox_timeout_ms,
            memory_limit_mb=self.config.sandbox_memory_limit_mb,
            on_log=on_log,
            env=env,
        )

    @staticmethod
    def node_payload(code: str, detect_render: bool = True) -> dict[str, object]:
        payload: dict[str, object] = {"type": protocol.MSG_EXECUTE, "code": code}
        if detect_render:
            payload["renderPatterns"] = list(render.RENDER_PATTERNS)
            payload["renderShell"] = list(render.document_shell(code))
        return payload

    @staticmethod
    def python_payload(code: str) -> dict[str, object]:
        return {"type": protocol.MSG_EXECUTE, "code": code, "allowedModules": list(policy.ALLOWED_MODULES)}
