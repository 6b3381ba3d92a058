"""
Language runners: one strategy per family of file extensions.

Each runner turns a validated request into an ExecutionResult or a
TestRunReport. Expected failures are reported through the log callback and
the returned shapes; runners raise only on programming errors, which the
facade converts.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
import sqlite3
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

import requests

from bundler import bundle
from bundler.resolve import join_relative, normalize_path
from codegen import END_MARKER, START_MARKER, generate_harness, resolve_function_name
from remote import RemoteDelegate
from runner.js_harness import append_harness
from runner.results import extract_results, reconcile_results, results_from_entries
from runner_core.config import EngineConfig
from runner_core.errors import BundleError, ErrorKind
from runner_core.languages import extension_of, get_language
from runner_core.schemas import ExecutionResult, LanguageConfig, LogType, RunRequest, TestRunReport, TestRunRequest
from sandbox import render
from sandbox.executor import TIMEOUT_ERROR, LogCallback, RenderCallback, SandboxExecutor, SandboxSession, WorkerRun

logger = logging.getLogger(__name__)

SCRIPT_EXTENSIONS = ("js", "mjs", "ts", "tsx", "jsx")
HTML_EXTENSIONS = ("html", "htm")

NO_RESULTS_MESSAGE = "Could not parse test results: markers missing or output is not valid JSON"
JAVA_MAIN_RE = re.compile(r"static\s+void\s+main\s*\(")
JAVA_FALLBACK_MAIN = """

class Main {
    public static void main(String[] args) {
        System.out.println("Compiled successfully. Use Run Tests for challenge validation.");
    }
}
"""
RUST_MISSING_CRATE_RE = re.compile(
    r"unresolved import|undeclared crate|can't find crate|failed to resolve: use of undeclared crate", re.I
)
RUST_CRATE_HINT = (
    "\n\nHint: Remote Rust execution uses single-file rustc (no Cargo.toml), "
    "so external crates (for example `rand`) are not available."
)


class EngineContext:
    """Collaborators shared by the runners of one facade, plus its single worker slot."""

    def __init__(
        self,
        config: EngineConfig,
        http_session: requests.Session | None = None,
        delegate: RemoteDelegate | None = None,
    ) -> None:
        self.config = config
        self.http_session = http_session or requests.Session()
        self.executor = SandboxExecutor(config)
        self.delegate = delegate or RemoteDelegate(
            url=config.remote_url,
            timeout=config.remote_timeout_s,
            session=self.http_session,
        )
        self.current: SandboxSession | None = None

    def claim(self, session: SandboxSession) -> SandboxSession:
        """Make ``session`` the only live worker, killing any previous one."""
        self.release()
        self.current = session
        return session

    def release(self) -> None:
        previous, self.current = self.current, None
        if previous is not None and not previous.settled:
            logger.debug("Terminating previous sandbox worker")
            previous.terminate()

    def language(self, extension: str) -> LanguageConfig | None:
        return get_language(extension, self.config.languages_path)


class LanguageRunner(ABC):
    extensions: tuple[str, ...] = ()

    def __init__(self, context: EngineContext) -> None:
        self.context = context

    def supports(self, extension: str) -> bool:
        return extension in self.extensions

    @abstractmethod
    def run(self, request: RunRequest, on_log: LogCallback, on_render: RenderCallback | None) -> ExecutionResult:
        ...

    def run_tests(self, request: TestRunRequest, on_log: LogCallback) -> TestRunReport:
        name = self.display_name(request.entry_file)
        on_log("warn", [f"Test execution is not supported for {name}"])
        return TestRunReport(results=[])

    def display_name(self, entry_file: str) -> str:
        config = self.context.language(extension_of(entry_file))
        return config.name if config else entry_file

    @staticmethod
    def entry_source(request: RunRequest) -> str | None:
        return request.files.get(request.entry_file)

    @staticmethod
    def missing_entry(request: RunRequest, on_log: LogCallback) -> ExecutionResult:
        message = f"File not found: {request.entry_file}"
        on_log("error", [message])
        return ExecutionResult(stderr=[message], error=message, error_kind=ErrorKind.BUNDLE)


def _parsed_report(raw: str, on_log: LogCallback) -> TestRunReport:
    results = extract_results(raw, START_MARKER, END_MARKER)
    if results is None:
        on_log("error", [NO_RESULTS_MESSAGE])
        return TestRunReport(results=[])
    return TestRunReport(results=reconcile_results(results))


def _hide_result_block(on_log: LogCallback) -> LogCallback:
    """Wrap ``on_log`` so that the harness's marker block is not echoed to the user."""
    inside = False

    def _filtered(log_type: LogType, content: list[object]) -> None:
        nonlocal inside
        text = " ".join(str(item) for item in content)
        if START_MARKER in text:
            inside = True
            return
        if inside:
            if END_MARKER in text:
                inside = False
            return
        on_log(log_type, content)

    return _filtered


class ScriptRunner(LanguageRunner):
    """JavaScript family: bundle, then run in the Node worker."""

    extensions = SCRIPT_EXTENSIONS

    def _bundle(self, request: RunRequest, on_log: LogCallback) -> str | ExecutionResult:
        config = self.context.config
        try:
            return bundle(
                request.files,
                request.entry_file,
                cdn_base_url=config.cdn_base_url,
                session=self.context.http_session,
                esbuild_binary=config.esbuild_binary,
            )
        except BundleError as e:
            on_log("error", [str(e)])
            return ExecutionResult(stderr=[str(e)], error=str(e), error_kind=ErrorKind.BUNDLE)

    def run(self, request: RunRequest, on_log: LogCallback, on_render: RenderCallback | None) -> ExecutionResult:
        bundled = self._bundle(request, on_log)
        if isinstance(bundled, ExecutionResult):
            return bundled
        executor = self.context.executor
        session = self.context.claim(executor.node_session(on_log=on_log, on_render=on_render))
        return session.run(executor.node_payload(bundled)).result

    def run_tests(self, request: TestRunRequest, on_log: LogCallback) -> TestRunReport:
        source = self.entry_source(request)
        if source is None:
            self.missing_entry(request, on_log)
            return TestRunReport(results=[])
        bundled = self._bundle(request, on_log)
        if isinstance(bundled, ExecutionResult):
            return TestRunReport(results=[])

        function_name = resolve_function_name(extension_of(request.entry_file), source, request.function_name)
        code = append_harness(bundled, function_name, request.test_cases)
        executor = self.context.executor
        session = self.context.claim(executor.node_session(on_log=on_log))
        worker_run = session.run(executor.node_payload(code, detect_render=False))
        if worker_run.test_results is None:
            if worker_run.result.error != TIMEOUT_ERROR:
                on_log("error", ["Test harness finished without reporting results"])
            return TestRunReport(results=[])
        return TestRunReport(results=reconcile_results(results_from_entries(worker_run.test_results)))


class PythonRunner(LanguageRunner):
    """Python: runs in the local Python worker; tests use the generated Python harness."""

    extensions = ("py",)

    def _execute(self, code: str, on_log: LogCallback) -> WorkerRun:
        executor = self.context.executor
        session = self.context.claim(executor.python_session(on_log=on_log))
        return session.run(executor.python_payload(code))

    def run(self, request: RunRequest, on_log: LogCallback, on_render: RenderCallback | None) -> ExecutionResult:
        source = self.entry_source(request)
        if source is None:
            return self.missing_entry(request, on_log)
        return self._execute(source, on_log).result

    def run_tests(self, request: TestRunRequest, on_log: LogCallback) -> TestRunReport:
        source = self.entry_source(request)
        if source is None:
            self.missing_entry(request, on_log)
            return TestRunReport(results=[])
        function_name = resolve_function_name("py", source, request.function_name)
        harness = generate_harness("py", source, function_name, request.test_cases)
        if harness is None:
            return super().run_tests(request, on_log)
        worker_run = self._execute(harness, _hide_result_block(on_log))
        if worker_run.result.error == TIMEOUT_ERROR:
            return TestRunReport(results=[])
        return _parsed_report("\n".join(worker_run.stdout_lines), on_log)


_SCRIPT_SRC_RE = re.compile(r"""<script\b([^>]*?)\bsrc\s*=\s*["']([^"']+)["']([^>]*)>\s*</script>""", re.I)
_LINK_HREF_RE = re.compile(r"""<link\b[^>]*\bhref\s*=\s*["']([^"']+)["'][^>]*>""", re.I)


class HtmlRunner(LanguageRunner):
    """HTML preview: inline local assets and hand the page to the render callback."""

    extensions = HTML_EXTENSIONS

    def run(self, request: RunRequest, on_log: LogCallback, on_render: RenderCallback | None) -> ExecutionResult:
        start = time.perf_counter()
        content = self.entry_source(request)
        if not content:
            return self.missing_entry(request, on_log)

        document = self.inline_assets(request.files, request.entry_file, content)
        document = self.inject_jquery(document)
        if on_render is not None:
            on_render(document)
        return ExecutionResult(
            stdout=["Rendering HTML preview..."],
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    @staticmethod
    def _local_asset(files: Mapping[str, str], entry_file: str, reference: str) -> str | None:
        if reference.startswith(("http://", "https://", "//", "data:")):
            return None
        index = {normalize_path(key): key for key in files}
        for candidate in (normalize_path(reference), join_relative(entry_file, reference)):
            if candidate in index:
                return files[index[candidate]]
        return None

    def inline_assets(self, files: Mapping[str, str], entry_file: str, content: str) -> str:
        def _script(match: re.Match[str]) -> str:
            source = self._local_asset(files, entry_file, match.group(2))
            if source is None:
                return match.group(0)
            attributes = (match.group(1) + match.group(3)).strip()
            opening = f"<script {attributes}>" if attributes else "<script>"
            return opening + render.escape_script(source) + "</script>"

        def _link(match: re.Match[str]) -> str:
            source = self._local_asset(files, entry_file, match.group(1))
            if source is None or not match.group(1).lower().endswith(".css"):
                return match.group(0)
            return f"<style>\n{source}\n</style>"

        return _LINK_HREF_RE.sub(_link, _SCRIPT_SRC_RE.sub(_script, content))

    @staticmethod
    def inject_jquery(content: str) -> str:
        if "jquery" in content.lower() or not render.uses_jquery(content):
            return content
        tag = render.jquery_tag()
        for anchor in ("<head>", "<body>"):
            if anchor in content:
                return content.replace(anchor, f"{anchor}\n    {tag}", 1)
        return tag + "\n" + content


class SqlRunner(LanguageRunner):
    """SQL against a fresh in-memory SQLite database."""

    extensions = ("sql",)

    @staticmethod
    def statements(source: str) -> list[str]:
        return [statement.strip() for statement in source.split(";") if statement.strip()]

    def run(self, request: RunRequest, on_log: LogCallback, on_render: RenderCallback | None) -> ExecutionResult:
        source = self.entry_source(request)
        if source is None:
            return self.missing_entry(request, on_log)

        on_log("info", ["Running SQL against an in-memory SQLite database..."])
        start = time.perf_counter()
        stdout: list[str] = []
        connection = sqlite3.connect(":memory:")
        try:
            for index, statement in enumerate(self.statements(source), start=1):
                try:
                    cursor = connection.execute(statement)
                except sqlite3.Error as e:
                    message = f"Query {index}: {e}"
                    on_log("error", [message])
                    return ExecutionResult(
                        stdout=stdout,
                        stderr=[message],
                        duration_ms=(time.perf_counter() - start) * 1000,
                        error=message,
                        error_kind=ErrorKind.RUNTIME,
                    )
                if cursor.description is None:
                    connection.commit()
                    message = f"Query {index}: OK"
                    stdout.append(message)
                    on_log("info", [message])
                    continue
                columns = [column[0] for column in cursor.description]
                rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
                output = json.dumps(rows, indent=2, default=str)
                stdout.append(output)
                on_log("log", [output])
        finally:
            connection.close()
        return ExecutionResult(stdout=stdout, duration_ms=(time.perf_counter() - start) * 1000)


class RemoteRunner(LanguageRunner):
    """Compiled and native languages via the remote execution service."""

    def supports(self, extension: str) -> bool:
        config = self.context.language(extension)
        return config is not None and config.remote_capable

    def _prepare_source(self, extension: str, source: str, on_log: LogCallback) -> str:
        if extension == "java" and not JAVA_MAIN_RE.search(source):
            logger.warning("Java source has no main method; appending a fallback Main class")
            on_log("warn", ["No main(String[]) found. Injecting fallback main. Use Run Tests for challenge validation."])
            return source + JAVA_FALLBACK_MAIN
        return source

    @staticmethod
    def _with_rust_hint(extension: str, stderr: str) -> str:
        if extension != "rs" or not RUST_MISSING_CRATE_RE.search(stderr) or "single-file rustc" in stderr:
            return stderr
        return stderr + RUST_CRATE_HINT

    def _submit(self, config: LanguageConfig, source: str, entry_file: str) -> ExecutionResult:
        return self.context.delegate.execute_remote(config, source, posixpath.basename(entry_file))

    def run(self, request: RunRequest, on_log: LogCallback, on_render: RenderCallback | None) -> ExecutionResult:
        extension = extension_of(request.entry_file)
        config = self.context.language(extension)
        source = self.entry_source(request)
        if config is None:
            message = f"Unsupported language: {extension}"
            on_log("error", [message])
            return ExecutionResult(stderr=[message], error=message, error_kind=ErrorKind.UNSUPPORTED_LANGUAGE)
        if source is None:
            return self.missing_entry(request, on_log)

        source = self._prepare_source(extension, source, on_log)
        on_log("info", [f"Running {config.name} remotely..."])
        result = self._submit(config, source, request.entry_file)
        if result.error_kind == ErrorKind.REMOTE_TRANSPORT:
            on_log("error", [f"Remote Execution Error: {result.error}"])
            return result

        stderr = [self._with_rust_hint(extension, text) for text in result.stderr]
        for text in result.stdout:
            on_log("log", [text])
        for text in stderr:
            on_log("error", [text])
        return result.model_copy(update={"stderr": stderr})

    def run_tests(self, request: TestRunRequest, on_log: LogCallback) -> TestRunReport:
        extension = extension_of(request.entry_file)
        config = self.context.language(extension)
        source = self.entry_source(request)
        if config is None or source is None:
            if source is None:
                self.missing_entry(request, on_log)
            return TestRunReport(results=[])

        function_name = resolve_function_name(extension, source, request.function_name)
        harness = generate_harness(extension, source, function_name, request.test_cases)
        if harness is None:
            return super().run_tests(request, on_log)

        on_log("info", [f"Running {len(request.test_cases)} test case(s) for {config.name} remotely..."])
        result = self._submit(config, harness, request.entry_file)
        if result.error_kind == ErrorKind.REMOTE_TRANSPORT:
            on_log("error", [f"Remote Execution Error: {result.error}"])
            return TestRunReport(results=[])

        report = _parsed_report("\n".join(result.stdout), on_log)
        if not report.results:
            for text in result.stderr:
                on_log("error", [self._with_rust_hint(extension, text)])
        return report


RunnerFactory = Callable[[EngineContext], LanguageRunner]

# Checked in order; the remote runner accepts whatever the language table can send remotely
DEFAULT_RUNNERS: tuple[RunnerFactory, ...] = (ScriptRunner, PythonRunner, HtmlRunner, SqlRunner, RemoteRunner)


def build_runners(context: EngineContext, factories: tuple[RunnerFactory, ...] = DEFAULT_RUNNERS) -> list[LanguageRunner]:
    return [factory(context) for factory in factories]
