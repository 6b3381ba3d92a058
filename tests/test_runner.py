import json
import shutil
import sys
import threading

import pytest

from codegen import END_MARKER, START_MARKER
from runner import Runner
from runner.runners import NO_RESULTS_MESSAGE, RUST_CRATE_HINT, EngineContext, LanguageRunner
from runner_core.config import EngineConfig
from runner_core.errors import ErrorKind, ResultParseError
from runner_core.schemas import ExecutionResult, TestCase
from sandbox.executor import STOPPED_ERROR, SandboxSession

needs_node = pytest.mark.skipif(shutil.which("node") is None, reason="node not installed")


class _Logs:
    def __init__(self) -> None:
        self.entries: list[tuple[str, list[object]]] = []

    def __call__(self, log_type: str, content: list[object]) -> None:
        self.entries.append((log_type, content))

    def texts(self, log_type: str | None = None) -> list[str]:
        return [
            " ".join(str(item) for item in content)
            for kind, content in self.entries
            if log_type is None or kind == log_type
        ]


class _FakeDelegate:
    def __init__(self, result: ExecutionResult) -> None:
        self.result = result
        self.calls: list[tuple[str, str, str]] = []

    def execute_remote(self, config, source: str, file_name: str = "main") -> ExecutionResult:
        self.calls.append((config.extension, source, file_name))
        return self.result


def _marker_output(entries: list[dict[str, object]]) -> str:
    return f"compiling...\n\n{START_MARKER}\n{json.dumps(entries)}\n{END_MARKER}\n"


def test_unsupported_extension() -> None:
    logs = _Logs()

    result = Runner().run({"style.css": "body {}"}, "style.css", on_log=logs)

    assert result.error_kind is ErrorKind.UNSUPPORTED_LANGUAGE
    assert logs.texts("error") == ["No runner found for file: style.css"]


def test_blank_entry_is_rejected() -> None:
    result = Runner().run({"main.py": ""}, "  ")

    assert result.error == "entry_file is required"


def test_missing_entry_file() -> None:
    logs = _Logs()

    result = Runner().run({"a.py": "print(1)"}, "b.py", on_log=logs)

    assert result.error == "File not found: b.py"
    assert result.error_kind is ErrorKind.BUNDLE


def test_python_run() -> None:
    logs = _Logs()

    result = Runner().run({"main.py": "for i in range(3):\n    print('line', i)\n"}, "main.py", on_log=logs)

    assert result.ok
    assert result.stdout == ["line 0", "line 1", "line 2"]
    assert logs.texts("log") == result.stdout


def test_broken_log_callback_does_not_break_run() -> None:
    def _explode(log_type: str, content: list[object]) -> None:
        raise RuntimeError("listener bug")

    result = Runner().run({"main.py": "print('ok')\n"}, "main.py", on_log=_explode)

    assert result.stdout == ["ok"]


def test_python_tests_isolate_cases() -> None:
    source = (
        "def divide(a, b):\n"
        "    print('dividing', a, b)\n"
        "    return a / b\n"
    )
    cases = [
        TestCase(name="exact", input=[6, 3], expected=2),
        TestCase(name="float", input=[1, 3], expected=0.3333333333333333),
        TestCase(name="by zero", input=[1, 0], expected=None),
        TestCase(name="wrong", input=[1, 1], expected=5),
    ]
    logs = _Logs()

    report = Runner().run_tests({"main.py": source}, "main.py", "divide", cases, on_log=logs)

    assert [result.name for result in report.results] == ["exact", "float", "by zero", "wrong"]
    assert [result.passed for result in report.results] == [True, True, False, False]
    assert report.results[2].error is True
    assert "ZeroDivisionError" in report.results[2].actual
    assert report.results[3].actual == 1
    assert "dividing 6 3" in logs.texts("log")
    assert not any(START_MARKER in text or END_MARKER in text for text in logs.texts())


def test_python_tests_resolve_declared_function() -> None:
    source = "def solve(xs):\n    return sorted(xs)\n"

    report = Runner().run_tests(
        {"main.py": source}, "main.py", "solution", [TestCase(name="sorts", input=[[3, 1, 2]], expected=[1, 2, 3])]
    )

    assert report.all_passed


def test_python_tests_with_syntax_error_report_nothing() -> None:
    logs = _Logs()

    report = Runner().run_tests(
        {"main.py": "def broken(:\n"}, "main.py", "broken", [TestCase(name="a", input=[], expected=1)], on_log=logs
    )

    assert report.results == []
    assert NO_RESULTS_MESSAGE in logs.texts("error")


def test_invalid_function_name_reports_nothing() -> None:
    logs = _Logs()

    report = Runner().run_tests({"main.py": ""}, "main.py", "1bad", [], on_log=logs)

    assert report.results == []
    assert logs.texts("error")


def test_sql_run() -> None:
    source = (
        "CREATE TABLE users(id INTEGER PRIMARY KEY, name TEXT);\n"
        "INSERT INTO users(name) VALUES ('ada'), ('grace');\n"
        "SELECT id, name FROM users ORDER BY id;\n"
    )
    logs = _Logs()

    result = Runner().run({"query.sql": source}, "query.sql", on_log=logs)

    assert result.ok
    assert result.stdout[:2] == ["Query 1: OK", "Query 2: OK"]
    assert json.loads(result.stdout[2]) == [{"id": 1, "name": "ada"}, {"id": 2, "name": "grace"}]


def test_sql_error_stops_at_failing_statement() -> None:
    result = Runner().run({"query.sql": "SELECT 1;\nSELECT * FROM missing;\nSELECT 2;"}, "query.sql")

    assert result.error == "Query 2: no such table: missing"
    assert result.error_kind is ErrorKind.RUNTIME
    assert len(result.stdout) == 1


def test_html_render_inlines_assets_once() -> None:
    files = {
        "site/index.html": (
            "<html><head><link rel=\"stylesheet\" href=\"style.css\"></head>"
            "<body><p id=\"x\"></p><script src=\"./js/app.js\"></script></body></html>"
        ),
        "site/style.css": "p { color: red; }",
        "site/js/app.js": "$('#x').text('hello');",
    }
    pages: list[str] = []

    result = Runner().run(files, "site/index.html", on_render=pages.append)

    assert result.stdout == ["Rendering HTML preview..."]
    assert len(pages) == 1
    page = pages[0]
    assert "<style>\np { color: red; }\n</style>" in page
    assert "<script>$('#x').text('hello');</script>" in page
    assert page.index("jquery") < page.index("$('#x')")


def test_html_has_no_test_support() -> None:
    logs = _Logs()

    report = Runner().run_tests(
        {"index.html": "<p></p>"}, "index.html", "f", [TestCase(name="a", input=[], expected=1)], on_log=logs
    )

    assert report.results == []
    assert logs.texts("warn") == ["Test execution is not supported for HTML"]


def test_remote_run_injects_java_main() -> None:
    delegate = _FakeDelegate(ExecutionResult(stdout=["Compiled successfully."], duration_ms=12.0))
    logs = _Logs()
    source = "public class Solution {\n    int twice(int x) { return 2 * x; }\n}\n"

    result = Runner(delegate=delegate).run({"Solution.java": source}, "Solution.java", on_log=logs)

    assert result.ok
    extension, submitted, file_name = delegate.calls[0]
    assert (extension, file_name) == ("java", "Solution.java")
    assert "public static void main(String[] args)" in submitted
    assert logs.texts("warn")
    assert "Running Java remotely..." in logs.texts("info")
    assert "Compiled successfully." in logs.texts("log")


def test_remote_run_keeps_java_main() -> None:
    delegate = _FakeDelegate(ExecutionResult())
    source = "class Main { public static void main(String[] args) {} }"

    Runner(delegate=delegate).run({"Main.java": source}, "Main.java")

    assert delegate.calls[0][1] == source


def test_remote_rust_crate_hint() -> None:
    delegate = _FakeDelegate(
        ExecutionResult(stderr=["error[E0432]: unresolved import `rand`"], error="Execution failed", error_kind=ErrorKind.RUNTIME)
    )
    logs = _Logs()

    result = Runner(delegate=delegate).run({"main.rs": "use rand::Rng;\nfn main() {}"}, "main.rs", on_log=logs)

    assert result.stderr[0].endswith(RUST_CRATE_HINT)
    assert logs.texts("error")[0].endswith(RUST_CRATE_HINT)


def test_remote_transport_error_is_logged() -> None:
    delegate = _FakeDelegate(
        ExecutionResult(stderr=["connection refused"], error="connection refused", error_kind=ErrorKind.REMOTE_TRANSPORT)
    )
    logs = _Logs()

    result = Runner(delegate=delegate).run({"main.go": "package main"}, "main.go", on_log=logs)

    assert result.error_kind is ErrorKind.REMOTE_TRANSPORT
    assert logs.texts("error") == ["Remote Execution Error: connection refused"]


def test_remote_tests_parse_marker_block() -> None:
    entries = [
        {"name": "a", "passed": False, "actual": 0.30000000000000004, "expected": 0.3},
        {"name": "b", "passed": False, "actual": 1, "expected": 2},
    ]
    delegate = _FakeDelegate(ExecutionResult(stdout=[_marker_output(entries)]))
    cases = [TestCase(name="a", input=[0.1, 0.2], expected=0.3), TestCase(name="b", input=[0, 1], expected=2)]
    source = "package main\n\nfunc Add(a float64, b float64) float64 { return a + b }\n"

    report = Runner(delegate=delegate).run_tests({"main.go": source}, "main.go", "Add", cases)

    assert [result.passed for result in report.results] == [True, False]
    submitted = delegate.calls[0][1]
    assert START_MARKER in submitted
    assert "Add(" in submitted


def test_remote_tests_without_markers_log_stderr() -> None:
    delegate = _FakeDelegate(
        ExecutionResult(stdout=["partial"], stderr=["Main.java:3: error: ';' expected"], error="Execution failed")
    )
    logs = _Logs()
    source = "class Solution { static int f(int x) { return x } }"

    report = Runner(delegate=delegate).run_tests(
        {"Solution.java": source}, "Solution.java", "f", [TestCase(name="a", input=[1], expected=1)], on_log=logs
    )

    assert report.results == []
    assert NO_RESULTS_MESSAGE in logs.texts("error")
    assert "Main.java:3: error: ';' expected" in logs.texts("error")


def test_remote_language_without_harness() -> None:
    delegate = _FakeDelegate(ExecutionResult())
    logs = _Logs()

    report = Runner(delegate=delegate).run_tests(
        {"main.dart": "int f() => 1;"}, "main.dart", "f", [TestCase(name="a", input=[], expected=1)], on_log=logs
    )

    assert report.results == []
    assert logs.texts("warn") == ["Test execution is not supported for Dart"]
    assert delegate.calls == []


def test_unexpected_runner_failure_is_internal_error() -> None:
    class _Exploding(LanguageRunner):
        extensions = ("py",)

        def run(self, request, on_log, on_render):
            raise RuntimeError("boom")

    logs = _Logs()

    result = Runner(runners=(_Exploding,)).run({"main.py": ""}, "main.py", on_log=logs)

    assert result.error == "Internal error: boom"
    assert result.error_kind is ErrorKind.INTERNAL


def test_engine_error_keeps_its_kind() -> None:
    class _Unparseable(LanguageRunner):
        extensions = ("py",)

        def run(self, request, on_log, on_render):
            raise ResultParseError("No usable output from worker")

    logs = _Logs()

    result = Runner(runners=(_Unparseable,)).run({"main.py": ""}, "main.py", on_log=logs)

    assert result.error == "No usable output from worker"
    assert result.error_kind is ErrorKind.RESULT_PARSE
    assert logs.texts("error") == ["No usable output from worker"]


def test_claiming_a_worker_stops_the_previous_one() -> None:
    context = EngineContext(EngineConfig())
    first = SandboxSession([sys.executable, "-c", "import time; time.sleep(30)"], timeout_ms=60000)
    first.start({"type": "execute", "code": ""})
    context.claim(first)

    second = SandboxSession([sys.executable, "-c", "import time; time.sleep(30)"], timeout_ms=60000)
    second.start({"type": "execute", "code": ""})
    context.claim(second)

    assert first.wait().result.error == STOPPED_ERROR
    assert first.alive is False
    assert second.alive is True

    context.release()
    assert second.wait().result.error == STOPPED_ERROR


def test_stop_from_log_callback_ends_run() -> None:
    runner = Runner(EngineConfig(sandbox_timeout_ms=5000))
    outcome: list[ExecutionResult] = []

    def _on_log(log_type: str, content: list[object]) -> None:
        if content == ["stop me"]:
            runner.stop()

    worker = threading.Thread(
        target=lambda: outcome.append(
            runner.run({"main.py": "print('stop me')\nwhile True:\n    pass\n"}, "main.py", on_log=_on_log)
        ),
        daemon=True,
    )
    worker.start()
    worker.join(timeout=15)

    assert not worker.is_alive()
    assert outcome[0].error == STOPPED_ERROR


@needs_node
def test_js_run_with_local_imports() -> None:
    files = {
        "src/main.js": "import { greet } from './greet';\nconsole.log(greet('node'));\n",
        "src/greet.js": "export const greet = (name) => `hello ${name}`;\n",
    }
    logs = _Logs()

    result = Runner().run(files, "src/main.js", on_log=logs)

    assert result.ok
    assert result.stdout == ["hello node"]


@needs_node
def test_js_bundle_error_is_reported() -> None:
    logs = _Logs()

    result = Runner().run({"main.js": "import x from './missing';"}, "main.js", on_log=logs)

    assert result.error_kind is ErrorKind.BUNDLE
    assert logs.texts("error") == ["File not found in VFS: missing"]


@needs_node
def test_js_tests() -> None:
    source = (
        "export async function add(a, b) {\n"
        "  if (a < 0) throw new Error('negative');\n"
        "  return a + b;\n"
        "}\n"
    )
    cases = [
        TestCase(name="sum", input=[1, 2], expected=3),
        TestCase(name="float", input=[0.1, 0.2], expected=0.3),
        TestCase(name="throws", input=[-1, 2], expected=1),
    ]

    report = Runner().run_tests({"main.js": source}, "main.js", "add", cases)

    assert [result.passed for result in report.results] == [True, True, False]
    assert report.results[2].error is True
    assert report.results[2].actual == "negative"
