"""Runner facade: one entry point for plain runs and test runs."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

import requests
from pydantic import ValidationError

from remote import RemoteDelegate
from runner.runners import DEFAULT_RUNNERS, EngineContext, LanguageRunner, RunnerFactory, build_runners
from runner_core.config import EngineConfig
from runner_core.errors import EngineError, ErrorKind
from runner_core.languages import extension_of
from runner_core.schemas import ExecutionResult, LogType, RunRequest, TestCase, TestRunReport, TestRunRequest
from sandbox.executor import LogCallback, RenderCallback

logger = logging.getLogger(__name__)


def _guard_log(on_log: LogCallback | None) -> LogCallback:
    def _deliver(log_type: LogType, content: list[object]) -> None:
        if on_log is None:
            return
        try:
            on_log(log_type, content)
        except Exception:
            logger.exception("Log callback failed")

    return _deliver


def _render_once(on_render: RenderCallback | None) -> RenderCallback | None:
    if on_render is None:
        return None
    delivered = False

    def _deliver(html: str) -> None:
        nonlocal delivered
        if delivered:
            return
        delivered = True
        on_render(html)

    return _deliver


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0] if error.errors() else {}
    return str(first.get("msg", error)).removeprefix("Value error, ")


class Runner:
    """
    Dispatches requests by file extension to exactly one language runner.

    The facade owns at most one sandbox worker at a time: starting a run
    kills whatever worker a previous run left alive. Public methods never
    raise for expected failures.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        http_session: requests.Session | None = None,
        delegate: RemoteDelegate | None = None,
        runners: tuple[RunnerFactory, ...] = DEFAULT_RUNNERS,
    ) -> None:
        self.config = config or EngineConfig()
        self.context = EngineContext(self.config, http_session=http_session, delegate=delegate)
        self.runners: list[LanguageRunner] = build_runners(self.context, runners)

    def runner_for(self, entry_file: str) -> LanguageRunner | None:
        extension = extension_of(entry_file)
        for runner in self.runners:
            if runner.supports(extension):
                return runner
        return None

    def run(
        self,
        files: Mapping[str, str],
        entry_file: str,
        on_log: LogCallback | None = None,
        on_render: RenderCallback | None = None,
    ) -> ExecutionResult:
        """Execute ``entry_file`` and stream its console output through ``on_log``."""
        log = _guard_log(on_log)
        try:
            request = RunRequest(files=dict(files), entry_file=entry_file)
        except ValidationError as e:
            message = _validation_message(e)
            log("error", [message])
            return ExecutionResult(stderr=[message], error=message, error_kind=ErrorKind.INTERNAL)

        runner = self.runner_for(request.entry_file)
        if runner is None:
            message = f"No runner found for file: {request.entry_file}"
            log("error", [message])
            return ExecutionResult(stderr=[message], error=message, error_kind=ErrorKind.UNSUPPORTED_LANGUAGE)

        logger.debug(f"Running {request.entry_file} with {type(runner).__name__}")
        try:
            return runner.run(request, log, _render_once(on_render))
        except EngineError as e:
            logger.error(f"{type(e).__name__} while running {request.entry_file}: {e}")
            log("error", [str(e)])
            return ExecutionResult(stderr=[str(e)], error=str(e), error_kind=e.kind)
        except Exception as e:
            logger.exception(f"Unexpected failure while running {request.entry_file}")
            message = f"Internal error: {e}"
            log("error", [message])
            return ExecutionResult(stderr=[message], error=message, error_kind=ErrorKind.INTERNAL)

    def run_tests(
        self,
        files: Mapping[str, str],
        entry_file: str,
        function_name: str,
        test_cases: Iterable[TestCase | Mapping[str, object]],
        on_log: LogCallback | None = None,
    ) -> TestRunReport:
        """Run every test case against ``function_name``; results are empty on any failure."""
        log = _guard_log(on_log)
        try:
            request = TestRunRequest(
                files=dict(files),
                entry_file=entry_file,
                function_name=function_name,
                test_cases=list(test_cases),
            )
        except ValidationError as e:
            log("error", [_validation_message(e)])
            return TestRunReport(results=[])

        runner = self.runner_for(request.entry_file)
        if runner is None:
            log("warn", [f"Test execution is not supported for {request.entry_file}"])
            return TestRunReport(results=[])

        logger.debug(f"Testing {request.entry_file}:{request.function_name} with {type(runner).__name__}")
        try:
            return runner.run_tests(request, log)
        except Exception as e:
            logger.exception(f"Unexpected failure while testing {request.entry_file}")
            log("error", [f"Internal error: {e}"])
            return TestRunReport(results=[])

    def stop(self) -> None:
        """Hard-kill the live sandbox worker, if any."""
        self.context.release()
