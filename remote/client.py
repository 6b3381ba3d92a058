"""Client for the remote execution service."""

from __future__ import annotations

import logging
import time

import requests
from pydantic import ValidationError

from runner_core.errors import ErrorKind, RemoteTransportError
from runner_core.schemas import BaseSchema, ExecutionResult, LanguageConfig

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_URL = "https://emkc.org/api/v2/piston/execute"
EXECUTION_FAILED = "Execution failed"


class StageOutput(BaseSchema):
    stdout: str | None = ""
    stderr: str | None = ""
    code: int | None = None


class ServiceResponse(BaseSchema):
    """Accepted response shape; anything else is a protocol error."""

    run: StageOutput
    compile: StageOutput | None = None


def _lines(text: str | None) -> list[str]:
    return [text] if text else []


class RemoteDelegate:
    """Submits one source file per call to the execution service."""

    def __init__(
        self,
        url: str = DEFAULT_SERVICE_URL,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def request_body(self, config: LanguageConfig, source: str, file_name: str) -> dict[str, object]:
        return {
            "language": config.runtime_id,
            "version": config.runtime_version,
            "files": [{"name": file_name, "content": source}],
        }

    def submit(self, config: LanguageConfig, source: str, file_name: str) -> ServiceResponse:
        """Perform the round trip.

        Raises:
            RemoteTransportError: On network failure, HTTP error status or a malformed response
        """
        body = self.request_body(config, source, file_name)
        logger.debug(f"Submitting {file_name} to {self.url} as {config.runtime_id} {config.runtime_version}")
        try:
            resp = self.session.post(self.url, json=body, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.exceptions.JSONDecodeError as e:
            raise RemoteTransportError(f"Invalid response from execution server: {e}") from e
        except requests.exceptions.RequestException as e:
            raise RemoteTransportError(str(e)) from e
        except ValueError as e:
            raise RemoteTransportError(f"Invalid response from execution server: {e}") from e

        try:
            return ServiceResponse.from_dict(payload if isinstance(payload, dict) else {})
        except ValidationError as e:
            raise RemoteTransportError("Invalid response from execution server") from e

    def execute_remote(self, config: LanguageConfig, source: str, file_name: str = "main") -> ExecutionResult:
        """Run ``source`` remotely; never raises for transport or protocol failures."""
        start = time.perf_counter()
        try:
            response = self.submit(config, source, file_name)
        except RemoteTransportError as e:
            logger.warning(f"Remote execution failed: {e}")
            return ExecutionResult(
                stdout=[],
                stderr=[str(e)],
                duration_ms=0.0,
                error=str(e),
                error_kind=ErrorKind.REMOTE_TRANSPORT,
            )
        duration_ms = (time.perf_counter() - start) * 1000

        stderr = _lines(response.run.stderr)
        compile_stage = response.compile
        compile_failed = compile_stage is not None and compile_stage.code not in (None, 0)
        failed = compile_failed or response.run.code not in (None, 0)
        if compile_failed and compile_stage.stderr and compile_stage.stderr not in stderr:
            stderr.insert(0, compile_stage.stderr)
        return ExecutionResult(
            stdout=_lines(response.run.stdout),
            stderr=stderr,
            duration_ms=duration_ms,
            error=EXECUTION_FAILED if failed else None,
            error_kind=ErrorKind.RUNTIME if failed else None,
        )


def execute_remote(
    config: LanguageConfig,
    source: str,
    file_name: str = "main",
    *,
    url: str = DEFAULT_SERVICE_URL,
    timeout: float | None = None,
    session: requests.Session | None = None,
) -> ExecutionResult:
    return RemoteDelegate(url=url, timeout=timeout, session=session).execute_remote(config, source, file_name)
