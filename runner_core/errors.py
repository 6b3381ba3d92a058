"""Error taxonomy and classification."""

from enum import Enum


class ErrorKind(str, Enum):
    BUNDLE = "bundle"
    TIMEOUT = "timeout"
    RUNTIME = "runtime"
    HARNESS_UNSUPPORTED = "harness_unsupported"
    RESULT_PARSE = "result_parse"
    REMOTE_TRANSPORT = "remote_transport"
    UNSUPPORTED_LANGUAGE = "unsupported_language"
    INTERNAL = "internal"


class EngineError(Exception):
    """Base class for expected engine failures."""

    kind: ErrorKind = ErrorKind.INTERNAL


class BundleError(EngineError):
    kind = ErrorKind.BUNDLE

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class SandboxTimeout(EngineError):
    kind = ErrorKind.TIMEOUT


class RemoteTransportError(EngineError):
    kind = ErrorKind.REMOTE_TRANSPORT


class HarnessUnsupported(EngineError):
    kind = ErrorKind.HARNESS_UNSUPPORTED


class ResultParseError(EngineError):
    kind = ErrorKind.RESULT_PARSE

