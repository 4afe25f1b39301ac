"""Failure taxonomy shared by every scan component."""

import asyncio
import errno
import socket
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import httpx

from netsage.exceptions import (
    CommandFailedError,
    CommandTimeoutError,
    InvalidTargetError,
    ToolNotFoundError,
)


class ErrorKind(StrEnum):
    """Classified failure kinds."""

    TIMEOUT = "TIMEOUT"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    CONNECTION_RESET = "CONNECTION_RESET"
    HOST_NOT_FOUND = "HOST_NOT_FOUND"
    FIREWALL_BLOCK = "FIREWALL_BLOCK"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    PROCESS_ERROR = "PROCESS_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    NO_RESULTS = "NO_RESULTS"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Checked in order; the first matching keyword wins.
_MESSAGE_RULES: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.TIMEOUT, ("timed out", "timeout", "etimedout")),
    (ErrorKind.CONNECTION_REFUSED, ("connection refused", "econnrefused", "refused")),
    (ErrorKind.CONNECTION_RESET, ("connection reset", "econnreset", "reset by peer", "broken pipe")),
    (
        ErrorKind.HOST_NOT_FOUND,
        (
            "failed to resolve",
            "name or service not known",
            "nodename nor servname",
            "enotfound",
            "no address associated",
            "getaddrinfo",
            "unknown host",
            "host not found",
            "no route to host",
            "network is unreachable",
            "ehostunreach",
        ),
    ),
    (ErrorKind.FIREWALL_BLOCK, ("firewall", "filtered", "blocked", "waf", "access denied")),
    (ErrorKind.RATE_LIMIT_EXCEEDED, ("rate limit", "too many requests", "429", "throttl")),
    (
        ErrorKind.AUTHENTICATION_ERROR,
        ("authentication", "unauthorized", "401", "proxy authentication", "407"),
    ),
    (
        ErrorKind.PERMISSION_DENIED,
        ("requires root", "root privileges", "permission denied", "operation not permitted", "eacces"),
    ),
    (
        ErrorKind.CONFIGURATION_ERROR,
        ("not installed", "not found in path", "command not found", "no such file", "enoent"),
    ),
    (ErrorKind.INVALID_INPUT, ("invalid", "malformed", "illegal", "unrecognized option")),
    (ErrorKind.PROCESS_ERROR, ("exit code", "exited with", "process", "quitting")),
]

_STATUS_KINDS = {
    401: ErrorKind.AUTHENTICATION_ERROR,
    403: ErrorKind.FIREWALL_BLOCK,
    407: ErrorKind.AUTHENTICATION_ERROR,
    429: ErrorKind.RATE_LIMIT_EXCEEDED,
}

_ERRNO_KINDS = {
    errno.ECONNREFUSED: ErrorKind.CONNECTION_REFUSED,
    errno.ECONNRESET: ErrorKind.CONNECTION_RESET,
    errno.EHOSTUNREACH: ErrorKind.HOST_NOT_FOUND,
    errno.ENETUNREACH: ErrorKind.HOST_NOT_FOUND,
    errno.ETIMEDOUT: ErrorKind.TIMEOUT,
    errno.EACCES: ErrorKind.PERMISSION_DENIED,
    errno.EPERM: ErrorKind.PERMISSION_DENIED,
}


def classify_message(message: str) -> ErrorKind:
    """Classify a free-text error message by keyword."""
    lowered = (message or "").lower()
    if not lowered.strip():
        return ErrorKind.UNKNOWN_ERROR
    for kind, keywords in _MESSAGE_RULES:
        if any(keyword in lowered for keyword in keywords):
            return kind
    return ErrorKind.UNKNOWN_ERROR


def _classify_exception(exc: BaseException) -> ErrorKind | None:
    if isinstance(exc, InvalidTargetError):
        return ErrorKind.INVALID_INPUT
    if isinstance(exc, ToolNotFoundError):
        return ErrorKind.CONFIGURATION_ERROR
    if isinstance(exc, CommandTimeoutError | asyncio.TimeoutError | httpx.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(exc, CommandFailedError):
        kind = classify_message(exc.detail)
        return kind if kind is not ErrorKind.UNKNOWN_ERROR else ErrorKind.PROCESS_ERROR
    if isinstance(exc, httpx.HTTPStatusError):
        return _STATUS_KINDS.get(exc.response.status_code)
    if isinstance(exc, httpx.ProxyError):
        return classify_message(str(exc)) if str(exc) else ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, socket.gaierror):
        return ErrorKind.HOST_NOT_FOUND
    if isinstance(exc, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, ConnectionResetError | BrokenPipeError):
        return ErrorKind.CONNECTION_RESET
    if isinstance(exc, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    if isinstance(exc, FileNotFoundError):
        return ErrorKind.CONFIGURATION_ERROR
    if isinstance(exc, OSError) and exc.errno in _ERRNO_KINDS:
        return _ERRNO_KINDS[exc.errno]
    if isinstance(exc, httpx.ConnectError):
        # httpx wraps the OS error; fall through to the message table.
        cause = exc.__cause__ or exc.__context__
        if cause is not None and cause is not exc:
            nested = _classify_exception(cause)
            if nested is not None:
                return nested
        return None
    return None


def classify_error(error: BaseException | str | None) -> ErrorKind:
    """
    Map a raw failure to an ``ErrorKind``.

    Exception types are checked first, then the message text is matched
    against an ordered keyword table. Unmatched failures are UNKNOWN_ERROR.
    """
    if error is None:
        return ErrorKind.UNKNOWN_ERROR
    if isinstance(error, str):
        return classify_message(error)
    kind = _classify_exception(error)
    if kind is not None:
        return kind
    return classify_message(str(error))


def classify_status(status_code: int) -> ErrorKind | None:
    """Kind for an HTTP status that signals blocking, throttling or auth; None otherwise."""
    return _STATUS_KINDS.get(status_code)


def describe_error(error: BaseException) -> str:
    """Return a human readable message for an exception."""
    text = str(error).strip()
    return text or error.__class__.__name__


@dataclass
class ErrorRecord:
    """A classified failure attributed to one component."""

    component: str
    kind: ErrorKind
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_exception(cls, component: str, exc: BaseException) -> "ErrorRecord":
        return cls(component=component, kind=classify_error(exc), message=describe_error(exc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "kind": self.kind.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ScanStatus:
    """Outcome of one scan component."""

    success: bool = False
    error_kind: ErrorKind | None = None
    message: str = ""
    results_found: bool = False
    skipped: bool = False

    @classmethod
    def ok(cls, results_found: bool, message: str = "") -> "ScanStatus":
        return cls(success=True, results_found=results_found, message=message)

    @classmethod
    def failed(cls, kind: ErrorKind, message: str) -> "ScanStatus":
        return cls(success=False, error_kind=kind, message=message)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ScanStatus":
        return cls.failed(classify_error(exc), describe_error(exc))

    @classmethod
    def not_run(cls, message: str) -> "ScanStatus":
        return cls(success=False, message=message, skipped=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "results_found": self.results_found,
            "skipped": self.skipped,
        }
