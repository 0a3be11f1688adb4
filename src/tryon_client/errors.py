from __future__ import annotations

from enum import Enum
from typing import Literal, TypedDict


class TryOnErrorCode(str, Enum):
    """Machine-readable failure codes surfaced to callers.

    Server-supplied codes (job failures, error envelopes) are passed through
    verbatim as plain strings and never coerced into this enum.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    REMOTE_ERROR = "REMOTE_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    MISSING_IMAGE_URL = "MISSING_IMAGE_URL"
    UNKNOWN_STATUS = "UNKNOWN_STATUS"
    PROCESSING_FAILURE = "PROCESSING_FAILURE"
    POLLING_TIMEOUT = "POLLING_TIMEOUT"
    POLLING_CANCELLED = "POLLING_CANCELLED"
    ALL_STRATEGIES_EXHAUSTED = "ALL_STRATEGIES_EXHAUSTED"
    IMAGE_DOWNLOAD_FAILED = "IMAGE_DOWNLOAD_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class TryOnError(Exception):
    """Base error carrying a structured code and a human-readable message."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = _code_value(code)
        self.message = message


def _code_value(code: str) -> str:
    # TryOnErrorCode members are str subclasses; keep "NETWORK_ERROR", not the Enum repr.
    if isinstance(code, TryOnErrorCode):
        return code.value
    return code


class ValidationError(TryOnError):
    """Malformed input detected before any network call."""

    def __init__(self, message: str) -> None:
        super().__init__(TryOnErrorCode.VALIDATION_ERROR, message)


class NetworkError(TryOnError):
    """The request never produced an HTTP response."""

    def __init__(self, message: str) -> None:
        super().__init__(TryOnErrorCode.NETWORK_ERROR, message)


class AuthRequiredError(TryOnError):
    """No usable credential, or the stored credential was rejected."""

    def __init__(self, message: str, *, requires_login: bool = True) -> None:
        super().__init__(TryOnErrorCode.AUTH_REQUIRED, message)
        self.requires_login = requires_login


class RemoteError(TryOnError):
    """The server answered with an error status or envelope."""

    def __init__(self, status: int, code: str, message: str) -> None:
        super().__init__(code, message)
        self.status = int(status)


class ParseError(TryOnError):
    """A response body was present but not in the expected shape."""

    def __init__(self, message: str) -> None:
        super().__init__(TryOnErrorCode.PARSE_ERROR, message)


class MissingResultError(TryOnError):
    """A job reported completion without a result URL."""

    def __init__(self, job_id: str) -> None:
        super().__init__(
            TryOnErrorCode.MISSING_IMAGE_URL, "Job completed but imageUrl is missing"
        )
        self.job_id = job_id


class UnknownStatusError(TryOnError):
    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(TryOnErrorCode.UNKNOWN_STATUS, f"Unknown job status: {status}")
        self.job_id = job_id
        self.status = status


class JobFailedError(TryOnError):
    """The job reached the failed state; code and message come from the server."""

    def __init__(self, job_id: str, code: str | None, message: str | None) -> None:
        super().__init__(
            code if code else TryOnErrorCode.PROCESSING_FAILURE,
            message if message else "Job processing failed",
        )
        self.job_id = job_id


class PollingTimeoutError(TryOnError):
    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(
            TryOnErrorCode.POLLING_TIMEOUT,
            f"Job {job_id} did not finish after {attempts} status checks",
        )
        self.job_id = job_id
        self.attempts = attempts


class PollCancelledError(TryOnError):
    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(
            TryOnErrorCode.POLLING_CANCELLED,
            f"Polling for job {job_id} cancelled after {attempts} status checks",
        )
        self.job_id = job_id
        self.attempts = attempts


class AllStrategiesExhaustedError(TryOnError):
    """Every resource-fetch strategy failed.

    ``failures`` keeps (strategy name, error) in attempt order; ``last_error``
    is the final strategy's error, also chained as ``__cause__``.
    """

    def __init__(self, url: str, failures: list[tuple[str, Exception]]) -> None:
        last = failures[-1][1] if failures else None
        detail = str(last) if last is not None else "no strategies configured"
        super().__init__(
            TryOnErrorCode.ALL_STRATEGIES_EXHAUSTED,
            f"Could not fetch {url}: {detail}",
        )
        self.url = url
        self.failures = failures
        self.last_error = last


class ErrorMessageBody(TypedDict):
    code: str
    message: str


class TryOnFailure(TypedDict):
    status: Literal["error"]
    error_message: ErrorMessageBody
    user_message: str


def error_body(code: str, message: str) -> ErrorMessageBody:
    """Standard ``{code, message}`` pair handed to presentation code."""
    return {"code": _code_value(code), "message": message}


UserMessageKind = Literal["connection", "timeout", "generic"]

USER_MESSAGES: dict[UserMessageKind, str] = {
    "connection": "Connection error. Please check your internet connection and try again.",
    "timeout": "This is taking longer than expected. Please try again in a moment.",
    "generic": "Something went wrong while generating your try-on. Please try again.",
}

_CONNECTION_CODES: frozenset[str] = frozenset(
    {
        TryOnErrorCode.NETWORK_ERROR.value,
        TryOnErrorCode.ALL_STRATEGIES_EXHAUSTED.value,
        TryOnErrorCode.IMAGE_DOWNLOAD_FAILED.value,
        "HTTP_502",
        "HTTP_503",
    }
)
_TIMEOUT_CODES: frozenset[str] = frozenset(
    {
        TryOnErrorCode.POLLING_TIMEOUT.value,
        "MODEL_TIMEOUT",
        "TIMEOUT",
        "HTTP_504",
    }
)


def user_message_kind(code: str) -> UserMessageKind:
    value = _code_value(code)
    if value in _CONNECTION_CODES:
        return "connection"
    if value in _TIMEOUT_CODES:
        return "timeout"
    return "generic"


def user_message(code: str) -> str:
    """Collapse any failure code onto one of the three user-facing fallbacks."""
    return USER_MESSAGES[user_message_kind(code)]


def to_failure(exc: TryOnError) -> TryOnFailure:
    return {
        "status": "error",
        "error_message": error_body(exc.code, exc.message),
        "user_message": user_message(exc.code),
    }


__all__ = [
    "USER_MESSAGES",
    "AllStrategiesExhaustedError",
    "AuthRequiredError",
    "ErrorMessageBody",
    "JobFailedError",
    "MissingResultError",
    "NetworkError",
    "ParseError",
    "PollCancelledError",
    "PollingTimeoutError",
    "RemoteError",
    "TryOnError",
    "TryOnErrorCode",
    "TryOnFailure",
    "UnknownStatusError",
    "UserMessageKind",
    "ValidationError",
    "error_body",
    "to_failure",
    "user_message",
    "user_message_kind",
]
