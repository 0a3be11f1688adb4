from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Callable
from contextlib import aclosing
from typing import Final, Literal
from urllib.parse import quote

from tryon_client import _test_hooks
from tryon_client.auth import AuthenticatedRequestClient
from tryon_client.errors import (
    ErrorMessageBody,
    JobFailedError,
    MissingResultError,
    NetworkError,
    ParseError,
    PollCancelledError,
    PollingTimeoutError,
    RemoteError,
    UnknownStatusError,
)
from tryon_client.http_client import is_success
from tryon_client.json_utils import JSONObject
from tryon_client.logging import get_logger
from tryon_client.responses import parse_json_object, remote_error_from_response

_logger = get_logger(__name__)

JobState = Literal["pending", "processing", "completed", "failed"]
KNOWN_STATES: Final[frozenset[str]] = frozenset({"pending", "processing", "completed", "failed"})

ProgressCallback = Callable[[str], None]


class JobStatus:
    """One decoded status response."""

    __slots__ = ("error", "job_id", "result_url", "status", "status_description")

    def __init__(
        self,
        job_id: str,
        status: str,
        status_description: str | None,
        result_url: str | None,
        error: ErrorMessageBody | None,
    ) -> None:
        self.job_id = job_id
        self.status = status
        self.status_description = status_description
        self.result_url = result_url
        self.error = error


class JobStatusEvent:
    __slots__ = ("attempt", "description", "job_id", "result_url", "status")

    def __init__(
        self,
        job_id: str,
        attempt: int,
        status: str,
        description: str | None,
        result_url: str | None,
    ) -> None:
        self.job_id = job_id
        self.attempt = attempt
        self.status = status
        self.description = description
        self.result_url = result_url


class JobResult:
    __slots__ = ("attempts", "image_url", "job_id")

    def __init__(self, job_id: str, image_url: str, attempts: int) -> None:
        self.job_id = job_id
        self.image_url = image_url
        self.attempts = attempts


class CancelToken:
    """Cooperative stop signal for a polling loop."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def _decode_error(obj: JSONObject) -> ErrorMessageBody | None:
    raw = obj.get("error")
    if isinstance(raw, dict):
        code = raw.get("code")
        message = raw.get("message")
        return {
            "code": code if isinstance(code, str) else "",
            "message": message if isinstance(message, str) else "",
        }
    if isinstance(raw, str) and raw.strip() != "":
        return {"code": "", "message": raw}
    return None


def _text(obj: JSONObject, key: str) -> str | None:
    value = obj.get(key)
    if isinstance(value, str) and value.strip() != "":
        return value
    return None


def decode_job_status(job_id: str, obj: JSONObject) -> JobStatus:
    status = obj.get("status")
    if not isinstance(status, str) or status.strip() == "":
        raise ParseError("Status response is missing status")
    description = _text(obj, "statusDescription")
    if description is None:
        description = _text(obj, "message")
    image_url = obj.get("imageUrl")
    result_url = image_url if isinstance(image_url, str) and image_url.strip() != "" else None
    return JobStatus(
        job_id=job_id,
        status=status,
        status_description=description,
        result_url=result_url,
        error=_decode_error(obj),
    )


class JobStatusPoller:
    """Poll a job's status until it completes, fails or the budget runs out.

    Every attempt consumes budget. Transport errors, non-2xx answers and
    unreadable bodies are logged and retried after ``interval_seconds``;
    terminal states, unknown states and auth failures end the loop at once.
    """

    def __init__(
        self,
        *,
        requester: AuthenticatedRequestClient,
        base_url: str,
        interval_seconds: float = 3.0,
        max_attempts: int = 200,
    ) -> None:
        self._requester = requester
        self._base = base_url.rstrip("/")
        self._interval = float(interval_seconds)
        self._max_attempts = max(1, int(max_attempts))

    def status_url(self, job_id: str) -> str:
        return f"{self._base}/api/fashion-photo/status/{quote(job_id, safe='')}"

    async def fetch_status(self, job_id: str, *, request_id: str | None = None) -> JobStatus:
        resp = await self._requester.request(
            "GET", self.status_url(job_id), request_id=request_id
        )
        if not is_success(resp):
            raise remote_error_from_response(resp)
        return decode_job_status(job_id, parse_json_object(resp, "status"))

    async def events(
        self,
        job_id: str,
        *,
        cancel: CancelToken | None = None,
        request_id: str | None = None,
    ) -> AsyncGenerator[JobStatusEvent, None]:
        """Yield one event per successful status read.

        The stream ends after the ``completed`` event. ``failed``, an unknown
        state or a completion without ``imageUrl`` raise after their event has
        been yielded.
        """
        attempt = 0
        while True:
            if cancel is not None and cancel.cancelled:
                raise PollCancelledError(job_id, attempt)
            attempt += 1
            try:
                status = await self.fetch_status(job_id, request_id=request_id)
            except (NetworkError, RemoteError, ParseError) as exc:
                _logger.warning(
                    "tryon_poll_attempt_failed",
                    extra={"job_id": job_id, "attempt": attempt, "error_code": exc.code},
                )
            else:
                _logger.debug(
                    "tryon_poll_status",
                    extra={"job_id": job_id, "attempt": attempt, "status": status.status},
                )
                yield JobStatusEvent(
                    job_id=job_id,
                    attempt=attempt,
                    status=status.status,
                    description=status.status_description,
                    result_url=status.result_url,
                )
                if status.status == "completed":
                    if status.result_url is None:
                        raise MissingResultError(job_id)
                    return
                if status.status == "failed":
                    err = status.error
                    raise JobFailedError(
                        job_id,
                        err["code"] if err is not None else None,
                        err["message"] if err is not None else None,
                    )
                if status.status not in KNOWN_STATES:
                    raise UnknownStatusError(job_id, status.status)

            if attempt >= self._max_attempts:
                _logger.warning(
                    "tryon_poll_timeout", extra={"job_id": job_id, "attempt": attempt}
                )
                raise PollingTimeoutError(job_id, attempt)
            await self._pause(job_id, attempt, cancel)

    async def _pause(self, job_id: str, attempt: int, cancel: CancelToken | None) -> None:
        if cancel is None:
            await _test_hooks.sleep(self._interval)
            return
        sleeper = asyncio.ensure_future(_test_hooks.sleep(self._interval))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        if cancel.cancelled:
            _logger.info("tryon_poll_cancelled", extra={"job_id": job_id, "attempt": attempt})
            raise PollCancelledError(job_id, attempt)

    async def poll(
        self,
        job_id: str,
        *,
        on_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        request_id: str | None = None,
    ) -> JobResult:
        async with aclosing(self.events(job_id, cancel=cancel, request_id=request_id)) as stream:
            async for event in stream:
                if on_progress is not None and event.description is not None:
                    on_progress(event.description)
                if event.status == "completed" and event.result_url is not None:
                    _logger.info(
                        "tryon_poll_completed",
                        extra={"job_id": job_id, "attempt": event.attempt},
                    )
                    return JobResult(job_id, event.result_url, event.attempt)
        raise MissingResultError(job_id)


__all__ = [
    "KNOWN_STATES",
    "CancelToken",
    "JobResult",
    "JobState",
    "JobStatus",
    "JobStatusEvent",
    "JobStatusPoller",
    "ProgressCallback",
    "decode_job_status",
]
