from __future__ import annotations

import logging
import os
import socket
import sys
import time
from typing import Literal, Protocol, TypedDict

from tryon_client.json_utils import JSONValue, dump_json_str
from tryon_client.request_context import request_id_var

LogFormat = Literal["json", "text"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Structured fields the try-on client attaches through ``extra=``.
STANDARD_FIELDS: tuple[str, ...] = (
    "job_id",
    "attempt",
    "status",
    "status_code",
    "strategy",
    "error_code",
    "credential_source",
    "cache_key",
    "coalesced_request_id",
    "shared_request_id",
    "latency_ms",
)


class _LogRecordMapping(Protocol):
    def __contains__(self, key: str) -> bool: ...

    def __getitem__(self, key: str) -> object: ...


class _MissingValue:
    """Sentinel for absent or non-JSON LogRecord attributes."""

    __slots__ = ()


_MISSING = _MissingValue()


def _get_json_record_value(record: logging.LogRecord, field_name: str) -> JSONValue | _MissingValue:
    record_mapping: _LogRecordMapping = record.__dict__
    if field_name not in record_mapping:
        return _MISSING
    raw_value = record_mapping[field_name]
    if isinstance(raw_value, (str, int, float, bool)) or raw_value is None:
        return raw_value
    return _MISSING


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Carries timestamp, level, logger and message, the static fields, the
    current request id and any structured fields present on the record.
    """

    def __init__(
        self,
        *,
        static_fields: dict[str, str],
        extra_field_names: list[str],
    ) -> None:
        super().__init__()
        self._static = static_fields
        self._extra_fields = extra_field_names

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, JSONValue] = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in self._static:
            payload[key] = self._static[key]

        rid = request_id_var.get()
        if rid != "":
            payload["request_id"] = rid

        for field_name in (*self._extra_fields, *STANDARD_FIELDS):
            if field_name in payload:
                continue
            field_value = _get_json_record_value(record, field_name)
            if isinstance(field_value, _MissingValue):
                continue
            payload[field_name] = field_value

        if record.exc_info is not None:
            payload["exc_info"] = self.formatException(record.exc_info)

        return dump_json_str(payload)


class TextFormatter(logging.Formatter):
    """Human-readable formatter: [timestamp] [LEVEL] [logger] [fields] message."""

    def __init__(self, *, extra_fields: list[str]) -> None:
        super().__init__()
        self._extra_fields = extra_fields

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        parts: list[str] = [
            f"[{timestamp}]",
            f"[{record.levelname}]",
            f"[{record.name}]",
        ]
        rid = request_id_var.get()
        if rid != "":
            parts.append(f"request_id={rid}")
        for field_name in (*self._extra_fields, *STANDARD_FIELDS):
            field_value = _get_json_record_value(record, field_name)
            if isinstance(field_value, _MissingValue):
                continue
            parts.append(f"{field_name}={field_value}")

        parts.append(record.getMessage())
        line = " ".join(parts)
        if record.exc_info is not None:
            line = line + "\n" + self.formatException(record.exc_info)
        return line


def _compute_instance_id() -> str:
    host = socket.gethostname().split(".")[0]
    return f"{host}-{os.getpid()}"


_LEVELS: dict[LogLevel, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def setup_logging(
    *,
    level: LogLevel,
    format_mode: LogFormat,
    service_name: str,
    instance_id: str | None = None,
    extra_fields: list[str] | None = None,
) -> logging.Logger:
    """Configure the root logger with JSON or text output on stdout.

    Existing root handlers are cleared. httpx/httpcore loggers are capped at
    WARNING so request lines do not drown the client's own events.

    Example:
        >>> from tryon_client.logging import setup_logging
        >>> logger = setup_logging(level="INFO", format_mode="json", service_name="tryon")
        >>> logger.info("tryon_client_started")
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(_LEVELS[level])

    static_fields: dict[str, str] = {
        "service": service_name,
        "instance_id": instance_id if instance_id is not None else _compute_instance_id(),
    }
    extra_field_names = extra_fields if extra_fields is not None else []

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    if format_mode == "json":
        handler.setFormatter(
            JsonFormatter(static_fields=static_fields, extra_field_names=extra_field_names)
        )
    else:
        handler.setFormatter(TextFormatter(extra_fields=extra_field_names))
    root.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return root


# Expose stdlib logging module for typed test utilities.
stdlib_logging = logging


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogEventFields(TypedDict, total=False):
    """Structured fields accepted by try-on log events."""

    job_id: str
    attempt: int
    status: str
    status_code: int
    strategy: str
    error_code: str
    credential_source: str
    cache_key: str
    coalesced_request_id: str
    shared_request_id: str
    latency_ms: int


__all__ = [
    "STANDARD_FIELDS",
    "JsonFormatter",
    "LogEventFields",
    "LogFormat",
    "LogLevel",
    "TextFormatter",
    "get_logger",
    "setup_logging",
    "stdlib_logging",
]
