from __future__ import annotations

import logging

import pytest

from tryon_client.json_utils import load_json_object
from tryon_client.logging import JsonFormatter, TextFormatter, get_logger, setup_logging
from tryon_client.request_context import bind_request_id


def _record(**extra: str | int) -> logging.LogRecord:
    record = logging.LogRecord(
        name="tryon_client.poller",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="tryon_poll_status",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_static_request_and_event_fields() -> None:
    formatter = JsonFormatter(
        static_fields={"service": "tryon", "instance_id": "host-1"},
        extra_field_names=["shop"],
    )
    with bind_request_id("tryon-abc"):
        line = formatter.format(_record(job_id="j1", attempt=2, shop="demo"))
    payload = load_json_object(line)
    assert payload["message"] == "tryon_poll_status"
    assert payload["service"] == "tryon"
    assert payload["request_id"] == "tryon-abc"
    assert payload["job_id"] == "j1"
    assert payload["attempt"] == 2
    assert payload["shop"] == "demo"
    assert "status" not in payload


def test_text_formatter_renders_fields_inline() -> None:
    formatter = TextFormatter(extra_fields=[])
    line = formatter.format(_record(job_id="j1", status="processing"))
    assert "[INFO]" in line and "[tryon_client.poller]" in line
    assert "job_id=j1" in line and "status=processing" in line
    assert line.endswith("tryon_poll_status")
    assert "request_id=" not in line


def test_setup_logging_installs_single_handler_and_quiets_httpx() -> None:
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    try:
        setup_logging(level="DEBUG", format_mode="json", service_name="tryon", instance_id="i")
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        setup_logging(level="WARNING", format_mode="text", service_name="tryon", instance_id="i")
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, TextFormatter)
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
    assert get_logger("tryon_client.auth").name == "tryon_client.auth"


def test_event_logged_with_extra_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = get_logger("tryon_client.test")
    with caplog.at_level(logging.INFO, logger="tryon_client.test"):
        logger.info("tryon_submit_accepted", extra={"job_id": "job-1", "status_code": 202})
    record = caplog.records[-1]
    assert record.getMessage() == "tryon_submit_accepted"
    assert record.__dict__["job_id"] == "job-1"
