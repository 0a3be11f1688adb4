from __future__ import annotations

from tryon_client.errors import ParseError, RemoteError
from tryon_client.http_client import HttpxResponse
from tryon_client.json_utils import (
    InvalidJsonError,
    JSONObject,
    JSONTypeError,
    JSONValue,
    load_json_object,
)


def parse_json_object(resp: HttpxResponse, what: str) -> JSONObject:
    """Decode a response body that must be a JSON object, raising ParseError otherwise."""
    try:
        return load_json_object(resp.text)
    except (InvalidJsonError, JSONTypeError) as exc:
        raise ParseError(f"Invalid {what} response (HTTP {int(resp.status_code)})") from exc


def _try_json_object(resp: HttpxResponse) -> JSONObject | None:
    text = resp.text
    stripped = text.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return None
    try:
        return load_json_object(stripped)
    except (InvalidJsonError, JSONTypeError):
        return None


def _str_field(obj: JSONObject, key: str) -> str | None:
    value: JSONValue = obj.get(key)
    if isinstance(value, str) and value.strip() != "":
        return value
    return None


def remote_error_from_response(resp: HttpxResponse) -> RemoteError:
    """Shape a non-2xx response into a RemoteError.

    Reads ``error_message: {code, message}`` first, then top-level ``code``,
    ``message`` or ``error``. Anything missing falls back to ``HTTP_<status>``
    and ``HTTP <status>``.
    """
    status = int(resp.status_code)
    code = f"HTTP_{status}"
    message = f"HTTP {status}"
    obj = _try_json_object(resp)
    if obj is None:
        return RemoteError(status, code, message)

    envelope = obj.get("error_message")
    if not isinstance(envelope, dict):
        nested = obj.get("error")
        envelope = nested if isinstance(nested, dict) else obj

    raw_code = _str_field(envelope, "code")
    if raw_code is not None:
        code = raw_code
    raw_message = _str_field(envelope, "message")
    if raw_message is None:
        raw_message = _str_field(obj, "message")
    if raw_message is None:
        raw_message = _str_field(obj, "error")
    if raw_message is not None:
        message = raw_message
    return RemoteError(status, code, message)


__all__ = ["parse_json_object", "remote_error_from_response"]
