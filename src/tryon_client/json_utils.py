from __future__ import annotations

from collections.abc import Mapping, Sequence
from json import JSONDecodeError
from typing import Protocol

JSONValue = dict[str, "JSONValue"] | list["JSONValue"] | str | int | float | bool | None
JSONObject = dict[str, JSONValue]

_JSONInputValue = str | int | float | bool | None | Mapping[str, object] | Sequence[object]


class InvalidJsonError(ValueError):
    """Raised when JSON parsing fails."""


class JSONTypeError(TypeError):
    """Raised when a JSON value has an unexpected type during narrowing."""


class _JsonLoads(Protocol):
    def __call__(self, s: str) -> JSONValue: ...


class _JsonDumps(Protocol):
    def __call__(
        self,
        obj: _JSONInputValue,
        *,
        separators: tuple[str, str] | None = ...,
    ) -> str: ...


def dump_json_str(value: _JSONInputValue) -> str:
    """Serialize a JSON-compatible value to compact JSON."""
    module = __import__("json")
    dumps: _JsonDumps = module.dumps
    return dumps(value, separators=(",", ":"))


def load_json_str(raw: str) -> JSONValue:
    module = __import__("json")
    loads: _JsonLoads = module.loads
    try:
        value = loads(raw)
    except JSONDecodeError as exc:
        raise InvalidJsonError("Invalid JSON payload") from exc
    if isinstance(value, (dict, list, str, int, float, bool)) or value is None:
        return value
    raise InvalidJsonError("Invalid JSON payload")


def load_json_object(raw: str) -> JSONObject:
    """Parse text that must hold a JSON object.

    Raises InvalidJsonError for malformed text and JSONTypeError for any other
    top-level JSON type.
    """
    parsed = load_json_str(raw)
    if not isinstance(parsed, dict):
        raise JSONTypeError(f"Expected JSON object, got {type(parsed).__name__}")
    return parsed


def require_str(obj: JSONObject, key: str) -> str:
    """Extract a required non-empty string field."""
    value = obj.get(key)
    if value is None:
        raise JSONTypeError(f"Missing required field '{key}'")
    if not isinstance(value, str):
        raise JSONTypeError(f"Field '{key}' must be a string, got {type(value).__name__}")
    if value.strip() == "":
        raise JSONTypeError(f"Field '{key}' must not be empty")
    return value


def optional_str(obj: JSONObject, key: str) -> str | None:
    """Extract an optional string field; blank strings read as absent."""
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise JSONTypeError(f"Field '{key}' must be a string, got {type(value).__name__}")
    return value if value.strip() != "" else None


def optional_dict(obj: JSONObject, key: str) -> JSONObject | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise JSONTypeError(f"Field '{key}' must be an object, got {type(value).__name__}")
    return value


def optional_bool(obj: JSONObject, key: str) -> bool | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise JSONTypeError(f"Field '{key}' must be a boolean, got {type(value).__name__}")
    return value


def scalar_to_str(value: JSONValue) -> str | None:
    """Render an id-like scalar (string or integer) as text.

    Returns None for null, blank strings and non-scalar values.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value.strip() != "":
        return value
    return None


__all__ = [
    "InvalidJsonError",
    "JSONObject",
    "JSONTypeError",
    "JSONValue",
    "dump_json_str",
    "load_json_object",
    "load_json_str",
    "optional_bool",
    "optional_dict",
    "optional_str",
    "require_str",
    "scalar_to_str",
]
