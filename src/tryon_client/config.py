from __future__ import annotations

from typing import Literal, TypedDict

from tryon_client import _test_hooks
from tryon_client.logging import LogFormat, LogLevel

DuplicatePolicy = Literal["allow", "coalesce"]

DEFAULT_API_BASE_URL = "https://ai.nusense.ddns.net"


class ApiConfig(TypedDict, total=True):
    base_url: str
    timeout_seconds: float
    locale: str | None


class AuthConfig(TypedDict, total=True):
    session_header: str
    retry_anonymous_on_auth_failure: bool


class PollConfig(TypedDict, total=True):
    interval_seconds: float
    max_attempts: int


class SubmitConfig(TypedDict, total=True):
    demo_person_max: int
    duplicate_policy: DuplicatePolicy


class FetchConfig(TypedDict, total=True):
    proxy_url: str | None
    proxy_origins: frozenset[str]


class CacheConfig(TypedDict, total=True):
    ttl_seconds: float
    limit: int


class LoggingConfig(TypedDict, total=True):
    level: LogLevel
    format: LogFormat


class TryOnSettings(TypedDict, total=True):
    api: ApiConfig
    auth: AuthConfig
    poll: PollConfig
    submit: SubmitConfig
    fetch: FetchConfig
    cache: CacheConfig
    logging: LoggingConfig


def _optional_env_str(key: str) -> str | None:
    value = _test_hooks.get_env(key)
    if value is None:
        return None
    trimmed = value.strip()
    if trimmed == "":
        return None
    return trimmed


def _parse_str(key: str, default: str) -> str:
    val = _optional_env_str(key)
    return val if val is not None else default


def _parse_int(key: str, default: int, *, minimum: int = 1) -> int:
    val = _optional_env_str(key)
    if val is None:
        return default
    parsed = int(val)
    if parsed < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {parsed}")
    return parsed


def _parse_float(key: str, default: float, *, minimum: float = 0.0) -> float:
    val = _optional_env_str(key)
    if val is None:
        return default
    parsed = float(val)
    if parsed < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {parsed}")
    return parsed


def _parse_bool(key: str, default: bool) -> bool:
    val = _optional_env_str(key)
    if val is None:
        return default
    normalized = val.lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {key}: {val!r}")


def _parse_csv(key: str) -> frozenset[str]:
    val = _optional_env_str(key)
    if val is None:
        return frozenset()
    return frozenset(p.strip().lower() for p in val.split(",") if p.strip() != "")


def _parse_log_level(key: str, default: LogLevel) -> LogLevel:
    val = _optional_env_str(key)
    if val is None:
        return default
    upper_val = val.upper()
    if upper_val == "DEBUG":
        return "DEBUG"
    if upper_val == "INFO":
        return "INFO"
    if upper_val == "WARNING":
        return "WARNING"
    if upper_val == "ERROR":
        return "ERROR"
    if upper_val == "CRITICAL":
        return "CRITICAL"
    return default


def _parse_log_format(key: str, default: LogFormat) -> LogFormat:
    val = _optional_env_str(key)
    if val is None:
        return default
    return "json" if val.lower() == "json" else "text"


def _parse_duplicate_policy(key: str, default: DuplicatePolicy) -> DuplicatePolicy:
    val = _optional_env_str(key)
    if val is None:
        return default
    lowered = val.lower()
    if lowered == "allow":
        return "allow"
    if lowered == "coalesce":
        return "coalesce"
    raise ValueError(f"Invalid duplicate policy for {key}: {val!r}")


def load_tryon_settings() -> TryOnSettings:
    api_cfg: ApiConfig = {
        "base_url": _parse_str("TRYON_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
        "timeout_seconds": _parse_float("TRYON_HTTP_TIMEOUT_SECONDS", 30.0, minimum=0.1),
        "locale": _optional_env_str("TRYON_LOCALE"),
    }
    auth_cfg: AuthConfig = {
        "session_header": _parse_str("TRYON_SESSION_HEADER", "X-Session-Token"),
        "retry_anonymous_on_auth_failure": _parse_bool(
            "TRYON_RETRY_ANONYMOUS_ON_AUTH_FAILURE", False
        ),
    }
    poll_cfg: PollConfig = {
        "interval_seconds": _parse_float("TRYON_POLL_INTERVAL_SECONDS", 3.0),
        "max_attempts": _parse_int("TRYON_POLL_MAX_ATTEMPTS", 200),
    }
    submit_cfg: SubmitConfig = {
        "demo_person_max": _parse_int("TRYON_DEMO_PERSON_MAX", 12),
        "duplicate_policy": _parse_duplicate_policy("TRYON_DUPLICATE_POLICY", "allow"),
    }
    fetch_cfg: FetchConfig = {
        "proxy_url": _optional_env_str("TRYON_PROXY_URL"),
        "proxy_origins": _parse_csv("TRYON_PROXY_ORIGINS"),
    }
    cache_cfg: CacheConfig = {
        "ttl_seconds": _parse_float("TRYON_CACHE_TTL_SECONDS", 300.0),
        "limit": _parse_int("TRYON_CACHE_LIMIT", 5),
    }
    logging_cfg: LoggingConfig = {
        "level": _parse_log_level("LOG_LEVEL", "INFO"),
        "format": _parse_log_format("LOG_FORMAT", "text"),
    }
    return {
        "api": api_cfg,
        "auth": auth_cfg,
        "poll": poll_cfg,
        "submit": submit_cfg,
        "fetch": fetch_cfg,
        "cache": cache_cfg,
        "logging": logging_cfg,
    }


__all__ = [
    "DEFAULT_API_BASE_URL",
    "ApiConfig",
    "AuthConfig",
    "CacheConfig",
    "DuplicatePolicy",
    "FetchConfig",
    "LoggingConfig",
    "PollConfig",
    "SubmitConfig",
    "TryOnSettings",
    "load_tryon_settings",
]
