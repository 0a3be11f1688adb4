"""Test hooks for tryon_client - allows injecting test dependencies.

Production code calls these module-level callables directly. Tests assign fakes
before running the code under test; ``tests/conftest.py`` restores the defaults
after every test.

Usage in production code:
    from tryon_client import _test_hooks
    await _test_hooks.sleep(interval)

Usage in tests:
    from tryon_client import _test_hooks
    _test_hooks.get_env = lambda key: {"TRYON_POLL_MAX_ATTEMPTS": "3"}.get(key)
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

from tryon_client.http_client import HttpxAsyncClient
from tryon_client.http_client import build_async_client as _real_build_async_client


class BuildAsyncClientProtocol(Protocol):
    """Protocol for async HTTP client builder."""

    def __call__(self, timeout: float) -> HttpxAsyncClient:
        """Build and return an async HTTP client."""
        ...


def _default_get_env(key: str) -> str | None:
    """Production implementation - reads from os.environ."""
    return os.getenv(key)


def _default_build_async_client(timeout: float) -> HttpxAsyncClient:
    """Production implementation - builds a real httpx.AsyncClient."""
    return _real_build_async_client(timeout)


async def _default_sleep(seconds: float) -> None:
    """Production implementation - suspends on the running event loop."""
    await asyncio.sleep(seconds)


def _default_monotonic() -> float:
    """Production implementation - monotonic clock in seconds."""
    return time.monotonic()


# Hook for environment variable access. Tests override to provide fake values.
get_env: Callable[[str], str | None] = _default_get_env

# Hook for building the shared httpx client. Tests override to return fakes.
build_async_client: BuildAsyncClientProtocol = _default_build_async_client

# Hook for the poll interval sleep. Tests override to avoid real waiting.
sleep: Callable[[float], Awaitable[None]] = _default_sleep

# Hook for the cache clock. Tests override to move time forward.
monotonic: Callable[[], float] = _default_monotonic


__all__ = [
    "BuildAsyncClientProtocol",
    "_default_build_async_client",
    "_default_get_env",
    "_default_monotonic",
    "_default_sleep",
    "build_async_client",
    "get_env",
    "monotonic",
    "sleep",
]
