"""Pytest configuration and fixtures for tryon_client tests."""

from __future__ import annotations

from collections.abc import Generator

import pytest

from tests.support.timing import FakeClock, SleepRecorder
from tryon_client import _test_hooks


def reset_hooks() -> None:
    """Reset all test hooks to their default implementations."""
    _test_hooks.get_env = _test_hooks._default_get_env
    _test_hooks.build_async_client = _test_hooks._default_build_async_client
    _test_hooks.sleep = _test_hooks._default_sleep
    _test_hooks.monotonic = _test_hooks._default_monotonic


@pytest.fixture(autouse=True)
def _reset_hooks_fixture() -> Generator[None, None, None]:
    """Autouse fixture that resets hooks after each test."""
    yield
    reset_hooks()


@pytest.fixture
def sleeps() -> SleepRecorder:
    recorder = SleepRecorder()
    _test_hooks.sleep = recorder
    return recorder


@pytest.fixture
def clock() -> FakeClock:
    fake = FakeClock()
    _test_hooks.monotonic = fake
    return fake
