from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar

# Request ID of the try-on operation running in the current task.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@contextmanager
def bind_request_id(request_id: str) -> Generator[str, None, None]:
    """Bind request_id for log records emitted inside the block."""
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


__all__ = ["bind_request_id", "request_id_var"]
