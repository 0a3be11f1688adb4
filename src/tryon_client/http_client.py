from __future__ import annotations

from collections.abc import Mapping
from http.cookiejar import CookieJar, DefaultCookiePolicy
from types import ModuleType
from typing import Protocol

from tryon_client.json_utils import JSONValue

UploadFile = tuple[str, bytes, str]
FormFields = dict[str, str]
FormFiles = dict[str, UploadFile]


class HttpxResponse(Protocol):
    status_code: int
    text: str
    headers: Mapping[str, str]
    content: bytes | bytearray

    def json(self) -> JSONValue: ...


class Timeout(Protocol):
    def __repr__(self) -> str: ...


class _TimeoutCtor(Protocol):
    def __call__(self, timeout: float) -> Timeout: ...


class AsyncTransport(Protocol):
    async def aclose(self) -> None: ...


class HttpxAsyncClient(Protocol):
    async def aclose(self) -> None: ...

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, UploadFile] | None = None,
        follow_redirects: bool = False,
    ) -> HttpxResponse: ...


class _AsyncClientCtor(Protocol):
    def __call__(
        self,
        *,
        timeout: Timeout,
        cookies: CookieJar,
        transport: AsyncTransport | None = None,
    ) -> HttpxAsyncClient: ...


def _load_httpx() -> ModuleType:
    mod: ModuleType = __import__("httpx")
    return mod


def _discarding_cookie_jar() -> CookieJar:
    # No domain is allowed, so Set-Cookie is dropped and nothing is sent back.
    return CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))


def build_async_client(
    timeout_seconds: float, transport: AsyncTransport | None = None
) -> HttpxAsyncClient:
    mod = _load_httpx()
    timeout_ctor: _TimeoutCtor = object.__getattribute__(mod, "Timeout")
    async_ctor: _AsyncClientCtor = object.__getattribute__(mod, "AsyncClient")
    timeout_obj = timeout_ctor(float(timeout_seconds))
    if transport is None:
        return async_ctor(timeout=timeout_obj, cookies=_discarding_cookie_jar())
    return async_ctor(timeout=timeout_obj, cookies=_discarding_cookie_jar(), transport=transport)


def transport_error_types() -> tuple[type[Exception], ...]:
    """Exception types raised by httpx when a request produced no usable response.

    ``httpx.RequestError`` covers transport failures and timeouts as well as
    undecodable bodies and redirect loops.
    """
    mod = _load_httpx()
    request_error: type[Exception] = object.__getattribute__(mod, "RequestError")
    return (request_error,)


def is_success(resp: HttpxResponse) -> bool:
    return 200 <= int(resp.status_code) < 300


__all__ = [
    "AsyncTransport",
    "FormFields",
    "FormFiles",
    "HttpxAsyncClient",
    "HttpxResponse",
    "Timeout",
    "UploadFile",
    "build_async_client",
    "is_success",
    "transport_error_types",
]
