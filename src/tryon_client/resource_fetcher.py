from __future__ import annotations

import base64
import binascii
from collections.abc import Awaitable, Callable, Mapping, Sequence
from urllib.parse import unquote_to_bytes

from tryon_client import _test_hooks
from tryon_client.errors import (
    AllStrategiesExhaustedError,
    NetworkError,
    ParseError,
    RemoteError,
    TryOnError,
    ValidationError,
)
from tryon_client.http_client import HttpxAsyncClient, HttpxResponse, transport_error_types
from tryon_client.http_utils import is_absolute_http_url, url_host
from tryon_client.logging import get_logger
from tryon_client.responses import remote_error_from_response

_logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class Blob:
    __slots__ = ("content_type", "data")

    def __init__(self, data: bytes, content_type: str) -> None:
        self.data = data
        self.content_type = content_type

    def __len__(self) -> int:
        return len(self.data)


FetchStrategy = Callable[[], Awaitable[Blob]]
NamedStrategy = tuple[str, FetchStrategy]


async def first_success(url: str, strategies: Sequence[NamedStrategy]) -> Blob:
    """Run strategies in order and return the first blob produced.

    Each ``TryOnError`` is recorded as ``(name, error)``. When every strategy
    fails, ``AllStrategiesExhaustedError`` is raised from the last error.
    """
    failures: list[tuple[str, Exception]] = []
    for name, strategy in strategies:
        try:
            blob = await strategy()
        except TryOnError as exc:
            _logger.info(
                "tryon_fetch_strategy_failed",
                extra={"strategy": name, "error_code": exc.code},
            )
            failures.append((name, exc))
            continue
        _logger.debug("tryon_fetch_strategy_succeeded", extra={"strategy": name})
        return blob
    exhausted = AllStrategiesExhaustedError(url, failures)
    raise exhausted from exhausted.last_error


def _content_type(resp: HttpxResponse) -> str:
    raw = resp.headers.get("content-type") or resp.headers.get("Content-Type")
    if raw is None or raw.strip() == "":
        return DEFAULT_CONTENT_TYPE
    return raw.split(";", 1)[0].strip().lower()


def to_data_url(blob: Blob) -> str:
    encoded = base64.b64encode(blob.data).decode("ascii")
    return f"data:{blob.content_type};base64,{encoded}"


def from_data_url(url: str) -> Blob:
    """Decode a ``data:`` URL, base64 or percent-encoded."""
    if not url.startswith("data:") or "," not in url:
        raise ParseError("Not a data URL")
    header, payload = url[5:].split(",", 1)
    params = header.split(";")
    content_type = params[0].strip().lower() or "text/plain"
    if "base64" in (p.strip().lower() for p in params[1:]):
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise ParseError("Invalid base64 in data URL") from exc
    else:
        data = unquote_to_bytes(payload)
    return Blob(data, content_type)


class ResourceFetcher:
    """Fetch image bytes from a URL through ordered fallback strategies.

    ``proxy`` is tried first when a proxy endpoint is configured and the URL's
    host is one of ``proxy_origins``. Then ``direct`` asks for the image with
    an Accept header and no redirects, and ``lenient`` repeats the request bare,
    following redirects. An empty lenient body is treated as opaque.
    """

    def __init__(
        self,
        *,
        client: HttpxAsyncClient | None = None,
        proxy_url: str | None = None,
        proxy_origins: frozenset[str] = frozenset(),
        timeout_seconds: float = 30.0,
    ) -> None:
        self._client: HttpxAsyncClient = (
            _test_hooks.build_async_client(float(timeout_seconds)) if client is None else client
        )
        self._proxy_url = proxy_url
        self._proxy_origins = frozenset(o.lower() for o in proxy_origins)

    async def aclose(self) -> None:
        await self._client.aclose()

    def strategies(self, url: str) -> list[NamedStrategy]:
        plan: list[NamedStrategy] = []
        if self._proxy_url is not None and url_host(url) in self._proxy_origins:

            async def _proxy() -> Blob:
                return await self._proxy_fetch(url)

            plan.append(("proxy", _proxy))

        async def _direct() -> Blob:
            return await self._direct_fetch(url)

        async def _lenient() -> Blob:
            return await self._lenient_fetch(url)

        plan.append(("direct", _direct))
        plan.append(("lenient", _lenient))
        return plan

    async def fetch(self, url: str) -> Blob:
        if url.startswith("data:"):
            return from_data_url(url)
        if not is_absolute_http_url(url):
            raise ValidationError(f"Cannot fetch non-http URL: {url[:64]}")
        return await first_success(url, self.strategies(url))

    async def _get(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None,
        params: Mapping[str, str] | None,
        follow_redirects: bool,
    ) -> HttpxResponse:
        try:
            return await self._client.request(
                "GET", url, headers=headers, params=params, follow_redirects=follow_redirects
            )
        except transport_error_types() as exc:
            raise NetworkError(f"GET {url} failed: {exc}") from exc

    async def _proxy_fetch(self, url: str) -> Blob:
        proxy = self._proxy_url
        if proxy is None:
            raise NetworkError("No proxy configured")
        resp = await self._get(
            proxy, headers={"Accept": "image/*"}, params={"url": url}, follow_redirects=False
        )
        return _accept_body(resp)

    async def _direct_fetch(self, url: str) -> Blob:
        resp = await self._get(
            url, headers={"Accept": "image/*"}, params=None, follow_redirects=False
        )
        return _accept_body(resp)

    async def _lenient_fetch(self, url: str) -> Blob:
        resp = await self._get(url, headers=None, params=None, follow_redirects=True)
        if not 200 <= int(resp.status_code) < 400:
            raise remote_error_from_response(resp)
        if len(resp.content) == 0:
            raise RemoteError(int(resp.status_code), "OPAQUE_RESPONSE", "Response body was empty")
        return Blob(bytes(resp.content), _content_type(resp))


def _accept_body(resp: HttpxResponse) -> Blob:
    if not 200 <= int(resp.status_code) < 300:
        raise remote_error_from_response(resp)
    if len(resp.content) == 0:
        raise RemoteError(int(resp.status_code), "EMPTY_BODY", "Response body was empty")
    return Blob(bytes(resp.content), _content_type(resp))


__all__ = [
    "DEFAULT_CONTENT_TYPE",
    "Blob",
    "FetchStrategy",
    "NamedStrategy",
    "ResourceFetcher",
    "first_success",
    "from_data_url",
    "to_data_url",
]
