from __future__ import annotations

import httpx
import pytest

from tests.support.httpx_fakes import FakeHttpxAsyncClient, FakeResponse, RecordedRequest, Scripted
from tryon_client.errors import (
    AllStrategiesExhaustedError,
    NetworkError,
    ParseError,
    RemoteError,
    ValidationError,
)
from tryon_client.http_client import build_async_client
from tryon_client.resource_fetcher import (
    Blob,
    ResourceFetcher,
    first_success,
    from_data_url,
    to_data_url,
)

_PNG = {"content-type": "image/png; charset=binary"}


def _image(status: int = 200, data: bytes = b"\x89PNG-bytes") -> FakeResponse:
    return FakeResponse(status, content=data, headers=_PNG)


@pytest.mark.asyncio
async def test_direct_success_skips_other_strategies() -> None:
    fake = FakeHttpxAsyncClient([_image()])
    fetcher = ResourceFetcher(client=fake)
    blob = await fetcher.fetch("https://cdn.test/out.png")
    assert blob.data == b"\x89PNG-bytes"
    assert blob.content_type == "image/png"
    assert len(fake.requests) == 1
    assert fake.requests[0].headers == {"Accept": "image/*"}
    assert fake.requests[0].follow_redirects is False


@pytest.mark.asyncio
async def test_lenient_strategy_used_when_direct_fails() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(403, {"error": "cors"}), _image()])
    fetcher = ResourceFetcher(client=fake)
    blob = await fetcher.fetch("https://cdn.test/out.png")
    assert blob.data == b"\x89PNG-bytes"
    lenient = fake.requests[1]
    assert lenient.headers == {}
    assert lenient.follow_redirects is True


@pytest.mark.asyncio
async def test_opaque_lenient_response_is_rejected() -> None:
    fake = FakeHttpxAsyncClient(
        [httpx.ConnectError("refused"), FakeResponse(200, content=b"")]
    )
    fetcher = ResourceFetcher(client=fake)
    with pytest.raises(AllStrategiesExhaustedError) as info:
        await fetcher.fetch("https://cdn.test/out.png")
    err = info.value
    assert [name for name, _ in err.failures] == ["direct", "lenient"]
    assert isinstance(err.failures[0][1], NetworkError)
    assert isinstance(err.last_error, RemoteError)
    assert err.last_error.code == "OPAQUE_RESPONSE"
    assert err.__cause__ is err.last_error
    assert err.code == "ALL_STRATEGIES_EXHAUSTED"


@pytest.mark.asyncio
async def test_proxy_strategy_only_for_configured_origins() -> None:
    def _handler(req: RecordedRequest) -> Scripted:
        if req.url == "http://tryon.test/api/proxy-image":
            return _image(data=b"via-proxy")
        return _image(data=b"direct")

    fake = FakeHttpxAsyncClient(handler=_handler)
    fetcher = ResourceFetcher(
        client=fake,
        proxy_url="http://tryon.test/api/proxy-image",
        proxy_origins=frozenset({"CDN.Shopify.com"}),
    )
    proxied = await fetcher.fetch("https://cdn.shopify.com/files/a.jpg")
    assert proxied.data == b"via-proxy"
    assert fake.requests[0].params == {"url": "https://cdn.shopify.com/files/a.jpg"}

    other = await fetcher.fetch("https://images.test/a.jpg")
    assert other.data == b"direct"
    assert fake.requests[1].url == "https://images.test/a.jpg"


@pytest.mark.asyncio
async def test_proxy_empty_body_falls_back_to_direct() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(200, content=b""), _image()])
    fetcher = ResourceFetcher(
        client=fake,
        proxy_url="http://tryon.test/api/proxy-image",
        proxy_origins=frozenset({"cdn.shopify.com"}),
    )
    blob = await fetcher.fetch("https://cdn.shopify.com/a.jpg")
    assert blob.data == b"\x89PNG-bytes"
    assert [r.url for r in fake.requests] == [
        "http://tryon.test/api/proxy-image",
        "https://cdn.shopify.com/a.jpg",
    ]


@pytest.mark.asyncio
async def test_strategy_plan_without_proxy() -> None:
    fetcher = ResourceFetcher(client=FakeHttpxAsyncClient(), proxy_origins=frozenset({"a.test"}))
    assert [name for name, _ in fetcher.strategies("https://a.test/x.png")] == [
        "direct",
        "lenient",
    ]


@pytest.mark.asyncio
async def test_first_success_returns_first_working_strategy() -> None:
    calls: list[str] = []

    async def _fails() -> Blob:
        calls.append("fails")
        raise NetworkError("down")

    async def _works() -> Blob:
        calls.append("works")
        return Blob(b"ok", "image/png")

    async def _never() -> Blob:
        calls.append("never")
        return Blob(b"", "x")

    blob = await first_success("u", [("a", _fails), ("b", _works), ("c", _never)])
    assert blob.data == b"ok"
    assert calls == ["fails", "works"]


@pytest.mark.asyncio
async def test_first_success_does_not_swallow_unexpected_errors() -> None:
    async def _bug() -> Blob:
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await first_success("u", [("bug", _bug)])


@pytest.mark.asyncio
async def test_fetch_decodes_data_urls_without_network() -> None:
    fake = FakeHttpxAsyncClient()
    blob = await ResourceFetcher(client=fake).fetch("data:image/png;base64,aGVsbG8=")
    assert blob.data == b"hello"
    assert blob.content_type == "image/png"
    assert fake.requests == []


@pytest.mark.asyncio
async def test_fetch_rejects_relative_urls() -> None:
    with pytest.raises(ValidationError):
        await ResourceFetcher(client=FakeHttpxAsyncClient()).fetch("/images/a.png")


def test_data_url_helpers() -> None:
    blob = Blob(b"\x00\x01abc", "image/jpeg")
    url = to_data_url(blob)
    assert url.startswith("data:image/jpeg;base64,")
    decoded = from_data_url(url)
    assert decoded.data == blob.data and decoded.content_type == "image/jpeg"
    plain = from_data_url("data:,hello%20world")
    assert plain.data == b"hello world" and plain.content_type == "text/plain"
    with pytest.raises(ParseError):
        from_data_url("https://cdn.test/a.png")
    with pytest.raises(ParseError):
        from_data_url("data:image/png;base64,@@@")


@pytest.mark.asyncio
async def test_undecodable_direct_response_falls_through_to_lenient() -> None:
    calls: list[str] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) == 1:
            return httpx.Response(200, content=b"not gzip", headers={"content-encoding": "gzip"})
        return httpx.Response(200, content=b"\x89PNG", headers=_PNG)

    client = build_async_client(5.0, transport=httpx.MockTransport(_handler))
    blob = await ResourceFetcher(client=client).fetch("https://cdn.test/a.png")
    await client.aclose()
    assert blob.data == b"\x89PNG"
    assert calls == ["/a.png", "/a.png"]


@pytest.mark.asyncio
async def test_redirect_loop_in_lenient_is_recorded_as_failure() -> None:
    fake = FakeHttpxAsyncClient(
        [FakeResponse(403, {}), httpx.TooManyRedirects("Exceeded maximum allowed redirects.")]
    )
    with pytest.raises(AllStrategiesExhaustedError) as info:
        await ResourceFetcher(client=fake).fetch("https://cdn.test/a.png")
    assert isinstance(info.value.last_error, NetworkError)
