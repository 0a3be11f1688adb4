from __future__ import annotations

from collections.abc import Mapping

import httpx
import pytest

from tests.support.httpx_fakes import FakeHttpxAsyncClient, FakeResponse
from tryon_client.auth import AuthenticatedRequestClient, InMemoryCredentialStore
from tryon_client.errors import AuthRequiredError, NetworkError
from tryon_client.http_client import HttpxResponse, UploadFile
from tryon_client.request_context import bind_request_id


class _Tokens:
    def __init__(self, token: str | None = None, error: Exception | None = None) -> None:
        self._token = token
        self._error = error
        self.calls = 0

    async def get_session_token(self) -> str | None:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return self._token


class _BridgeTransport:
    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None) -> None:
        self._response = response
        self._error = error
        self.seen_headers: list[dict[str, str]] = []

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, UploadFile] | None = None,
    ) -> HttpxResponse:
        self.seen_headers.append(dict(headers))
        if self._error is not None:
            raise self._error
        assert self._response is not None
        return self._response


@pytest.mark.asyncio
async def test_anonymous_request_has_no_credentials() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(200, {"ok": True})])
    client = AuthenticatedRequestClient(client=fake)
    resp = await client.request("GET", "http://api.test/x", request_id="req-1")
    assert resp.status_code == 200
    sent = fake.requests[0].headers
    assert "Authorization" not in sent and "X-Session-Token" not in sent
    assert sent["X-Request-ID"] == "req-1"


@pytest.mark.asyncio
async def test_require_auth_without_credential_raises_before_network() -> None:
    fake = FakeHttpxAsyncClient()
    client = AuthenticatedRequestClient(client=fake)
    with pytest.raises(AuthRequiredError) as info:
        await client.request("GET", "http://api.test/x", require_auth=True)
    assert info.value.requires_login is True
    assert info.value.code == "AUTH_REQUIRED"
    assert fake.requests == []


@pytest.mark.asyncio
async def test_stored_session_uses_custom_header() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(200, {})])
    client = AuthenticatedRequestClient(
        client=fake,
        credential_store=InMemoryCredentialStore("sess-1"),
        session_header="X-Customer-Session",
    )
    await client.request("GET", "http://api.test/x", require_auth=True)
    assert fake.requests[0].headers["X-Customer-Session"] == "sess-1"


@pytest.mark.asyncio
async def test_bridge_token_wins_over_stored_session() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(200, {})])
    client = AuthenticatedRequestClient(
        client=fake,
        credential_store=InMemoryCredentialStore("sess-1"),
        bridge_token_provider=_Tokens("bridge-tok"),
    )
    await client.request("GET", "http://api.test/x")
    sent = fake.requests[0].headers
    assert sent["Authorization"] == "Bearer bridge-tok"
    assert "X-Session-Token" not in sent


@pytest.mark.asyncio
async def test_bridge_token_failure_falls_through_to_stored_session() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(200, {})])
    tokens = _Tokens(error=RuntimeError("bridge down"))
    client = AuthenticatedRequestClient(
        client=fake,
        credential_store=InMemoryCredentialStore("sess-1"),
        bridge_token_provider=tokens,
    )
    credential = await client.resolve_credential()
    assert credential.source == "stored_session"
    await client.request("GET", "http://api.test/x")
    assert fake.requests[0].headers["X-Session-Token"] == "sess-1"
    assert tokens.calls == 2


@pytest.mark.asyncio
async def test_blank_bridge_token_is_ignored() -> None:
    client = AuthenticatedRequestClient(
        client=FakeHttpxAsyncClient(), bridge_token_provider=_Tokens("  ")
    )
    credential = await client.resolve_credential()
    assert credential.source == "none"
    assert "tok" not in repr(credential)


@pytest.mark.asyncio
async def test_bridge_transport_is_tried_first() -> None:
    fake = FakeHttpxAsyncClient()
    bridge = _BridgeTransport(response=FakeResponse(202, {"jobId": "j1"}))
    client = AuthenticatedRequestClient(client=fake, bridge_transport=bridge)
    resp = await client.request("POST", "http://api.test/x", request_id="r9", require_auth=True)
    assert resp.status_code == 202
    assert fake.requests == []
    assert bridge.seen_headers[0]["X-Request-ID"] == "r9"


@pytest.mark.asyncio
async def test_bridge_transport_failure_falls_back_to_plain_request() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(200, {})])
    bridge = _BridgeTransport(error=RuntimeError("no bridge"))
    client = AuthenticatedRequestClient(client=fake, bridge_transport=bridge)
    resp = await client.request("GET", "http://api.test/x")
    assert resp.status_code == 200
    assert len(fake.requests) == 1


@pytest.mark.asyncio
async def test_401_with_stored_session_clears_store_and_raises() -> None:
    store = InMemoryCredentialStore("stale")
    fake = FakeHttpxAsyncClient([FakeResponse(401, {"error": "expired"})])
    client = AuthenticatedRequestClient(client=fake, credential_store=store)
    with pytest.raises(AuthRequiredError):
        await client.request("GET", "http://api.test/x")
    assert store.get() is None
    assert len(fake.requests) == 1


@pytest.mark.asyncio
async def test_401_with_retry_enabled_replays_once_anonymously() -> None:
    store = InMemoryCredentialStore("stale")
    fake = FakeHttpxAsyncClient([FakeResponse(401, {}), FakeResponse(200, {"ok": True})])
    client = AuthenticatedRequestClient(
        client=fake, credential_store=store, retry_anonymous_on_auth_failure=True
    )
    resp = await client.request("GET", "http://api.test/x", request_id="r1")
    assert resp.status_code == 200
    assert len(fake.requests) == 2
    retry_headers = fake.requests[1].headers
    assert "X-Session-Token" not in retry_headers
    assert retry_headers["X-Request-ID"] == "r1"
    assert store.get() is None


@pytest.mark.asyncio
async def test_401_without_stored_session_is_returned() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(401, {})])
    client = AuthenticatedRequestClient(client=fake)
    resp = await client.request("GET", "http://api.test/x")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_other_errors_are_returned_unchanged() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(500, {"error": "boom"})])
    client = AuthenticatedRequestClient(
        client=fake, credential_store=InMemoryCredentialStore("s")
    )
    resp = await client.request("GET", "http://api.test/x")
    assert resp.status_code == 500
    assert client.credential_store.get() == "s"


@pytest.mark.asyncio
async def test_transport_error_becomes_network_error() -> None:
    fake = FakeHttpxAsyncClient([httpx.ConnectError("refused")])
    client = AuthenticatedRequestClient(client=fake)
    with pytest.raises(NetworkError) as info:
        await client.request("GET", "http://api.test/x")
    assert info.value.code == "NETWORK_ERROR"
    assert isinstance(info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_request_id_defaults_to_bound_context() -> None:
    fake = FakeHttpxAsyncClient([FakeResponse(200, {})])
    client = AuthenticatedRequestClient(client=fake)
    with bind_request_id("ctx-7"):
        await client.request("GET", "http://api.test/x")
    assert fake.requests[0].headers["X-Request-ID"] == "ctx-7"


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    fake = FakeHttpxAsyncClient()
    client = AuthenticatedRequestClient(client=fake)
    await client.aclose()
    assert fake.closed is True
