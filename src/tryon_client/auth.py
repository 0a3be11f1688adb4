from __future__ import annotations

from collections.abc import Mapping
from typing import Literal, Protocol

from tryon_client import _test_hooks
from tryon_client.errors import AuthRequiredError, NetworkError
from tryon_client.http_client import HttpxAsyncClient, HttpxResponse, UploadFile, transport_error_types
from tryon_client.http_utils import add_correlation_header
from tryon_client.logging import get_logger
from tryon_client.request_context import request_id_var

_logger = get_logger(__name__)

CredentialSource = Literal["app_bridge_transport", "app_bridge_token", "stored_session", "none"]


class AuthCredential:
    __slots__ = ("source", "token")

    def __init__(self, token: str, source: CredentialSource) -> None:
        self.token = token
        self.source: CredentialSource = source

    def __repr__(self) -> str:
        # Never print the token itself.
        return f"AuthCredential(source={self.source!r})"


ANONYMOUS = AuthCredential("", "none")


class CredentialStore(Protocol):
    def get(self) -> str | None: ...

    def set(self, token: str) -> None: ...

    def clear(self) -> None: ...


class InMemoryCredentialStore:
    """Session token holder owned by one client instance."""

    def __init__(self, token: str | None = None) -> None:
        self._token: str | None = token

    def get(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class BridgeTransport(Protocol):
    """Request function supplied by an embedding host that authenticates on our behalf."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, UploadFile] | None = None,
    ) -> HttpxResponse: ...


class BridgeTokenProvider(Protocol):
    async def get_session_token(self) -> str | None: ...


class AuthenticatedRequestClient:
    """HTTP client that attaches the best available credential to each request.

    The credential chain is tried in order: the bridge transport, a bridge
    bearer token, the stored session token, then an anonymous request. Bridge
    failures fall through to the next link.

    A 401 answered to a stored-session request clears the store and raises
    ``AuthRequiredError``; with ``retry_anonymous_on_auth_failure`` the request is
    replayed once without credentials instead. Other non-2xx responses are
    returned unchanged.
    """

    def __init__(
        self,
        *,
        client: HttpxAsyncClient | None = None,
        credential_store: CredentialStore | None = None,
        bridge_transport: BridgeTransport | None = None,
        bridge_token_provider: BridgeTokenProvider | None = None,
        session_header: str = "X-Session-Token",
        retry_anonymous_on_auth_failure: bool = False,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._client: HttpxAsyncClient = (
            _test_hooks.build_async_client(float(timeout_seconds)) if client is None else client
        )
        self._store: CredentialStore = (
            InMemoryCredentialStore() if credential_store is None else credential_store
        )
        self._bridge_transport = bridge_transport
        self._bridge_tokens = bridge_token_provider
        self._session_header = session_header
        self._retry_anonymous = bool(retry_anonymous_on_auth_failure)

    @property
    def http_client(self) -> HttpxAsyncClient:
        return self._client

    @property
    def credential_store(self) -> CredentialStore:
        return self._store

    async def aclose(self) -> None:
        await self._client.aclose()

    async def resolve_credential(self) -> AuthCredential:
        """Return the first usable token credential, or the anonymous one."""
        if self._bridge_tokens is not None:
            try:
                token = await self._bridge_tokens.get_session_token()
            except Exception as exc:
                _logger.warning(
                    "tryon_bridge_token_failed",
                    extra={"credential_source": "app_bridge_token", "error_code": type(exc).__name__},
                )
            else:
                if token is not None and token.strip() != "":
                    return AuthCredential(token.strip(), "app_bridge_token")
        stored = self._store.get()
        if stored is not None and stored.strip() != "":
            return AuthCredential(stored.strip(), "stored_session")
        return ANONYMOUS

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, UploadFile] | None = None,
        require_auth: bool = False,
        request_id: str | None = None,
    ) -> HttpxResponse:
        rid = request_id if request_id is not None else request_id_var.get()
        base_headers = add_correlation_header(headers, rid)

        if self._bridge_transport is not None:
            try:
                resp = await self._bridge_transport.request(
                    method, url, headers=base_headers, params=params, data=data, files=files
                )
            except Exception as exc:
                _logger.warning(
                    "tryon_bridge_transport_failed",
                    extra={
                        "credential_source": "app_bridge_transport",
                        "error_code": type(exc).__name__,
                    },
                )
            else:
                _logger.debug(
                    "tryon_request_sent",
                    extra={
                        "credential_source": "app_bridge_transport",
                        "status_code": int(resp.status_code),
                    },
                )
                return resp

        credential = await self.resolve_credential()
        if credential.source == "none" and require_auth:
            raise AuthRequiredError("Authentication required, please sign in", requires_login=True)

        sent_headers = dict(base_headers)
        if credential.source == "app_bridge_token":
            sent_headers["Authorization"] = f"Bearer {credential.token}"
        elif credential.source == "stored_session":
            sent_headers[self._session_header] = credential.token

        resp = await self._send(method, url, sent_headers, params, data, files)
        _logger.debug(
            "tryon_request_sent",
            extra={"credential_source": credential.source, "status_code": int(resp.status_code)},
        )
        if int(resp.status_code) != 401 or credential.source != "stored_session":
            return resp

        self._store.clear()
        if self._retry_anonymous:
            _logger.info("tryon_session_rejected_retry_anonymous", extra={"status_code": 401})
            return await self._send(method, url, base_headers, params, data, files)
        _logger.info("tryon_session_rejected", extra={"status_code": 401})
        raise AuthRequiredError("Session expired, please sign in again", requires_login=True)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        params: Mapping[str, str] | None,
        data: Mapping[str, str] | None,
        files: Mapping[str, UploadFile] | None,
    ) -> HttpxResponse:
        try:
            return await self._client.request(
                method, url, headers=headers, params=params, data=data, files=files
            )
        except transport_error_types() as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc


__all__ = [
    "ANONYMOUS",
    "AuthCredential",
    "AuthenticatedRequestClient",
    "BridgeTokenProvider",
    "BridgeTransport",
    "CredentialSource",
    "CredentialStore",
    "InMemoryCredentialStore",
]
