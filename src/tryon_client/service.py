from __future__ import annotations

from typing import Literal, TypedDict

from tryon_client import _test_hooks
from tryon_client.auth import (
    AuthenticatedRequestClient,
    BridgeTokenProvider,
    BridgeTransport,
    CredentialStore,
)
from tryon_client.config import TryOnSettings
from tryon_client.errors import TryOnError, TryOnErrorCode, TryOnFailure, to_failure
from tryon_client.history import HistoryClient
from tryon_client.http_client import HttpxAsyncClient
from tryon_client.http_utils import new_request_id
from tryon_client.logging import get_logger
from tryon_client.poller import CancelToken, JobStatusPoller, ProgressCallback
from tryon_client.recency_cache import RecencyCache, ResultRef
from tryon_client.request_context import bind_request_id
from tryon_client.resource_fetcher import ResourceFetcher, to_data_url
from tryon_client.submission import JobSubmissionClient, SubmissionPayload, SubmitCompleted

_logger = get_logger(__name__)


class TryOnSuccess(TypedDict):
    status: Literal["success"]
    image_url: str | None
    image: str | None


TryOnResult = TryOnSuccess | TryOnFailure


class TryOnService:
    """Submit a try-on, wait for it and hand back a structured result.

    ``generate`` never raises ``TryOnError``; failures come back as
    ``{"status": "error", "error_message": {code, message}, "user_message"}``.
    """

    def __init__(
        self,
        *,
        requester: AuthenticatedRequestClient,
        submitter: JobSubmissionClient,
        poller: JobStatusPoller,
        fetcher: ResourceFetcher,
        recent: RecencyCache,
    ) -> None:
        self._requester = requester
        self._submitter = submitter
        self._poller = poller
        self._fetcher = fetcher
        self._recent = recent

    @classmethod
    def from_settings(
        cls,
        settings: TryOnSettings,
        *,
        client: HttpxAsyncClient | None = None,
        credential_store: CredentialStore | None = None,
        bridge_transport: BridgeTransport | None = None,
        bridge_token_provider: BridgeTokenProvider | None = None,
    ) -> TryOnService:
        api = settings["api"]
        http = (
            _test_hooks.build_async_client(api["timeout_seconds"]) if client is None else client
        )
        requester = AuthenticatedRequestClient(
            client=http,
            credential_store=credential_store,
            bridge_transport=bridge_transport,
            bridge_token_provider=bridge_token_provider,
            session_header=settings["auth"]["session_header"],
            retry_anonymous_on_auth_failure=settings["auth"]["retry_anonymous_on_auth_failure"],
        )
        submitter = JobSubmissionClient(
            requester=requester,
            base_url=api["base_url"],
            demo_person_max=settings["submit"]["demo_person_max"],
            duplicate_policy=settings["submit"]["duplicate_policy"],
            locale=api["locale"],
        )
        poller = JobStatusPoller(
            requester=requester,
            base_url=api["base_url"],
            interval_seconds=settings["poll"]["interval_seconds"],
            max_attempts=settings["poll"]["max_attempts"],
        )
        fetcher = ResourceFetcher(
            client=http,
            proxy_url=settings["fetch"]["proxy_url"],
            proxy_origins=settings["fetch"]["proxy_origins"],
        )
        recent = RecencyCache(
            history=HistoryClient(requester=requester, base_url=api["base_url"]),
            ttl_seconds=settings["cache"]["ttl_seconds"],
            limit=settings["cache"]["limit"],
        )
        return cls(
            requester=requester,
            submitter=submitter,
            poller=poller,
            fetcher=fetcher,
            recent=recent,
        )

    async def aclose(self) -> None:
        await self._requester.aclose()

    async def generate(
        self,
        payload: SubmissionPayload,
        *,
        on_progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
        download: bool = True,
    ) -> TryOnResult:
        request_id = new_request_id()
        with bind_request_id(request_id):
            try:
                return await self._generate(payload, request_id, on_progress, cancel, download)
            except TryOnError as exc:
                _logger.info("tryon_generate_failed", extra={"error_code": exc.code})
                return to_failure(exc)

    async def _generate(
        self,
        payload: SubmissionPayload,
        request_id: str,
        on_progress: ProgressCallback | None,
        cancel: CancelToken | None,
        download: bool,
    ) -> TryOnSuccess:
        submitted = await self._submitter.submit(payload, request_id=request_id)
        if isinstance(submitted, SubmitCompleted):
            return {"status": "success", "image_url": None, "image": submitted.image}

        result = await self._poller.poll(
            submitted.job_id, on_progress=on_progress, cancel=cancel, request_id=request_id
        )
        if not download:
            return {"status": "success", "image_url": result.image_url, "image": None}
        try:
            blob = await self._fetcher.fetch(result.image_url)
        except TryOnError as exc:
            raise TryOnError(
                TryOnErrorCode.IMAGE_DOWNLOAD_FAILED,
                f"Failed to download generated image: {exc.message}",
            ) from exc
        _logger.info("tryon_generate_succeeded", extra={"job_id": result.job_id})
        return {"status": "success", "image_url": result.image_url, "image": to_data_url(blob)}

    async def recent_results(
        self, identity: str, store: str | None = None, *, force_refresh: bool = False
    ) -> list[ResultRef]:
        return await self._recent.get(identity, store, force_refresh=force_refresh)


__all__ = ["TryOnResult", "TryOnService", "TryOnSuccess"]
