"""Async client for remote virtual try-on image generation."""

from __future__ import annotations

from tryon_client.auth import AuthenticatedRequestClient, InMemoryCredentialStore
from tryon_client.config import TryOnSettings, load_tryon_settings
from tryon_client.errors import TryOnError, TryOnErrorCode
from tryon_client.history import HistoryClient
from tryon_client.poller import CancelToken, JobStatusEvent, JobStatusPoller
from tryon_client.recency_cache import RecencyCache, ResultRef
from tryon_client.resource_fetcher import Blob, ResourceFetcher
from tryon_client.service import TryOnResult, TryOnService
from tryon_client.submission import JobSubmissionClient, SubmissionPayload

__all__ = [
    "AuthenticatedRequestClient",
    "Blob",
    "CancelToken",
    "HistoryClient",
    "InMemoryCredentialStore",
    "JobStatusEvent",
    "JobStatusPoller",
    "JobSubmissionClient",
    "RecencyCache",
    "ResourceFetcher",
    "ResultRef",
    "SubmissionPayload",
    "TryOnError",
    "TryOnErrorCode",
    "TryOnResult",
    "TryOnService",
    "TryOnSettings",
    "load_tryon_settings",
]
