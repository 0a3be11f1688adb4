from __future__ import annotations

from typing import Protocol, TypedDict

from tryon_client import _test_hooks
from tryon_client.history import HistoryItem, HistoryPage
from tryon_client.logging import get_logger
from tryon_client.submission import CropRegion

_logger = get_logger(__name__)


class ResultRef(TypedDict):
    id: str
    source_url: str
    crop_region: CropRegion | None


class CacheEntry:
    __slots__ = ("fetched_at", "items", "key")

    def __init__(self, key: str, items: tuple[ResultRef, ...], fetched_at: float) -> None:
        self.key = key
        self.items = items
        self.fetched_at = fetched_at


class HistorySource(Protocol):
    async def fetch_customer_history(
        self,
        email: str,
        *,
        page: int = 1,
        limit: int = 20,
        store: str | None = None,
        request_id: str | None = None,
    ) -> HistoryPage: ...


def cache_key(identity: str, store: str | None) -> str:
    return f"{identity}:{store if store else 'none'}"


def distinct_refs(items: list[HistoryItem], limit: int) -> tuple[ResultRef, ...]:
    """Keep items with an id and person image, first occurrence per URL, up to limit."""
    seen: set[str] = set()
    refs: list[ResultRef] = []
    for item in items:
        source_url = item["person_image_url"]
        if source_url is None or source_url in seen:
            continue
        seen.add(source_url)
        refs.append({"id": item["id"], "source_url": source_url, "crop_region": item["person_bbox"]})
        if len(refs) >= limit:
            break
    return tuple(refs)


def _copy_ref(ref: ResultRef) -> ResultRef:
    crop = ref["crop_region"]
    return {
        "id": ref["id"],
        "source_url": ref["source_url"],
        "crop_region": None if crop is None else crop.copy(),
    }


class RecencyCache:
    """Most recent distinct person photos for one (identity, store) key.

    Only the last fetched key is held. An entry answers reads for the same key
    while younger than ``ttl_seconds``; otherwise page 1 of the history is
    fetched and the entry is replaced in a single assignment. A failed fetch
    leaves the previous entry in place.

    The read-check-write sequence spans an ``await``; sharing one instance
    across threads would need a lock.
    """

    def __init__(
        self,
        *,
        history: HistorySource,
        ttl_seconds: float = 300.0,
        limit: int = 5,
        fetch_limit: int = 20,
    ) -> None:
        self._history = history
        self._ttl = float(ttl_seconds)
        self._limit = int(limit)
        self._fetch_limit = int(fetch_limit)
        self._entry: CacheEntry | None = None

    @property
    def entry(self) -> CacheEntry | None:
        return self._entry

    def _fresh(self, key: str) -> CacheEntry | None:
        entry = self._entry
        if entry is None or entry.key != key:
            return None
        if _test_hooks.monotonic() - entry.fetched_at >= self._ttl:
            return None
        return entry

    async def get(
        self, identity: str, store: str | None = None, *, force_refresh: bool = False
    ) -> list[ResultRef]:
        key = cache_key(identity, store)
        if not force_refresh:
            cached = self._fresh(key)
            if cached is not None:
                _logger.debug("tryon_recent_cache_hit", extra={"cache_key": key})
                return [_copy_ref(ref) for ref in cached.items]

        page = await self._history.fetch_customer_history(
            identity, page=1, limit=self._fetch_limit, store=store
        )
        items = distinct_refs(page["items"], self._limit)
        self._entry = CacheEntry(key, items, _test_hooks.monotonic())
        _logger.debug("tryon_recent_cache_refreshed", extra={"cache_key": key})
        return [_copy_ref(ref) for ref in items]

    def clear(self) -> None:
        self._entry = None


__all__ = [
    "CacheEntry",
    "HistorySource",
    "RecencyCache",
    "ResultRef",
    "cache_key",
    "distinct_refs",
]
