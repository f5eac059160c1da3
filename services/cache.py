"""
In-process content cache with TTL expiry and request coalescing.

Concurrent reads of the same key share one upstream fetch: the first caller starts
the loader as a task owned by the cache, and every caller awaits that task and
sees the same value or the same exception. Cancelling a caller never cancels the
fetch. Failures are never stored, so the next call retries.
"""

import asyncio
import functools
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from models import CacheEntry, ContentSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 500


def cache_key(source: str, owner: str, repo: str, path: Optional[str] = None) -> str:
    """Build a cache key namespaced by backend, owner and repository."""
    key = f"{source}:{owner}/{repo}"
    if path:
        key = f"{key}/{path}"
    return key


class ContentCache:
    """TTL cache that deduplicates in-flight fetches per key."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: Optional[int] = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._pending: Dict[str, asyncio.Future] = {}

    async def get_cached_or_fetch(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value for key, or load it once for all concurrent callers."""
        entry = self._get_live_entry(key)
        if entry is not None:
            logger.debug("Cache hit: %s", key)
            return entry.value

        pending = self._pending.get(key)
        if pending is None:
            logger.debug("Cache miss: %s", key)
            pending = asyncio.ensure_future(loader())
            self._pending[key] = pending
            pending.add_done_callback(functools.partial(self._finish_fetch, key))
        else:
            logger.debug("Joining in-flight fetch: %s", key)

        # a cancelled caller leaves the fetch running for the others
        return await asyncio.shield(pending)

    def _finish_fetch(self, key: str, task: asyncio.Future) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if task.cancelled():
            return
        # retrieving the exception also keeps asyncio from warning about it
        if task.exception() is not None:
            logger.debug("Fetch failed, not caching: %s", key)
            return
        self._store(key, task.result())

    def _get_live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def _store(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())
        self._entries.move_to_end(key)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted least recently used entry: %s", evicted)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def __contains__(self, key: str) -> bool:
        return self._get_live_entry(key) is not None

    def __len__(self) -> int:
        return len(self._entries)


_default_cache: Optional[ContentCache] = None


def get_default_cache(settings: Optional[ContentSettings] = None) -> ContentCache:
    """Process-wide cache, created on first use.

    Settings only apply to the call that creates it.
    """
    global _default_cache
    if _default_cache is None:
        if settings is None:
            _default_cache = ContentCache()
        else:
            _default_cache = ContentCache(settings.cache_ttl_seconds, settings.cache_max_entries)
    return _default_cache
