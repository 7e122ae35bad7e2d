"""
In-process cache store.

Entries are indexed by ``hash_key`` so that keys carrying query-parameter
dicts compare structurally. Each entry tracks its data, when it was written,
whether it has been invalidated, at most one in-flight load and the listeners
of the read engines observing it.

Entries nobody observes are evicted once ``gc_time`` seconds have passed since
they were last written or last observed, whichever is later. Eviction is
checked when a listener unsubscribes and whenever the store is accessed.
"""

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..core.keys import hash_key, is_prefix, keys_equal
from ..errors import ReadCancelledError
from ..logging import get_logger
from .base import CacheEvent, CacheListener, KeyPredicate, Loader


class CacheEntry:
    """State the store keeps for one key."""

    def __init__(self, key: Sequence[Any]):
        self.key = list(key)
        self.data: Any = None
        self.has_data = False
        self.updated_at = 0.0
        self.released_at = 0.0
        self.invalidated = False
        self.task: Optional["asyncio.Task[Any]"] = None
        self.listeners: List[CacheListener] = []

    @property
    def is_fetching(self) -> bool:
        return self.task is not None and not self.task.done()


class InMemoryCacheStore:
    """Reference CacheStore used by ApiClient unless another is injected."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, gc_time: float = 300.0):
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock
        self.gc_time = gc_time
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self.logger = get_logger("restcache.cache")

    def _is_collectable(self, entry: CacheEntry) -> bool:
        if entry.listeners or entry.is_fetching:
            return False
        if not entry.has_data:
            return True
        return self._clock() - max(entry.updated_at, entry.released_at) >= self.gc_time

    def collect_garbage(self) -> int:
        """Evict unobserved entries past ``gc_time``; returns how many went."""
        expired = [hashed for hashed, entry in self._entries.items() if self._is_collectable(entry)]
        for hashed in expired:
            del self._entries[hashed]
        if expired:
            self._evictions += len(expired)
            self.logger.debug("Evicted unobserved cache entries", count=len(expired))
        return len(expired)

    def _entry(self, key: Sequence[Any]) -> CacheEntry:
        self.collect_garbage()
        hashed = hash_key(key)
        entry = self._entries.get(hashed)
        if entry is None:
            entry = CacheEntry(key)
            self._entries[hashed] = entry
        return entry

    def _is_fresh(self, entry: CacheEntry, stale_time: float) -> bool:
        if not entry.has_data or entry.invalidated:
            return False
        return (self._clock() - entry.updated_at) < stale_time

    @staticmethod
    def _matches(
        entry_key: Sequence[Any],
        key: Optional[Sequence[Any]],
        exact: bool,
        predicate: Optional[KeyPredicate],
    ) -> bool:
        if key is not None:
            matched = keys_equal(key, entry_key) if exact else is_prefix(key, entry_key)
            if not matched:
                return False
        if predicate is not None and not predicate(entry_key):
            return False
        return True

    def _select(
        self,
        key: Optional[Sequence[Any]],
        exact: bool = False,
        predicate: Optional[KeyPredicate] = None,
    ) -> List[CacheEntry]:
        return [entry for entry in self._entries.values() if self._matches(entry.key, key, exact, predicate)]

    async def _notify(self, entry: CacheEntry, event: CacheEvent) -> None:
        if entry.listeners:
            await asyncio.gather(*(listener(event) for listener in list(entry.listeners)))

    async def get(self, key: Sequence[Any]) -> Any:
        """Cached data for ``key``, or None."""
        self.collect_garbage()
        entry = self._entries.get(hash_key(key))
        if entry is None or not entry.has_data:
            return None
        return entry.data

    async def set(self, key: Sequence[Any], value: Any) -> None:
        """Write ``value`` and notify observers of ``key``."""
        entry = self._entry(key)
        self._store(entry, value)
        self.logger.debug("Cache entry written", key=entry.key)
        await self._notify(entry, CacheEvent("updated", entry.key, value))

    def _store(self, entry: CacheEntry, value: Any) -> None:
        entry.data = value
        entry.has_data = True
        entry.updated_at = self._clock()
        entry.invalidated = False

    async def fetch_or_compute(self, key: Sequence[Any], loader: Loader, stale_time: float) -> Any:
        """Return fresh cached data, join an in-flight load, or start one."""
        entry = self._entry(key)

        if entry.is_fetching:
            return await self._await_load(entry, entry.task)  # type: ignore[arg-type]

        if self._is_fresh(entry, stale_time):
            self._hits += 1
            return entry.data

        self._misses += 1
        task = asyncio.ensure_future(self._load(entry, loader))
        entry.task = task
        return await self._await_load(entry, task)

    async def _load(self, entry: CacheEntry, loader: Loader) -> Any:
        try:
            data = await loader()
        finally:
            if entry.task is asyncio.current_task():
                entry.task = None
        self._store(entry, data)
        await self._notify(entry, CacheEvent("updated", entry.key, data))
        return data

    async def _await_load(self, entry: CacheEntry, task: "asyncio.Task[Any]") -> Any:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise ReadCancelledError(entry.key)
            raise

    async def cancel(self, key: Sequence[Any], exact: bool = False) -> List[List[Any]]:
        """Cancel matching in-flight loads and wait until they have stopped.

        Cancelled entries are marked invalidated so their next read loads
        again. Returns the keys that were cancelled.
        """
        tasks = []
        cancelled = []
        for entry in self._select(key, exact):
            if entry.is_fetching:
                entry.task.cancel()  # type: ignore[union-attr]
                entry.invalidated = True
                tasks.append(entry.task)
                cancelled.append(list(entry.key))
                self.logger.debug("Cancelled in-flight load", key=entry.key)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return cancelled

    async def invalidate(
        self,
        key: Optional[Sequence[Any]] = None,
        *,
        exact: bool = False,
        predicate: Optional[KeyPredicate] = None,
    ) -> None:
        """Mark matching entries stale and wait for their observers to refetch."""
        entries = self._select(key, exact, predicate)
        for entry in entries:
            entry.invalidated = True
        self.logger.debug("Invalidated cache entries", key=key, exact=exact, matched=len(entries))
        await asyncio.gather(*(self._notify(entry, CacheEvent("invalidated", entry.key)) for entry in entries))

    def subscribe(self, key: Sequence[Any], listener: CacheListener) -> Callable[[], None]:
        """Register ``listener`` for updates and invalidations of ``key``."""
        entry = self._entry(key)
        entry.listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in entry.listeners:
                entry.listeners.remove(listener)
            if entry.listeners:
                return
            entry.released_at = self._clock()
            hashed = hash_key(entry.key)
            if self._entries.get(hashed) is entry and self._is_collectable(entry):
                del self._entries[hashed]
                self._evictions += 1

        return _unsubscribe

    def peek(self, key: Sequence[Any]) -> Optional[CacheEntry]:
        """The entry for ``key`` without creating one."""
        return self._entries.get(hash_key(key))

    def keys(self) -> List[List[Any]]:
        return [list(entry.key) for entry in self._entries.values() if entry.has_data]

    def clear(self) -> None:
        """Drop every entry; in-flight loads keep running but their results are discarded."""
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        """Cache statistics."""
        return {
            "entries": sum(1 for entry in self._entries.values() if entry.has_data),
            "in_flight": sum(1 for entry in self._entries.values() if entry.is_fetching),
            "observed": sum(1 for entry in self._entries.values() if entry.listeners),
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }
