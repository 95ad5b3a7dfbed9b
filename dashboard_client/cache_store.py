"""Shared fetch cache (key -> last successful payload)."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Iterator

from . import config
from .models.cache import CacheEntry

logger = logging.getLogger(__name__)


class CacheStore:
    """Key to ``CacheEntry`` mapping shared by every fetch using it.

    Writes are last-writer-wins unless a fencing ``sequence`` is given, in
    which case a write older than the stored entry is discarded. When
    ``max_entries`` is set the oldest written keys are evicted first.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int | None = None,
    ) -> None:
        self._clock = clock
        self.max_entries = max_entries or None
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        # Store-wide so numbers keep growing across eviction and delete.
        self._sequence = 0

    def now(self) -> float:
        return self._clock()

    def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def age(self, key: str) -> float | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.fetched_at

    def next_sequence(self, key: str) -> int:
        """Issue the next fencing number for a request on ``key``.

        Numbers are unique across the store, so a request issued later
        always holds a larger number, even if ``key`` was evicted between.
        """
        self._sequence += 1
        logger.debug("Issued fetch sequence %s for %s", self._sequence, key)
        return self._sequence

    def set(self, key: str, value: object, sequence: int | None = None) -> CacheEntry:
        """Store ``value`` under ``key`` and return the entry now held.

        A fenced write (``sequence`` given) loses against an entry produced
        by a later-issued request; the stored entry is returned unchanged.
        """
        existing = self._entries.get(key)
        if sequence is not None and existing and existing.sequence > sequence:
            logger.debug(
                "Discarding cache write for %s (seq %s < %s)",
                key,
                sequence,
                existing.sequence,
            )
            return existing
        if sequence is None:
            sequence = self._sequence
        entry = CacheEntry(value=value, fetched_at=self._clock(), sequence=sequence)
        self._entries.pop(key, None)
        self._entries[key] = entry
        self._prune_size()
        return entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries.keys())

    def prune(self, max_age_s: float) -> int:
        """Drop entries older than ``max_age_s``; return how many were removed."""
        if not self._entries:
            return 0
        now = self._clock()
        stale_keys = [
            key
            for key, entry in self._entries.items()
            if (now - entry.fetched_at) > max_age_s
        ]
        for key in stale_keys:
            self.delete(key)
        return len(stale_keys)

    def _prune_size(self) -> None:
        if not self.max_entries:
            return
        while len(self._entries) > self.max_entries:
            key, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", key)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))


class CacheRegistry:
    """Per-tenant cache stores with explicit lifetimes."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int | None = None,
    ) -> None:
        self._clock = clock
        self._max_entries = max_entries
        self._stores: dict[str, CacheStore] = {}

    def for_tenant(self, tenant_id: str) -> CacheStore:
        store = self._stores.get(tenant_id)
        if store is None:
            store = CacheStore(clock=self._clock, max_entries=self._max_entries)
            self._stores[tenant_id] = store
        return store

    def drop(self, tenant_id: str) -> None:
        """Forget a tenant's cache (e.g. on logout)."""
        store = self._stores.pop(tenant_id, None)
        if store is not None:
            store.clear()
            logger.info("Dropped cache for tenant %s", tenant_id)

    def clear(self) -> None:
        for store in self._stores.values():
            store.clear()
        self._stores.clear()

    def tenants(self) -> list[str]:
        return list(self._stores.keys())


SHARED_CACHE = CacheStore(max_entries=config.CACHE_MAX_ENTRIES)

__all__ = ["CacheStore", "CacheRegistry", "SHARED_CACHE"]
