"""Cached resource fetch with staleness revalidation, retry and cancellation.

A ``CachedFetch`` is the per-consumer view of one logical resource (a cache
key). Consumers share payloads through a ``CacheStore``; each instance keeps
its own ``FetchState`` and owns at most one fetch lifecycle at a time.

Lifecycle rules:

- mount: a cache miss (no entry, or older than ``cache_time_s``) starts a
  background fetch with ``loading=True``. A hit younger than
  ``stale_time_s`` is served as-is. An older hit is served and revalidated
  in the background.
- a failed attempt is retried up to ``retry`` times, waiting
  ``retry_delay_s * n`` before retry ``n`` (linear backoff).
- starting a lifecycle cancels the previous one. Cancelled lifecycles never
  touch state or cache; in-flight ``fetch_fn`` calls are left to finish and
  their results are dropped.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from typing import Any, Awaitable, Callable

from .cache_store import SHARED_CACHE, CacheStore
from .models.cache import CacheEntry
from .models.fetch_state import FetchOptions, FetchState

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Any]
SleepFn = Callable[[float], Awaitable[Any]]

_UNSET = object()


class FetchToken:
    """Cancellation marker for one fetch lifecycle."""

    def __init__(self) -> None:
        self.cancelled = False
        self._waiter: asyncio.Future | None = None

    def cancel(self) -> None:
        self.cancelled = True
        # Only a pending backoff delay is interrupted, never the fetch itself.
        if self._waiter is not None and not self._waiter.done():
            self._waiter.cancel()

    async def sleep(self, sleep: SleepFn, delay: float) -> bool:
        """Wait ``delay`` seconds. Returns False if cancelled meanwhile."""
        if self.cancelled:
            return False
        waiter = asyncio.ensure_future(sleep(delay))
        self._waiter = waiter
        try:
            await waiter
        except asyncio.CancelledError:
            if self.cancelled:
                return False
            raise
        finally:
            self._waiter = None
        return not self.cancelled


def _consume_result(task: asyncio.Task) -> None:
    # Failures are reported through state; mark them retrieved.
    if not task.cancelled():
        task.exception()


class CachedFetch:
    """Fetch one cached resource on behalf of a single consumer."""

    def __init__(
        self,
        key: str,
        fetch_fn: FetchFn,
        options: FetchOptions | None = None,
        cache: CacheStore | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.key = key
        self.fetch_fn = fetch_fn
        self.options = options or FetchOptions.from_settings()
        self.cache = cache if cache is not None else SHARED_CACHE
        self._sleep = sleep
        self._state = FetchState()
        self._token: FetchToken | None = None
        self._task: asyncio.Task | None = None
        self._retry_count = 0
        self._unmounted = False

    # -- state ------------------------------------------------------------

    @property
    def data(self) -> object | None:
        return self._state.data

    @property
    def loading(self) -> bool:
        return self._state.loading

    @property
    def error(self) -> BaseException | None:
        return self._state.error

    @property
    def last_fetched(self) -> float | None:
        return self._state.last_fetched

    @property
    def is_stale(self) -> bool:
        last = self._state.last_fetched
        if last is None:
            return False
        return (self.cache.now() - last) > self.options.stale_time_s

    @property
    def state(self) -> FetchState:
        return dataclasses.replace(self._state)

    @property
    def retry_count(self) -> int:
        return self._retry_count

    def _update(
        self,
        data: object = _UNSET,
        loading: bool | None = None,
        error: object = _UNSET,
        last_fetched: object = _UNSET,
    ) -> None:
        if self._unmounted:
            return
        if data is not _UNSET:
            self._state.data = data
        if loading is not None:
            self._state.loading = loading
        if error is not _UNSET:
            self._state.error = error  # type: ignore[assignment]
        if last_fetched is not _UNSET:
            self._state.last_fetched = last_fetched  # type: ignore[assignment]

    # -- lifecycle --------------------------------------------------------

    def _lookup(self) -> tuple[CacheEntry, float] | None:
        entry = self.cache.get(self.key)
        if entry is None:
            return None
        age = self.cache.now() - entry.fetched_at
        if age >= self.options.cache_time_s:
            return None
        return entry, age

    def mount(self) -> None:
        """Serve the cache and start a fetch when the entry is missing or stale.

        Never raises for fetch failures; they end up in ``error``.
        """
        self._unmounted = False
        hit = self._lookup()
        if hit is None:
            logger.debug("Cache miss for %s", self.key)
            self._update(loading=True, error=None)
            self._start()
            return

        entry, age = hit
        stale = age >= self.options.stale_time_s
        self._update(
            data=entry.value,
            loading=stale,
            error=None,
            last_fetched=entry.fetched_at,
        )
        if stale:
            logger.debug("Revalidating stale %s (age %.1fs)", self.key, age)
            self._start()

    def unmount(self) -> None:
        """Cancel the in-flight lifecycle and freeze state."""
        self._cancel_inflight()
        self._unmounted = True

    def set_key(self, key: str) -> None:
        """Switch to another resource, starting a new lifecycle."""
        if key == self.key:
            return
        self._cancel_inflight()
        self.key = key
        self._retry_count = 0
        if self._unmounted:
            return
        self._state = FetchState()
        self.mount()

    async def refetch(self, force: bool = False) -> object | None:
        """Fetch again, bypassing the cache when ``force`` is set.

        Without ``force`` a fresh cached value is returned without I/O.
        Returns the fetched value, ``None`` when this request was superseded,
        and raises the last error once retries are exhausted. An unmounted
        fetch does nothing and returns ``None``.
        """
        if self._unmounted:
            logger.debug("Ignoring refetch of unmounted %s", self.key)
            return None
        if not force:
            hit = self._lookup()
            if hit is not None:
                entry, age = hit
                stale = age >= self.options.stale_time_s
                self._update(
                    data=entry.value,
                    loading=stale,
                    error=None,
                    last_fetched=entry.fetched_at,
                )
                if not stale:
                    return entry.value

        self._update(loading=True, error=None)
        task = self._start()
        return await asyncio.shield(task)

    async def wait(self) -> None:
        """Wait for the current lifecycle to settle. Never raises."""
        task = self._task
        if task is None or task.done():
            return
        await asyncio.wait([task])

    def _cancel_inflight(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None

    def _start(self) -> asyncio.Task:
        self._cancel_inflight()
        self._retry_count = 0
        token = FetchToken()
        self._token = token
        task = asyncio.create_task(self._run(token, self.key))
        task.add_done_callback(_consume_result)
        self._task = task
        return task

    async def _run(self, token: FetchToken, key: str) -> object | None:
        while True:
            sequence = self.cache.next_sequence(key)
            try:
                value = self.fetch_fn()
                if inspect.isawaitable(value):
                    value = await value
            except Exception as exc:
                if token.cancelled:
                    return None
                if self._retry_count < self.options.retry:
                    self._retry_count += 1
                    delay = self.options.retry_delay_s * self._retry_count
                    logger.debug(
                        "Fetch %s failed (%s); retry %d/%d in %.2fs",
                        key,
                        exc,
                        self._retry_count,
                        self.options.retry,
                        delay,
                    )
                    if not await token.sleep(self._sleep, delay):
                        return None
                    continue
                self._retry_count = 0
                self._update(loading=False, error=exc)
                logger.warning(
                    "Fetch %s failed after %d attempt(s): %s",
                    key,
                    self.options.retry + 1,
                    exc,
                )
                raise

            if token.cancelled:
                return None
            self.cache.set(key, value, sequence=sequence)
            self._retry_count = 0
            self._update(
                data=value,
                loading=False,
                error=None,
                last_fetched=self.cache.now(),
            )
            return value

    async def __aenter__(self) -> "CachedFetch":
        self.mount()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        self.unmount()


__all__ = ["CachedFetch", "FetchToken", "FetchOptions", "FetchState"]
