"""Tests for the cached fetch lifecycle."""

import asyncio

import pytest

from dashboard_client.cache_store import CacheStore
from dashboard_client.fetch import CachedFetch, FetchToken
from dashboard_client.models.fetch_state import FetchOptions

from conftest import (
    BlockingSleep,
    FakeClock,
    FlakyFetch,
    GatedFetch,
    RecordingSleep,
    settle,
)

OPTIONS = FetchOptions(cache_time_s=300.0, stale_time_s=30.0, retry=3, retry_delay_s=1.0)


def _make(key, fetch_fn, cache, sleep=None, options=OPTIONS) -> CachedFetch:
    return CachedFetch(key, fetch_fn, options, cache, sleep=sleep or RecordingSleep())


async def _prime(cache: CacheStore, key: str, value) -> None:
    primer = _make(key, FlakyFetch(value), cache)
    primer.mount()
    await primer.wait()
    primer.unmount()


@pytest.mark.asyncio
async def test_cache_miss_fetches_and_populates_cache() -> None:
    cache = CacheStore(clock=FakeClock())
    fetch_fn = FlakyFetch({"count": 5})
    fetch = _make("dashboard-stats", fetch_fn, cache)

    fetch.mount()
    assert fetch.loading is True
    assert fetch.data is None

    await fetch.wait()
    assert fetch.loading is False
    assert fetch.data == {"count": 5}
    assert fetch.error is None
    assert cache.get("dashboard-stats").value == {"count": 5}

    again_fn = FlakyFetch({"count": 6})
    again = _make("dashboard-stats", again_fn, cache)
    again.mount()
    await again.wait()
    assert again_fn.calls == 0
    assert again.data == {"count": 5}


@pytest.mark.asyncio
async def test_fresh_cache_hit_serves_without_network() -> None:
    clock = FakeClock()
    cache = CacheStore(clock=clock)
    await _prime(cache, "dashboard-stats", {"count": 1})

    clock.advance(10)
    fetch_fn = FlakyFetch({"count": 2})
    fetch = _make("dashboard-stats", fetch_fn, cache)
    fetch.mount()

    assert fetch.data == {"count": 1}
    assert fetch.loading is False
    assert fetch.is_stale is False
    await settle()
    assert fetch_fn.calls == 0


@pytest.mark.asyncio
async def test_stale_cache_hit_serves_and_revalidates_once() -> None:
    clock = FakeClock()
    cache = CacheStore(clock=clock)
    await _prime(cache, "dashboard-stats", {"count": 1})

    clock.advance(40)
    fetch_fn = FlakyFetch({"count": 2})
    fetch = _make("dashboard-stats", fetch_fn, cache)
    fetch.mount()

    assert fetch.data == {"count": 1}
    assert fetch.is_stale is True
    assert fetch.loading is True

    await fetch.wait()
    assert fetch_fn.calls == 1
    assert fetch.data == {"count": 2}
    assert fetch.loading is False
    assert fetch.is_stale is False


@pytest.mark.asyncio
async def test_expired_cache_entry_is_a_miss() -> None:
    clock = FakeClock()
    cache = CacheStore(clock=clock)
    await _prime(cache, "dashboard-stats", {"count": 1})

    clock.advance(300)
    fetch_fn = FlakyFetch({"count": 2})
    fetch = _make("dashboard-stats", fetch_fn, cache)
    fetch.mount()

    assert fetch.data is None
    assert fetch.loading is True
    await fetch.wait()
    assert fetch.data == {"count": 2}


@pytest.mark.asyncio
async def test_retry_uses_linear_backoff() -> None:
    cache = CacheStore(clock=FakeClock())
    sleep = RecordingSleep()
    fetch_fn = FlakyFetch({"ok": True}, failures=3)
    fetch = _make("k", fetch_fn, cache, sleep=sleep)

    fetch.mount()
    await fetch.wait()

    assert fetch_fn.calls == 4
    assert sleep.delays == [1.0, 2.0, 3.0]
    assert fetch.data == {"ok": True}
    assert fetch.error is None
    assert fetch.retry_count == 0


@pytest.mark.asyncio
async def test_retry_exhaustion_reports_last_error() -> None:
    cache = CacheStore(clock=FakeClock())
    fetch_fn = FlakyFetch({"ok": True}, failures=4)
    fetch = _make("k", fetch_fn, cache)

    fetch.mount()
    await fetch.wait()

    assert fetch_fn.calls == 4
    assert isinstance(fetch.error, RuntimeError)
    assert str(fetch.error) == "boom 4"
    assert fetch.loading is False
    assert fetch.data is None
    assert fetch.retry_count == 0
    assert "k" not in cache


@pytest.mark.asyncio
async def test_refetch_raises_after_exhaustion_and_keeps_data() -> None:
    cache = CacheStore(clock=FakeClock())
    fetch_fn = FlakyFetch({"count": 1})
    fetch = _make("k", fetch_fn, cache)
    fetch.mount()
    await fetch.wait()

    fetch_fn.failures = 100
    with pytest.raises(RuntimeError):
        await fetch.refetch(force=True)

    assert fetch.data == {"count": 1}
    assert fetch.error is not None
    assert fetch.loading is False


@pytest.mark.asyncio
async def test_concrete_single_failure_scenario() -> None:
    cache = CacheStore(clock=FakeClock())
    sleep = RecordingSleep()
    fetch_fn = FlakyFetch({"count": 5}, failures=1)
    fetch = _make("dashboard-stats", fetch_fn, cache, sleep=sleep)

    fetch.mount()
    await fetch.wait()

    assert fetch.data == {"count": 5}
    assert fetch.error is None
    assert fetch.loading is False
    assert fetch_fn.calls == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_force_refetch_bypasses_fresh_cache() -> None:
    cache = CacheStore(clock=FakeClock())
    await _prime(cache, "k", {"count": 1})

    fetch_fn = FlakyFetch({"count": 2})
    fetch = _make("k", fetch_fn, cache)
    fetch.mount()
    assert fetch_fn.calls == 0

    result = await fetch.refetch(force=True)
    assert result == {"count": 2}
    assert fetch_fn.calls == 1
    assert fetch.data == {"count": 2}


@pytest.mark.asyncio
async def test_non_forced_refetch_returns_fresh_cache() -> None:
    cache = CacheStore(clock=FakeClock())
    await _prime(cache, "k", {"count": 1})

    fetch_fn = FlakyFetch({"count": 2})
    fetch = _make("k", fetch_fn, cache)
    assert await fetch.refetch() == {"count": 1}
    assert fetch_fn.calls == 0
    assert fetch.data == {"count": 1}


@pytest.mark.asyncio
async def test_non_forced_refetch_of_stale_entry_hits_network() -> None:
    clock = FakeClock()
    cache = CacheStore(clock=clock)
    await _prime(cache, "k", {"count": 1})
    clock.advance(60)

    fetch_fn = FlakyFetch({"count": 2})
    fetch = _make("k", fetch_fn, cache)
    assert await fetch.refetch() == {"count": 2}
    assert fetch_fn.calls == 1
    assert fetch.data == {"count": 2}
    assert cache.get("k").value == {"count": 2}


@pytest.mark.asyncio
async def test_non_forced_refetch_without_entry_hits_network() -> None:
    cache = CacheStore(clock=FakeClock())
    fetch_fn = FlakyFetch("value")
    fetch = _make("k", fetch_fn, cache)

    assert await fetch.refetch() == "value"
    assert fetch_fn.calls == 1
    assert fetch.loading is False


@pytest.mark.asyncio
async def test_forced_refetch_during_backoff_starts_fresh() -> None:
    cache = CacheStore(clock=FakeClock())
    sleep = BlockingSleep()
    fetch_fn = FlakyFetch("v", failures=1)
    fetch = _make("k", fetch_fn, cache, sleep=sleep)

    fetch.mount()
    await settle()
    assert sleep.delays == [1.0]
    assert fetch.retry_count == 1

    assert await fetch.refetch(force=True) == "v"
    await settle()
    assert fetch_fn.calls == 2
    assert sleep.delays == [1.0]
    assert fetch.retry_count == 0
    assert fetch.error is None
    assert fetch.loading is False
    assert cache.get("k").value == "v"


@pytest.mark.asyncio
async def test_forced_refetch_restarts_backoff_schedule() -> None:
    cache = CacheStore(clock=FakeClock())
    sleep = BlockingSleep()
    fetch_fn = FlakyFetch("v", failures=2)
    fetch = _make("k", fetch_fn, cache, sleep=sleep)

    fetch.mount()
    await settle()
    refetch = asyncio.create_task(fetch.refetch(force=True))
    await settle()

    # Second lifecycle waits the first delay again, not the second.
    assert fetch_fn.calls == 2
    assert sleep.delays == [1.0, 1.0]
    assert fetch.retry_count == 1

    fetch.unmount()
    assert await refetch is None


@pytest.mark.asyncio
async def test_refetch_after_unmount_does_nothing() -> None:
    cache = CacheStore(clock=FakeClock())
    fetch_fn = FlakyFetch("value")
    fetch = _make("k", fetch_fn, cache)

    fetch.unmount()
    assert await fetch.refetch(force=True) is None
    assert fetch_fn.calls == 0
    assert "k" not in cache
    assert fetch.loading is False


@pytest.mark.asyncio
@pytest.mark.parametrize("old_first", [True, False])
async def test_superseded_request_never_overwrites_newer(old_first: bool) -> None:
    cache = CacheStore(clock=FakeClock())
    fetch_fn = GatedFetch()
    fetch = _make("k", fetch_fn, cache)

    fetch.mount()
    await settle()
    refetch = asyncio.create_task(fetch.refetch(force=True))
    await settle()
    assert len(fetch_fn.gates) == 2
    old, new = fetch_fn.gates

    if old_first:
        old.set_result("old")
        await settle()
        assert fetch.data is None
        assert fetch.loading is True
        new.set_result("new")
    else:
        new.set_result("new")
        await settle()
        old.set_result("old")

    assert await refetch == "new"
    await settle()
    assert fetch.data == "new"
    assert fetch.loading is False
    assert cache.get("k").value == "new"


@pytest.mark.asyncio
async def test_unmount_discards_late_result() -> None:
    cache = CacheStore(clock=FakeClock())
    fetch_fn = GatedFetch()
    fetch = _make("k", fetch_fn, cache)

    fetch.mount()
    await settle()
    fetch.unmount()
    fetch_fn.gates[0].set_result("late")
    await settle()

    assert fetch.data is None
    assert "k" not in cache


@pytest.mark.asyncio
async def test_unmount_interrupts_backoff() -> None:
    cache = CacheStore(clock=FakeClock())
    sleep = BlockingSleep()
    fetch_fn = FlakyFetch("value", failures=10)
    fetch = _make("k", fetch_fn, cache, sleep=sleep)

    fetch.mount()
    await settle()
    assert sleep.delays == [1.0]

    fetch.unmount()
    await fetch.wait()
    assert fetch_fn.calls == 1
    assert fetch.error is None


@pytest.mark.asyncio
async def test_set_key_starts_new_lifecycle() -> None:
    cache = CacheStore(clock=FakeClock())
    calls: list[str] = []
    gates: dict[str, asyncio.Future] = {}

    async def fetch_fn():
        key = fetch.key
        calls.append(key)
        gates[key] = asyncio.get_running_loop().create_future()
        return await gates[key]

    fetch = _make("leads:1", fetch_fn, cache)
    fetch.mount()
    await settle()
    fetch.set_key("leads:2")
    await settle()
    assert calls == ["leads:1", "leads:2"]
    assert fetch.loading is True

    gates["leads:1"].set_result("page 1")
    gates["leads:2"].set_result("page 2")
    await fetch.wait()
    await settle()

    assert fetch.data == "page 2"
    assert "leads:1" not in cache
    assert cache.get("leads:2").value == "page 2"


@pytest.mark.asyncio
async def test_older_request_cannot_overwrite_shared_cache() -> None:
    cache = CacheStore(clock=FakeClock())
    first_fn = GatedFetch()
    second_fn = GatedFetch()
    first = _make("k", first_fn, cache)
    second = _make("k", second_fn, cache)

    first.mount()
    await settle()
    second.mount()
    await settle()

    second_fn.gates[0].set_result("newer")
    await second.wait()
    first_fn.gates[0].set_result("older")
    await first.wait()

    assert cache.get("k").value == "newer"
    assert first.data == "older"
    assert second.data == "newer"


@pytest.mark.asyncio
async def test_older_request_loses_after_key_was_evicted() -> None:
    cache = CacheStore(clock=FakeClock(), max_entries=1)
    first_fn = GatedFetch()
    second_fn = GatedFetch()
    first = _make("k", first_fn, cache)
    second = _make("k", second_fn, cache)

    first.mount()
    await settle()
    cache.set("k", "seed")
    cache.set("other", 1)
    assert "k" not in cache

    second.mount()
    await settle()
    second_fn.gates[0].set_result("newer")
    await second.wait()
    first_fn.gates[0].set_result("older")
    await first.wait()

    assert cache.get("k").value == "newer"


@pytest.mark.asyncio
async def test_sync_fetch_function_is_accepted() -> None:
    cache = CacheStore(clock=FakeClock())
    fetch = _make("k", lambda: [1, 2, 3], cache)
    async with fetch:
        await fetch.wait()
        assert fetch.data == [1, 2, 3]


@pytest.mark.asyncio
async def test_token_sleep_returns_false_when_cancelled() -> None:
    token = FetchToken()
    sleeper = asyncio.create_task(token.sleep(BlockingSleep(), 5.0))
    await settle()
    token.cancel()
    assert await sleeper is False
