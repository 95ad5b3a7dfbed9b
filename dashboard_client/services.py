"""Dashboard resources.

Each factory binds a stable cache key to an API call so that independent
views of the same resource share one cache entry.
"""

from __future__ import annotations

import logging
from typing import Any

from .api_client import DashboardApiClient
from .cache_store import CacheStore
from .fetch import CachedFetch
from .models.calls import Call, CallStore
from .models.fetch_state import FetchOptions

logger = logging.getLogger(__name__)

DASHBOARD_STATS = "dashboard-stats"
CALL_CENTER_STATS = "call-center-stats"
LEAD_STATS = "lead-stats"
ACTIVE_CALLS = "active-calls"


def call_history_key(limit: int) -> str:
    return f"call-history:{limit}"


def unwrap(body: Any) -> Any:
    """Return the ``data`` member of an API envelope, or the body itself."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def dashboard_stats(
    client: DashboardApiClient,
    cache: CacheStore | None = None,
    options: FetchOptions | None = None,
) -> CachedFetch:
    return CachedFetch(DASHBOARD_STATS, client.get_dashboard_stats, options, cache)


def call_center_stats(
    client: DashboardApiClient,
    cache: CacheStore | None = None,
    options: FetchOptions | None = None,
) -> CachedFetch:
    return CachedFetch(CALL_CENTER_STATS, client.get_call_center_stats, options, cache)


def lead_stats(
    client: DashboardApiClient,
    cache: CacheStore | None = None,
    options: FetchOptions | None = None,
) -> CachedFetch:
    return CachedFetch(LEAD_STATS, client.get_lead_stats, options, cache)


def active_calls(
    client: DashboardApiClient,
    cache: CacheStore | None = None,
    options: FetchOptions | None = None,
) -> CachedFetch:
    return CachedFetch(
        ACTIVE_CALLS, client.get_active_calls_with_details, options, cache
    )


def call_history(
    client: DashboardApiClient,
    limit: int = 10,
    cache: CacheStore | None = None,
    options: FetchOptions | None = None,
) -> CachedFetch:
    return CachedFetch(
        call_history_key(limit),
        lambda: client.get_call_history(limit),
        options,
        cache,
    )


async def refresh_active_calls(
    client: DashboardApiClient, store: CallStore
) -> list[Call]:
    """Load the active calls into ``store`` and return them."""
    store.calls_loading = True
    try:
        body = await client.get_active_calls()
    finally:
        store.calls_loading = False
    calls = unwrap(body)
    if not isinstance(calls, list):
        logger.warning("Unexpected active calls payload: %r", type(calls).__name__)
        calls = []
    store.set_active_calls(calls)
    return calls
