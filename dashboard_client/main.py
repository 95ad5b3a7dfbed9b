"""Entrypoint for a headless dashboard monitor.

Keeps the dashboard statistics fresh through the shared fetch cache and
mirrors real-time call updates into a ``CallStore``, logging both.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from . import config, services
from .api_client import DashboardApiClient
from .cache_store import CacheStore
from .logger import setup_logging
from .models.calls import CallStore
from .models.fetch_state import FetchState
from .realtime import CallUpdatesSocket

logger = logging.getLogger(__name__)


def _log_event(event: dict[str, Any]) -> None:
    logger.info("Call event %s: %s", event.get("type"), event.get("callId", "-"))


async def monitor(
    client: DashboardApiClient | None = None,
    cache: CacheStore | None = None,
    socket: CallUpdatesSocket | None = None,
    interval_s: float | None = None,
    cycles: int | None = None,
) -> FetchState:
    """Poll dashboard stats every ``interval_s`` (default: the stale time).

    Runs forever unless ``cycles`` is given; returns the last fetch state.
    """
    own_client = client is None
    api = client or DashboardApiClient()
    if socket is None:
        socket = CallUpdatesSocket(store=CallStore(), on_message=_log_event)
    interval = config.STALE_TIME_S if interval_s is None else interval_s

    socket.start()
    stats = services.dashboard_stats(api, cache)
    stats.mount()
    try:
        done = 0
        while True:
            await stats.wait()
            if stats.error is not None:
                logger.warning("Dashboard stats unavailable: %s", stats.error)
            else:
                logger.info("Dashboard stats: %s", services.unwrap(stats.data))
            done += 1
            if cycles is not None and done >= cycles:
                return stats.state
            await asyncio.sleep(interval)
            # Serves the cache, revalidating once it turned stale.
            stats.mount()
    finally:
        stats.unmount()
        await socket.stop()
        if own_client:
            await api.aclose()


def run() -> None:
    setup_logging()
    config.validate_settings()
    logger.info("Starting dashboard monitor against %s", config.API_URL)
    try:
        asyncio.run(monitor())
    except KeyboardInterrupt:
        logger.info("Dashboard monitor stopped")


if __name__ == "__main__":
    run()
