"""Central configuration for dashboard_client."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def _float(name: str, default: float) -> float:
    """Read a float environment variable, falling back to ``default``.

    Empty or unparsable values (e.g. ``"oops"``) yield ``default``.
    """
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


@dataclass
class Settings:
    """Configuration settings for dashboard_client.

    All settings are loaded from environment variables with sensible defaults.
    Durations are seconds.
    """

    API_URL: str
    API_TIMEOUT_S: float
    AUTH_TOKEN: str | None
    CACHE_TIME_S: float
    STALE_TIME_S: float
    RETRY: int
    RETRY_DELAY_S: float
    CACHE_MAX_ENTRIES: int
    CALLS_WS_URL: str | None
    WS_RECONNECT_ATTEMPTS: int
    WS_RECONNECT_INTERVAL_S: float


def _read_settings() -> Settings:
    """Read all configuration from environment variables.

    Returns:
        Settings object with all configuration values.

    Note:
        Invalid numeric values fall back to the defaults. Negative retry
        counts and cache bounds are clamped to zero.
    """
    api_url = (os.environ.get("DASHBOARD_API_URL") or "http://localhost:3001").rstrip(
        "/"
    )
    api_timeout = _float("DASHBOARD_API_TIMEOUT_S", 30.0)
    token = os.environ.get("DASHBOARD_AUTH_TOKEN") or None

    # Fetch cache defaults
    cache_time = _float("FETCH_CACHE_TIME_S", 5 * 60.0)
    stale_time = _float("FETCH_STALE_TIME_S", 30.0)
    retry = max(0, _int("FETCH_RETRY", 3))
    retry_delay = _float("FETCH_RETRY_DELAY_S", 1.0)
    cache_max = max(0, _int("FETCH_CACHE_MAX_ENTRIES", 200))

    # Real-time call updates
    ws_url = os.environ.get("CALLS_WS_URL") or None
    ws_attempts = max(0, _int("WS_RECONNECT_ATTEMPTS", 5))
    ws_interval = _float("WS_RECONNECT_INTERVAL_S", 3.0)

    return Settings(
        API_URL=api_url,
        API_TIMEOUT_S=api_timeout,
        AUTH_TOKEN=token,
        CACHE_TIME_S=cache_time,
        STALE_TIME_S=stale_time,
        RETRY=retry,
        RETRY_DELAY_S=retry_delay,
        CACHE_MAX_ENTRIES=cache_max,
        CALLS_WS_URL=ws_url,
        WS_RECONNECT_ATTEMPTS=ws_attempts,
        WS_RECONNECT_INTERVAL_S=ws_interval,
    )


settings = _read_settings()


def validate_settings(current: Settings | None = None) -> list[str]:
    """Log warnings for questionable configuration and return them.

    The stale/cache time relationship is only reported, never enforced.
    """
    s = current or settings
    problems: list[str] = []
    if s.STALE_TIME_S > s.CACHE_TIME_S:
        problems.append(
            f"FETCH_STALE_TIME_S ({s.STALE_TIME_S}) exceeds FETCH_CACHE_TIME_S "
            f"({s.CACHE_TIME_S}); cached data expires before it turns stale."
        )
    if s.AUTH_TOKEN is None:
        problems.append("DASHBOARD_AUTH_TOKEN is not set; API calls are anonymous.")
    if s.CALLS_WS_URL is None:
        problems.append("CALLS_WS_URL is not set; real-time call updates disabled.")
    for problem in problems:
        logger.warning(problem)
    return problems


# Exported constants
API_URL: str = settings.API_URL
API_TIMEOUT_S: float = settings.API_TIMEOUT_S
AUTH_TOKEN: str | None = settings.AUTH_TOKEN
CACHE_TIME_S: float = settings.CACHE_TIME_S
STALE_TIME_S: float = settings.STALE_TIME_S
RETRY: int = settings.RETRY
RETRY_DELAY_S: float = settings.RETRY_DELAY_S
CACHE_MAX_ENTRIES: int = settings.CACHE_MAX_ENTRIES
CALLS_WS_URL: str | None = settings.CALLS_WS_URL
WS_RECONNECT_ATTEMPTS: int = settings.WS_RECONNECT_ATTEMPTS
WS_RECONNECT_INTERVAL_S: float = settings.WS_RECONNECT_INTERVAL_S
