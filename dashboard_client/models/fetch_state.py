"""Fetch option and state dataclasses."""

from __future__ import annotations

from dataclasses import dataclass

from .. import config


@dataclass(frozen=True)
class FetchOptions:
    cache_time_s: float = 5 * 60.0
    stale_time_s: float = 30.0
    retry: int = 3
    retry_delay_s: float = 1.0

    @classmethod
    def from_settings(cls) -> "FetchOptions":
        """Build options from the environment-driven defaults."""
        return cls(
            cache_time_s=config.CACHE_TIME_S,
            stale_time_s=config.STALE_TIME_S,
            retry=config.RETRY,
            retry_delay_s=config.RETRY_DELAY_S,
        )


@dataclass
class FetchState:
    data: object | None = None
    loading: bool = False
    error: BaseException | None = None
    last_fetched: float | None = None
