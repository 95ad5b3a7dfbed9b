"""Cache-related dataclasses."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CacheEntry:
    """Cached payload with the time it was fetched."""

    value: object
    fetched_at: float
    sequence: int = 0
