"""Optimistic local updates with rollback on failure."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)


def _merge(data: Any, partial: Mapping[str, Any]) -> Any:
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return dataclasses.replace(data, **partial)
    return {**(data or {}), **partial}


class OptimisticUpdate:
    """Apply a change locally before the server confirms it.

    Updates on one instance are serialized: a second ``update`` waits for the
    first to settle, so every rollback restores the snapshot its own update
    took.
    """

    def __init__(
        self, initial_data: Any, update_fn: Callable[[Any], Awaitable[Any]]
    ) -> None:
        self.data = initial_data
        self.update_fn = update_fn
        self.is_updating = False
        self.error: BaseException | None = None
        self._lock = asyncio.Lock()

    async def update(self, partial: Mapping[str, Any]) -> Any | None:
        """Merge ``partial`` now and confirm it with ``update_fn``.

        Returns the confirmed data, or None after a rollback (the failure is
        kept in ``error``).
        """
        async with self._lock:
            previous = self.data
            candidate = _merge(previous, partial)
            self.data = candidate
            self.is_updating = True
            self.error = None
            try:
                result = await self.update_fn(candidate)
            except Exception as exc:
                logger.warning("Optimistic update failed, rolling back: %s", exc)
                self.data = previous
                self.error = exc
                return None
            finally:
                self.is_updating = False
            self.data = result
            return result
