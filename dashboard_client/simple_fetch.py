"""Uncached fetch guarded by request ids."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable

from .models.fetch_state import FetchState

logger = logging.getLogger(__name__)


class SimpleFetch:
    """Fetch without caching or retry; only the latest request may land."""

    def __init__(self, fetch_fn: Callable[[], Any]) -> None:
        self.fetch_fn = fetch_fn
        self.state = FetchState(loading=True)
        self._request_id = 0
        self._mounted = True

    @property
    def data(self) -> object | None:
        return self.state.data

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def error(self) -> BaseException | None:
        return self.state.error

    async def mount(self) -> None:
        self._mounted = True
        await self.execute()

    def unmount(self) -> None:
        self._mounted = False

    async def execute(self) -> object | None:
        if not self._mounted:
            return None
        self._request_id += 1
        request_id = self._request_id
        self.state.loading = True
        self.state.error = None
        try:
            result = self.fetch_fn()
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            if self._mounted and request_id == self._request_id:
                logger.warning("Fetch failed: %s", exc)
                self.state.loading = False
                self.state.error = exc
            return None
        if not (self._mounted and request_id == self._request_id):
            logger.debug("Dropping superseded response #%d", request_id)
            return None
        self.state = FetchState(data=result, loading=False, error=None)
        return result

    async def refetch(self, force: bool = True) -> object | None:
        if force or self.state.data is None:
            return await self.execute()
        return self.state.data
