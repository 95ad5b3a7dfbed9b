"""Shared test fixtures and dummy classes."""

from __future__ import annotations

import asyncio
from typing import Any


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


class BlockingSleep:
    """Sleep replacement that never finishes on its own."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.Event().wait()


class FlakyFetch:
    """Fetch function failing ``failures`` times before returning ``value``."""

    def __init__(self, value: Any, failures: int = 0) -> None:
        self.value = value
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"boom {self.calls}")
        return self.value


class GatedFetch:
    """Fetch function whose calls resolve only when the test says so."""

    def __init__(self) -> None:
        self.gates: list[asyncio.Future] = []

    async def __call__(self) -> Any:
        fut = asyncio.get_running_loop().create_future()
        self.gates.append(fut)
        return await fut


class FakeWebSocket:
    """Minimal client connection yielding queued messages."""

    def __init__(self, messages: list[str] | None = None, hold: bool = False) -> None:
        self.messages = list(messages or [])
        self.hold = hold
        self.sent: list[str] = []
        self.closed = False
        self._closed = asyncio.Event()

    def __aiter__(self):
        return self._iter()

    async def _iter(self):
        for message in self.messages:
            yield message
        if self.hold:
            await self._closed.wait()

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._closed.set()
