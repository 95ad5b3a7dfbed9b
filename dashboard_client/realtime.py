"""Real-time call updates over a WebSocket, with fixed-interval reconnects."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from . import config
from .models.calls import CallStore

logger = logging.getLogger(__name__)

GAVE_UP_ERROR = "Connection lost. Maximum reconnection attempts reached."
CONNECT_ERROR = "WebSocket connection error"

_STATUS_FIELDS = ("status", "duration", "endTime")


class CallUpdatesSocket:
    """Keep a ``CallStore`` in sync with the dashboard's call event stream."""

    def __init__(
        self,
        url: str | None = None,
        store: CallStore | None = None,
        on_message: Callable[[dict[str, Any]], None] | None = None,
        on_open: Callable[[], None] | None = None,
        on_close: Callable[[], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        reconnect_attempts: int | None = None,
        reconnect_interval_s: float | None = None,
        connect: Callable[[str], Awaitable[Any]] = websockets.connect,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.url = url if url is not None else config.CALLS_WS_URL
        self.store = store if store is not None else CallStore()
        self.on_message = on_message
        self.on_open = on_open
        self.on_close = on_close
        self.on_error = on_error
        self.reconnect_attempts = (
            config.WS_RECONNECT_ATTEMPTS
            if reconnect_attempts is None
            else reconnect_attempts
        )
        self.reconnect_interval_s = (
            config.WS_RECONNECT_INTERVAL_S
            if reconnect_interval_s is None
            else reconnect_interval_s
        )
        self._connect = connect
        self._sleep = sleep
        self.is_connected = False
        self.error: str | None = None
        self.attempts = 0
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._stopping = False

    def start(self) -> asyncio.Task | None:
        """Start the background connection loop (no-op without a URL)."""
        if not self.url:
            logger.info("No call updates URL configured; not connecting")
            return None
        if self._task is not None and not self._task.done():
            return self._task
        self._stopping = False
        self._task = asyncio.create_task(self._run())
        return self._task

    async def stop(self) -> None:
        """Cancel pending reconnects and close the socket."""
        self._stopping = True
        ws = self._ws
        self._ws = None
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.is_connected = False

    disconnect = stop

    async def wait(self) -> None:
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait([task])

    async def send_message(self, message: dict[str, Any]) -> bool:
        if self._ws is None or not self.is_connected:
            logger.warning("Call updates socket is not connected")
            return False
        await self._ws.send(json.dumps(message))
        return True

    def handle_message(self, raw: str | bytes) -> dict[str, Any] | None:
        """Apply one event to the store and forward it to ``on_message``."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed call update: %.200s", raw)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object call update: %.200s", raw)
            return None

        kind = data.get("type")
        if kind == "call_status_update" and data.get("callId"):
            updates = {k: data[k] for k in _STATUS_FIELDS if data.get(k) is not None}
            if not self.store.update_call(str(data["callId"]), updates):
                logger.debug("Status update for unknown call %s", data["callId"])
        elif kind == "new_call" and isinstance(data.get("call"), dict):
            self.store.add_call(data["call"])

        self._fire(self.on_message, data)
        return data

    def _fire(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Call updates callback failed")

    async def _run(self) -> None:
        while not self._stopping:
            try:
                ws = await self._connect(self.url)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Call updates socket connect failed: %s", exc)
                self.error = CONNECT_ERROR
                self._fire(self.on_error, exc)
            else:
                await self._consume(ws)

            if self._stopping:
                return
            if self.attempts >= self.reconnect_attempts:
                self.error = GAVE_UP_ERROR
                logger.warning(
                    "Giving up on call updates socket after %d attempt(s)",
                    self.attempts,
                )
                return
            self.attempts += 1
            logger.info(
                "Reconnecting call updates socket (%d/%d) in %.1fs",
                self.attempts,
                self.reconnect_attempts,
                self.reconnect_interval_s,
            )
            await self._sleep(self.reconnect_interval_s)

    async def _consume(self, ws: Any) -> None:
        self._ws = ws
        self.is_connected = True
        self.error = None
        self.attempts = 0
        logger.info("Call updates socket connected")
        self._fire(self.on_open)
        try:
            async for raw in ws:
                self.handle_message(raw)
        except ConnectionClosed as exc:
            logger.info("Call updates socket closed: %s", exc)
        except Exception as exc:
            logger.exception("Call updates stream failed")
            self.error = CONNECT_ERROR
            self._fire(self.on_error, exc)
        finally:
            self._ws = None
            self.is_connected = False
        logger.info("Call updates socket disconnected")
        self._fire(self.on_close)


__all__ = ["CallUpdatesSocket", "GAVE_UP_ERROR", "CONNECT_ERROR"]
