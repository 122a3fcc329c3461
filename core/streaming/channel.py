"""In-process channel bus.

Named channels with at most one active listener each. Each channel is
drained by its own pump task, so listeners run in publish order and a slow
listener never blocks the publisher.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Awaitable[None] | None]

_CLOSED = object()


class Subscription:
    """Async-iterator view of a channel; ends when closed."""

    def __init__(self, bus: ChannelBus, channel: str) -> None:
        self.bus = bus
        self.channel = channel
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._unsubscribe = bus.on(channel, self._queue.put_nowait)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> Any:
        """Next payload, or raise `StopAsyncIteration` once closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Any:
        return await self.get()


class ChannelBus:
    def __init__(self) -> None:
        self._listeners: dict[str, Listener] = {}
        self._queues: dict[str, asyncio.Queue[Any]] = {}
        self._pumps: dict[str, asyncio.Task] = {}

    def has_listener(self, channel: str) -> bool:
        return channel in self._listeners

    def send(self, channel: str, payload: Any) -> None:
        if channel not in self._listeners:
            logger.debug("Dropped message on %s: no listener", channel)
            return
        self._queues[channel].put_nowait(payload)

    def on(self, channel: str, listener: Listener) -> Callable[[], None]:
        """Attach `listener`, replacing any current one. Returns an unsubscribe callable."""
        if channel in self._listeners:
            logger.info("Replacing listener on %s", channel)
        self._listeners[channel] = listener
        if channel not in self._pumps or self._pumps[channel].done():
            self._queues[channel] = asyncio.Queue()
            self._pumps[channel] = asyncio.create_task(self._pump(channel))

        def unsubscribe() -> None:
            self.off(channel, listener)

        return unsubscribe

    def once(self, channel: str, listener: Listener) -> Callable[[], None]:
        async def wrapper(payload: Any) -> None:
            self.off(channel, wrapper)
            result = listener(payload)
            if inspect.isawaitable(result):
                await result

        return self.on(channel, wrapper)

    def off(self, channel: str, listener: Listener | None = None) -> None:
        """Detach the channel's listener (only if it is `listener`, when given)."""
        current = self._listeners.get(channel)
        if current is None or (listener is not None and current is not listener):
            return
        del self._listeners[channel]
        pump = self._pumps.pop(channel, None)
        queue = self._queues.pop(channel, None)
        if pump is None:
            return
        if pump is asyncio.current_task():
            # Detached from inside its own delivery; the pump exits on its own
            return
        if queue is not None and not queue.empty():
            logger.debug("Discarding %d undelivered message(s) on %s", queue.qsize(), channel)
        pump.cancel()

    def subscribe(self, channel: str) -> Subscription:
        return Subscription(self, channel)

    async def flush(self, channel: str) -> None:
        """Wait until every message sent so far on `channel` has been delivered."""
        queue = self._queues.get(channel)
        if queue is not None:
            await queue.join()

    async def close(self) -> None:
        pumps = list(self._pumps.values())
        self._listeners.clear()
        self._pumps.clear()
        self._queues.clear()
        for pump in pumps:
            pump.cancel()
        if pumps:
            await asyncio.gather(*pumps, return_exceptions=True)

    async def _pump(self, channel: str) -> None:
        queue = self._queues[channel]
        while True:
            payload = await queue.get()
            try:
                listener = self._listeners.get(channel)
                if listener is None:
                    continue
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener on %s failed", channel)
            finally:
                queue.task_done()
            if self._pumps.get(channel) is not asyncio.current_task():
                return
