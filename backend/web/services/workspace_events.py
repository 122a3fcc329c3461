"""Fan-out of workspace change notifications to SSE subscribers.

Each connected client gets its own bounded queue. A notification published
while nobody listens is dropped, so nothing accumulates for a bound
workspace without subscribers.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator

from core.workspace.watcher import WorkspaceFilesChanged

logger = logging.getLogger(__name__)

# Queued after the last event to end a subscriber's stream
_CLOSED = None


def _put_closed(queue: asyncio.Queue) -> None:
    while True:
        try:
            queue.put_nowait(_CLOSED)
            return
        except asyncio.QueueFull:
            queue.get_nowait()


class WorkspaceEventHub:
    def __init__(self, max_pending: int = 1000) -> None:
        self.max_pending = max_pending
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    def subscriber_count(self, thread_id: str) -> int:
        return len(self._subscribers.get(thread_id, ()))

    def subscribe(self, thread_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending)
        self._subscribers.setdefault(thread_id, set()).add(queue)
        return queue

    def unsubscribe(self, thread_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(thread_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[thread_id]

    def publish(self, event: WorkspaceFilesChanged) -> int:
        """Queue `event` for every subscriber of its thread. Returns how many got it."""
        queues = self._subscribers.get(event.thread_id)
        if not queues:
            return 0
        sse = {"event": "files_changed", "data": event.model_dump_json()}
        delivered = 0
        for queue in queues:
            try:
                queue.put_nowait(sse)
                delivered += 1
            except asyncio.QueueFull:
                # Backpressure: a stalled client loses events, never memory
                logger.warning("Dropped workspace event for thread %s: subscriber queue full", event.thread_id)
        return delivered

    def close(self, thread_id: str | None = None) -> None:
        """End the streams of one thread's subscribers, or of all of them."""
        thread_ids = [thread_id] if thread_id is not None else list(self._subscribers)
        for tid in thread_ids:
            for queue in self._subscribers.pop(tid, set()):
                _put_closed(queue)

    async def observe(
        self,
        thread_id: str,
        *,
        keepalive_seconds: float = 30,
        retry_ms: int = 5000,
    ) -> AsyncGenerator[dict, None]:
        """Stream notifications published after the client connects, as SSE dicts."""
        queue = self.subscribe(thread_id)
        try:
            yield {"retry": retry_ms}
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), keepalive_seconds)
                except TimeoutError:
                    yield {"comment": "keepalive"}
                    continue
                if event is _CLOSED:
                    break
                yield event
        finally:
            self.unsubscribe(thread_id, queue)
