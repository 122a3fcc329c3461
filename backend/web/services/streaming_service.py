"""SSE streaming service for agent runs."""

import json
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from fastapi import FastAPI

from backend.web.core.dependencies import get_thread_lock
from backend.web.services.event_buffer import RunEventBuffer
from core.streaming.events import DoneEvent, ErrorEvent
from core.streaming.router import RunAlreadyActiveError, stream_channel

logger = logging.getLogger(__name__)

TERMINAL_TYPES = {DoneEvent.type, ErrorEvent.type}


def _sse_event(payload: dict[str, Any]) -> dict[str, str]:
    return {
        "event": str(payload.get("type", "message")),
        "data": json.dumps(payload, ensure_ascii=False, default=str),
    }


# ---------------------------------------------------------------------------
# Producer: channel listener writes run events to a buffer
# ---------------------------------------------------------------------------


async def start_buffered_run(
    app: FastAPI,
    thread_id: str,
    start: Callable[[], Awaitable[str]],
) -> RunEventBuffer:
    """Attach a buffer to the thread's channel, then start the run with `start`.

    Raises:
        RunAlreadyActiveError: If the thread already has a running run.
    """
    bus = app.state.bus
    stream_router = app.state.stream_router
    channel = stream_channel(thread_id)

    while True:
        lock = await get_thread_lock(app, thread_id)
        async with lock:
            if app.state.thread_locks.get(thread_id) is not lock:
                # Pruned while this request waited; take the current lock
                continue

            run = stream_router.registry.get(thread_id)
            if stream_router.is_running(thread_id):
                raise RunAlreadyActiveError(thread_id, run.run_id)

            # Deliver what the previous run left queued (e.g. a cancel terminal) to its own buffer
            await bus.flush(channel)

            buf = RunEventBuffer()

            async def listener(payload: dict[str, Any]) -> None:
                await buf.put(_sse_event(payload))
                if payload.get("type") in TERMINAL_TYPES:
                    unsubscribe()
                    await buf.mark_done()

            unsubscribe = bus.on(channel, listener)
            try:
                buf.run_id = await start()
            except BaseException:
                unsubscribe()
                raise

            buffers = app.state.thread_event_buffers
            # Re-insert so dict order tracks the most recent run per thread
            buffers.pop(thread_id, None)
            buffers[thread_id] = buf

        await evict_finished_runs(app, app.state.settings.streaming.retained_runs)
        return buf


# ---------------------------------------------------------------------------
# Housekeeping: per-thread locks and finished buffers
# ---------------------------------------------------------------------------


def _is_idle(app: FastAPI, thread_id: str) -> bool:
    lock = app.state.thread_locks.get(thread_id)
    if lock is not None and lock.locked():
        return False
    return not app.state.stream_router.is_running(thread_id)


async def prune_thread(app: FastAPI, thread_id: str) -> bool:
    """Drop the thread's lock and finished run buffer. Returns False while it is busy."""
    async with app.state.thread_locks_guard:
        buf = app.state.thread_event_buffers.get(thread_id)
        if not _is_idle(app, thread_id) or (buf is not None and not buf.finished.is_set()):
            return False
        app.state.thread_locks.pop(thread_id, None)
        app.state.thread_event_buffers.pop(thread_id, None)
    return True


async def evict_finished_runs(app: FastAPI, retained: int) -> int:
    """Keep at most `retained` finished run buffers, dropping the oldest first."""
    async with app.state.thread_locks_guard:
        buffers = app.state.thread_event_buffers
        finished = [tid for tid, buf in buffers.items() if buf.finished.is_set()]
        evicted = 0
        for thread_id in finished[: max(len(finished) - retained, 0)]:
            if not _is_idle(app, thread_id):
                continue
            del buffers[thread_id]
            app.state.thread_locks.pop(thread_id, None)
            evicted += 1
    if evicted:
        logger.debug("Evicted %d finished run buffer(s)", evicted)
    return evicted


# ---------------------------------------------------------------------------
# Consumer: reads buffered events as SSE
# ---------------------------------------------------------------------------


async def observe_run_events(
    buf: RunEventBuffer,
    after: int = 0,
    *,
    keepalive_seconds: float = 30,
    retry_ms: int = 5000,
) -> AsyncGenerator[dict[str, str], None]:
    """Consume events from a RunEventBuffer. Yields SSE event dicts.

    Safe to abort: does not affect the producer or agent state.
    Each event carries its 1-based position as ``id``; events with an id
    <= `after` are skipped, so reconnects via Last-Event-ID resume in place.
    """
    # Tell the browser how long to wait before reconnecting
    yield {"retry": retry_ms}

    cursor = after
    while True:
        start = cursor
        events, cursor = await buf.read_with_timeout(cursor, timeout=keepalive_seconds)
        if events is None:
            yield {"comment": "keepalive"}
            continue
        if not events:
            break
        for offset, event in enumerate(events, start=start + 1):
            yield {**event, "id": str(offset)}
