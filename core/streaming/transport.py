"""Consumer-side transport.

Bridges a thread's channel to a LangGraph-SDK style event sequence
(`metadata`, `messages`, `custom`, `error`), the shape the chat UI consumes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

from core.streaming.channel import ChannelBus, Subscription
from core.streaming.router import RunAlreadyActiveError, StreamRouter, stream_channel

logger = logging.getLogger(__name__)

ALLOWED_DECISIONS = ["approve", "reject", "edit"]


def error_event(code: str, message: str) -> dict[str, Any]:
    return {"event": "error", "data": {"error": code, "message": message}}


def _file_entries(files: Any) -> list[dict[str, Any]]:
    if isinstance(files, list):
        return files
    entries = []
    for path, data in files.items():
        content = data.get("content") if isinstance(data, dict) else None
        if isinstance(content, list):
            size: int | None = len("\n".join(content))
        elif isinstance(content, str):
            size = len(content)
        else:
            size = None
        entries.append({"path": path, "is_dir": False, "size": size})
    return entries


def convert_to_ui_events(payload: dict[str, Any], thread_id: str) -> list[dict[str, Any]]:
    """Convert one channel payload into zero or more UI events."""
    events: list[dict[str, Any]] = []
    kind = payload.get("type")

    if kind == "token":
        events.append(
            {
                "event": "messages",
                "data": [
                    {"id": payload.get("message_id"), "type": "ai", "content": payload.get("token", "")},
                    {"langgraph_node": "agent"},
                ],
            }
        )

    elif kind == "tool_call":
        events.append(
            {
                "event": "custom",
                "data": {
                    "type": "tool_call",
                    "message_id": payload.get("message_id"),
                    "tool_calls": payload.get("tool_calls", []),
                },
            }
        )

    elif kind == "values":
        data = payload.get("data") or {}
        for msg in data.get("messages") or []:
            if msg.get("type") == "ai" and msg.get("content"):
                events.append({"event": "custom", "data": {"type": "message", "message": msg}})

        if data.get("todos"):
            events.append({"event": "custom", "data": {"type": "todos", "todos": data["todos"]}})

        files = data.get("files")
        if files:
            entries = _file_entries(files)
            if entries:
                events.append(
                    {
                        "event": "custom",
                        "data": {"type": "workspace", "files": entries, "path": data.get("workspace_path") or "/"},
                    }
                )

        if data.get("subagents"):
            events.append({"event": "custom", "data": {"type": "subagents", "subagents": data["subagents"]}})

        interrupt = data.get("interrupt")
        if interrupt:
            events.append(
                {
                    "event": "custom",
                    "data": {
                        "type": "interrupt",
                        "request": {
                            "id": interrupt.get("id") or str(uuid.uuid4()),
                            "tool_call": interrupt.get("tool_call"),
                            "allowed_decisions": list(ALLOWED_DECISIONS),
                        },
                    },
                }
            )

    elif kind == "error":
        events.append(error_event("STREAM_ERROR", payload.get("error", "Unknown error")))

    elif kind == "done":
        events.append({"event": "done", "data": {"thread_id": thread_id, "cancelled": payload.get("cancelled", False)}})

    return events


class TransportStream:
    """Single-pass stream of UI events; iterating it twice raises `RuntimeError`.

    A consumer that may stop before the stream ends should use it as an async
    context manager (or call `aclose`) so the channel listener is detached
    right away::

        async with transport.stream(payload) as stream:
            async for event in stream:
                ...
    """

    def __init__(self, source: AsyncGenerator[dict[str, Any], None]) -> None:
        self._source = source
        self._started = False

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        if self._started:
            msg = "Transport stream can only be consumed once"
            raise RuntimeError(msg)
        self._started = True
        return self._source

    async def aclose(self) -> None:
        await self._source.aclose()

    async def __aenter__(self) -> TransportStream:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def collect(self) -> list[dict[str, Any]]:
        async with self:
            return [event async for event in self]


class IPCTransport:
    def __init__(self, bus: ChannelBus, router: StreamRouter) -> None:
        self.bus = bus
        self.router = router

    def stream(self, payload: dict[str, Any], signal: asyncio.Event | None = None) -> TransportStream:
        """Start (or resume) a run and stream its UI events.

        `payload` follows the SDK shape: ``config.configurable.thread_id``,
        ``input.messages`` (the first human message is sent) and an optional
        ``command`` to resume an interrupted run. Setting `signal` detaches
        the stream and cancels the run.
        """
        thread_id = ((payload.get("config") or {}).get("configurable") or {}).get("thread_id")
        if not thread_id:
            return TransportStream(self._errors("MISSING_THREAD_ID", "Thread ID is required"))

        command = payload.get("command")
        message = ""
        messages = (payload.get("input") or {}).get("messages") or []
        for msg in messages:
            if msg.get("type") == "human":
                message = msg.get("content") or ""
                break
        if not message and command is None:
            return TransportStream(self._errors("MISSING_MESSAGE", "Message content is required"))

        return TransportStream(
            self._events(thread_id, message, command, payload.get("model_id"), signal)
        )

    async def _errors(self, code: str, message: str) -> AsyncGenerator[dict[str, Any], None]:
        yield error_event(code, message)

    async def _events(
        self,
        thread_id: str,
        message: str,
        command: Any,
        model_id: str | None,
        signal: asyncio.Event | None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        yield {"event": "metadata", "data": {"run_id": str(uuid.uuid4()), "thread_id": thread_id}}

        # Claim the run before touching the channel: a rejected stream must not
        # detach the listener of the run that is already active
        try:
            if command is not None:
                await self.router.resume(thread_id, command, model_id)
            else:
                await self.router.invoke(thread_id, message, model_id)
        except RunAlreadyActiveError as e:
            yield error_event("STREAM_ERROR", str(e))
            return

        # The run task cannot take a step before this coroutine next suspends,
        # so subscribing here still sees every event
        subscription = self.bus.subscribe(stream_channel(thread_id))
        abort_task: asyncio.Task | None = None
        try:
            if signal is not None:
                abort_task = asyncio.create_task(self._abort_on(signal, subscription, thread_id))

            async for raw in subscription:
                for event in convert_to_ui_events(raw, thread_id):
                    if event["event"] == "done":
                        return
                    yield event
                    if event["event"] == "error":
                        return
        finally:
            subscription.close()
            if abort_task is not None:
                abort_task.cancel()

    async def _abort_on(self, signal: asyncio.Event, subscription: Subscription, thread_id: str) -> None:
        await signal.wait()
        logger.info("Stream for thread %s aborted by caller", thread_id)
        subscription.close()
        await self.router.cancel(thread_id)
