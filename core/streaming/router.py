"""Agent run routing.

One cancellable run per thread. Each run is an asyncio task that pulls the
agent's multi-mode stream, normalizes it and publishes the events, in order,
on the thread's channel `agent:stream:<thread_id>`.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from langchain_core.messages import HumanMessage
from langgraph.types import Command

from core.runtime.errors import ConfigurationError
from core.streaming.channel import ChannelBus
from core.streaming.events import (
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    TokenEvent,
    ToolCallEvent,
    ValuesEvent,
    is_terminal,
)
from core.streaming.serializers import (
    extract_text_content,
    serialize_interrupt,
    serialize_message,
    serialize_tool_call_chunk,
)

logger = logging.getLogger(__name__)

DEFAULT_RECURSION_LIMIT = 1000

AgentFactory = Callable[[str | None], Awaitable[Any]]


def stream_channel(thread_id: str) -> str:
    return f"agent:stream:{thread_id}"


class RunStatus(str, Enum):
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


class RunAlreadyActiveError(RuntimeError):
    def __init__(self, thread_id: str, run_id: str) -> None:
        super().__init__(f"Thread {thread_id} already has an active run ({run_id})")
        self.thread_id = thread_id
        self.run_id = run_id


@dataclass
class ActiveRun:
    thread_id: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None
    status: RunStatus = RunStatus.RUNNING
    terminated: bool = False

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


class RunRegistry:
    """Live runs keyed by thread id, guarded against double invoke."""

    def __init__(self) -> None:
        self._runs: dict[str, ActiveRun] = {}
        self._guard = asyncio.Lock()

    async def claim(self, thread_id: str) -> ActiveRun:
        async with self._guard:
            existing = self._runs.get(thread_id)
            if existing is not None and existing.status == RunStatus.RUNNING:
                raise RunAlreadyActiveError(thread_id, existing.run_id)
            run = ActiveRun(thread_id=thread_id)
            self._runs[thread_id] = run
            return run

    def release(self, thread_id: str, run_id: str) -> None:
        """Remove the thread's run only if it is still `run_id`."""
        run = self._runs.get(thread_id)
        if run is not None and run.run_id == run_id:
            del self._runs[thread_id]

    def get(self, thread_id: str) -> ActiveRun | None:
        return self._runs.get(thread_id)

    def active(self) -> list[ActiveRun]:
        return list(self._runs.values())

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._runs


class StreamNormalizer:
    """Turns raw `(mode, data)` stream chunks into `StreamEvent`s for one run.

    Tokens are grouped under a stable message id: a chunk without an id
    reuses the current one, and the current id is reset once a values
    snapshot surfaces a complete message.
    """

    def __init__(self) -> None:
        self.current_message_id: str | None = None
        self.seen_message_ids: set[str] = set()

    def feed(self, mode: str, data: Any) -> list[StreamEvent]:
        if mode == "messages":
            return self.on_messages(data)
        if mode == "values":
            return self.on_values(data)
        return []

    def on_messages(self, data: Any) -> list[StreamEvent]:
        if not isinstance(data, (tuple, list)) or len(data) != 2:
            return []
        msg_chunk, _metadata = data
        if msg_chunk.__class__.__name__ != "AIMessageChunk":
            return []

        events: list[StreamEvent] = []
        content = extract_text_content(getattr(msg_chunk, "content", ""))
        if content:
            message_id = getattr(msg_chunk, "id", None) or self.current_message_id or str(uuid.uuid4())
            self.current_message_id = message_id
            events.append(TokenEvent(message_id=message_id, token=content))

        tool_call_chunks = getattr(msg_chunk, "tool_call_chunks", None)
        if tool_call_chunks:
            events.append(
                ToolCallEvent(
                    message_id=self.current_message_id,
                    tool_calls=[serialize_tool_call_chunk(tc) for tc in tool_call_chunks],
                )
            )
        return events

    def on_values(self, state: Any) -> list[StreamEvent]:
        if not isinstance(state, dict):
            return []

        messages: list[dict[str, Any]] = []
        for msg in state.get("messages") or []:
            msg_id = getattr(msg, "id", None) or ""
            if msg_id in self.seen_message_ids:
                continue
            if getattr(msg, "type", None) == "ai" and extract_text_content(getattr(msg, "content", "")):
                self.seen_message_ids.add(msg_id)
                messages.append(serialize_message(msg))

        if messages:
            self.current_message_id = None

        return [
            ValuesEvent(
                messages=messages,
                todos=state.get("todos"),
                files=state.get("files"),
                workspace_path=state.get("workspace_path"),
                subagents=state.get("subagents"),
                interrupt=serialize_interrupt(state.get("__interrupt__")),
            )
        ]


def build_resume_value(decision: dict[str, Any]) -> dict[str, Any]:
    """Map a UI decision onto the human-in-the-loop middleware's resume format.

    Decisions: ``{"type": "approve"}``, ``{"type": "reject", "message": ...}``
    or ``{"type": "edit", "edited_args": {...}, "tool_name": ...}``.
    """
    kind = decision.get("type")
    if kind == "approve":
        item: dict[str, Any] = {"type": "approve"}
    elif kind == "reject":
        item = {"type": "reject"}
        if decision.get("message"):
            item["message"] = decision["message"]
    elif kind == "edit":
        edited_args = decision.get("edited_args")
        if not isinstance(edited_args, dict):
            msg = "Edit decision requires edited_args"
            raise ValueError(msg)
        item = {
            "type": "edit",
            "edited_action": {"name": decision.get("tool_name", ""), "args": edited_args},
        }
    else:
        msg = f"Unknown decision type: {kind!r}"
        raise ValueError(msg)
    return {"decisions": [item]}


class StreamRouter:
    def __init__(
        self,
        bus: ChannelBus,
        agent_factory: AgentFactory,
        *,
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> None:
        self.bus = bus
        self.agent_factory = agent_factory
        self.recursion_limit = recursion_limit
        self.registry = RunRegistry()

    def is_running(self, thread_id: str) -> bool:
        run = self.registry.get(thread_id)
        return run is not None and run.status == RunStatus.RUNNING

    async def invoke(self, thread_id: str, message: str, model_id: str | None = None) -> str:
        return await self._start(thread_id, {"messages": [HumanMessage(content=message)]}, model_id)

    async def resume(self, thread_id: str, command: Any, model_id: str | None = None) -> str:
        """Resume an interrupted thread. `command` is the resume value or ``{"resume": value}``."""
        if isinstance(command, Command):
            resume_input = command
        elif isinstance(command, dict) and "resume" in command:
            resume_input = Command(resume=command["resume"])
        else:
            resume_input = Command(resume=command)
        return await self._start(thread_id, resume_input, model_id)

    async def interrupt(self, thread_id: str, decision: dict[str, Any], model_id: str | None = None) -> str:
        """Resolve a pending interrupt with an approve / reject / edit decision."""
        return await self._start(thread_id, Command(resume=build_resume_value(decision)), model_id)

    async def cancel(self, thread_id: str) -> bool:
        """Cancel the thread's run. Partial file writes are kept.

        The cancelled `DoneEvent` is published before this returns, so a run
        started right after never sees it.
        """
        run = self.registry.get(thread_id)
        if run is None:
            return False
        run.cancel_event.set()
        run.status = RunStatus.CANCELLED
        self.registry.release(thread_id, run.run_id)
        self._finish(run, DoneEvent(cancelled=True))
        if run.task is not None and not run.task.done():
            run.task.cancel()
        logger.info("Cancelled run %s on thread %s", run.run_id, thread_id)
        return True

    async def wait(self, thread_id: str) -> None:
        """Wait for the thread's current run task, if any."""
        run = self.registry.get(thread_id)
        if run is not None and run.task is not None:
            await asyncio.gather(run.task, return_exceptions=True)

    async def shutdown(self) -> None:
        runs = self.registry.active()
        tasks = [run.task for run in runs if run.task is not None]
        for run in runs:
            await self.cancel(run.thread_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _start(self, thread_id: str, agent_input: Any, model_id: str | None) -> str:
        run = await self.registry.claim(thread_id)
        run.task = asyncio.create_task(self._run(run, agent_input, model_id))
        logger.info("Started run %s on thread %s", run.run_id, thread_id)
        return run.run_id

    def _publish(self, run: ActiveRun, event: StreamEvent) -> None:
        if run.terminated or run.cancelled:
            return
        self.bus.send(stream_channel(run.thread_id), event.to_payload())

    def _finish(self, run: ActiveRun, event: StreamEvent) -> None:
        if run.terminated:
            return
        run.terminated = True
        self.bus.send(stream_channel(run.thread_id), event.to_payload())

    async def _run(self, run: ActiveRun, agent_input: Any, model_id: str | None) -> None:
        normalizer = StreamNormalizer()
        config = {
            "configurable": {"thread_id": run.thread_id},
            "recursion_limit": self.recursion_limit,
        }
        terminal: StreamEvent
        try:
            agent = await self.agent_factory(model_id)
            async for chunk in agent.astream(
                agent_input,
                config=config,
                stream_mode=["messages", "values"],
            ):
                if run.cancelled:
                    break
                if not isinstance(chunk, tuple) or len(chunk) != 2:
                    continue
                mode, data = chunk
                for event in normalizer.feed(mode, data):
                    if is_terminal(event):
                        continue
                    self._publish(run, event)
            terminal = DoneEvent(cancelled=run.cancelled)
            if not run.cancelled:
                run.status = RunStatus.DONE
        except asyncio.CancelledError:
            run.status = RunStatus.CANCELLED
            terminal = DoneEvent(cancelled=True)
        except ConfigurationError as e:
            logger.warning("Run %s failed: %s", run.run_id, e)
            run.status = RunStatus.ERROR
            terminal = ErrorEvent(error=str(e))
        except Exception as e:
            logger.exception("Run %s failed", run.run_id)
            run.status = RunStatus.ERROR
            terminal = ErrorEvent(error=str(e) or e.__class__.__name__)
        finally:
            self.registry.release(run.thread_id, run.run_id)

        self._finish(run, terminal)
        logger.info("Run %s on thread %s ended: %s", run.run_id, run.thread_id, run.status.value)
