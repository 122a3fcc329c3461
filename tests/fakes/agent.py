"""Scripted stand-in for a compiled agent graph.

`astream` replays `(mode, data)` tuples in order, the shape LangGraph yields
for ``stream_mode=["messages", "values"]``.
"""

import asyncio
from typing import Any

from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage


def token(text: str, message_id: str | None = None) -> tuple[str, Any]:
    return ("messages", (AIMessageChunk(content=text, id=message_id), {"langgraph_node": "model"}))


def tool_call_chunk(name: str, args: str, call_id: str = "call-1") -> tuple[str, Any]:
    chunk = AIMessageChunk(
        content="",
        tool_call_chunks=[{"id": call_id, "name": name, "args": args, "index": 0}],
    )
    return ("messages", (chunk, {"langgraph_node": "model"}))


def values(*messages: Any, **state: Any) -> tuple[str, Any]:
    return ("values", {"messages": list(messages), **state})


def ai(content: str, message_id: str, **kwargs: Any) -> AIMessage:
    return AIMessage(content=content, id=message_id, **kwargs)


def human(content: str, message_id: str = "h-1") -> HumanMessage:
    return HumanMessage(content=content, id=message_id)


class ScriptedAgent:
    """Replays `chunks`; optionally blocks until `release` is set, or raises `error`."""

    def __init__(
        self,
        chunks: list[tuple[str, Any]] | None = None,
        *,
        error: Exception | None = None,
        block: bool = False,
    ) -> None:
        self.chunks = chunks or []
        self.error = error
        self.release = asyncio.Event()
        if not block:
            self.release.set()
        self.started = asyncio.Event()
        self.calls: list[dict[str, Any]] = []

    async def astream(self, agent_input: Any, config: dict[str, Any] | None = None, stream_mode: Any = None):
        self.calls.append({"input": agent_input, "config": config, "stream_mode": stream_mode})
        self.started.set()
        for chunk in self.chunks:
            await asyncio.sleep(0)
            yield chunk
        await self.release.wait()
        if self.error is not None:
            raise self.error


class AgentFactory:
    """Hands out agents in order; the last one is reused once the list runs out."""

    def __init__(self, *agents: ScriptedAgent) -> None:
        self.agents = list(agents)
        self.model_ids: list[str | None] = []

    async def __call__(self, model_id: str | None) -> ScriptedAgent:
        self.model_ids.append(model_id)
        if len(self.agents) > 1:
            return self.agents.pop(0)
        return self.agents[0]
