"""Normalized run events.

`StreamEvent` is closed: every run produces zero or more `TokenEvent`,
`ToolCallEvent` and `ValuesEvent`, then exactly one terminal event
(`ErrorEvent` or `DoneEvent`) and nothing after it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union


@dataclass(frozen=True)
class TokenEvent:
    type: ClassVar[str] = "token"

    message_id: str
    token: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "message_id": self.message_id, "token": self.token}


@dataclass(frozen=True)
class ToolCallEvent:
    type: ClassVar[str] = "tool_call"

    message_id: str | None
    tool_calls: list[dict[str, Any]]

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "message_id": self.message_id, "tool_calls": self.tool_calls}


@dataclass(frozen=True)
class ValuesEvent:
    """State snapshot. `messages` holds only AI messages not surfaced before in this run."""

    type: ClassVar[str] = "values"

    messages: list[dict[str, Any]] = field(default_factory=list)
    todos: list[dict[str, Any]] | None = None
    files: dict[str, Any] | None = None
    workspace_path: str | None = None
    subagents: list[dict[str, Any]] | None = None
    interrupt: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "data": {
                "messages": self.messages,
                "todos": self.todos,
                "files": self.files,
                "workspace_path": self.workspace_path,
                "subagents": self.subagents,
                "interrupt": self.interrupt,
            },
        }


@dataclass(frozen=True)
class ErrorEvent:
    type: ClassVar[str] = "error"

    error: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "error": self.error}


@dataclass(frozen=True)
class DoneEvent:
    """Run finished. `cancelled` runs may have left partial file writes behind."""

    type: ClassVar[str] = "done"

    cancelled: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "cancelled": self.cancelled}


StreamEvent = Union[TokenEvent, ToolCallEvent, ValuesEvent, ErrorEvent, DoneEvent]

TERMINAL_EVENTS = (ErrorEvent, DoneEvent)


def is_terminal(event: StreamEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


def event_from_payload(payload: dict[str, Any]) -> StreamEvent:
    """Rebuild an event from `to_payload()` output.

    Raises:
        ValueError: If the payload type is unknown
    """
    kind = payload.get("type")
    if kind == TokenEvent.type:
        return TokenEvent(message_id=payload["message_id"], token=payload["token"])
    if kind == ToolCallEvent.type:
        return ToolCallEvent(message_id=payload.get("message_id"), tool_calls=list(payload.get("tool_calls") or []))
    if kind == ValuesEvent.type:
        data = payload.get("data") or {}
        return ValuesEvent(
            messages=list(data.get("messages") or []),
            todos=data.get("todos"),
            files=data.get("files"),
            workspace_path=data.get("workspace_path"),
            subagents=data.get("subagents"),
            interrupt=data.get("interrupt"),
        )
    if kind == ErrorEvent.type:
        return ErrorEvent(error=str(payload.get("error", "Unknown error")))
    if kind == DoneEvent.type:
        return DoneEvent(cancelled=bool(payload.get("cancelled", False)))
    msg = f"Unknown stream event type: {kind!r}"
    raise ValueError(msg)
