"""Message and interrupt serialization for stream payloads."""

import uuid
from typing import Any


def extract_text_content(raw_content: Any) -> str:
    """Extract text content from various message content formats."""
    if isinstance(raw_content, str):
        return raw_content
    if isinstance(raw_content, list):
        parts: list[str] = []
        for block in raw_content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
            elif isinstance(block, str):
                parts.append(block)
        return "".join(parts)
    return ""


def message_type(msg: Any) -> str:
    kind = getattr(msg, "type", "")
    if kind in ("human", "ai", "tool"):
        return kind
    return "system"


def serialize_message(msg: Any) -> dict[str, Any]:
    """Serialize a LangChain message to a JSON-compatible dict."""
    data: dict[str, Any] = {
        "id": getattr(msg, "id", None) or str(uuid.uuid4()),
        "type": message_type(msg),
        "content": extract_text_content(getattr(msg, "content", "")),
    }
    tool_calls = getattr(msg, "tool_calls", None)
    if tool_calls:
        data["tool_calls"] = [
            {"id": tc.get("id") or str(uuid.uuid4()), "name": tc.get("name"), "args": tc.get("args", {})}
            for tc in tool_calls
        ]
    return data


def serialize_tool_call_chunk(chunk: Any) -> dict[str, Any]:
    if isinstance(chunk, dict):
        return {k: chunk.get(k) for k in ("id", "name", "args", "index")}
    return {k: getattr(chunk, k, None) for k in ("id", "name", "args", "index")}


def serialize_interrupt(raw: Any) -> dict[str, Any] | None:
    """Flatten LangGraph's `__interrupt__` value into one pending request.

    Human-in-the-loop interrupts carry ``action_requests`` and
    ``review_configs``; the first action request becomes ``tool_call``.
    """
    if not raw:
        return None
    interrupt = raw[0] if isinstance(raw, (list, tuple)) else raw
    value = getattr(interrupt, "value", interrupt)
    interrupt_id = getattr(interrupt, "id", None) or str(uuid.uuid4())

    data: dict[str, Any] = {"id": interrupt_id, "tool_call": None}
    if isinstance(value, dict):
        action_requests = list(value.get("action_requests") or [])
        data["action_requests"] = action_requests
        data["review_configs"] = list(value.get("review_configs") or [])
        if action_requests:
            first = action_requests[0]
            data["tool_call"] = {
                "id": first.get("id") or interrupt_id,
                "name": first.get("name"),
                "args": first.get("args", {}),
            }
            if first.get("description"):
                data["description"] = first["description"]
    else:
        data["value"] = value
    return data
