"""Per-thread agent run streaming."""

from core.streaming.channel import ChannelBus, Subscription
from core.streaming.events import (
    TERMINAL_EVENTS,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    TokenEvent,
    ToolCallEvent,
    ValuesEvent,
    event_from_payload,
)
from core.streaming.router import (
    ActiveRun,
    RunAlreadyActiveError,
    RunRegistry,
    RunStatus,
    StreamNormalizer,
    StreamRouter,
    stream_channel,
)
from core.streaming.transport import IPCTransport, TransportStream

__all__ = [
    "TERMINAL_EVENTS",
    "ActiveRun",
    "ChannelBus",
    "DoneEvent",
    "ErrorEvent",
    "IPCTransport",
    "RunAlreadyActiveError",
    "RunRegistry",
    "RunStatus",
    "StreamEvent",
    "StreamNormalizer",
    "StreamRouter",
    "Subscription",
    "TokenEvent",
    "ToolCallEvent",
    "TransportStream",
    "ValuesEvent",
    "event_from_payload",
    "stream_channel",
]
