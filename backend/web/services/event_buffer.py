"""In-memory event buffer for decoupling agent execution from SSE consumers."""

import asyncio
from dataclasses import dataclass, field


@dataclass
class RunEventBuffer:
    """Ordered event buffer with cursor-based reading and completion signal."""

    events: list[dict] = field(default_factory=list)
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    _notify: asyncio.Condition = field(default_factory=asyncio.Condition)
    run_id: str = ""

    async def put(self, event: dict) -> None:
        self.events.append(event)
        async with self._notify:
            self._notify.notify_all()

    async def mark_done(self) -> None:
        self.finished.set()
        async with self._notify:
            self._notify.notify_all()

    async def read_with_timeout(self, cursor: int, timeout: float = 30) -> tuple[list[dict] | None, int]:
        """Return (new_events, new_cursor), or (None, cursor) on timeout.

        Returns an empty list once the buffer is finished and drained.
        """
        async with self._notify:
            # Checked under the condition so a concurrent put cannot be missed
            if cursor < len(self.events):
                return self.events[cursor:], len(self.events)
            if self.finished.is_set():
                return [], cursor
            try:
                await asyncio.wait_for(self._notify.wait(), timeout)
            except TimeoutError:
                return None, cursor
        if cursor < len(self.events):
            return self.events[cursor:], len(self.events)
        if self.finished.is_set():
            return [], cursor
        return None, cursor
