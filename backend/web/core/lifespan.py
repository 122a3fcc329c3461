"""Application lifespan management."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.web.services.event_buffer import RunEventBuffer
from backend.web.services.workspace_events import WorkspaceEventHub
from config.loader import load_env_file, load_settings
from core.runtime.agent import create_agent_runtime
from core.runtime.context import RuntimeContext
from core.streaming.channel import ChannelBus
from core.streaming.router import StreamRouter
from core.workspace.watcher import WorkspaceFilesChanged

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown."""
    # API keys from ~/.openwork/.env, never overriding the real environment
    load_env_file()
    settings = getattr(app.state, "settings", None) or load_settings()
    logging.getLogger().setLevel(settings.log_level)

    workspace_events = WorkspaceEventHub(max_pending=settings.streaming.workspace_queue_size)

    def on_workspace_change(event: WorkspaceFilesChanged) -> None:
        workspace_events.publish(event)

    runtime = RuntimeContext(settings, on_workspace_change=on_workspace_change)
    await runtime.start()

    async def agent_factory(model_id: str | None):
        return await create_agent_runtime(runtime, model_id)

    bus = ChannelBus()
    stream_router = StreamRouter(bus, agent_factory, recursion_limit=settings.streaming.recursion_limit)

    # Initialize app state
    app.state.settings = settings
    app.state.runtime = runtime
    app.state.bus = bus
    app.state.stream_router = stream_router
    app.state.thread_locks: dict[str, asyncio.Lock] = {}
    app.state.thread_locks_guard = asyncio.Lock()
    app.state.thread_event_buffers: dict[str, RunEventBuffer] = {}
    app.state.workspace_events = workspace_events

    try:
        yield
    finally:
        await stream_router.shutdown()
        workspace_events.close()
        await bus.close()
        await runtime.stop()
        logger.info("OpenWork backend stopped")
