"""FastAPI dependency injection functions."""

import asyncio
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from backend.web.services.workspace_events import WorkspaceEventHub
from config.schema import OpenworkSettings
from core.runtime.context import RuntimeContext
from core.streaming.router import StreamRouter


async def get_app(request: Request) -> FastAPI:
    """Get FastAPI app instance from request."""
    return request.app


async def get_settings(app: Annotated[FastAPI, Depends(get_app)]) -> OpenworkSettings:
    return app.state.settings


async def get_runtime(app: Annotated[FastAPI, Depends(get_app)]) -> RuntimeContext:
    return app.state.runtime


async def get_stream_router(app: Annotated[FastAPI, Depends(get_app)]) -> StreamRouter:
    return app.state.stream_router


async def get_workspace_events(app: Annotated[FastAPI, Depends(get_app)]) -> WorkspaceEventHub:
    return app.state.workspace_events


async def get_thread_lock(app: FastAPI, thread_id: str) -> asyncio.Lock:
    """Get or create a lock for a specific thread."""
    async with app.state.thread_locks_guard:
        lock = app.state.thread_locks.get(thread_id)
        if lock is None:
            lock = asyncio.Lock()
            app.state.thread_locks[thread_id] = lock
        return lock
