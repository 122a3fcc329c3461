"""Thread execution and workspace endpoints."""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from backend.web.core.dependencies import get_app, get_runtime, get_stream_router, get_workspace_events
from backend.web.models.requests import InterruptRequest, ResumeRequest, RunRequest, WorkspaceRequest
from backend.web.services.streaming_service import observe_run_events, prune_thread, start_buffered_run
from backend.web.services.workspace_events import WorkspaceEventHub
from core.runtime.context import RuntimeContext
from core.streaming.router import RunAlreadyActiveError, StreamRouter, build_resume_value

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/threads", tags=["threads"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


async def _start(app: Any, thread_id: str, start) -> dict[str, Any]:
    try:
        buf = await start_buffered_run(app, thread_id, start)
    except RunAlreadyActiveError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return {"run_id": buf.run_id, "thread_id": thread_id}


# Run endpoints return JSON; the agent runs in the background
@router.post("/{thread_id}/runs")
async def run_thread(
    thread_id: str,
    payload: RunRequest,
    app: Annotated[Any, Depends(get_app)],
    stream_router: Annotated[StreamRouter, Depends(get_stream_router)],
) -> dict[str, Any]:
    """Start an agent run. Returns {run_id, thread_id}; observe via GET /runs/events."""
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="message cannot be empty")
    return await _start(app, thread_id, lambda: stream_router.invoke(thread_id, payload.message, payload.model))


@router.post("/{thread_id}/resume")
async def resume_thread(
    thread_id: str,
    payload: ResumeRequest,
    app: Annotated[Any, Depends(get_app)],
    stream_router: Annotated[StreamRouter, Depends(get_stream_router)],
) -> dict[str, Any]:
    """Resume an interrupted thread with a raw resume value."""
    return await _start(app, thread_id, lambda: stream_router.resume(thread_id, payload.command, payload.model))


@router.post("/{thread_id}/interrupt")
async def resolve_interrupt(
    thread_id: str,
    payload: InterruptRequest,
    app: Annotated[Any, Depends(get_app)],
    stream_router: Annotated[StreamRouter, Depends(get_stream_router)],
) -> dict[str, Any]:
    """Answer a pending tool approval with approve / reject / edit."""
    try:
        resume_value = build_resume_value(payload.decision.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return await _start(
        app, thread_id, lambda: stream_router.resume(thread_id, {"resume": resume_value}, payload.model)
    )


@router.post("/{thread_id}/runs/cancel")
async def cancel_run(
    thread_id: str,
    stream_router: Annotated[StreamRouter, Depends(get_stream_router)],
) -> dict[str, Any]:
    """Cancel the active run for the given thread."""
    if not await stream_router.cancel(thread_id):
        return {"ok": False, "message": "No active run found"}
    return {"ok": True, "message": "Run cancelled"}


@router.get("/{thread_id}/runs/events")
async def stream_run_events(
    thread_id: str,
    request: Request,
    app: Annotated[Any, Depends(get_app)],
    after: int = 0,
) -> EventSourceResponse:
    """SSE event stream for an in-progress or completed run.

    Supports reconnection via ``?after=N`` or ``Last-Event-ID`` header.
    """
    # Prefer Last-Event-ID header (browser EventSource sends this automatically)
    last_id = request.headers.get("Last-Event-ID")
    if last_id:
        try:
            after = max(after, int(last_id))
        except ValueError:
            pass

    streaming = app.state.settings.streaming
    buf = app.state.thread_event_buffers.get(thread_id)
    if buf is None:

        async def _empty():
            yield {"retry": streaming.retry_ms}
            yield {"event": "done", "data": json.dumps({"type": "done", "cancelled": False})}

        return EventSourceResponse(_empty(), headers=SSE_HEADERS)

    return EventSourceResponse(
        observe_run_events(
            buf,
            after=after,
            keepalive_seconds=streaming.keepalive_seconds,
            retry_ms=streaming.retry_ms,
        ),
        headers=SSE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Workspace binding
# ---------------------------------------------------------------------------


@router.get("/{thread_id}/workspace")
async def get_workspace(
    thread_id: str,
    runtime: Annotated[RuntimeContext, Depends(get_runtime)],
) -> dict[str, Any]:
    disk_store = runtime.workspace_for(thread_id)
    return {"thread_id": thread_id, "path": str(disk_store.root) if disk_store else None}


@router.put("/{thread_id}/workspace")
async def bind_workspace(
    thread_id: str,
    payload: WorkspaceRequest,
    runtime: Annotated[RuntimeContext, Depends(get_runtime)],
) -> dict[str, Any]:
    """Bind a directory; its files are imported at the start of the next run."""
    try:
        disk_store = await runtime.bind_workspace(thread_id, payload.path)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"ok": True, "thread_id": thread_id, "path": str(disk_store.root)}


@router.delete("/{thread_id}/workspace")
async def unbind_workspace(
    thread_id: str,
    app: Annotated[Any, Depends(get_app)],
    runtime: Annotated[RuntimeContext, Depends(get_runtime)],
    workspace_events: Annotated[WorkspaceEventHub, Depends(get_workspace_events)],
) -> dict[str, Any]:
    if not await runtime.unbind_workspace(thread_id):
        raise HTTPException(status_code=404, detail="No workspace bound to this thread")
    workspace_events.close(thread_id)
    await prune_thread(app, thread_id)
    return {"ok": True, "thread_id": thread_id}


@router.post("/{thread_id}/workspace/sync")
async def sync_workspace(
    thread_id: str,
    runtime: Annotated[RuntimeContext, Depends(get_runtime)],
) -> dict[str, Any]:
    """Schedule a disk import into the thread's files for its next run."""
    if not runtime.request_sync(thread_id):
        raise HTTPException(status_code=404, detail="No workspace bound to this thread")
    return {"ok": True, "pending": True}


@router.get("/{thread_id}/workspace/events")
async def stream_workspace_events(
    thread_id: str,
    app: Annotated[Any, Depends(get_app)],
    runtime: Annotated[RuntimeContext, Depends(get_runtime)],
    workspace_events: Annotated[WorkspaceEventHub, Depends(get_workspace_events)],
) -> EventSourceResponse:
    """SSE stream of files changed on disk outside the agent."""
    if runtime.workspace_for(thread_id) is None:
        raise HTTPException(status_code=404, detail="No workspace bound to this thread")
    streaming = app.state.settings.streaming
    return EventSourceResponse(
        workspace_events.observe(
            thread_id,
            keepalive_seconds=streaming.keepalive_seconds,
            retry_ms=streaming.retry_ms,
        ),
        headers=SSE_HEADERS,
    )
