"""Process-wide runtime state.

Owns the checkpoint connection, the thread → workspace bindings and their
watchers. Agents and the web layer share one instance.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import aiosqlite
from langgraph.checkpoint.sqlite.aio import AsyncSqliteSaver

from config.schema import OpenworkSettings
from core.workspace.disk_store import DiskStore
from core.workspace.state_store import StateFileStore
from core.workspace.synced import SyncedWorkspaceBackend
from core.workspace.types import FileData
from core.workspace.watcher import WorkspaceFilesChanged, WorkspaceWatcher

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[WorkspaceFilesChanged], Awaitable[None] | None]


class RuntimeContext:
    def __init__(self, settings: OpenworkSettings, *, on_workspace_change: ChangeCallback | None = None) -> None:
        self.settings = settings
        self.on_workspace_change = on_workspace_change
        self._conn: aiosqlite.Connection | None = None
        self._checkpointer: AsyncSqliteSaver | None = None
        self._workspaces: dict[str, DiskStore] = {}
        self._watchers: dict[str, WorkspaceWatcher] = {}
        self._pending_sync: set[str] = set()

    async def start(self) -> None:
        db_path = self.settings.checkpoint_db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(str(db_path))
        # WAL lets the UI read threads while a run writes checkpoints
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA busy_timeout=30000")
        self._checkpointer = AsyncSqliteSaver(self._conn)
        await self._checkpointer.setup()
        logger.info("Checkpoint database at %s", db_path)

    async def stop(self) -> None:
        for thread_id in list(self._watchers):
            await self._stop_watcher(thread_id)
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            self._checkpointer = None

    async def __aenter__(self) -> RuntimeContext:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    @property
    def checkpointer(self) -> AsyncSqliteSaver:
        if self._checkpointer is None:
            msg = "RuntimeContext is not started"
            raise RuntimeError(msg)
        return self._checkpointer

    # ------------------------------------------------------------------
    # Workspace bindings
    # ------------------------------------------------------------------

    async def bind_workspace(self, thread_id: str, path: str | Path) -> DiskStore:
        """Bind a directory to a thread and schedule a disk bootstrap.

        Raises:
            ValueError: If `path` is not an existing directory.
        """
        root = Path(path).expanduser()
        if not root.is_dir():
            msg = f"Workspace path is not a directory: {path}"
            raise ValueError(msg)

        ws = self.settings.workspace
        disk_store = DiskStore(root, max_file_size_mb=ws.max_file_size_mb, excludes=ws.excludes)
        await self._stop_watcher(thread_id)
        self._workspaces[thread_id] = disk_store
        self._pending_sync.add(thread_id)

        if ws.watch and self.on_workspace_change is not None:
            watcher = WorkspaceWatcher(thread_id, disk_store, self.on_workspace_change, ws.watch_interval)
            watcher.start()
            self._watchers[thread_id] = watcher

        logger.info("Bound workspace %s to thread %s", disk_store.root, thread_id)
        return disk_store

    async def unbind_workspace(self, thread_id: str) -> bool:
        await self._stop_watcher(thread_id)
        self._pending_sync.discard(thread_id)
        removed = self._workspaces.pop(thread_id, None)
        if removed is not None:
            logger.info("Unbound workspace %s from thread %s", removed.root, thread_id)
        return removed is not None

    def workspace_for(self, thread_id: str) -> DiskStore | None:
        return self._workspaces.get(thread_id)

    def backend_for(self, thread_id: str, files: dict[str, FileData]) -> SyncedWorkspaceBackend:
        return SyncedWorkspaceBackend(
            StateFileStore(files),
            self._workspaces.get(thread_id),
            sync_to_disk=self.settings.workspace.sync_to_disk,
        )

    def request_sync(self, thread_id: str) -> bool:
        """Schedule a disk bootstrap for the thread's next run.

        Returns False when no workspace is bound.
        """
        if thread_id not in self._workspaces:
            return False
        self._pending_sync.add(thread_id)
        return True

    def consume_pending_sync(self, thread_id: str) -> bool:
        if thread_id in self._pending_sync:
            self._pending_sync.discard(thread_id)
            return True
        return False

    async def _stop_watcher(self, thread_id: str) -> None:
        watcher = self._watchers.pop(thread_id, None)
        if watcher is not None:
            await watcher.stop()
