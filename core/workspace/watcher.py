"""Polling watcher for a bound workspace directory."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

from pydantic import BaseModel

from core.workspace.disk_store import DiskStore
from core.workspace.paths import to_virtual_path

logger = logging.getLogger(__name__)


class WorkspaceFilesChanged(BaseModel):
    thread_id: str
    changed_paths: list[str]
    deleted_paths: list[str]


ChangeCallback = Callable[[WorkspaceFilesChanged], Awaitable[None] | None]

Snapshot = dict[str, tuple[int, int]]


class WorkspaceWatcher:
    """Reports files created, modified or deleted under a disk store's root.

    Only files yielded by the store's contained walk are snapshotted, so
    paths outside the root are never reported.
    """

    def __init__(
        self,
        thread_id: str,
        disk_store: DiskStore,
        on_change: ChangeCallback,
        interval: float = 2.0,
    ) -> None:
        self.thread_id = thread_id
        self.disk_store = disk_store
        self.on_change = on_change
        self.interval = interval
        self._snapshot: Snapshot | None = None
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _take_snapshot(self) -> Snapshot:
        snapshot: Snapshot = {}
        for full_path in self.disk_store.iter_files("/"):
            try:
                stat = full_path.stat()
            except OSError:
                continue
            snapshot[to_virtual_path(full_path, self.disk_store.root)] = (stat.st_mtime_ns, stat.st_size)
        return snapshot

    async def poll_once(self) -> WorkspaceFilesChanged | None:
        """Diff the directory against the previous snapshot.

        The first call only records the baseline.
        """
        current = await asyncio.to_thread(self._take_snapshot)
        previous, self._snapshot = self._snapshot, current
        if previous is None:
            return None

        changed = sorted(p for p, sig in current.items() if previous.get(p) != sig)
        deleted = sorted(p for p in previous if p not in current)
        if not changed and not deleted:
            return None
        return WorkspaceFilesChanged(
            thread_id=self.thread_id, changed_paths=changed, deleted_paths=deleted
        )

    async def _loop(self) -> None:
        while True:
            try:
                event = await self.poll_once()
                if event is not None:
                    logger.debug(
                        "Workspace %s: %d changed, %d deleted",
                        self.thread_id,
                        len(event.changed_paths),
                        len(event.deleted_paths),
                    )
                    result = self.on_change(event)
                    if inspect.isawaitable(result):
                        await result
            except Exception:
                logger.exception("Workspace watcher error for thread %s", self.thread_id)
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Watching %s for thread %s", self.disk_store.root, self.thread_id)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
