"""Dual-store workspace: checkpointed state with a best-effort disk mirror."""

from core.workspace.disk_store import DiskStore
from core.workspace.middleware import WorkspaceMiddleware, WorkspaceState
from core.workspace.state_store import StateFileStore
from core.workspace.synced import SyncedWorkspaceBackend
from core.workspace.types import (
    EditResult,
    FileData,
    FileInfo,
    GrepMatch,
    StoreErrorKind,
    SyncReport,
    WriteResult,
)
from core.workspace.watcher import WorkspaceFilesChanged, WorkspaceWatcher

__all__ = [
    "DiskStore",
    "EditResult",
    "FileData",
    "FileInfo",
    "GrepMatch",
    "StateFileStore",
    "StoreErrorKind",
    "SyncReport",
    "SyncedWorkspaceBackend",
    "WorkspaceFilesChanged",
    "WorkspaceMiddleware",
    "WorkspaceState",
    "WorkspaceWatcher",
    "WriteResult",
]
