"""Synced workspace backend.

Presents one filesystem API to the agent's tools over two stores:

- StateFileStore: the thread's checkpointed files, authoritative for reads
- DiskStore: the bound workspace directory, used to bootstrap paths the
  state has never seen and as a best-effort mirror for writes

A disk mirror failure is logged and never changes the result of an operation
whose state side already succeeded.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from core.workspace.disk_store import DiskStore
from core.workspace.paths import EMPTY_CONTENT_WARNING, strip_line_numbers, validate_virtual_path
from core.workspace.protocol import DEFAULT_READ_LIMIT
from core.workspace.state_store import StateFileStore
from core.workspace.types import (
    EditResult,
    FileData,
    FileDownloadResponse,
    FileInfo,
    FileUploadResponse,
    GrepMatch,
    StoreErrorKind,
    SyncReport,
    WriteResult,
)

logger = logging.getLogger(__name__)


def _is_error(result: str) -> bool:
    return result.startswith("Error:")


def _merge_by_path(state_entries: list[FileInfo], disk_entries: list[FileInfo]) -> list[FileInfo]:
    merged = {entry["path"]: entry for entry in state_entries}
    for entry in disk_entries:
        merged.setdefault(entry["path"], entry)
    return sorted(merged.values(), key=lambda e: e["path"])


class SyncedWorkspaceBackend:
    """Coordinator over a state store and an optional disk mirror.

    Owns no data: only the two store references and the sync flag. Disk
    logic is skipped silently unless sync is on and a disk store is bound.
    """

    def __init__(
        self,
        file_store: StateFileStore,
        disk_store: DiskStore | None = None,
        *,
        sync_to_disk: bool = True,
    ) -> None:
        self.file_store = file_store
        self.disk_store = disk_store
        self._sync_to_disk = sync_to_disk

    @property
    def sync_enabled(self) -> bool:
        return self._sync_to_disk and self.disk_store is not None

    @property
    def files_update(self) -> dict[str, FileData | None]:
        """State mutations made through this backend, for a `Command` update."""
        return self.file_store.files_update

    async def _disk(self, method: str, *args):
        return await asyncio.to_thread(getattr(self.disk_store, method), *args)

    # ------------------------------------------------------------------
    # Listing / search
    # ------------------------------------------------------------------

    async def ls_info(self, path: str) -> list[FileInfo]:
        state_entries = self.file_store.ls_info(path)
        if not self.sync_enabled:
            return sorted(state_entries, key=lambda e: e["path"])
        try:
            disk_entries = await self._disk("ls_info", path)
        except OSError as e:
            logger.warning("Disk listing failed for %s: %s", path, e)
            disk_entries = []
        return _merge_by_path(state_entries, disk_entries)

    async def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        state_entries = self.file_store.glob_info(pattern, path)
        if not self.sync_enabled:
            return state_entries
        try:
            disk_entries = await self._disk("glob_info", pattern, path)
        except (OSError, ValueError) as e:
            logger.warning("Disk glob failed for %s under %s: %s", pattern, path, e)
            disk_entries = []
        return _merge_by_path(state_entries, disk_entries)

    async def grep_raw(
        self, pattern: str, path: str = "/", glob: str | None = None
    ) -> list[GrepMatch] | str:
        state_matches = self.file_store.grep_raw(pattern, path, glob)
        if isinstance(state_matches, str) or not self.sync_enabled:
            return state_matches

        try:
            disk_matches = await self._disk("grep_raw", pattern, path, glob)
        except OSError as e:
            logger.warning("Disk grep failed under %s: %s", path, e)
            return state_matches
        if isinstance(disk_matches, str):
            logger.warning("Disk grep failed under %s: %s", path, disk_matches)
            return state_matches

        seen = {(m["path"], m["line"]) for m in state_matches}
        merged = list(state_matches)
        for match in disk_matches:
            key = (match["path"], match["line"])
            if key not in seen:
                seen.add(key)
                merged.append(match)
        return merged

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def _in_state(self, path: str) -> bool:
        try:
            return validate_virtual_path(path) in self.file_store
        except ValueError:
            return False

    async def read(self, path: str, offset: int = 0, limit: int = DEFAULT_READ_LIMIT) -> str:
        result = self.file_store.read(path, offset, limit)
        # Disk is consulted only for paths the state has never held
        if not self.sync_enabled or self._in_state(path):
            return result
        return await self._disk("read", path, offset, limit)

    async def read_raw(self, path: str) -> FileData:
        try:
            return self.file_store.read_raw(path)
        except (FileNotFoundError, ValueError):
            if not self.sync_enabled:
                raise
        return await self._disk("read_raw", path)

    async def write(self, path: str, content: str) -> WriteResult:
        result = self.file_store.write(path, content)
        if not result.ok or not self.sync_enabled:
            return result
        disk_result: WriteResult = await self._disk("write", path, content)
        if not disk_result.ok:
            logger.warning("Disk mirror write failed for %s: %s", path, disk_result.error)
        return result

    async def edit(
        self, path: str, old_string: str, new_string: str, replace_all: bool = False
    ) -> EditResult:
        result = self.file_store.edit(path, old_string, new_string, replace_all)
        if result.ok:
            await self._mirror_edit(path, old_string, new_string, replace_all)
            return result
        if result.error_kind is not StoreErrorKind.NOT_FOUND or not self.sync_enabled:
            return result

        # Bootstrap: pull the file from disk into state, then retry once
        try:
            file_data: FileData = await self._disk("read_raw", path)
        except OSError as e:
            logger.debug("Edit bootstrap skipped for %s: %s", path, e)
            return result
        bootstrap = self.file_store.write(path, "\n".join(file_data["content"]))
        if not bootstrap.ok:
            return EditResult(path=path, error=bootstrap.error, error_kind=bootstrap.error_kind)
        logger.debug("Bootstrapped %s from disk before edit", path)

        retry = self.file_store.edit(path, old_string, new_string, replace_all)
        if not retry.ok:
            return retry
        await self._mirror_edit(path, old_string, new_string, replace_all)
        return retry

    async def _mirror_edit(
        self, path: str, old_string: str, new_string: str, replace_all: bool
    ) -> None:
        if not self.sync_enabled:
            return
        disk_result: EditResult = await self._disk("edit", path, old_string, new_string, replace_all)
        if not disk_result.ok:
            logger.warning("Disk mirror edit failed for %s: %s", path, disk_result.error)

    # ------------------------------------------------------------------
    # Bulk transfer
    # ------------------------------------------------------------------

    async def upload_files(self, files: list[tuple[str, bytes]]) -> list[FileUploadResponse]:
        responses = self.file_store.upload_files(files)
        if not self.sync_enabled:
            return responses
        disk_responses: list[FileUploadResponse] = await self._disk("upload_files", files)
        for disk_response in disk_responses:
            if disk_response.error:
                logger.warning(
                    "Disk mirror upload failed for %s: %s", disk_response.path, disk_response.error
                )
        return responses

    async def download_files(self, paths: list[str]) -> list[FileDownloadResponse]:
        responses = self.file_store.download_files(paths)
        if not self.sync_enabled:
            return responses

        missing = [i for i, r in enumerate(responses) if r.error == "file_not_found"]
        if not missing:
            return responses
        disk_responses: list[FileDownloadResponse] = await self._disk(
            "download_files", [responses[i].path for i in missing]
        )
        for index, disk_response in zip(missing, disk_responses, strict=True):
            responses[index] = disk_response
        return responses

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def sync_from_disk(self) -> SyncReport:
        """Load every disk file the state does not hold yet.

        Per-file failures are collected as ``"<path>: <message>"`` and never
        abort the walk.
        """
        report = SyncReport()
        if not self.sync_enabled:
            return report

        disk_paths: list[str] = await self._disk("walk_files", "/")
        for path in disk_paths:
            if path in self.file_store:
                continue
            try:
                content = await self._disk("read", path, 0, sys.maxsize)
            except OSError as e:
                report.errors.append(f"{path}: {e}")
                continue
            if _is_error(content):
                report.errors.append(f"{path}: {content}")
                continue
            raw = "" if content == EMPTY_CONTENT_WARNING else strip_line_numbers(content)
            result = self.file_store.write(path, raw)
            if result.ok:
                report.loaded.append(path)
            else:
                report.errors.append(f"{path}: {result.error}")

        logger.info("Synced %d file(s) from disk (%d error(s))", len(report.loaded), len(report.errors))
        return report
