"""State-backed file store.

Files live in the thread's LangGraph state under the `files` key. The store
works on a private copy so a read after a write in the same step observes
the write; every mutation is also recorded in `files_update`, which the
caller returns as a `Command` update for the checkpointer to merge.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from core.workspace.paths import (
    directory_prefix,
    glob_matches,
    name_matches,
    slice_lines,
    validate_virtual_path,
)
from core.workspace.protocol import (
    DEFAULT_READ_LIMIT,
    WorkspaceStore,
    not_found_message,
    perform_string_replacement,
)
from core.workspace.types import (
    EditResult,
    FileData,
    FileDownloadResponse,
    FileInfo,
    FileUploadResponse,
    GrepMatch,
    StoreErrorKind,
    WriteResult,
)

if TYPE_CHECKING:
    from collections.abc import Mapping


def create_file_data(content: str, created_at: str | None = None) -> FileData:
    now = datetime.now(UTC).isoformat()
    return {
        "content": content.split("\n"),
        "created_at": created_at or now,
        "modified_at": now,
    }


def file_data_to_string(file_data: FileData) -> str:
    return "\n".join(file_data["content"])


def _file_info(path: str, file_data: FileData) -> FileInfo:
    return {
        "path": path,
        "is_dir": False,
        "size": len(file_data_to_string(file_data).encode("utf-8")),
        "modified_at": file_data.get("modified_at", ""),
    }


class StateFileStore(WorkspaceStore):
    """Store over a thread's checkpointed `files` mapping."""

    def __init__(self, files: Mapping[str, FileData] | None = None) -> None:
        self._files: dict[str, FileData] = dict(files or {})
        self._updates: dict[str, FileData | None] = {}

    @property
    def files(self) -> dict[str, FileData]:
        return self._files

    @property
    def files_update(self) -> dict[str, FileData | None]:
        return dict(self._updates)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def _put(self, path: str, file_data: FileData) -> dict[str, FileData | None]:
        self._files[path] = file_data
        self._updates[path] = file_data
        return {path: file_data}

    # ------------------------------------------------------------------
    # Listing / search
    # ------------------------------------------------------------------

    def ls_info(self, path: str) -> list[FileInfo]:
        try:
            normalized = validate_virtual_path(path)
        except ValueError:
            return []
        if normalized in self._files:
            return [_file_info(normalized, self._files[normalized])]
        prefix = directory_prefix(normalized)

        entries: dict[str, FileInfo] = {}
        for file_path, file_data in self._files.items():
            if not file_path.startswith(prefix):
                continue
            child, sep, _rest = file_path[len(prefix) :].partition("/")
            if sep:
                # Directories only exist implicitly, as prefixes of file paths
                dir_path = f"{prefix}{child}"
                entries.setdefault(dir_path, {"path": dir_path, "is_dir": True})
            else:
                entries[file_path] = _file_info(file_path, file_data)
        return sorted(entries.values(), key=lambda e: e["path"])

    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        try:
            normalized = validate_virtual_path(path)
        except ValueError:
            return []
        prefix = directory_prefix(normalized)

        entries: list[FileInfo] = []
        for file_path, file_data in self._files.items():
            if not file_path.startswith(prefix):
                continue
            if glob_matches(file_path[len(prefix) :], pattern):
                entries.append(_file_info(file_path, file_data))
        entries.sort(key=lambda e: e["path"])
        return entries

    def grep_raw(
        self, pattern: str, path: str = "/", glob: str | None = None
    ) -> list[GrepMatch] | str:
        try:
            regex = re.compile(pattern)
        except re.error as e:
            return f"Invalid regex pattern: {e}"
        try:
            normalized = validate_virtual_path(path)
        except ValueError as e:
            return str(e)
        prefix = directory_prefix(normalized)

        matches: list[GrepMatch] = []
        for file_path in sorted(self._files):
            if file_path != normalized and not file_path.startswith(prefix):
                continue
            if not name_matches(file_path, glob):
                continue
            for line_no, line in enumerate(self._files[file_path]["content"], start=1):
                if regex.search(line):
                    matches.append({"path": file_path, "line": line_no, "text": line})
        return matches

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def read(self, path: str, offset: int = 0, limit: int = DEFAULT_READ_LIMIT) -> str:
        try:
            normalized = validate_virtual_path(path)
        except ValueError as e:
            return f"Error: {e}"
        file_data = self._files.get(normalized)
        if file_data is None:
            return not_found_message(path)
        return slice_lines(file_data["content"], offset, limit)

    def read_raw(self, path: str) -> FileData:
        normalized = validate_virtual_path(path)
        file_data = self._files.get(normalized)
        if file_data is None:
            msg = f"File '{path}' not found"
            raise FileNotFoundError(msg)
        return file_data

    def write(self, path: str, content: str) -> WriteResult:
        try:
            normalized = validate_virtual_path(path)
        except ValueError as e:
            return WriteResult(error=str(e), error_kind=StoreErrorKind.INVALID_PATH)

        existing = self._files.get(normalized)
        created_at = existing["created_at"] if existing else None
        update = self._put(normalized, create_file_data(content, created_at))
        return WriteResult(path=normalized, files_update=update)

    def edit(
        self, path: str, old_string: str, new_string: str, replace_all: bool = False
    ) -> EditResult:
        try:
            normalized = validate_virtual_path(path)
        except ValueError as e:
            return EditResult(error=str(e), error_kind=StoreErrorKind.INVALID_PATH)

        file_data = self._files.get(normalized)
        if file_data is None:
            return EditResult(
                error=not_found_message(path), error_kind=StoreErrorKind.NOT_FOUND
            )

        result = perform_string_replacement(
            file_data_to_string(file_data), old_string, new_string, replace_all
        )
        if isinstance(result, EditResult):
            result.path = normalized
            return result

        new_content, occurrences = result
        update = self._put(normalized, create_file_data(new_content, file_data["created_at"]))
        return EditResult(path=normalized, files_update=update, occurrences=occurrences)

    # ------------------------------------------------------------------
    # Bulk transfer
    # ------------------------------------------------------------------

    def upload_files(self, files: list[tuple[str, bytes]]) -> list[FileUploadResponse]:
        responses: list[FileUploadResponse] = []
        for path, data in files:
            try:
                normalized = validate_virtual_path(path)
            except ValueError:
                responses.append(FileUploadResponse(path=path, error="invalid_path"))
                continue
            content = data.decode("utf-8", errors="replace")
            existing = self._files.get(normalized)
            self._put(normalized, create_file_data(content, existing["created_at"] if existing else None))
            responses.append(FileUploadResponse(path=path))
        return responses

    def download_files(self, paths: list[str]) -> list[FileDownloadResponse]:
        responses: list[FileDownloadResponse] = []
        for path in paths:
            try:
                normalized = validate_virtual_path(path)
            except ValueError:
                responses.append(FileDownloadResponse(path=path, error="invalid_path"))
                continue
            file_data = self._files.get(normalized)
            if file_data is None:
                responses.append(FileDownloadResponse(path=path, error="file_not_found"))
                continue
            responses.append(
                FileDownloadResponse(path=path, content=file_data_to_string(file_data).encode("utf-8"))
            )
        return responses
