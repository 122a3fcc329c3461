"""Rooted disk store.

Direct local I/O under a workspace directory. Virtual paths map to
``root + path``; any resolved path escaping the root is refused. All methods
block, so async callers run them through ``asyncio.to_thread``.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

from core.workspace.paths import (
    DEFAULT_EXCLUDES,
    glob_matches,
    name_matches,
    resolve_disk_path,
    slice_lines,
    to_virtual_path,
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
    FileOperationError,
    FileUploadResponse,
    GrepMatch,
    StoreErrorKind,
    WriteResult,
)


def _iso_mtime(stat: os.stat_result) -> str:
    return datetime.fromtimestamp(stat.st_mtime, UTC).isoformat()


def _os_error_kind(e: OSError) -> StoreErrorKind:
    if isinstance(e, FileNotFoundError):
        return StoreErrorKind.NOT_FOUND
    if isinstance(e, PermissionError):
        return StoreErrorKind.PERMISSION_DENIED
    if isinstance(e, IsADirectoryError):
        return StoreErrorKind.IS_DIRECTORY
    return StoreErrorKind.IO_ERROR


def _transfer_error(e: OSError) -> FileOperationError:
    if isinstance(e, PermissionError):
        return "permission_denied"
    if isinstance(e, IsADirectoryError):
        return "is_directory"
    return "file_not_found"


class DiskStore(WorkspaceStore):
    """Store over a directory on the real filesystem."""

    def __init__(
        self,
        root_dir: str | Path,
        *,
        max_file_size_mb: int = 10,
        excludes: list[str] | None = None,
    ) -> None:
        self.root = Path(root_dir).expanduser().resolve()
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024
        self.excludes = set(DEFAULT_EXCLUDES if excludes is None else excludes)

    def _resolve(self, path: str) -> Path:
        return resolve_disk_path(path, self.root)

    def _info(self, full_path: Path) -> FileInfo:
        virtual = to_virtual_path(full_path, self.root)
        if full_path.is_dir():
            return {"path": virtual, "is_dir": True}
        stat = full_path.stat()
        return {
            "path": virtual,
            "is_dir": False,
            "size": stat.st_size,
            "modified_at": _iso_mtime(stat),
        }

    def iter_files(self, path: str = "/") -> Iterator[Path]:
        """Walk every regular file under `path`, pruning excluded directories."""
        base = self._resolve(path)
        if base.is_file():
            yield base
            return
        if not base.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if d not in self.excludes)
            for name in sorted(filenames):
                full_path = Path(dirpath) / name
                # Symlinks may point outside the root
                try:
                    full_path.resolve().relative_to(self.root)
                except ValueError:
                    continue
                yield full_path

    def walk_files(self, path: str = "/") -> list[str]:
        return [to_virtual_path(p, self.root) for p in self.iter_files(path)]

    # ------------------------------------------------------------------
    # Listing / search
    # ------------------------------------------------------------------

    def ls_info(self, path: str) -> list[FileInfo]:
        try:
            full_path = self._resolve(path)
        except ValueError:
            return []
        if full_path.is_file():
            return [self._info(full_path)]
        if not full_path.is_dir():
            return []

        entries: list[FileInfo] = []
        try:
            for item in full_path.iterdir():
                if item.name in self.excludes:
                    continue
                try:
                    item.resolve().relative_to(self.root)
                    entries.append(self._info(item))
                except (ValueError, OSError):
                    continue
        except OSError:
            return []
        entries.sort(key=lambda e: e["path"])
        return entries

    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        try:
            base = self._resolve(path)
        except ValueError:
            return []
        entries: list[FileInfo] = []
        for full_path in self.iter_files(path):
            relative = full_path.relative_to(base).as_posix()
            if glob_matches(relative, pattern):
                try:
                    entries.append(self._info(full_path))
                except OSError:
                    continue
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
            files = list(self.iter_files(path))
        except ValueError as e:
            return str(e)

        matches: list[GrepMatch] = []
        for full_path in files:
            virtual = to_virtual_path(full_path, self.root)
            if not name_matches(virtual, glob):
                continue
            try:
                if full_path.stat().st_size > self.max_file_size_bytes:
                    continue
                text = full_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            for line_no, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    matches.append({"path": virtual, "line": line_no, "text": line})
        return matches

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def _read_text(self, path: str) -> str:
        full_path = self._resolve(path)
        if not full_path.is_file():
            raise FileNotFoundError(path)
        if full_path.stat().st_size > self.max_file_size_bytes:
            max_mb = self.max_file_size_bytes / 1024 / 1024
            msg = f"File too large: {path} exceeds {max_mb}MB"
            raise ValueError(msg)
        return full_path.read_text(encoding="utf-8")

    def read(self, path: str, offset: int = 0, limit: int = DEFAULT_READ_LIMIT) -> str:
        try:
            content = self._read_text(path)
        except FileNotFoundError:
            return not_found_message(path)
        except UnicodeDecodeError as e:
            return f"Error: Cannot decode file {path}: {e}"
        except (ValueError, OSError) as e:
            return f"Error: {e}"

        lines = content.split("\n")
        if lines and lines[-1] == "":
            lines = lines[:-1]
        return slice_lines(lines, offset, limit)

    def read_raw(self, path: str) -> FileData:
        """Full file data for `path`.

        Raises:
            FileNotFoundError: If the file is missing, unreadable, too large
                or outside the root.
        """
        try:
            content = self._read_text(path)
            stat = self._resolve(path).stat()
        except FileNotFoundError:
            msg = f"File '{path}' not found"
            raise FileNotFoundError(msg) from None
        except (ValueError, OSError) as e:
            raise FileNotFoundError(f"File '{path}' is not readable: {e}") from e
        return {
            "content": content.split("\n"),
            "created_at": datetime.fromtimestamp(stat.st_ctime, UTC).isoformat(),
            "modified_at": _iso_mtime(stat),
        }

    def write(self, path: str, content: str) -> WriteResult:
        try:
            full_path = self._resolve(path)
        except ValueError as e:
            return WriteResult(error=str(e), error_kind=StoreErrorKind.INVALID_PATH)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_text(content, encoding="utf-8")
        except OSError as e:
            return WriteResult(error=str(e), error_kind=_os_error_kind(e))
        return WriteResult(path=to_virtual_path(full_path, self.root))

    def edit(
        self, path: str, old_string: str, new_string: str, replace_all: bool = False
    ) -> EditResult:
        try:
            full_path = self._resolve(path)
        except ValueError as e:
            return EditResult(error=str(e), error_kind=StoreErrorKind.INVALID_PATH)
        if not full_path.is_file():
            return EditResult(error=not_found_message(path), error_kind=StoreErrorKind.NOT_FOUND)

        try:
            content = full_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            kind = _os_error_kind(e) if isinstance(e, OSError) else StoreErrorKind.IO_ERROR
            return EditResult(error=str(e), error_kind=kind)

        result = perform_string_replacement(content, old_string, new_string, replace_all)
        if isinstance(result, EditResult):
            result.path = path
            return result

        new_content, occurrences = result
        try:
            full_path.write_text(new_content, encoding="utf-8")
        except OSError as e:
            return EditResult(error=str(e), error_kind=_os_error_kind(e))
        return EditResult(path=to_virtual_path(full_path, self.root), occurrences=occurrences)

    # ------------------------------------------------------------------
    # Bulk transfer
    # ------------------------------------------------------------------

    def upload_files(self, files: list[tuple[str, bytes]]) -> list[FileUploadResponse]:
        responses: list[FileUploadResponse] = []
        for path, data in files:
            try:
                full_path = self._resolve(path)
            except ValueError:
                responses.append(FileUploadResponse(path=path, error="invalid_path"))
                continue
            try:
                full_path.parent.mkdir(parents=True, exist_ok=True)
                full_path.write_bytes(data)
            except OSError as e:
                responses.append(FileUploadResponse(path=path, error=_transfer_error(e)))
                continue
            responses.append(FileUploadResponse(path=path))
        return responses

    def download_files(self, paths: list[str]) -> list[FileDownloadResponse]:
        responses: list[FileDownloadResponse] = []
        for path in paths:
            try:
                full_path = self._resolve(path)
            except ValueError:
                responses.append(FileDownloadResponse(path=path, error="invalid_path"))
                continue
            try:
                responses.append(FileDownloadResponse(path=path, content=full_path.read_bytes()))
            except OSError as e:
                responses.append(FileDownloadResponse(path=path, error=_transfer_error(e)))
        return responses
