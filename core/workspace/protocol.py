"""Workspace store abstraction.

Separates the storage mechanism (checkpointed state vs a rooted directory)
from the sync policy implemented by `SyncedWorkspaceBackend`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

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

DEFAULT_READ_LIMIT = 2000


def not_found_message(path: str) -> str:
    return f"Error: File '{path}' not found"


def perform_string_replacement(
    content: str, old_string: str, new_string: str, replace_all: bool
) -> tuple[str, int] | EditResult:
    """Apply a str_replace edit to file content.

    Returns:
        `(new_content, occurrences)` on success, or a failed `EditResult`
        carrying a semantic error kind.
    """
    occurrences = content.count(old_string)
    if occurrences == 0:
        return EditResult(
            error=f"Error: String not found in file: '{old_string}'",
            error_kind=StoreErrorKind.STRING_NOT_FOUND,
        )
    if occurrences > 1 and not replace_all:
        return EditResult(
            error=(
                f"Error: String '{old_string}' appears {occurrences} times in file. "
                "Use replace_all=True to replace all instances, "
                "or provide a more specific string with surrounding context."
            ),
            error_kind=StoreErrorKind.AMBIGUOUS_MATCH,
        )
    if replace_all:
        return content.replace(old_string, new_string), occurrences
    return content.replace(old_string, new_string, 1), 1


class WorkspaceStore(ABC):
    """Abstract store keyed by `/`-rooted virtual paths.

    Implementations:
    - StateFileStore: the thread's checkpointed `files` state
    - DiskStore: a rooted directory on the local filesystem

    Read-oriented calls report failure with an ``"Error:"`` prefixed string,
    write-oriented calls through the result's ``error``/``error_kind``.
    """

    @abstractmethod
    def ls_info(self, path: str) -> list[FileInfo]:
        """List the direct children of `path`, or the file itself."""
        ...

    @abstractmethod
    def read(self, path: str, offset: int = 0, limit: int = DEFAULT_READ_LIMIT) -> str:
        """Read a line window, formatted with line numbers."""
        ...

    @abstractmethod
    def read_raw(self, path: str) -> FileData:
        """Read raw file data.

        Raises:
            FileNotFoundError: If the file does not exist in this store
        """
        ...

    @abstractmethod
    def write(self, path: str, content: str) -> WriteResult:
        ...

    @abstractmethod
    def edit(
        self, path: str, old_string: str, new_string: str, replace_all: bool = False
    ) -> EditResult:
        ...

    @abstractmethod
    def grep_raw(
        self, pattern: str, path: str = "/", glob: str | None = None
    ) -> list[GrepMatch] | str:
        """Regex search. Returns an error string for an invalid pattern."""
        ...

    @abstractmethod
    def glob_info(self, pattern: str, path: str = "/") -> list[FileInfo]:
        ...

    @abstractmethod
    def upload_files(self, files: list[tuple[str, bytes]]) -> list[FileUploadResponse]:
        ...

    @abstractmethod
    def download_files(self, paths: list[str]) -> list[FileDownloadResponse]:
        ...
