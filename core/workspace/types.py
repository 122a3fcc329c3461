"""Type definitions for the workspace stores.

Paths are `/`-rooted virtual paths shared by the state store and the disk
mirror. Failures are returned as values; `StoreErrorKind` carries the
structured reason so callers never branch on message text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, NotRequired

from typing_extensions import TypedDict


class StoreErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    STRING_NOT_FOUND = "string_not_found"
    AMBIGUOUS_MATCH = "ambiguous_match"
    INVALID_PATH = "invalid_path"
    IS_DIRECTORY = "is_directory"
    PERMISSION_DENIED = "permission_denied"
    IO_ERROR = "io_error"


FileOperationError = Literal[
    "file_not_found",
    "permission_denied",
    "is_directory",
    "invalid_path",
]


class FileData(TypedDict):
    """Data structure for storing file contents in conversation state."""

    content: list[str]
    created_at: str
    modified_at: str


class FileInfo(TypedDict):
    """Listing entry. Directories never carry size or modified_at."""

    path: str
    is_dir: bool
    size: NotRequired[int]
    modified_at: NotRequired[str]


class GrepMatch(TypedDict):
    path: str
    line: int
    text: str


@dataclass
class WriteResult:
    """Result of a write against one store."""

    path: str | None = None
    error: str | None = None
    error_kind: StoreErrorKind | None = None
    # Only the state store fills this; the checkpointer merges it into `files`.
    files_update: dict[str, FileData | None] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EditResult:
    """Result of a string replacement against one store."""

    path: str | None = None
    error: str | None = None
    error_kind: StoreErrorKind | None = None
    files_update: dict[str, FileData | None] | None = None
    occurrences: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FileUploadResponse:
    path: str
    error: FileOperationError | None = None


@dataclass
class FileDownloadResponse:
    path: str
    content: bytes | None = None
    error: FileOperationError | None = None


@dataclass
class SyncReport:
    """Outcome of a one-shot disk → state bootstrap."""

    loaded: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def files_reducer(
    left: dict[str, FileData] | None, right: dict[str, FileData | None]
) -> dict[str, FileData]:
    """Merge file updates into the `files` state channel.

    Args:
        left: Existing files dict.
        right: New files dict to merge (`None` values delete files).

    Returns:
        Merged `dict` where right overwrites left for matching keys.
    """
    if left is None:
        return {k: v for k, v in right.items() if v is not None}

    result = {**left}
    for k, v in right.items():
        if v is None:
            result.pop(k, None)
        else:
            result[k] = v
    return result
