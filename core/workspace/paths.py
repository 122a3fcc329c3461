"""Virtual path utilities shared by the state store and the disk mirror."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

EMPTY_CONTENT_WARNING = "System reminder: File exists but has empty contents"

# `cat -n` style prefix written by `format_content_with_line_numbers`.
_LINE_NUMBER_PREFIX = re.compile(r"^\s*\d+\|")

# Directories skipped by recursive disk walks.
DEFAULT_EXCLUDES: list[str] = [
    "node_modules",
    ".git",
    "__pycache__",
    ".venv",
    "venv",
    ".mypy_cache",
    ".pytest_cache",
]


def validate_virtual_path(path: str) -> str:
    """Validate and normalize a virtual file path.

    Args:
        path: The path to validate.

    Returns:
        Normalized canonical path, always `/`-rooted.

    Raises:
        ValueError: If path contains traversal sequences.
    """
    if not path:
        return "/"
    if ".." in Path(path).parts or path.startswith("~"):
        msg = f"Path traversal not allowed: {path}"
        raise ValueError(msg)

    normalized = os.path.normpath(path).replace("\\", "/")
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    # normpath keeps a leading `//` on POSIX
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def resolve_disk_path(path: str, root_path: Path) -> Path:
    """Map a virtual path onto `root_path`, refusing anything that escapes it.

    Raises:
        ValueError: If path contains traversal attempts or escapes the root.
    """
    virtual = validate_virtual_path(path)
    relative = virtual.lstrip("/")
    full_path = (root_path / relative).resolve()

    try:
        full_path.relative_to(root_path)
    except ValueError:
        msg = f"Path outside root directory: {path}"
        raise ValueError(msg) from None
    return full_path


def to_virtual_path(full_path: Path, root_path: Path) -> str:
    relative = full_path.relative_to(root_path).as_posix()
    return "/" if relative == "." else f"/{relative}"


def directory_prefix(path: str) -> str:
    return path if path.endswith("/") else f"{path}/"


def is_excluded(relative_parts: Iterable[str], excludes: Iterable[str] = DEFAULT_EXCLUDES) -> bool:
    excluded = set(excludes)
    return any(part in excluded for part in relative_parts)


def format_content_with_line_numbers(lines: list[str], start_line: int = 1) -> str:
    return "\n".join(f"{i:6d}|{line}" for i, line in enumerate(lines, start=start_line))


def strip_line_numbers(content: str) -> str:
    """Undo `format_content_with_line_numbers` on a read result."""
    return "\n".join(_LINE_NUMBER_PREFIX.sub("", line, count=1) for line in content.split("\n"))


def slice_lines(lines: list[str], offset: int, limit: int) -> str:
    """Render a line window of a file the way `read` returns it."""
    if not lines or lines == [""]:
        return EMPTY_CONTENT_WARNING
    if offset >= len(lines):
        return f"Error: Line offset {offset} exceeds file length ({len(lines)} lines)"
    window = lines[offset : offset + limit]
    return format_content_with_line_numbers(window, start_line=offset + 1)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob with `**`, `*`, `?` and `[...]` support to a regex.

    `*` never crosses a `/`; `**/` matches zero or more directories.
    """
    i, n = 0, len(pattern)
    out: list[str] = []
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern[i : i + 3] == "**/":
                out.append("(?:.*/)?")
                i += 3
                continue
            if pattern[i : i + 2] == "**":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


def glob_matches(relative_path: str, pattern: str) -> bool:
    """Match a path relative to the search root, `Path.glob` style."""
    return bool(glob_to_regex(pattern.lstrip("/")).match(relative_path))


def name_matches(path: str, pattern: str | None) -> bool:
    """Grep file filter: a glob applied to the file name only."""
    if not pattern:
        return True
    return bool(glob_to_regex(pattern).match(path.rsplit("/", 1)[-1]))
