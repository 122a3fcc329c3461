"""Tests for the rooted disk store."""

import os

import pytest

from core.workspace.disk_store import DiskStore
from core.workspace.paths import EMPTY_CONTENT_WARNING
from core.workspace.types import StoreErrorKind


@pytest.fixture
def root(tmp_path):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    (workspace / "README.md").write_text("# Title\nbody\n")
    (workspace / "src").mkdir()
    (workspace / "src" / "app.py").write_text("import os\nprint('hi')\n")
    (workspace / "node_modules").mkdir()
    (workspace / "node_modules" / "dep.js").write_text("module.exports = 1\n")
    return workspace


def test_read_with_line_numbers(root):
    store = DiskStore(root)
    assert store.read("/README.md") == "     1|# Title\n     2|body"


def test_read_missing_and_empty(root):
    (root / "empty.txt").write_text("")
    store = DiskStore(root)

    assert store.read("/missing.txt") == "Error: File '/missing.txt' not found"
    assert store.read("/empty.txt") == EMPTY_CONTENT_WARNING


def test_read_refuses_escape(root):
    store = DiskStore(root)
    assert store.read("/../outside.txt").startswith("Error:")


def test_read_raw_raises_when_missing(root):
    with pytest.raises(FileNotFoundError):
        DiskStore(root).read_raw("/nope.txt")


def test_read_too_large(root):
    (root / "big.bin").write_text("x" * (1024 * 1024 + 1))
    store = DiskStore(root, max_file_size_mb=1)
    assert "File too large" in store.read("/big.bin")


def test_write_creates_parents(root):
    store = DiskStore(root)
    result = store.write("/docs/new/guide.md", "hello")

    assert result.ok
    assert result.path == "/docs/new/guide.md"
    assert (root / "docs" / "new" / "guide.md").read_text() == "hello"


def test_write_outside_root_is_invalid_path(root):
    result = DiskStore(root).write("/../escape.txt", "x")
    assert result.error_kind is StoreErrorKind.INVALID_PATH
    assert not (root.parent / "escape.txt").exists()


def test_edit(root):
    store = DiskStore(root)
    result = store.edit("/src/app.py", "print('hi')", "print('bye')")

    assert result.ok
    assert result.occurrences == 1
    assert (root / "src" / "app.py").read_text() == "import os\nprint('bye')\n"
    assert store.edit("/nope.py", "a", "b").error_kind is StoreErrorKind.NOT_FOUND


def test_ls_skips_excluded_dirs(root):
    entries = DiskStore(root).ls_info("/")
    assert [(e["path"], e["is_dir"]) for e in entries] == [("/README.md", False), ("/src", True)]


def test_glob_and_grep(root):
    store = DiskStore(root)

    assert [e["path"] for e in store.glob_info("**/*.py")] == ["/src/app.py"]
    assert [e["path"] for e in store.glob_info("*.md")] == ["/README.md"]
    assert store.grep_raw("import", "/") == [{"path": "/src/app.py", "line": 1, "text": "import os"}]
    assert store.grep_raw("module") == []
    assert store.grep_raw("(").startswith("Invalid regex pattern")


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_walk_skips_symlinks_outside_root(root, tmp_path):
    secret = tmp_path / "secret.txt"
    secret.write_text("token")
    os.symlink(secret, root / "link.txt")

    store = DiskStore(root)

    assert "/link.txt" not in store.walk_files()
    assert store.read("/link.txt").startswith("Error:")


def test_upload_and_download(root):
    store = DiskStore(root)
    uploads = store.upload_files([("/data/blob.bin", b"\x00\x01"), ("/../x", b"")])
    assert [u.error for u in uploads] == [None, "invalid_path"]

    downloads = store.download_files(["/data/blob.bin", "/missing"])
    assert downloads[0].content == b"\x00\x01"
    assert downloads[1].error == "file_not_found"
