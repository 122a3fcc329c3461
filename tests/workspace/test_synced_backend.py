"""Tests for the state + disk mirror coordinator."""

import logging
from pathlib import Path

import pytest

from core.workspace.disk_store import DiskStore
from core.workspace.state_store import StateFileStore, create_file_data
from core.workspace.synced import SyncedWorkspaceBackend
from core.workspace.types import EditResult, FileUploadResponse, StoreErrorKind, WriteResult


class ReadOnlyDiskStore(DiskStore):
    """Disk store whose mutations all fail, like a read-only mount."""

    def write(self, path, content):
        return WriteResult(error=f"Read-only file system: {path}", error_kind=StoreErrorKind.PERMISSION_DENIED)

    def edit(self, path, old_string, new_string, replace_all=False):
        return EditResult(error=f"Read-only file system: {path}", error_kind=StoreErrorKind.PERMISSION_DENIED)

    def upload_files(self, files):
        return [FileUploadResponse(path=path, error="permission_denied") for path, _ in files]


@pytest.fixture
def root(tmp_path):
    workspace = tmp_path / "ws"
    workspace.mkdir()
    return workspace


def _backend(root, files=None, *, disk_cls=DiskStore, sync_to_disk=True):
    state = StateFileStore({p: create_file_data(c) for p, c in (files or {}).items()})
    return SyncedWorkspaceBackend(state, disk_cls(root), sync_to_disk=sync_to_disk)


@pytest.mark.asyncio
async def test_write_then_list_and_read(root):
    backend = _backend(root)

    result = await backend.write("/a.txt", "hello")

    assert result.ok
    entries = await backend.ls_info("/")
    assert [(e["path"], e["is_dir"]) for e in entries] == [("/a.txt", False)]
    assert await backend.read("/a.txt") == "     1|hello"
    assert (root / "a.txt").read_text() == "hello"


@pytest.mark.asyncio
async def test_mirror_write_failure_keeps_state_success(root, caplog):
    backend = _backend(root, disk_cls=ReadOnlyDiskStore)

    with caplog.at_level(logging.WARNING, logger="core.workspace.synced"):
        result = await backend.write("/a.txt", "hello")

    assert result.ok
    assert await backend.read("/a.txt") == "     1|hello"
    assert "Disk mirror write failed" in caplog.text
    assert backend.files_update["/a.txt"]["content"] == ["hello"]


@pytest.mark.asyncio
async def test_disk_only_file_is_served_then_shadowed(root):
    (root / "b.txt").write_text("world")
    backend = _backend(root, disk_cls=ReadOnlyDiskStore)

    assert await backend.read("/b.txt") == "     1|world"
    assert [e["path"] for e in await backend.glob_info("*.txt")] == ["/b.txt"]

    await backend.write("/b.txt", "WORLD")

    assert await backend.read("/b.txt") == "     1|WORLD"
    # Disk copy unchanged; state shadows it
    assert (root / "b.txt").read_text() == "world"


@pytest.mark.asyncio
async def test_sync_disabled_skips_disk(root):
    (root / "b.txt").write_text("world")
    backend = _backend(root, sync_to_disk=False)

    assert await backend.read("/b.txt") == "Error: File '/b.txt' not found"
    assert await backend.ls_info("/") == []
    await backend.write("/c.txt", "x")
    assert not (root / "c.txt").exists()


@pytest.mark.asyncio
async def test_no_disk_store_bound(root):
    backend = SyncedWorkspaceBackend(StateFileStore())
    assert not backend.sync_enabled
    assert (await backend.write("/a.txt", "x")).ok
    report = await backend.sync_from_disk()
    assert report.loaded == [] and report.errors == []


@pytest.mark.asyncio
async def test_list_merges_state_over_disk(root):
    (root / "shared.txt").write_text("disk version is longer")
    (root / "disk_only.txt").write_text("d")
    backend = _backend(root, {"/shared.txt": "st", "/state_only.txt": "s"})

    entries = await backend.ls_info("/")

    assert [e["path"] for e in entries] == ["/disk_only.txt", "/shared.txt", "/state_only.txt"]
    shared = next(e for e in entries if e["path"] == "/shared.txt")
    assert shared["size"] == 2


@pytest.mark.asyncio
async def test_edit_bootstraps_disk_only_file_once(root, monkeypatch):
    (root / "app.py").write_text("x = 1\ny = 2\n")
    backend = _backend(root)

    result = await backend.edit("/app.py", "x = 1", "x = 10")

    assert result.ok
    assert backend.file_store.files["/app.py"]["content"] == ["x = 10", "y = 2", ""]
    assert (root / "app.py").read_text() == "x = 10\ny = 2\n"

    def _no_bootstrap(path):
        raise AssertionError("second edit must not bootstrap from disk")

    monkeypatch.setattr(backend.disk_store, "read_raw", _no_bootstrap)
    second = await backend.edit("/app.py", "y = 2", "y = 20")

    assert second.ok
    assert (root / "app.py").read_text() == "x = 10\ny = 20\n"


@pytest.mark.asyncio
async def test_edit_semantic_failure_has_no_disk_fallback(root, monkeypatch):
    (root / "f.txt").write_text("foo foo")
    backend = _backend(root, {"/f.txt": "foo foo"})

    def _no_disk(*args):
        raise AssertionError("semantic failures must not touch disk")

    monkeypatch.setattr(backend.disk_store, "read_raw", _no_disk)

    ambiguous = await backend.edit("/f.txt", "foo", "bar")
    missing = await backend.edit("/f.txt", "zzz", "bar")

    assert ambiguous.error_kind is StoreErrorKind.AMBIGUOUS_MATCH
    assert missing.error_kind is StoreErrorKind.STRING_NOT_FOUND


@pytest.mark.asyncio
async def test_edit_missing_everywhere(root):
    result = await _backend(root).edit("/ghost.txt", "a", "b")
    assert result.error_kind is StoreErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_grep_union_prefers_state(root):
    (root / "a.py").write_text("import os\nimport sys\n")
    (root / "b.py").write_text("import json\n")
    backend = _backend(root, {"/a.py": "import re"})

    matches = await backend.grep_raw("import")

    assert matches == [
        {"path": "/a.py", "line": 1, "text": "import re"},
        {"path": "/a.py", "line": 2, "text": "import sys"},
        {"path": "/b.py", "line": 1, "text": "import json"},
    ]


@pytest.mark.asyncio
async def test_grep_state_error_propagates(root):
    assert (await _backend(root).grep_raw("[")).startswith("Invalid regex pattern")


@pytest.mark.asyncio
async def test_read_raw_falls_back_to_disk(root):
    (root / "d.txt").write_text("on disk")
    backend = _backend(root)

    assert (await backend.read_raw("/d.txt"))["content"] == ["on disk"]
    with pytest.raises(FileNotFoundError):
        await backend.read_raw("/none.txt")


@pytest.mark.asyncio
async def test_download_falls_back_per_path(root):
    (root / "disk.bin").write_bytes(b"disk")
    backend = _backend(root, {"/state.txt": "state"})

    responses = await backend.download_files(["/state.txt", "/disk.bin", "/none"])

    assert [r.content for r in responses] == [b"state", b"disk", None]
    assert responses[2].error == "file_not_found"


@pytest.mark.asyncio
async def test_upload_mirror_failure_is_logged(root, caplog):
    backend = _backend(root, disk_cls=ReadOnlyDiskStore)

    with caplog.at_level(logging.WARNING, logger="core.workspace.synced"):
        responses = await backend.upload_files([("/u.txt", b"data")])

    assert [r.error for r in responses] == [None]
    assert "Disk mirror upload failed" in caplog.text
    assert await backend.read("/u.txt") == "     1|data"


@pytest.mark.asyncio
async def test_sync_from_disk_loads_missing_files(root):
    (root / "src").mkdir()
    (root / "src" / "main.py").write_text("   7|not a prefix\nprint(1)\n")
    (root / "empty.txt").write_text("")
    (root / "kept.txt").write_text("disk")
    (root / "bad.bin").write_bytes(b"\xff\xfe\x00")
    backend = _backend(root, {"/kept.txt": "state"})

    report = await backend.sync_from_disk()

    assert sorted(report.loaded) == ["/empty.txt", "/src/main.py"]
    assert len(report.errors) == 1 and report.errors[0].startswith("/bad.bin: Error:")
    files = backend.file_store.files
    assert files["/src/main.py"]["content"] == ["   7|not a prefix", "print(1)"]
    assert files["/empty.txt"]["content"] == [""]
    assert files["/kept.txt"]["content"] == ["state"]
    assert set(backend.files_update) == {"/empty.txt", "/src/main.py"}


@pytest.mark.asyncio
async def test_state_file_read_past_end_does_not_fall_back_to_disk(root):
    (root / "a.txt").write_text("\n".join(f"disk{i}" for i in range(10)))
    backend = _backend(root, {"/a.txt": "state-only"})

    result = await backend.read("/a.txt", offset=5)

    assert result == "Error: Line offset 5 exceeds file length (1 lines)"
    assert "disk" not in result


@pytest.mark.asyncio
async def test_unreadable_disk_file_is_returned_not_raised(root, monkeypatch):
    (root / "b.txt").write_text("hello world")
    backend = _backend(root)

    def deny(self, *args, **kwargs):
        raise PermissionError(13, "Permission denied", str(self))

    monkeypatch.setattr(Path, "read_text", deny)

    result = await backend.edit("/b.txt", "world", "WORLD")

    assert not result.ok
    assert result.error_kind is StoreErrorKind.NOT_FOUND
    assert backend.files_update == {}
    with pytest.raises(FileNotFoundError, match="not readable"):
        await backend.read_raw("/b.txt")
    assert (await backend.read("/b.txt")).startswith("Error:")
