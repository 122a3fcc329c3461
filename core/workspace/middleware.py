"""Workspace tools for the agent.

Tools (bound to the thread's synced backend on every call):
- ls: List directory entries
- read_file: Read a line window with line numbers
- write_file: Create or overwrite a file
- edit_file: str_replace edit
- glob: Find files by pattern
- grep: Regex search over file contents
- write_todos: Replace the thread's todo list

Mutations are returned as `Command` updates so the checkpointer persists the
`files` channel; the disk mirror is updated by the backend itself. Before each
run the bound workspace path is recorded in state, and a pending disk
bootstrap (scheduled when a workspace is bound or re-synced) is applied.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Any, Literal, NotRequired

from langchain.agents.middleware.types import AgentMiddleware, AgentState
from langchain.tools import ToolRuntime, tool
from langchain_core.messages import ToolMessage
from langgraph.config import get_config
from langgraph.types import Command
from typing_extensions import TypedDict

from core.workspace.protocol import DEFAULT_READ_LIMIT
from core.workspace.synced import SyncedWorkspaceBackend
from core.workspace.types import FileData, FileInfo, files_reducer

if TYPE_CHECKING:
    from langgraph.runtime import Runtime

    from core.runtime.context import RuntimeContext

logger = logging.getLogger(__name__)


class Todo(TypedDict):
    content: str
    status: Literal["pending", "in_progress", "completed"]


class WorkspaceState(AgentState):
    """State schema for the workspace tools."""

    files: NotRequired[Annotated[dict[str, FileData], files_reducer]]
    workspace_path: NotRequired[str | None]
    todos: NotRequired[list[Todo]]


def _thread_id(config: dict[str, Any] | None) -> str:
    config = config or {}
    return str(config.get("configurable", {}).get("thread_id", ""))


def _format_entries(entries: list[FileInfo]) -> str:
    if not entries:
        return "No files found"
    return "\n".join(f"{e['path']}/" if e["is_dir"] else e["path"] for e in entries)


def _tool_result(
    backend: SyncedWorkspaceBackend, content: str, runtime: ToolRuntime, tool_name: str
) -> Command:
    update: dict[str, Any] = {
        "messages": [ToolMessage(content=content, tool_call_id=runtime.tool_call_id, name=tool_name)]
    }
    files_update = backend.files_update
    if files_update:
        update["files"] = files_update
    return Command(update=update)


class WorkspaceMiddleware(AgentMiddleware):
    """Filesystem tools over checkpointed state with a disk mirror."""

    state_schema = WorkspaceState

    TOOL_LS = "ls"
    TOOL_READ_FILE = "read_file"
    TOOL_WRITE_FILE = "write_file"
    TOOL_EDIT_FILE = "edit_file"
    TOOL_GLOB = "glob"
    TOOL_GREP = "grep"
    TOOL_WRITE_TODOS = "write_todos"

    def __init__(self, context: RuntimeContext, *, read_limit: int = DEFAULT_READ_LIMIT) -> None:
        """Initialize.

        Args:
            context: Owner of the thread → workspace bindings; builds a
                backend from a thread id and that thread's `files` state.
            read_limit: Default line window for `read_file`.
        """
        self.context = context
        self.read_limit = read_limit

        def backend(runtime: ToolRuntime) -> SyncedWorkspaceBackend:
            files = (runtime.state or {}).get("files") or {}
            return self.context.backend_for(_thread_id(runtime.config), files)

        @tool(self.TOOL_LS)
        async def ls(runtime: ToolRuntime[None, WorkspaceState], path: str = "/") -> str:
            """List files and directories directly under a path. Directories end with '/'."""
            return _format_entries(await backend(runtime).ls_info(path))

        @tool(self.TOOL_READ_FILE)
        async def read_file(
            runtime: ToolRuntime[None, WorkspaceState],
            file_path: str,
            offset: int = 0,
            limit: int | None = None,
        ) -> str:
            """Read a file. Output lines are prefixed with their line number.

            Use offset (0-based line) and limit to page through long files.
            """
            return await backend(runtime).read(file_path, offset, limit or self.read_limit)

        @tool(self.TOOL_WRITE_FILE)
        async def write_file(
            runtime: ToolRuntime[None, WorkspaceState], file_path: str, content: str
        ) -> Command | str:
            """Write a file, replacing any existing content."""
            ws = backend(runtime)
            result = await ws.write(file_path, content)
            if not result.ok:
                return result.error or f"Error: could not write {file_path}"
            return _tool_result(ws, f"Updated file {result.path}", runtime, self.TOOL_WRITE_FILE)

        @tool(self.TOOL_EDIT_FILE)
        async def edit_file(
            runtime: ToolRuntime[None, WorkspaceState],
            file_path: str,
            old_string: str,
            new_string: str,
            replace_all: bool = False,
        ) -> Command | str:
            """Replace old_string with new_string in a file.

            old_string must match exactly once unless replace_all is set.
            """
            ws = backend(runtime)
            result = await ws.edit(file_path, old_string, new_string, replace_all)
            if not result.ok:
                return result.error or f"Error: could not edit {file_path}"
            message = f"Successfully replaced {result.occurrences} instance(s) in '{result.path}'"
            return _tool_result(ws, message, runtime, self.TOOL_EDIT_FILE)

        @tool(self.TOOL_GLOB)
        async def glob(
            runtime: ToolRuntime[None, WorkspaceState], pattern: str, path: str = "/"
        ) -> str:
            """Find files whose path (relative to `path`) matches a glob such as '**/*.py'."""
            return _format_entries(await backend(runtime).glob_info(pattern, path))

        @tool(self.TOOL_GREP)
        async def grep(
            runtime: ToolRuntime[None, WorkspaceState],
            pattern: str,
            path: str = "/",
            glob: str | None = None,
        ) -> str:
            """Search file contents with a regular expression.

            `glob` filters by file name, e.g. '*.ts'.
            """
            matches = await backend(runtime).grep_raw(pattern, path, glob)
            if isinstance(matches, str):
                return matches
            if not matches:
                return f"No matches found for pattern '{pattern}'"
            return "\n".join(f"{m['path']}:{m['line']}: {m['text']}" for m in matches)

        @tool(self.TOOL_WRITE_TODOS)
        def write_todos(runtime: ToolRuntime[None, WorkspaceState], todos: list[Todo]) -> Command:
            """Replace the todo list used to track progress on multi-step work."""
            return Command(
                update={
                    "todos": todos,
                    "messages": [
                        ToolMessage(
                            content=f"Updated todo list ({len(todos)} item(s))",
                            tool_call_id=runtime.tool_call_id,
                            name=self.TOOL_WRITE_TODOS,
                        )
                    ],
                }
            )

        self.tools = [ls, read_file, write_file, edit_file, glob, grep, write_todos]

    async def abefore_agent(self, state: WorkspaceState, runtime: Runtime) -> dict[str, Any] | None:
        """Record the bound workspace path and run any pending disk bootstrap."""
        thread_id = _thread_id(get_config())
        disk_store = self.context.workspace_for(thread_id)
        update: dict[str, Any] = {}

        workspace_path = str(disk_store.root) if disk_store else None
        if state.get("workspace_path") != workspace_path:
            update["workspace_path"] = workspace_path

        if disk_store is not None and self.context.consume_pending_sync(thread_id):
            ws = self.context.backend_for(thread_id, state.get("files") or {})
            report = await ws.sync_from_disk()
            for error in report.errors:
                logger.warning("Workspace sync for thread %s: %s", thread_id, error)
            if ws.files_update:
                update["files"] = ws.files_update

        return update or None
