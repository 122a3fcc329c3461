"""Agent factory."""

from __future__ import annotations

import logging

from langchain.agents import create_agent
from langchain.agents.middleware import HumanInTheLoopMiddleware
from langchain.chat_models import init_chat_model

from core.runtime.context import RuntimeContext
from core.workspace.middleware import WorkspaceMiddleware

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a coding assistant working inside the user's workspace.

Use the file tools to inspect and change files. Paths are absolute from the
workspace root, for example /src/main.py. Read a file before editing it, and
keep the todo list current when a task takes more than a few steps.
File writes and edits require the user's approval before they run."""

# Tools that pause the run for an approve / reject / edit decision
APPROVAL_REQUIRED = (WorkspaceMiddleware.TOOL_WRITE_FILE, WorkspaceMiddleware.TOOL_EDIT_FILE)


async def create_agent_runtime(context: RuntimeContext, model_id: str | None = None):
    """Build a compiled agent graph for one run.

    Raises:
        ConfigurationError: If the model's provider is unsupported or has no
            credentials.
    """
    settings = context.settings
    resolved = settings.models.resolve(model_id or settings.default_model)
    logger.info("Creating agent with %s model %s", resolved.provider, resolved.model)

    model = init_chat_model(resolved.model, **resolved.chat_model_kwargs())
    middleware = [
        WorkspaceMiddleware(context, read_limit=settings.workspace.read_limit),
        HumanInTheLoopMiddleware(interrupt_on={name: True for name in APPROVAL_REQUIRED}),
    ]
    return create_agent(
        model=model,
        tools=[],
        system_prompt=SYSTEM_PROMPT,
        middleware=middleware,
        checkpointer=context.checkpointer,
    )
