"""Pydantic request models for the OpenWork web API."""

from typing import Any, Literal

from pydantic import BaseModel


class RunRequest(BaseModel):
    message: str
    model: str | None = None


class ResumeRequest(BaseModel):
    command: Any
    model: str | None = None


class Decision(BaseModel):
    type: Literal["approve", "reject", "edit"]
    tool_name: str | None = None
    edited_args: dict[str, Any] | None = None
    message: str | None = None


class InterruptRequest(BaseModel):
    decision: Decision
    model: str | None = None


class WorkspaceRequest(BaseModel):
    path: str
