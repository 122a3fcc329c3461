"""Core configuration schema for OpenWork using Pydantic.

This module defines the configuration structure with:
- Workspace sync settings (disk mirror, read window, watcher)
- Streaming settings (recursion limit, SSE keepalive / retry)
- Models and provider credentials (see `config.models_schema`)
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from config.models_schema import DEFAULT_MODEL, ModelsConfig
from core.workspace.paths import DEFAULT_EXCLUDES

DEFAULT_DATA_DIR = "~/.openwork"


class WorkspaceConfig(BaseModel):
    """Disk mirror configuration for bound workspaces."""

    sync_to_disk: bool = Field(True, description="Mirror writes to the bound directory and fall back to it on reads")
    read_limit: int = Field(2000, gt=0, description="Default line window for reads")
    max_file_size_mb: int = Field(10, gt=0, description="Files above this size are skipped on disk")
    watch: bool = Field(True, description="Poll bound directories for external changes")
    watch_interval: float = Field(2.0, gt=0, description="Watcher poll interval in seconds")
    excludes: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDES), description="Directory names skipped on disk")


class StreamingConfig(BaseModel):
    """Agent run streaming configuration."""

    recursion_limit: int = Field(1000, gt=0, description="LangGraph recursion limit per run")
    keepalive_seconds: float = Field(30, gt=0, description="SSE keepalive comment interval")
    retry_ms: int = Field(5000, gt=0, description="SSE client reconnect hint")
    retained_runs: int = Field(100, gt=0, description="Finished run buffers kept for SSE reconnects")
    workspace_queue_size: int = Field(1000, gt=0, description="Pending change events per workspace subscriber")


class OpenworkSettings(BaseModel):
    """Main OpenWork configuration.

    Configuration priority (highest to lowest):
    1. CLI overrides
    2. Project config (<workspace>/.openwork/config.json)
    3. User config (~/.openwork/config.json)
    4. System defaults (config/defaults/)
    5. Environment variables (for API keys)
    """

    data_dir: str = Field(DEFAULT_DATA_DIR, description="Directory for the checkpoint database and .env")
    default_model: str = Field(DEFAULT_MODEL, description="Model used when a run names none")
    log_level: str = Field("INFO", description="Root log level")
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def checkpoint_db_path(self) -> Path:
        return self.data_path / "langgraph.sqlite"

    @property
    def env_file_path(self) -> Path:
        return self.data_path / ".env"
