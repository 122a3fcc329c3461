"""Configuration management for OpenWork."""

from .loader import ConfigLoader, load_env_file, load_settings
from .models_schema import ModelsConfig, ResolvedModel
from .schema import OpenworkSettings, StreamingConfig, WorkspaceConfig

__all__ = [
    "ConfigLoader",
    "ModelsConfig",
    "OpenworkSettings",
    "ResolvedModel",
    "StreamingConfig",
    "WorkspaceConfig",
    "load_env_file",
    "load_settings",
]
