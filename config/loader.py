"""Three-tier configuration loader.

Configuration priority (highest to lowest):
1. CLI overrides
2. Project config (<workspace>/.openwork/config.json, models.json)
3. User config (~/.openwork/config.json, models.json)
4. System defaults (config/defaults/config.json, models.json)

Merge strategies:
- settings: deep merge
- models.providers: deep merge (per-provider, `None` values never override)
- models.catalog: system-only, not overridden
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from config.schema import DEFAULT_DATA_DIR, OpenworkSettings

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Three-tier loader for settings and models."""

    def __init__(self, workspace_root: str | Path | None = None, user_dir: str | Path | None = None):
        self.workspace_root = Path(workspace_root).resolve() if workspace_root else None
        self.user_dir = Path(user_dir or DEFAULT_DATA_DIR).expanduser()
        self._system_dir = Path(__file__).parent / "defaults"

    def load(self, cli_overrides: dict[str, Any] | None = None) -> OpenworkSettings:
        """Load settings with three-tier merge."""
        merged = self._deep_merge(
            self._load_json(self._system_dir / "config.json"),
            self._load_json(self.user_dir / "config.json"),
            self._load_project("config.json"),
        )
        merged["models"] = self._load_models(merged.get("models", {}))

        if cli_overrides:
            merged = self._deep_merge(merged, cli_overrides)

        merged = self._expand_env_vars(merged)
        merged = self._remove_none_values(merged)
        return OpenworkSettings(**merged)

    def _load_models(self, inline: dict[str, Any]) -> dict[str, Any]:
        system = self._load_json(self._system_dir / "models.json")
        merged = self._merge_models(system, inline)
        merged = self._merge_models(merged, self._load_json(self.user_dir / "models.json"))
        merged = self._merge_models(merged, self._load_project("models.json"))
        # catalog comes only from system
        merged["catalog"] = system.get("catalog", [])
        return merged

    def _load_project(self, name: str) -> dict[str, Any]:
        if not self.workspace_root:
            return {}
        return self._load_json(self.workspace_root / ".openwork" / name)

    @staticmethod
    def _load_json(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _merge_models(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        if not override:
            return dict(base)
        result = dict(base)
        if "default" in override:
            result["default"] = override["default"]
        if "providers" in override:
            providers = dict(result.get("providers", {}))
            for name, cfg in override["providers"].items():
                if isinstance(providers.get(name), dict) and isinstance(cfg, dict):
                    providers[name] = {**providers[name], **{k: v for k, v in cfg.items() if v is not None}}
                else:
                    providers[name] = cfg
            result["providers"] = providers
        return result

    def _deep_merge(self, *dicts: dict[str, Any]) -> dict[str, Any]:
        """Deep merge multiple dictionaries (later wins)."""
        result: dict[str, Any] = {}
        for d in dicts:
            if not d:
                continue
            for key, value in d.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = value
        return result

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively expand ${VAR} and ~ in string values."""
        if isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self._expand_env_vars(v) for v in obj]
        if isinstance(obj, str):
            return os.path.expandvars(os.path.expanduser(obj))
        return obj

    def _remove_none_values(self, obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: self._remove_none_values(v) for k, v in obj.items() if v is not None}
        if isinstance(obj, list):
            return [self._remove_none_values(v) for v in obj]
        return obj


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines, skipping blanks and comments."""
    if not path.exists():
        return {}
    result: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            result[key] = value.strip()
    return result


def load_env_file(path: str | Path | None = None) -> list[str]:
    """Load ~/.openwork/.env into os.environ without overriding existing values.

    Returns:
        Names of the variables that were set.
    """
    env_path = Path(path).expanduser() if path else Path(DEFAULT_DATA_DIR).expanduser() / ".env"
    loaded: list[str] = []
    for key, value in parse_env_file(env_path).items():
        if key not in os.environ:
            os.environ[key] = value
            loaded.append(key)
    if loaded:
        logger.debug("Loaded %d variable(s) from %s", len(loaded), env_path)
    return loaded


def load_settings(
    workspace_root: str | Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> OpenworkSettings:
    """Convenience function to load settings."""
    return ConfigLoader(workspace_root=workspace_root).load(cli_overrides=cli_overrides)
