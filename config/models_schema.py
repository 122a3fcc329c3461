"""Models configuration schema for OpenWork.

Defines the models.json structure:
- default: model used when a run names none
- providers: API credentials per provider
- catalog: available model definitions
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

from core.runtime.errors import ConfigurationError

DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Environment variable holding each provider's API key
PROVIDER_ENV_VARS: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
}

AZURE_ENV_VARS: dict[str, str] = {
    "endpoint": "AZURE_OPENAI_ENDPOINT",
    "deployment": "AZURE_OPENAI_DEPLOYMENT",
    "api_version": "AZURE_OPENAI_API_VERSION",
}

# Provider id → `init_chat_model` model_provider
CHAT_MODEL_PROVIDERS: dict[str, str] = {
    "anthropic": "anthropic",
    "openai": "openai",
    "google": "google_genai",
    "azure": "azure_openai",
}


class ProviderConfig(BaseModel):
    """Provider API credentials."""

    api_key: str | None = None
    base_url: str | None = None
    # Azure OpenAI only
    endpoint: str | None = None
    deployment: str | None = None
    api_version: str | None = None


class CatalogEntry(BaseModel):
    """Model catalog entry."""

    id: str
    name: str
    provider: str
    model: str
    description: str | None = None


class ResolvedModel(BaseModel):
    """A model id resolved to provider, API model name and connection kwargs."""

    provider: str
    model: str
    connection: dict[str, Any] = Field(default_factory=dict)

    def chat_model_kwargs(self) -> dict[str, Any]:
        return {"model_provider": CHAT_MODEL_PROVIDERS[self.provider], **self.connection}


def infer_provider(model_id: str) -> str | None:
    """Infer the provider from a model id prefix."""
    if model_id.startswith("claude"):
        return "anthropic"
    if model_id.startswith(("gpt", "o1", "o3", "o4")):
        return "openai"
    if model_id.startswith("gemini"):
        return "google"
    return None


class ModelsConfig(BaseModel):
    """Models configuration.

    Merge priority: system defaults → user (~/.openwork/models.json) → project (.openwork/models.json) → CLI
    """

    default: str = DEFAULT_MODEL
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    catalog: list[CatalogEntry] = Field(default_factory=list)

    def get_provider(self, name: str) -> ProviderConfig | None:
        """Get provider credentials by name."""
        return self.providers.get(name)

    def get_api_key(self, provider: str) -> str | None:
        """Get API key: provider config → env vars."""
        p = self.get_provider(provider)
        if p and p.api_key:
            return p.api_key
        env_var = PROVIDER_ENV_VARS.get(provider)
        return os.getenv(env_var) if env_var else None

    def has_api_key(self, provider: str) -> bool:
        return bool(self.get_api_key(provider))

    def list_models(self) -> list[dict[str, Any]]:
        """Catalog entries flagged with whether their provider has credentials."""
        return [
            {**entry.model_dump(), "available": self.has_api_key(entry.provider)}
            for entry in self.catalog
        ]

    def _catalog_entry(self, model_id: str) -> CatalogEntry | None:
        for entry in self.catalog:
            if entry.id == model_id:
                return entry
        return None

    def _azure_connection(self, api_key: str) -> dict[str, Any]:
        p = self.get_provider("azure") or ProviderConfig()
        values = {
            key: getattr(p, key) or os.getenv(env_var)
            for key, env_var in AZURE_ENV_VARS.items()
        }
        missing = [AZURE_ENV_VARS[key] for key, value in values.items() if not value]
        if missing:
            raise ConfigurationError(f"Azure OpenAI is not fully configured (missing {', '.join(missing)})")
        return {
            "api_key": api_key,
            "azure_endpoint": values["endpoint"],
            "azure_deployment": values["deployment"],
            "api_version": values["api_version"],
        }

    def resolve(self, model_id: str | None = None, provider: str | None = None) -> ResolvedModel:
        """Resolve a model id to provider, API model name and connection config.

        Args:
            model_id: Model id (catalog id or raw API model name). Defaults to `default`.
            provider: Explicit provider, overriding catalog and prefix inference.

        Raises:
            ConfigurationError: If the provider is unknown or has no credentials.
        """
        model_id = model_id or self.default
        entry = self._catalog_entry(model_id)
        model = entry.model if entry else model_id
        provider = provider or (entry.provider if entry else None) or infer_provider(model)
        if provider is None or provider not in PROVIDER_ENV_VARS:
            raise ConfigurationError(f"Cannot determine a supported provider for model '{model_id}'")

        api_key = self.get_api_key(provider)
        if not api_key:
            raise ConfigurationError(
                f"{provider.capitalize()} API key not configured (set {PROVIDER_ENV_VARS[provider]})"
            )

        if provider == "azure":
            connection = self._azure_connection(api_key)
        else:
            connection = {"api_key": api_key}
            p = self.get_provider(provider)
            if p and p.base_url:
                connection["base_url"] = p.base_url
        return ResolvedModel(provider=provider, model=model, connection=connection)
