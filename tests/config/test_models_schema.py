"""Tests for model resolution."""

import pytest

from config.models_schema import CatalogEntry, ModelsConfig, ProviderConfig, infer_provider
from core.runtime.errors import ConfigurationError

ALL_KEYS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_API_KEY",
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "AZURE_OPENAI_DEPLOYMENT",
    "AZURE_OPENAI_API_VERSION",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ALL_KEYS:
        monkeypatch.delenv(key, raising=False)


@pytest.mark.parametrize(
    ("model_id", "provider"),
    [
        ("claude-3-5-haiku-20241022", "anthropic"),
        ("gpt-4o", "openai"),
        ("o3-mini", "openai"),
        ("gemini-2.0-flash", "google"),
        ("llama-3", None),
    ],
)
def test_infer_provider(model_id, provider):
    assert infer_provider(model_id) == provider


def test_resolve_from_env(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant")

    resolved = ModelsConfig().resolve("claude-sonnet-4-20250514")

    assert resolved.provider == "anthropic"
    assert resolved.model == "claude-sonnet-4-20250514"
    assert resolved.chat_model_kwargs() == {"model_provider": "anthropic", "api_key": "sk-ant"}


def test_config_key_beats_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    config = ModelsConfig(providers={"openai": ProviderConfig(api_key="sk-config", base_url="http://proxy/v1")})

    resolved = config.resolve("gpt-4o")

    assert resolved.connection == {"api_key": "sk-config", "base_url": "http://proxy/v1"}


def test_catalog_maps_id_to_api_model(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "g-key")
    config = ModelsConfig(
        catalog=[CatalogEntry(id="fast", name="Fast", provider="google", model="gemini-2.0-flash")]
    )

    resolved = config.resolve("fast")

    assert resolved.model == "gemini-2.0-flash"
    assert resolved.chat_model_kwargs()["model_provider"] == "google_genai"


def test_missing_key_raises():
    with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
        ModelsConfig().resolve("claude-3-5-sonnet-20241022")


def test_unknown_provider_raises():
    with pytest.raises(ConfigurationError, match="supported provider"):
        ModelsConfig().resolve("llama-3")


def test_default_model_used_when_none(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk")
    assert ModelsConfig(default="gpt-4o-mini").resolve().model == "gpt-4o-mini"


def test_azure_requires_endpoint_settings(monkeypatch):
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "az")
    with pytest.raises(ConfigurationError, match="AZURE_OPENAI_ENDPOINT"):
        ModelsConfig().resolve("gpt-4o", provider="azure")

    monkeypatch.setenv("AZURE_OPENAI_ENDPOINT", "https://example.openai.azure.com")
    monkeypatch.setenv("AZURE_OPENAI_DEPLOYMENT", "gpt4o-prod")
    monkeypatch.setenv("AZURE_OPENAI_API_VERSION", "2024-08-01-preview")

    kwargs = ModelsConfig().resolve("gpt-4o", provider="azure").chat_model_kwargs()

    assert kwargs == {
        "model_provider": "azure_openai",
        "api_key": "az",
        "azure_endpoint": "https://example.openai.azure.com",
        "azure_deployment": "gpt4o-prod",
        "api_version": "2024-08-01-preview",
    }


def test_list_models_flags_availability(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk")
    config = ModelsConfig(
        catalog=[
            CatalogEntry(id="gpt-4o", name="GPT-4o", provider="openai", model="gpt-4o"),
            CatalogEntry(id="claude", name="Claude", provider="anthropic", model="claude-3-5-haiku-20241022"),
        ]
    )

    assert [(m["id"], m["available"]) for m in config.list_models()] == [("gpt-4o", True), ("claude", False)]
