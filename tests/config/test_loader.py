"""Tests for config.loader module."""

import json
import os

import pytest

from config.loader import ConfigLoader, load_env_file, parse_env_file


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


@pytest.fixture
def tiers(tmp_path):
    """System, user and project config directories."""
    system = tmp_path / "system"
    user = tmp_path / "user"
    project = tmp_path / "project"
    for d in (system, user, project):
        d.mkdir()
    return {"system": system, "user": user, "project": project}


def _loader(tiers):
    loader = ConfigLoader(workspace_root=tiers["project"], user_dir=tiers["user"])
    loader._system_dir = tiers["system"]
    return loader


class TestConfigLoader:
    def test_packaged_defaults(self, tmp_path):
        settings = ConfigLoader(user_dir=tmp_path / "empty").load()

        assert settings.default_model == "claude-sonnet-4-20250514"
        assert settings.workspace.sync_to_disk is True
        assert settings.workspace.read_limit == 2000
        assert settings.streaming.recursion_limit == 1000
        assert len(settings.models.catalog) == 6

    def test_three_tier_deep_merge(self, tiers):
        _write(tiers["system"] / "config.json", {"log_level": "INFO", "workspace": {"read_limit": 100, "watch": True}})
        _write(tiers["user"] / "config.json", {"workspace": {"read_limit": 200}})
        _write(tiers["project"] / ".openwork" / "config.json", {"workspace": {"watch": False}})

        settings = _loader(tiers).load()

        assert settings.workspace.read_limit == 200
        assert settings.workspace.watch is False
        assert settings.log_level == "INFO"

    def test_cli_overrides_win(self, tiers):
        _write(tiers["user"] / "config.json", {"default_model": "gpt-4o"})

        settings = _loader(tiers).load(cli_overrides={"default_model": "gemini-2.0-flash"})

        assert settings.default_model == "gemini-2.0-flash"

    def test_models_providers_merge_and_catalog_is_system_only(self, tiers):
        _write(
            tiers["system"] / "models.json",
            {"providers": {"openai": {"base_url": "https://api.openai.com/v1"}}, "catalog": [
                {"id": "gpt-4o", "name": "GPT-4o", "provider": "openai", "model": "gpt-4o"}
            ]},
        )
        _write(tiers["user"] / "models.json", {"providers": {"openai": {"api_key": "sk-user", "base_url": None}}})
        _write(tiers["project"] / ".openwork" / "models.json", {"default": "gpt-4o", "catalog": []})

        models = _loader(tiers).load().models

        assert models.default == "gpt-4o"
        assert models.providers["openai"].api_key == "sk-user"
        assert models.providers["openai"].base_url == "https://api.openai.com/v1"
        assert [e.id for e in models.catalog] == ["gpt-4o"]

    def test_env_var_expansion(self, tiers, monkeypatch):
        monkeypatch.setenv("OPENWORK_TEST_KEY", "sk-from-env")
        _write(tiers["user"] / "models.json", {"providers": {"anthropic": {"api_key": "${OPENWORK_TEST_KEY}"}}})

        models = _loader(tiers).load().models

        assert models.providers["anthropic"].api_key == "sk-from-env"

    def test_unreadable_file_is_ignored(self, tiers):
        (tiers["user"] / "config.json").write_text("{not json", encoding="utf-8")
        settings = _loader(tiers).load()
        assert settings.data_dir == "~/.openwork"

    def test_invalid_log_level_rejected(self, tiers):
        with pytest.raises(ValueError):
            _loader(tiers).load(cli_overrides={"log_level": "LOUD"})


class TestEnvFile:
    def test_parse_skips_comments_and_blanks(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("# comment\n\nANTHROPIC_API_KEY=sk-ant\nBROKEN\nEMPTY=\n", encoding="utf-8")

        assert parse_env_file(env) == {"ANTHROPIC_API_KEY": "sk-ant", "EMPTY": ""}

    def test_load_does_not_override(self, tmp_path, monkeypatch):
        env = tmp_path / ".env"
        env.write_text("OPENWORK_A=from-file\nOPENWORK_B=from-file\n", encoding="utf-8")
        monkeypatch.setenv("OPENWORK_A", "from-env")
        monkeypatch.delenv("OPENWORK_B", raising=False)

        loaded = load_env_file(env)

        assert loaded == ["OPENWORK_B"]
        assert os.environ["OPENWORK_A"] == "from-env"
        assert os.environ["OPENWORK_B"] == "from-file"
        monkeypatch.delenv("OPENWORK_B")

    def test_missing_file(self, tmp_path):
        assert load_env_file(tmp_path / "none.env") == []
