"""Tests for feedtags.config: TOML config, providers, environment fallbacks."""

import os
import stat

import pytest

from feedtags.config import (
    CONFIG_FILENAME,
    DEFAULT_LOCAL_MODEL,
    Provider,
    ProviderSettings,
    StoreConfig,
    apply_environment,
    get_store_path,
    load_config,
    load_or_create_config,
    save_config,
)
from feedtags.errors import ConfigurationError


class TestProvider:
    @pytest.mark.parametrize("value,expected", [
        ("local", Provider.LOCAL),
        ("anthropic", Provider.ANTHROPIC),
        ("claude", Provider.ANTHROPIC),
        (" OpenAI ", Provider.OPENAI),
        (Provider.LOCAL, Provider.LOCAL),
    ])
    def test_parse(self, value, expected):
        assert Provider.parse(value) is expected

    def test_unknown(self):
        with pytest.raises(ConfigurationError, match="Available providers"):
            Provider.parse("gemini")

    def test_settings_model_per_provider(self):
        settings = ProviderSettings(provider="openai", openai_model="gpt-4.1")
        assert settings.model == "gpt-4.1"
        assert settings.provider_params() == {"model": "gpt-4.1", "api_key": None, "timeout": 60.0}

    def test_local_params(self):
        params = ProviderSettings().provider_params()
        assert params == {
            "model": DEFAULT_LOCAL_MODEL,
            "base_url": "http://localhost:11434",
            "timeout": 60.0,
        }


class TestStorePath:
    def test_override(self, tmp_path):
        assert get_store_path(tmp_path) == tmp_path

    def test_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FEEDTAGS_STORE_PATH", str(tmp_path / "env"))
        assert get_store_path() == tmp_path / "env"


class TestLoadSave:
    def test_create_with_defaults(self, tmp_path):
        config = load_or_create_config(tmp_path)
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert config.provider.provider is Provider.LOCAL
        assert config.days_to_keep == 30

    def test_round_trip(self, tmp_path):
        config = StoreConfig(path=tmp_path)
        config.provider = ProviderSettings(
            provider="anthropic", anthropic_api_key="sk-file", timeout=15.0,
        )
        config.feedbin.email = "me@example.com"
        config.feedbin.password = "pw"
        config.days_to_keep = 7
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.provider.provider is Provider.ANTHROPIC
        assert loaded.provider.anthropic_api_key == "sk-file"
        assert loaded.provider.timeout == 15.0
        assert loaded.feedbin.configured
        assert loaded.days_to_keep == 7

    def test_config_file_is_private(self, tmp_path):
        save_config(StoreConfig(path=tmp_path))
        mode = stat.S_IMODE(os.stat(tmp_path / CONFIG_FILENAME).st_mode)
        assert mode == 0o600

    def test_secrets_omitted_when_unset(self, tmp_path):
        save_config(StoreConfig(path=tmp_path))
        text = (tmp_path / CONFIG_FILENAME).read_text()
        assert "api_key" not in text
        assert "password" not in text

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[store]\nversion = 99\n")
        with pytest.raises(ValueError, match="newer than supported"):
            load_config(tmp_path)

    def test_unknown_provider_in_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[provider]\nname = "gemini"\n')
        with pytest.raises(ConfigurationError):
            load_config(tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)


class TestEnvironment:
    def test_env_fills_unset_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-openai")
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434")
        monkeypatch.setenv("FEEDBIN_EMAIL", "env@example.com")
        monkeypatch.setenv("FEEDBIN_PASSWORD", "envpw")

        config = apply_environment(StoreConfig(path=tmp_path))
        assert config.provider.anthropic_api_key == "sk-env"
        assert config.provider.openai_api_key == "sk-openai"
        assert config.provider.local_url == "http://gpu-box:11434"
        assert config.feedbin.configured

    def test_file_values_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        config = StoreConfig(path=tmp_path)
        config.provider.anthropic_api_key = "sk-file"
        assert apply_environment(config).provider.anthropic_api_key == "sk-file"

    def test_env_secrets_never_saved(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        config = load_or_create_config(tmp_path)
        assert config.provider.anthropic_api_key == "sk-env"
        assert "sk-env" not in (tmp_path / CONFIG_FILENAME).read_text()
