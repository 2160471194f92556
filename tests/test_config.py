"""Tests for storage directory resolution, .env loading and config.yaml defaults."""

import pytest

from apiex import config
from apiex.config import load_config, load_dotenv_variables, load_settings, resolve_storage_dir
from apiex.errors import ConfigurationError
from apiex.models import DEFAULT_TIMEOUT_MS


class TestResolveStorageDir:
    def test_flag_wins(self, tmp_path):
        env = {"API_EX_STORAGE_DIR": str(tmp_path / "env")}
        assert resolve_storage_dir(str(tmp_path / "flag"), env) == tmp_path / "flag"

    def test_env_var(self, tmp_path):
        env = {"API_EX_STORAGE_DIR": str(tmp_path / "env")}
        assert resolve_storage_dir(None, env) == tmp_path / "env"

    def test_global_default(self):
        assert resolve_storage_dir(None, {}) == config.GLOBAL_DIR


class TestLoadEnv:
    def test_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("API_EX_STORAGE_DIR", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("API_EX_STORAGE_DIR=/from/dotenv\n")
        assert config.load_env(env_file)["API_EX_STORAGE_DIR"] == "/from/dotenv"

    def test_real_environment_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("API_EX_STORAGE_DIR", "/from/env")
        env_file = tmp_path / ".env"
        env_file.write_text("API_EX_STORAGE_DIR=/from/dotenv\n")
        assert config.load_env(env_file)["API_EX_STORAGE_DIR"] == "/from/env"

    def test_missing_file(self, tmp_path):
        assert "PATH" in config.load_env(tmp_path / "nope.env")


class TestLoadDotenvVariables:
    def test_reads_pairs(self, tmp_path):
        path = tmp_path / "prod.env"
        path.write_text('BASE_URL=https://api.example.com\n# comment\nTOKEN="abc def"\nEMPTY\n')
        assert load_dotenv_variables(path) == {
            "BASE_URL": "https://api.example.com",
            "TOKEN": "abc def",
            "EMPTY": "",
        }

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_dotenv_variables(tmp_path / "missing.env")


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        assert load_config(tmp_path / "config.yaml") == {}

    def test_defaults_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("defaults:\n  timeout: 5000\n  debug: true\n")
        assert load_config(path) == {"timeout": 5000, "debug": True}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("defaults: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid config file"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="expected a mapping"):
            load_config(path)


class TestLoadSettings:
    def test_defaults(self, storage_dir):
        settings = load_settings()
        assert settings.storage_dir == storage_dir
        assert settings.timeout_ms == DEFAULT_TIMEOUT_MS
        assert settings.debug is False
        assert settings.headers == {}

    def test_config_yaml(self, storage_dir):
        storage_dir.mkdir(parents=True)
        (storage_dir / "config.yaml").write_text(
            "defaults:\n  timeout: 5000\n  headers:\n    User-Agent: api-ex\n    X-Num: 3\n",
        )
        settings = load_settings()
        assert settings.timeout_ms == 5000
        assert settings.headers == {"User-Agent": "api-ex", "X-Num": "3"}

    def test_bad_timeout_in_config(self, storage_dir):
        storage_dir.mkdir(parents=True)
        (storage_dir / "config.yaml").write_text("defaults:\n  timeout: -1\n")
        with pytest.raises(ConfigurationError, match="Invalid timeout in config"):
            load_settings()

    def test_bad_headers_in_config(self, storage_dir):
        storage_dir.mkdir(parents=True)
        (storage_dir / "config.yaml").write_text("defaults:\n  headers: [a, b]\n")
        with pytest.raises(ConfigurationError, match="'headers' must be a mapping"):
            load_settings()

    def test_debug_sources(self, storage_dir, monkeypatch):
        assert load_settings(debug=True).debug is True
        monkeypatch.setenv("API_EX_DEBUG", "1")
        assert load_settings().debug is True

    def test_cwd_dotenv_sets_storage_dir(self, storage_dir, tmp_path, monkeypatch):
        monkeypatch.delenv("API_EX_STORAGE_DIR")
        (tmp_path / "cwd" / ".env").write_text(f"API_EX_STORAGE_DIR={tmp_path / 'dotenv'}\n")
        assert load_settings().storage_dir == tmp_path / "dotenv"
