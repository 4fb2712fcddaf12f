"""Unit tests for configuration loading."""

from pathlib import Path

import pytest

from pybdfs.config import (
    CONFIG_PATH_ENV,
    Config,
    get_config_path,
    get_default_config_path,
    load_config,
)
from pybdfs.exceptions import BdfsConfigError
from pybdfs.utils import DEFAULT_API_TIMEOUT, DEFAULT_SLICE_SIZE


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all BDFS_* variables from the environment."""
    for name in (
        CONFIG_PATH_ENV,
        "BDFS_CLIENT_ID",
        "BDFS_CLIENT_SECRET",
        "BDFS_TOKEN_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigPath:
    """Tests for config path resolution."""

    def test_default_path(self, clean_env):
        """Test the default config location."""
        assert get_config_path() == get_default_config_path()
        assert get_default_config_path().name == "config.toml"

    def test_env_override(self, clean_env, tmp_path):
        """Test that BDFS_CONFIG_FILE_PATH overrides the default."""
        custom = tmp_path / "custom.toml"
        clean_env.setenv(CONFIG_PATH_ENV, str(custom))
        assert get_config_path() == custom


class TestLoadConfig:
    """Tests for load_config."""

    def test_load_from_file(self, clean_env, tmp_path):
        """Test loading all values from a TOML file."""
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            'client_id = "id"\n'
            'client_secret = "secret"\n'
            'token_path = "/tmp/token.json"\n'
            "api_timeout = 10\n"
            "slice_retries = 0\n"
        )

        config = load_config(config_file)

        assert config.client_id == "id"
        assert config.client_secret == "secret"
        assert config.token_path == "/tmp/token.json"
        assert config.api_timeout == 10.0
        assert config.slice_retries == 0
        assert config.slice_size == DEFAULT_SLICE_SIZE

    def test_unknown_keys_ignored(self, clean_env, tmp_path):
        """Test that unknown keys in the file do not cause errors."""
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            'client_id = "id"\nclient_secret = "s"\ntoken_path = "t"\n'
            'colour = "blue"\n'
        )
        config = load_config(config_file)
        assert config.client_id == "id"

    def test_falls_back_to_environment(self, clean_env, tmp_path):
        """Test that env vars are used when the config file is missing."""
        clean_env.setenv("BDFS_CLIENT_ID", "env-id")
        clean_env.setenv("BDFS_CLIENT_SECRET", "env-secret")
        clean_env.setenv("BDFS_TOKEN_PATH", "~/token.json")

        config = load_config(tmp_path / "missing.toml")

        assert config.client_id == "env-id"
        assert config.client_secret == "env-secret"
        assert config.api_timeout == DEFAULT_API_TIMEOUT
        assert config.token_file == Path.home() / "token.json"

    def test_cli_overrides(self, clean_env, tmp_path):
        """Test that explicit values override the file."""
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            'client_id = "id"\nclient_secret = "s"\ntoken_path = "t"\n'
        )
        config = load_config(config_file, client_id="override")
        assert config.client_id == "override"
        assert config.client_secret == "s"

    def test_missing_values_raise(self, clean_env, tmp_path):
        """Test that missing required values raise BdfsConfigError."""
        with pytest.raises(BdfsConfigError, match="BDFS_CLIENT_ID"):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml_raises(self, clean_env, tmp_path):
        """Test that a malformed file raises BdfsConfigError."""
        config_file = tmp_path / "config.toml"
        config_file.write_text("client_id = \n")
        with pytest.raises(BdfsConfigError, match="Failed to parse"):
            load_config(config_file)

    def test_invalid_slice_size(self, clean_env):
        """Test that a non-positive slice size is rejected."""
        config = Config(client_id="a", client_secret="b", token_path="c", slice_size=0)
        with pytest.raises(BdfsConfigError, match="slice_size"):
            config.validate()
