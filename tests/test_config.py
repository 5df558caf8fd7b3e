"""Tests for configuration loading."""

import pytest
import yaml

from piishield.config import API_KEY_ENV, build_router, default_options, load_config, load_from_yaml
from piishield.exceptions import ConfigError


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self, monkeypatch):
        """Test empty config gets defaults."""
        monkeypatch.delenv(API_KEY_ENV, raising=False)
        config = load_config()

        assert config["registry"]["paths"] is None
        assert config["redaction"]["include_names"] is True
        assert config["remote"]["url"] is None
        assert config["remote"]["api_key"] is None
        assert config["policy"]["remote_enabled"] is False

    def test_nested_key(self):
        """Test settings nested under pii_shield."""
        config = load_config({"pii_shield": {"redaction": {"include_names": False}}})

        assert config["redaction"]["include_names"] is False
        assert config["redaction"]["include_addresses"] is True

    def test_invalid_value(self):
        """Test schema violations raise ConfigError."""
        with pytest.raises(ConfigError, match="remote/timeout"):
            load_config({"remote": {"timeout": "soon"}})

    def test_not_a_mapping(self):
        """Test non-dict config raises ConfigError."""
        with pytest.raises(ConfigError):
            load_config(["nope"])

    def test_api_key_from_env(self, monkeypatch):
        """Test API key falls back to the environment."""
        monkeypatch.setenv(API_KEY_ENV, "from-env")
        config = load_config({"remote": {"url": "https://redact.example.test"}})

        assert config["remote"]["api_key"] == "from-env"

    def test_load_from_yaml(self, tmp_path):
        """Test loading a YAML file."""
        path = tmp_path / "config.yml"
        path.write_text(yaml.dump({"policy": {"remote_enabled": True, "scopes": {"org-1": False}}}))
        config = load_from_yaml(path)

        assert config["policy"]["remote_enabled"] is True
        assert config["policy"]["scopes"] == {"org-1": False}


class TestBuildRouter:
    """Tests for wiring a router from config."""

    def test_local_only(self):
        """Test no remote without a url."""
        router = build_router(load_config())

        assert router.remote is None
        assert router.select_mode().value == "local"

    def test_remote_configured(self):
        """Test remote client and scoped flags are wired."""
        config = load_config(
            {
                "remote": {"url": "https://redact.example.test", "api_key": "k", "timeout": 2.5},
                "policy": {"remote_enabled": False, "scopes": {"org-1": True}},
            }
        )
        router = build_router(config)

        assert router.remote is not None
        assert router.remote.client.timeout == 2.5
        assert router.remote.client.api_key == "k"
        assert router.select_mode("org-1").value == "remote"
        assert router.select_mode("org-2").value == "local"

    def test_default_options(self):
        """Test redaction section becomes default options."""
        options = default_options(load_config({"redaction": {"include_addresses": False}}))

        assert options.include_names is True
        assert options.include_addresses is False
