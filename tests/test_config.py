"""Tests for YAML configuration with env var overrides.

Priority: Environment Variables > YAML > Defaults
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from pydantic import ValidationError

from mixpanel_analytics import config as config_module
from mixpanel_analytics.config import (
    AnalyticsConfig,
    StorageConfig,
    TransportConfig,
    get_config,
    get_effective_config,
    load_config,
    reload_config,
)
from mixpanel_analytics.storage import DEFAULT_STORE_PATH


class TestAnalyticsConfigSchema:
    """Test Pydantic schema validation."""

    def test_default_config_is_valid(self):
        """Default configuration selects immediate delivery."""
        config = AnalyticsConfig()
        assert config.token is None
        assert config.base_url == "https://api.mixpanel.com"
        assert config.verbose is False
        assert config.upload_interval_seconds == 0
        assert config.is_batch_mode is False
        assert config.max_batch_size == 50
        assert config.log_level == "WARNING"
        assert config.storage.path == DEFAULT_STORE_PATH
        assert config.storage.key == "mixpanel.analytics"
        assert config.transport.timeout_seconds == 10.0

    def test_positive_interval_is_batch_mode(self):
        assert AnalyticsConfig(upload_interval_seconds=30).is_batch_mode is True

    def test_negative_interval_rejected(self):
        with pytest.raises(ValidationError):
            AnalyticsConfig(upload_interval_seconds=-1)

    @pytest.mark.parametrize("size", [0, 51])
    def test_batch_size_bounds(self, size):
        with pytest.raises(ValidationError):
            AnalyticsConfig(max_batch_size=size)

    def test_log_level_normalized(self):
        assert AnalyticsConfig(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            AnalyticsConfig(log_level="chatty")

    def test_storage_path_expands_user(self):
        config = StorageConfig(path="~/queue.json")
        assert config.path == Path.home() / "queue.json"

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            TransportConfig(timeout_seconds=0)

    def test_to_yaml_round_trip(self, tmp_path):
        config = AnalyticsConfig(token="abc", upload_interval_seconds=15, should_anonymize=True)
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text(config.to_yaml())

        assert yaml.safe_load(config_file.read_text())["analytics"]["token"] == "abc"
        assert load_config(config_file) == config


class TestYAMLParsing:
    """Test YAML file parsing and loading."""

    def test_load_config_from_yaml(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("""
analytics:
  token: project-token
  verbose: true
  upload_interval_seconds: 30
  storage:
    key: custom.key
  transport:
    timeout_seconds: 5
""")
        config = load_config(config_file)
        assert config.token == "project-token"
        assert config.verbose is True
        assert config.upload_interval_seconds == 30
        assert config.storage.key == "custom.key"
        assert config.transport.timeout_seconds == 5
        # Other defaults preserved
        assert config.should_anonymize is False

    def test_load_config_from_nonexistent_file(self, tmp_path):
        config = load_config(tmp_path / "nonexistent.yaml")
        assert config == AnalyticsConfig()

    def test_empty_file_returns_default(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("")
        assert load_config(config_file) == AnalyticsConfig()

    def test_invalid_yaml_returns_default(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("invalid: yaml: content:")
        assert load_config(config_file) == AnalyticsConfig()

    def test_invalid_yaml_strict_raises(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("invalid: yaml: content:")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(config_file, strict=True)

    def test_invalid_values_strict_raises(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("analytics:\n  max_batch_size: 500\n")
        with pytest.raises(ValueError, match="Configuration error"):
            load_config(config_file, strict=True)

    def test_env_var_substitution(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("analytics:\n  token: ${TEST_MIXPANEL_TOKEN}\n")
        with patch.dict(os.environ, {"TEST_MIXPANEL_TOKEN": "from-env"}):
            assert load_config(config_file).token == "from-env"

    def test_unset_substitution_means_no_token(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("analytics:\n  token: ${TEST_MISSING_TOKEN}\n")
        assert load_config(config_file).token is None


class TestEnvVarOverrides:
    """Test environment variable overrides."""

    def test_env_overrides_yaml(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("analytics:\n  token: yaml-token\n  upload_interval_seconds: 30\n")
        env = {
            "MIXPANEL_TOKEN": "env-token",
            "MIXPANEL_ANALYTICS_UPLOAD_INTERVAL": "5",
            "MIXPANEL_ANALYTICS_VERBOSE": "true",
            "MIXPANEL_ANALYTICS_ANONYMIZE": "yes",
            "MIXPANEL_ANALYTICS_BASE_URL": "https://api-eu.mixpanel.com",
            "MIXPANEL_ANALYTICS_TIMEOUT": "3",
            "MIXPANEL_ANALYTICS_LOG_LEVEL": "info",
        }
        with patch.dict(os.environ, env):
            config = get_effective_config(config_file)

        assert config.token == "env-token"
        assert config.upload_interval_seconds == 5
        assert config.verbose is True
        assert config.should_anonymize is True
        assert config.base_url == "https://api-eu.mixpanel.com"
        assert config.transport.timeout_seconds == 3
        assert config.log_level == "INFO"

    def test_storage_path_override(self, tmp_path):
        queue_path = tmp_path / "queue.json"
        with patch.dict(os.environ, {"MIXPANEL_ANALYTICS_STORAGE_PATH": str(queue_path)}):
            config = get_effective_config(tmp_path / "missing.yaml")
        assert config.storage.path == queue_path

    def test_false_values(self, tmp_path):
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("analytics:\n  verbose: true\n")
        with patch.dict(os.environ, {"MIXPANEL_ANALYTICS_VERBOSE": "0"}):
            assert get_effective_config(config_file).verbose is False


class TestConfigDiscovery:
    """Test config file lookup and the cached global instance."""

    def test_config_env_var_path(self, tmp_path, monkeypatch):
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("analytics:\n  token: from-file\n")
        monkeypatch.setenv("MIXPANEL_ANALYTICS_CONFIG", str(config_file))

        assert get_effective_config().token == "from-file"

    def test_cwd_config_file(self, tmp_path, monkeypatch):
        (tmp_path / "mixpanel_analytics.yaml").write_text("analytics:\n  token: cwd-token\n")
        monkeypatch.chdir(tmp_path)

        assert get_effective_config().token == "cwd-token"

    def test_get_config_is_cached_until_reload(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, "_global_config", None)
        config_file = tmp_path / "mixpanel_analytics.yaml"
        config_file.write_text("analytics:\n  token: first\n")
        monkeypatch.setenv("MIXPANEL_ANALYTICS_CONFIG", str(config_file))

        assert get_config().token == "first"
        config_file.write_text("analytics:\n  token: second\n")
        assert get_config().token == "first"
        assert reload_config().token == "second"
        assert get_config().token == "second"
