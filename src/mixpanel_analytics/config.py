"""YAML Configuration for the Mixpanel analytics client.

Configuration Priority: Environment Variables > YAML > Defaults

Example YAML configuration (mixpanel_analytics.yaml):

    analytics:
      token: ${MIXPANEL_TOKEN}
      verbose: false
      upload_interval_seconds: 30
      should_anonymize: true
      storage:
        path: ~/.mixpanel-analytics/queue.json
      transport:
        timeout_seconds: 10

An ``upload_interval_seconds`` of 0 selects immediate (sync) delivery.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .api import BASE_API
from .queue import STORAGE_KEY
from .storage import DEFAULT_STORE_PATH
from .transport import DEFAULT_TIMEOUT
from .uploader import MAX_BATCH_SIZE

load_dotenv()

_TRUE_VALUES = ("true", "1", "yes")


# =============================================================================
# Sub-configuration Models
# =============================================================================


class StorageConfig(BaseModel):
    """Where the batch queue is persisted."""

    path: Path = Field(default=DEFAULT_STORE_PATH)
    key: str = Field(default=STORAGE_KEY)

    @field_validator("path", mode="before")
    @classmethod
    def expand_user(cls, v: Any) -> Any:
        if isinstance(v, str):
            return Path(v).expanduser()
        return v


class TransportConfig(BaseModel):
    """HTTP transport settings."""

    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT, gt=0, le=300)


# =============================================================================
# Main Configuration
# =============================================================================


class AnalyticsConfig(BaseModel):
    """Configuration for a MixpanelAnalytics client."""

    token: Optional[str] = None
    base_url: str = Field(default=BASE_API)
    verbose: bool = False
    upload_interval_seconds: float = Field(default=0.0, ge=0)
    should_anonymize: bool = False
    max_batch_size: int = Field(default=MAX_BATCH_SIZE, ge=1, le=MAX_BATCH_SIZE)
    log_level: str = Field(default="WARNING")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.upper()
        if level not in valid_levels:
            raise ValueError(f"invalid log level '{v}', must be one of {valid_levels}")
        return level

    @property
    def is_batch_mode(self) -> bool:
        return self.upload_interval_seconds > 0

    def to_yaml(self) -> str:
        """Serialize configuration to YAML string."""
        config_dict = {"analytics": self.to_dict()}
        return yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize configuration to dictionary."""
        return self.model_dump(mode="json", exclude_none=True)


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR_NAME} references with environment values."""
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"
        for var_name in re.findall(pattern, value):
            value = value.replace(f"${{{var_name}}}", os.getenv(var_name, ""))
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def load_config(
    config_path: Optional[Path] = None,
    strict: bool = False,
) -> AnalyticsConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file. If None, uses defaults.
        strict: If True, raise ValueError on invalid configuration. If False,
                fall back to defaults.

    Returns:
        AnalyticsConfig object

    Raises:
        ValueError: If strict=True and configuration is invalid
    """
    if config_path is None or not config_path.exists():
        return AnalyticsConfig()

    try:
        with open(config_path, "r") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            return AnalyticsConfig()

        raw_config = _substitute_env_vars(raw_config)
        analytics_config = raw_config.get("analytics", {}) or {}
        # Empty substitutions mean "unset"
        if analytics_config.get("token") == "":
            analytics_config["token"] = None

        return AnalyticsConfig(**analytics_config)

    except yaml.YAMLError as e:
        if strict:
            raise ValueError(f"Invalid YAML: {e}")
        return AnalyticsConfig()
    except Exception as e:
        if strict:
            raise ValueError(f"Configuration error: {e}")
        return AnalyticsConfig()


def _find_config_file() -> Optional[Path]:
    """Find configuration file in standard locations.

    Search order:
    1. MIXPANEL_ANALYTICS_CONFIG environment variable
    2. ./mixpanel_analytics.yaml (current directory)
    3. ~/.config/mixpanel-analytics/mixpanel_analytics.yaml
    """
    env_path = os.getenv("MIXPANEL_ANALYTICS_CONFIG")
    if env_path:
        path = Path(env_path)
        if path.exists():
            return path

    cwd_path = Path.cwd() / "mixpanel_analytics.yaml"
    if cwd_path.exists():
        return cwd_path

    home_path = Path.home() / ".config" / "mixpanel-analytics" / "mixpanel_analytics.yaml"
    if home_path.exists():
        return home_path

    return None


def _apply_env_overrides(config: AnalyticsConfig) -> AnalyticsConfig:
    """Apply environment variable overrides to configuration."""
    config_dict = config.to_dict()

    token_env = os.getenv("MIXPANEL_TOKEN")
    if token_env:
        config_dict["token"] = token_env

    base_url_env = os.getenv("MIXPANEL_ANALYTICS_BASE_URL")
    if base_url_env:
        config_dict["base_url"] = base_url_env

    verbose_env = os.getenv("MIXPANEL_ANALYTICS_VERBOSE")
    if verbose_env:
        config_dict["verbose"] = verbose_env.lower() in _TRUE_VALUES

    interval_env = os.getenv("MIXPANEL_ANALYTICS_UPLOAD_INTERVAL")
    if interval_env:
        config_dict["upload_interval_seconds"] = float(interval_env)

    anonymize_env = os.getenv("MIXPANEL_ANALYTICS_ANONYMIZE")
    if anonymize_env:
        config_dict["should_anonymize"] = anonymize_env.lower() in _TRUE_VALUES

    storage_path_env = os.getenv("MIXPANEL_ANALYTICS_STORAGE_PATH")
    if storage_path_env:
        config_dict.setdefault("storage", {})["path"] = storage_path_env

    timeout_env = os.getenv("MIXPANEL_ANALYTICS_TIMEOUT")
    if timeout_env:
        config_dict.setdefault("transport", {})["timeout_seconds"] = float(timeout_env)

    log_level_env = os.getenv("MIXPANEL_ANALYTICS_LOG_LEVEL")
    if log_level_env:
        config_dict["log_level"] = log_level_env

    return AnalyticsConfig(**config_dict)


def get_effective_config(config_path: Optional[Path] = None) -> AnalyticsConfig:
    """Get the effective configuration with all overrides applied.

    Priority: Environment Variables > YAML > Defaults
    """
    if config_path is None:
        config_path = _find_config_file()

    config = load_config(config_path)
    return _apply_env_overrides(config)


# =============================================================================
# Global Configuration Instance
# =============================================================================

# Lazy-loaded global config instance
_global_config: Optional[AnalyticsConfig] = None


def get_config() -> AnalyticsConfig:
    """Get the global configuration instance (cached after first load)."""
    global _global_config
    if _global_config is None:
        _global_config = get_effective_config()
    return _global_config


def reload_config() -> AnalyticsConfig:
    """Reload the global configuration from disk."""
    global _global_config
    _global_config = get_effective_config()
    return _global_config
