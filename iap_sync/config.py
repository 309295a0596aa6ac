"""Configuration management - loads sdk.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from iap_sync.models.config import SdkConfig


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class Config:
    """Engine configuration loader and manager.

    Loads sdk.yaml and provides validated access to:
    - Ledger connection settings
    - Purchase platform settings (local platform, offer selection rule)
    - Cache, notification and logging settings
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to sdk.yaml. If not provided, uses the IAP_SYNC_CONFIG
                        env var or defaults to ./config/sdk.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._sdk_config: Optional[SdkConfig] = None
        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("IAP_SYNC_CONFIG")
        if env_path:
            return Path(env_path)

        return Path("config/sdk.yaml")

    def _load_config(self) -> None:
        """Load and validate sdk.yaml configuration."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/sdk.yaml or set IAP_SYNC_CONFIG environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")

        try:
            self._sdk_config = SdkConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    @property
    def settings(self) -> SdkConfig:
        """Get validated configuration."""
        if self._sdk_config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._sdk_config

    @property
    def config_path(self) -> Path:
        return self._config_path

    @property
    def ledger_base_url(self) -> str:
        return self.settings.ledger.base_url

    @property
    def ledger_timeout(self) -> float:
        return self.settings.ledger.timeout_seconds

    @property
    def local_platform(self):
        """Platform the engine runs on (Platform.ANDROID by default)."""
        return self.settings.platform.local_platform

    @property
    def offer_selection(self):
        """Offer selection rule for products with several offers."""
        return self.settings.platform.offer_selection

    @property
    def product_type(self) -> str:
        return self.settings.platform.product_type

    @property
    def cache_directory(self) -> Path:
        return Path(self.settings.cache.directory)

    @property
    def notification_duration(self) -> float:
        return self.settings.notifications.duration_seconds

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load_config()


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """Get global configuration instance (singleton).

    Args:
        config_path: Optional path to configuration file (only used on first call)

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(config_path)
    return _config_instance


def reset_config() -> None:
    """Drop the global configuration instance (used by tests)."""
    global _config_instance
    _config_instance = None
