"""Configuration management for obsync."""

import os
import sys
from pathlib import Path
from typing import Any

import yaml

from obsync.models.config import AppConfig


def default_config_path() -> Path:
    """Return the platform-specific location of config.yaml."""
    if sys.platform == "win32":
        # Windows: %APPDATA%\obsync
        config_dir = Path(os.getenv("APPDATA", str(Path.home()))) / "obsync"
    elif sys.platform == "darwin":
        # macOS: ~/Library/Application Support/obsync
        config_dir = Path.home() / "Library" / "Application Support" / "obsync"
    else:
        # Linux/Unix: ~/.config/obsync
        config_dir = Path.home() / ".config" / "obsync"
    return config_dir / "config.yaml"


class ConfigManager:
    """Manages application configuration with YAML file and environment variable support."""

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            config_path: Path to config file. If None, uses OBSYNC_CONFIG_PATH
                        environment variable or defaults to platform-specific config directory
        """
        if config_path is None:
            env_path = os.getenv("OBSYNC_CONFIG_PATH")
            config_path = Path(env_path).expanduser() if env_path else default_config_path()

        self.config_path = config_path
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """Load configuration from file and apply environment variable overrides.

        Returns:
            Loaded configuration
        """
        config_data: dict[str, Any] = {}

        # 1. Load from YAML file if it exists
        if self.config_path.exists():
            with open(self.config_path, encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}

        # 2. Create config object (applies defaults)
        config = AppConfig(**config_data)

        # 3. Apply environment variable overrides
        return self._apply_env_overrides(config)

    def save(self, config: AppConfig) -> None:
        """Save configuration to YAML file.

        Args:
            config: Configuration to save
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        config_dict = self._config_to_dict(config)

        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.dump(config_dict, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    def _config_to_dict(self, config: AppConfig) -> dict[str, Any]:
        """Convert config to dictionary with Path objects as strings."""
        config_dict = config.model_dump(mode="json", exclude_none=True)

        def convert_paths(obj: Any) -> Any:  # noqa: ANN401
            if isinstance(obj, dict):
                return {k: convert_paths(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [convert_paths(item) for item in obj]
            if isinstance(obj, Path):
                return str(obj)
            return obj

        return convert_paths(config_dict)

    def _apply_env_overrides(self, config: AppConfig) -> AppConfig:
        """Apply environment variable overrides.

        Environment variables use the format: OBSYNC_<SECTION>_<KEY>
        Examples:
            - OBSYNC_SERVER_PORT=9000
            - OBSYNC_DATA_DIR=~/custom/path
            - OBSYNC_NETWORK_RETRY_ATTEMPTS=5

        Args:
            config: Base configuration

        Returns:
            Configuration with environment overrides applied
        """
        # Server overrides
        if port := os.getenv("OBSYNC_SERVER_PORT"):
            config.server.port = int(port)
        if host := os.getenv("OBSYNC_SERVER_HOST"):
            config.server.host = host

        # Path overrides
        if data_dir := os.getenv("OBSYNC_DATA_DIR"):
            config.paths.data_dir = Path(data_dir).expanduser()
            config.paths.logs_dir = None
            # Recalculate dependent paths
            config.paths.model_post_init(None)

        # Catalog overrides
        if base_url := os.getenv("OBSYNC_CATALOG_BASE_URL"):
            config.catalog.base_url = base_url.rstrip("/")

        # Network overrides
        if timeout := os.getenv("OBSYNC_NETWORK_TIMEOUT"):
            config.network.timeout = float(timeout)
        if attempts := os.getenv("OBSYNC_NETWORK_RETRY_ATTEMPTS"):
            config.network.retry_attempts = max(1, int(attempts))
        if delay := os.getenv("OBSYNC_NETWORK_RETRY_DELAY"):
            config.network.retry_delay = float(delay)

        if level := os.getenv("OBSYNC_LOG_LEVEL"):
            if level.upper() in ("WARNING", "INFO", "DEBUG"):
                config.advanced.log_level = level.upper()  # type: ignore

        return config

    def get_config(self) -> AppConfig:
        """Get configuration, loading it on first access."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def reload(self) -> AppConfig:
        """Reload configuration from file."""
        self._config = self.load()
        return self._config


# Global configuration manager instance
_config_manager = ConfigManager()


def get_config() -> AppConfig:
    """Get global application configuration.

    Returns:
        Application configuration
    """
    return _config_manager.get_config()


def reload_config() -> AppConfig:
    """Reload configuration from file.

    Returns:
        Reloaded configuration
    """
    return _config_manager.reload()


def save_config(config: AppConfig) -> None:
    """Save configuration to file.

    Args:
        config: Configuration to save
    """
    _config_manager.save(config)
