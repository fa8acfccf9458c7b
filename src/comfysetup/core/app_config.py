"""Configuration management for comfysetup."""

import os
from pathlib import Path
from typing import Any, cast

import yaml

from comfysetup.logger import get_logger
from comfysetup.models.app_config import AppConfig, default_config_dir

logger = get_logger(__name__)


class AppConfigManager:
    """Manages application configuration with YAML file and environment variable support."""

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            config_path: Path to settings file. If None, uses COMFYSETUP_SETTINGS_PATH
                        environment variable or defaults to platform-specific config directory
        """
        if config_path is None:
            env_path = os.getenv("COMFYSETUP_SETTINGS_PATH")
            if env_path:
                config_path = Path(env_path).expanduser()
            else:
                config_path = default_config_dir() / "settings.yaml"

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
            logger.debug(f"Loaded settings from {self.config_path}")

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

        return cast(dict[str, Any], convert_paths(config_dict))

    def _apply_env_overrides(self, config: AppConfig) -> AppConfig:
        """Apply environment variable overrides.

        Examples:
            - COMFYSETUP_CONFIG_DIR=~/custom/path
            - COMFYSETUP_LOG_LEVEL=DEBUG
            - COMFYSETUP_UV_PATH=/opt/uv/bin/uv

        Args:
            config: Base configuration

        Returns:
            Configuration with environment overrides applied
        """
        if config_dir := os.getenv("COMFYSETUP_CONFIG_DIR"):
            config.paths.config_dir = Path(config_dir).expanduser()
            # Recalculate dependent paths
            config.paths.logs_dir = None
            config.paths.model_post_init(None)

        if log_level := os.getenv("COMFYSETUP_LOG_LEVEL"):
            if log_level.upper() in ("INFO", "DEBUG", "TRACE"):
                config.advanced.log_level = log_level.upper()  # type: ignore

        if uv_path := os.getenv("COMFYSETUP_UV_PATH"):
            config.tools.uv.type = "custom"
            config.tools.uv.custom_path = uv_path

        if git_path := os.getenv("COMFYSETUP_GIT_PATH"):
            config.tools.git.type = "custom"
            config.tools.git.custom_path = git_path

        if index_url := os.getenv("COMFYSETUP_PYPI_MIRROR"):
            config.environment.pypi_mirror = index_url

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
