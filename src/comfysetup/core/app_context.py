"""Process-wide services, built once at startup and disposed at shutdown."""

from pathlib import Path

from comfysetup.core.app_config import AppConfigManager
from comfysetup.core.gpu import GPUDetector
from comfysetup.logger import configure_logging, get_logger
from comfysetup.models.app_config import AppConfig
from comfysetup.services.config.comfy_settings import ComfySettings
from comfysetup.services.config.desktop_config import DesktopConfigStore
from comfysetup.services.config.model_paths import ModelPathsConfig
from comfysetup.services.git.tools import GitToolManager
from comfysetup.services.installation.installation import Installation, UpdateCallback

logger = get_logger(__name__)


class AppContext:
    """Holds configuration and the persisted stores.

    Passed explicitly to whoever needs it; nothing here is a module global.
    """

    def __init__(
        self,
        config: AppConfig,
        config_manager: AppConfigManager | None = None,
        gpu_detector: GPUDetector | None = None,
    ) -> None:
        self.config = config
        self.config_manager = config_manager
        self.desktop_config = DesktopConfigStore(config.paths.desktop_config_file)
        self.model_paths = ModelPathsConfig(config.paths.model_paths_file)
        self.gpu_detector = gpu_detector or GPUDetector()
        self.git_tools = GitToolManager(config.tools)
        self._settings: dict[Path, ComfySettings] = {}
        self._disposed = False

    @classmethod
    def create(cls, settings_path: Path | None = None) -> "AppContext":
        """Load settings, configure logging and build the context."""
        config_manager = AppConfigManager(settings_path)
        config = config_manager.get_config()
        configure_logging(config.advanced.log_level, config.paths.logs_dir)
        logger.info(f"Config directory: {config.paths.config_dir}")
        return cls(config, config_manager)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def create_installation(self, on_update: UpdateCallback | None = None) -> Installation:
        """Build an Installation from the persisted record.

        Raises:
            ConfigCorruptError: If the record exists but cannot be parsed
        """
        self.desktop_config.load()
        return Installation(self.desktop_config, self.config, self.model_paths, self.git_tools, on_update)

    def comfy_settings(self, base_path: Path) -> ComfySettings:
        """Frontend settings for ``base_path``, shared for the life of the context."""
        settings = self._settings.get(base_path)
        if settings is None:
            settings = ComfySettings(base_path)
            if self._disposed:
                settings.lock_writes()
            self._settings[base_path] = settings
        return settings

    def dispose(self) -> None:
        """Hand the settings files over to the server. Further writes raise."""
        if self._disposed:
            return
        for settings in self._settings.values():
            settings.lock_writes()
        self._disposed = True
        logger.info("Application context disposed")
