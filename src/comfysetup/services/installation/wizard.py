"""Fresh-install steps that lay out a new base directory."""

import asyncio
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from comfysetup.exceptions import OperationalError, ValidationError
from comfysetup.logger import get_logger
from comfysetup.models.installation import InstallOptions, TorchDevice
from comfysetup.services.config.comfy_settings import ComfySettings
from comfysetup.services.config.model_paths import DESKTOP_SECTION, MIGRATION_SECTION, ModelPathsConfig
from comfysetup.services.installation.stages import InstallStage

logger = get_logger(__name__)

StageCallback = Callable[[InstallStage], Awaitable[None]]


class InstallWizard:
    """Creates directories, migrates user files and writes both config files."""

    def __init__(
        self,
        options: InstallOptions,
        device: TorchDevice,
        model_paths: ModelPathsConfig,
        settings: ComfySettings | None = None,
    ) -> None:
        self.options = options
        self.base_path = options.base_path
        self.device = device
        self.model_paths = model_paths
        self.settings = settings or ComfySettings(self.base_path)
        self.migration_item_ids = set(options.migration_item_ids)

    @property
    def migration_source(self) -> Path | None:
        return self.options.migration_source_path

    def _should_migrate(self, item_id: str) -> bool:
        return self.migration_source is not None and item_id in self.migration_item_ids

    @property
    def should_migrate_custom_nodes(self) -> bool:
        return self._should_migrate("custom_nodes")

    async def install(self, on_stage: StageCallback | None = None) -> None:
        """Run every step in order. Any failure propagates and stops the install."""
        if self.migration_source is not None and not ModelPathsConfig.is_comfy_directory(self.migration_source):
            raise ValidationError("installation.migration.invalid_source", path=self.migration_source)

        if on_stage:
            await on_stage(InstallStage.CREATING_DIRECTORIES)
        await asyncio.to_thread(ModelPathsConfig.create_comfy_directories, self.base_path)
        await asyncio.to_thread(self.initialize_user_files)

        if on_stage:
            await on_stage(InstallStage.INITIALIZING_CONFIG)
        self.initialize_settings()
        self.initialize_model_paths()

    def initialize_user_files(self) -> None:
        """Copy ``user/`` from the migration source."""
        if not self._should_migrate("user_files"):
            return

        assert self.migration_source is not None
        src = self.migration_source / "user"
        dest = self.base_path / "user"
        if not src.is_dir():
            logger.warning(f"Migration source has no user directory: {src}")
            return

        logger.info(f"Migrating user files from {src}")
        shutil.copytree(src, dest, dirs_exist_ok=True)

    def initialize_settings(self) -> None:
        """Seed comfy.settings.json from the install options."""
        mirrors = self.options.mirror_settings
        values: dict[str, Any] = {
            "Comfy-Desktop.AutoUpdate": self.options.auto_update,
            "Comfy-Desktop.SendStatistics": self.options.allow_metrics,
            "Comfy-Desktop.UV.PythonInstallMirror": mirrors.python_mirror,
            "Comfy-Desktop.UV.PypiInstallMirror": mirrors.pypi_mirror,
            "Comfy-Desktop.UV.TorchInstallMirror": mirrors.torch_mirror,
        }
        for key, value in values.items():
            self.settings.set(key, value)

        if self.device == TorchDevice.CPU:
            launch_args = dict(self.settings.get("Comfy.Server.LaunchArgs") or {})
            launch_args["cpu"] = ""
            self.settings.set("Comfy.Server.LaunchArgs", launch_args)

        self.settings.save()

    def initialize_model_paths(self) -> None:
        """Write extra_models_config.yaml, including migrated sections when selected."""
        desktop_section = ModelPathsConfig.get_base_config()
        desktop_section["base_path"] = str(self.base_path)

        sections: dict[str, dict[str, Any]]
        if self._should_migrate("models"):
            assert self.migration_source is not None
            migration_section = ModelPathsConfig.get_base_model_paths_from_repo_path("")
            migration_section["base_path"] = str(self.migration_source)
            sections = {
                **ModelPathsConfig.get_config_from_repo_path(self.migration_source),
                MIGRATION_SECTION: migration_section,
                DESKTOP_SECTION: desktop_section,
            }
        else:
            sections = {DESKTOP_SECTION: desktop_section}

        if not self.model_paths.create_config_file(sections):
            raise OperationalError("installation.config.write_failed", path=self.model_paths.config_file)
