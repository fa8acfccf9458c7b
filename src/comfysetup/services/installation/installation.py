"""The installation: persisted record, its environment and the latest validation."""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path

from comfysetup.logger import get_logger
from comfysetup.models.app_config import AppConfig
from comfysetup.models.installation import InstallState, MirrorSettings, TorchDevice, ValidationResult
from comfysetup.services.config.desktop_config import DesktopConfigStore
from comfysetup.services.config.model_paths import ModelPathsConfig
from comfysetup.services.environment.manager import EnvironmentManager
from comfysetup.services.git.tools import GitToolManager
from comfysetup.services.installation.validator import ValidationEngine
from comfysetup.utils.subprocess_executor import ProcessCallbacks

logger = get_logger(__name__)

UpdateCallback = Callable[[ValidationResult], Awaitable[None]]


class Installation:
    """Single owner of the installation record and its environment.

    All record mutations go through this object so the in-memory view and the
    persisted document never drift apart.
    """

    def __init__(
        self,
        store: DesktopConfigStore,
        app_config: AppConfig,
        model_paths: ModelPathsConfig,
        git_tools: GitToolManager,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self.store = store
        self.app_config = app_config
        self.model_paths = model_paths
        self.git_tools = git_tools
        self.on_update = on_update
        # Receives subprocess output from validation passes
        self.process_callbacks: ProcessCallbacks | None = None

        record = store.record
        self.state = record.state
        self.base_path = record.base_path
        self.device = record.selected_device
        self.mirror_settings = MirrorSettings()

        self.validation = ValidationResult(install_state=self.state)
        # One validation pass at a time
        self.lock = asyncio.Lock()
        self._environment: EnvironmentManager | None = None

    @property
    def environment(self) -> EnvironmentManager | None:
        """Environment for the current base path and device, or None without a base path."""
        if self.base_path is None:
            return None
        if self._environment is None:
            self._environment = EnvironmentManager(
                self.base_path, self.device, self.app_config, self.mirror_settings
            )
        return self._environment

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    @property
    def has_issues(self) -> bool:
        return self.validation.has_issues

    def set_state(self, state: InstallState) -> None:
        self.store.set_state(state)
        self.state = state

    def adopt_state(self, state: InstallState) -> None:
        """Use ``state`` for this session without persisting it."""
        self.state = state

    def update_base_path(self, base_path: Path) -> None:
        logger.info(f"Base path set to {base_path}")
        self.store.update(base_path=base_path)
        self.base_path = base_path
        self._environment = None

    def adopt_base_path(self, base_path: Path) -> None:
        """Use ``base_path`` for this session without persisting it."""
        self.base_path = base_path
        self._environment = None

    def update_device(self, device: TorchDevice) -> None:
        self.store.update(selected_device=device)
        self.device = device
        self._environment = None

    def update_mirror_settings(self, mirror_settings: MirrorSettings) -> None:
        self.mirror_settings = mirror_settings
        self._environment = None

    def set_detected_gpu(self, gpu: str) -> None:
        self.store.update(detected_gpu=gpu)

    def set_migrate_custom_nodes_from(self, source: Path) -> None:
        self.store.update(migrate_custom_nodes_from=source)

    async def validate(self) -> ValidationResult:
        """Run a full validation pass, waiting for any pass already in flight."""
        return await ValidationEngine().validate(self, self.on_update)
