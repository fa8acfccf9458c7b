"""Drives an installation to a validated state.

Routes the persisted state to a fresh install, a legacy upgrade or the
resolution loop, talking to the UI only through an InstallChannel.
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from comfysetup.exceptions import (
    AppBaseError,
    ConfigCorruptError,
    HardwareUnsupportedError,
    InaccessiblePathError,
    IncompleteEnvironmentError,
    ValidationError,
)
from comfysetup.logger import get_logger
from comfysetup.models.installation import (
    InstallOptions,
    InstallState,
    RepairTask,
    ValidationResult,
    ValidationStatus,
)
from comfysetup.services.environment.import_verifier import ImportVerifier
from comfysetup.services.environment.manager import EnvironmentManager
from comfysetup.services.installation.channel import InstallChannel, create_process_callbacks
from comfysetup.services.installation.installation import Installation
from comfysetup.services.installation.path_validation import validate_install_path
from comfysetup.services.installation.stages import InstallStage, InstallStageInfo, get_install_stage_name
from comfysetup.services.installation.wizard import InstallWizard
from comfysetup.utils.paths import path_accessible

if TYPE_CHECKING:
    from comfysetup.core.app_context import AppContext

logger = get_logger(__name__)

WIZARD_PROGRESS = {InstallStage.CREATING_DIRECTORIES: 20, InstallStage.INITIALIZING_CONFIG: 30}

# Repair actions offered for each failing check
REPAIR_ACTIONS: dict[str, list[str]] = {
    "base_path": ["selectBasePath"],
    "venv_directory": ["resetEnvironment"],
    "python_interpreter": ["resetEnvironment"],
    "package_manager": ["validateInstallation"],
    "python_packages": ["reinstallRequirements", "clearCache"],
    "version_control_tool": ["validateInstallation"],
    "platform_runtime": ["validateInstallation"],
}

RESOLUTION_REQUESTS = (
    "reinstallRequirements",
    "clearCache",
    "resetEnvironment",
    "selectBasePath",
    "validateInstallation",
    "getValidationState",
    "completeValidation",
    "abortValidation",
)


def get_repair_tasks(validation: ValidationResult) -> list[RepairTask]:
    """Repair tasks for every check currently reporting an error."""
    return [RepairTask(id=issue, actions=REPAIR_ACTIONS[issue]) for issue in validation.issues]


class InstallationOrchestrator:
    """Owns the install state machine for one process."""

    def __init__(self, context: "AppContext", channel: InstallChannel) -> None:
        self.context = context
        self.channel = channel

    async def ensure_installed(self) -> Installation:
        """Return an installation that is valid, or one the user chose to leave invalid.

        Raises:
            ConfigCorruptError: If a persisted document cannot be read
            HardwareUnsupportedError: If this machine cannot run the app
        """
        await self._set_stage(InstallStage.CHECKING_EXISTING_INSTALL, progress=0)
        try:
            installation = self.context.create_installation(on_update=self._publish_validation)
        except ConfigCorruptError as e:
            await self._report_corrupt_file(e)
            raise
        installation.process_callbacks = create_process_callbacks(self.channel, log_stderr_as_info=True)

        await self._validate(installation)

        if installation.state in (InstallState.NOT_INSTALLED, InstallState.STARTED):
            return await self.fresh_install(installation)

        if installation.state == InstallState.UPGRADED:
            await self.upgrade_config(installation)

        if not installation.is_valid:
            await self.resolve_issues(installation)

        if installation.is_valid:
            await self._set_stage(InstallStage.READY, progress=100)
        return installation

    async def fresh_install(self, installation: Installation) -> Installation:
        """Run the full install flow from the beginning."""
        logger.info("Starting installation")
        installation.set_state(InstallState.STARTED)

        await self._set_stage(InstallStage.HARDWARE_VALIDATION, progress=5)
        hardware = await asyncio.to_thread(self.context.gpu_detector.validate_hardware)
        if hardware.gpu:
            installation.set_detected_gpu(hardware.gpu)

        if not hardware.is_valid:
            reason = hardware.error or "Unknown hardware"
            logger.error(reason)
            await self.channel.send(InstallChannel.LOAD_PAGE, "not-supported")
            await self._set_stage(InstallStage.ERROR, error=reason)
            raise HardwareUnsupportedError(reason)

        # Listen before showing the page so an early reply is not lost
        options_future = self.channel.wait_for(InstallChannel.INSTALL_COMFYUI)
        await self._set_stage(InstallStage.WELCOME_SCREEN, progress=10)
        await self.channel.send(InstallChannel.LOAD_PAGE, "welcome")

        raw_options = await options_future
        logger.info("Received install options")
        await self._set_stage(InstallStage.INSTALL_OPTIONS_SELECTION, progress=15)
        try:
            options = self._parse_options(raw_options)
        except ValidationError as e:
            logger.error(f"Invalid install options: {e}")
            await self._set_stage(InstallStage.ERROR, error=str(e))
            raise

        device = options.device or hardware.device
        installation.update_base_path(options.base_path)
        installation.update_device(device)
        installation.update_mirror_settings(options.mirror_settings)

        wizard = InstallWizard(
            options, device, self.context.model_paths, self.context.comfy_settings(options.base_path)
        )
        environment = installation.environment
        assert environment is not None
        callbacks = create_process_callbacks(self.channel, log_stderr_as_info=True)

        try:
            await wizard.install(on_stage=self._set_wizard_stage)

            await self._set_stage(InstallStage.PYTHON_ENVIRONMENT_SETUP, progress=40)
            await environment.create(callbacks)
            await environment.upgrade_pip(callbacks)

            await self._set_stage(InstallStage.INSTALLING_REQUIREMENTS, progress=60)
            await environment.reinstall_requirements(callbacks)

            if wizard.should_migrate_custom_nodes and wizard.migration_source is not None:
                await self._set_stage(InstallStage.MIGRATING_CUSTOM_NODES, progress=85)
                installation.set_migrate_custom_nodes_from(wizard.migration_source)
        except (AppBaseError, OSError) as e:
            logger.error(f"Installation failed: {e}")
            await self._set_stage(InstallStage.ERROR, error=str(e))
            raise

        installation.set_state(InstallState.INSTALLED)

        await self._set_stage(InstallStage.VALIDATION_IN_PROGRESS, progress=90)
        await self._validate(installation)
        if not installation.is_valid:
            await self.resolve_issues(installation)
        if installation.is_valid:
            await self._set_stage(InstallStage.READY, progress=100)
        return installation

    async def upgrade_config(self, installation: Installation) -> None:
        """Adopt a legacy install once its base path has been confirmed."""
        if installation.base_path is None or installation.validation.base_path != ValidationStatus.OK:
            logger.warning("Legacy install has no usable base path, leaving it for the resolution loop")
            return

        logger.info(f"Migrating legacy install at {installation.base_path}")
        installation.update_base_path(installation.base_path)
        installation.set_state(InstallState.INSTALLED)
        await self._validate(installation)

    async def resolve_issues(self, installation: Installation) -> bool:
        """Serve repair requests until the UI completes or aborts.

        Returns:
            True if the installation was valid when completed, False if aborted
        """
        outcome: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        callbacks = create_process_callbacks(self.channel, log_stderr_as_info=True)

        async def reinstall_requirements(_: Any) -> bool:  # noqa: ANN401
            async def run() -> bool:
                environment = await self._require_environment(installation)
                await environment.reinstall_requirements(callbacks)
                verification = await ImportVerifier(environment).verify(
                    installation.app_config.environment.required_imports
                )
                if verification.missing_imports:
                    raise IncompleteEnvironmentError(verification.missing_imports)
                return True

            return await self._repair(installation, "reinstallRequirements", run)

        async def clear_cache(_: Any) -> bool:  # noqa: ANN401
            async def run() -> bool:
                environment = await self._require_environment(installation)
                return await environment.clear_cache(callbacks)

            return await self._repair(installation, "clearCache", run)

        async def reset_environment(_: Any) -> bool:  # noqa: ANN401
            async def run() -> bool:
                environment = await self._require_environment(installation)
                await environment.reset(callbacks)
                return True

            return await self._repair(installation, "resetEnvironment", run)

        async def select_base_path(payload: Any) -> bool:  # noqa: ANN401
            return await self.select_base_path(installation, payload)

        async def validate_installation(_: Any) -> bool:  # noqa: ANN401
            await self._revalidate(installation)
            return installation.is_valid

        async def get_validation_state(_: Any) -> ValidationResult:  # noqa: ANN401
            return installation.validation

        async def complete_validation(_: Any) -> bool:  # noqa: ANN401
            await self._revalidate(installation)
            if installation.is_valid and not outcome.done():
                outcome.set_result(True)
            return installation.is_valid

        async def abort_validation(_: Any) -> None:  # noqa: ANN401
            logger.warning("Validation aborted by user")
            if not outcome.done():
                outcome.set_result(False)

        handlers = dict(
            zip(
                RESOLUTION_REQUESTS,
                (
                    reinstall_requirements,
                    clear_cache,
                    reset_environment,
                    select_base_path,
                    validate_installation,
                    get_validation_state,
                    complete_validation,
                    abort_validation,
                ),
            )
        )
        for name, handler in handlers.items():
            self.channel.handle(name, handler)

        issues = ", ".join(installation.validation.issues)
        await self._set_stage(InstallStage.MAINTENANCE_MODE, message=f"Issues: {issues}")
        await self._send_repair_tasks(installation)
        await self.channel.send(InstallChannel.LOAD_PAGE, "maintenance")

        try:
            return await outcome
        finally:
            for name in RESOLUTION_REQUESTS:
                self.channel.remove_handler(name)

    async def select_base_path(self, installation: Installation, payload: Any) -> bool:  # noqa: ANN401
        """Accept a new base path from the UI.

        ``payload`` is either a path string or ``{"path": str, "bypassSpaceCheck": bool}``.
        """
        if isinstance(payload, dict):
            raw_path = payload.get("path")
            bypass_space_check = bool(payload.get("bypassSpaceCheck", False))
        else:
            raw_path = payload
            bypass_space_check = False

        if not raw_path:
            raise ValidationError("installation.base_path.not_set")

        path = Path(str(raw_path)).expanduser()
        check = await validate_install_path(path, bypass_space_check)
        if not check.is_valid:
            logger.warning(f"Rejected base path {path}: {check.model_dump(exclude_defaults=True)}")
            await self.channel.send(InstallChannel.LOG_MESSAGE, f"Invalid base path: {path}")
            return False

        try:
            await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Unable to create base path {path}: {e}")
            await self.channel.send(InstallChannel.LOG_MESSAGE, f"Invalid base path: {path}")
            return False

        installation.update_base_path(path)
        await self._revalidate(installation)
        if installation.state == InstallState.UPGRADED:
            await self.upgrade_config(installation)
            await self._send_repair_tasks(installation)
        return installation.validation.base_path == ValidationStatus.OK

    async def _repair(self, installation: Installation, name: str, operation: Callable[[], Awaitable[bool]]) -> bool:
        logger.info(f"Running repair: {name}")
        try:
            success = await operation()
        except AppBaseError as e:
            logger.error(f"Repair {name} failed: {e}")
            await self.channel.send(InstallChannel.LOG_MESSAGE, str(e))
            success = False
        await self._revalidate(installation)
        return success

    async def _require_environment(self, installation: Installation) -> EnvironmentManager:
        environment = installation.environment
        if environment is None or not await path_accessible(installation.base_path):
            raise InaccessiblePathError(installation.base_path)
        return environment

    def _parse_options(self, raw_options: Any) -> InstallOptions:  # noqa: ANN401
        if isinstance(raw_options, InstallOptions):
            return raw_options
        try:
            return InstallOptions.model_validate(raw_options)
        except PydanticValidationError as e:
            raise ValidationError("installation.options.invalid", reason=str(e)) from e

    async def _validate(self, installation: Installation) -> ValidationResult:
        try:
            return await installation.validate()
        except ConfigCorruptError as e:
            await self._report_corrupt_file(e)
            raise

    async def _revalidate(self, installation: Installation) -> None:
        await self._validate(installation)
        await self._send_repair_tasks(installation)

    async def _send_repair_tasks(self, installation: Installation) -> None:
        tasks = get_repair_tasks(installation.validation)
        await self.channel.send(
            InstallChannel.REPAIR_TASKS, [task.model_dump(mode="json", by_alias=True) for task in tasks]
        )

    async def _report_corrupt_file(self, error: ConfigCorruptError) -> None:
        logger.error(f"Unreadable configuration file: {error.file_path}")
        await self.channel.send(InstallChannel.SHOW_INVALID_FILE, str(error.file_path))
        await self._set_stage(InstallStage.ERROR, error=str(error))

    async def _publish_validation(self, result: ValidationResult) -> None:
        await self.channel.send(InstallChannel.VALIDATION_UPDATE, result)

    async def _set_stage(
        self,
        stage: InstallStage,
        progress: int = 0,
        message: str | None = None,
        error: str | None = None,
    ) -> None:
        info = InstallStageInfo(
            stage=stage, progress=progress, message=message or get_install_stage_name(stage), error=error
        )
        await self.channel.send(InstallChannel.INSTALL_STAGE_UPDATE, info)

    async def _set_wizard_stage(self, stage: InstallStage) -> None:
        await self._set_stage(stage, progress=WIZARD_PROGRESS.get(stage, 0))
