"""Validation pipeline for an installation.

Checks run in a fixed order and each result is published as soon as it is
known. A failing check never stops the pass, so every issue is reported at once.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from comfysetup.exceptions import AppBaseError, ConfigCorruptError
from comfysetup.logger import get_logger
from comfysetup.models.installation import InstallState, ValidationResult, ValidationStatus
from comfysetup.services.environment.import_verifier import ImportVerifier
from comfysetup.utils.paths import can_execute, path_accessible

if TYPE_CHECKING:
    from comfysetup.services.installation.installation import Installation, UpdateCallback

logger = get_logger(__name__)

OK = ValidationStatus.OK
ERROR = ValidationStatus.ERROR
SKIPPED = ValidationStatus.SKIPPED


def _status(passed: bool) -> ValidationStatus:
    return OK if passed else ERROR


def vcruntime_path() -> Path:
    system_root = os.getenv("SYSTEMROOT", r"C:\Windows")
    return Path(system_root) / "System32" / "vcruntime140.dll"


class ValidationEngine:
    """Runs the check pipeline against one installation."""

    async def validate(
        self, installation: "Installation", on_update: "UpdateCallback | None" = None
    ) -> ValidationResult:
        """Run a full pass.

        Passes on the same installation are serialized; a second caller waits
        for the first pass to finish before starting its own.

        Raises:
            ConfigCorruptError: If the model-path config exists but cannot be read
        """
        async with installation.lock:
            return await self._run(installation, on_update)

    async def _run(self, installation: "Installation", on_update: "UpdateCallback | None") -> ValidationResult:
        logger.info(f"Validating installation. Recorded state: [{installation.state.value}]")

        result = ValidationResult(in_progress=True, install_state=installation.state)
        installation.validation = result

        async def publish() -> None:
            if on_update is not None:
                await on_update(result.model_copy(deep=True))

        await publish()

        try:
            # 1. Legacy install detection
            if installation.state == InstallState.NOT_INSTALLED:
                if installation.model_paths.exists():
                    logger.info("Found model path config but no recorded state - assuming upgrade")
                    installation.adopt_state(InstallState.UPGRADED)
                    result.install_state = InstallState.UPGRADED
                    await publish()
                else:
                    logger.info("No installation detected")
                    return result

            # 2. Base path
            if installation.state == InstallState.UPGRADED and installation.base_path is None:
                self._load_legacy_base_path(installation)

            base_path_ok = await path_accessible(installation.base_path)
            if not base_path_ok:
                logger.warning(f"Base path is inaccessible or not set: {installation.base_path}")
            result.base_path = _status(base_path_ok)
            await publish()

            environment = installation.environment if base_path_ok else None
            if environment is None:
                result.venv_directory = SKIPPED
                result.python_interpreter = SKIPPED
                result.package_manager = SKIPPED
                result.python_packages = SKIPPED
                await publish()
            else:
                # 3. Virtual environment directory
                result.venv_directory = _status(await asyncio.to_thread(environment.exists))
                await publish()

                # 4. Interpreter
                result.python_interpreter = _status(await can_execute(environment.python_interpreter))
                await publish()

                # 5. Package manager
                result.package_manager = _status(await can_execute(environment.uv_path))
                await publish()

                # 6. Packages
                env_ready = all(
                    status == OK
                    for status in (result.venv_directory, result.python_interpreter, result.package_manager)
                )
                if env_ready:
                    await self._check_packages(installation, result)
                else:
                    result.python_packages = SKIPPED
                await publish()

            # 7. Version control tool
            git_path = installation.git_tools.get_git_executable()
            result.version_control_tool = _status(await can_execute(git_path))
            await publish()

            # 8. Platform runtime library
            if sys.platform == "win32":
                result.platform_runtime = _status(await asyncio.to_thread(vcruntime_path().exists))
            else:
                result.platform_runtime = SKIPPED
            await publish()

            return result
        finally:
            result.in_progress = False
            logger.info(
                f"Validation result: isValid:{result.is_valid}, state:{result.install_state.value}, "
                f"issues:{result.issues}"
            )
            await publish()

    def _load_legacy_base_path(self, installation: "Installation") -> None:
        read_result = installation.model_paths.read_base_path()
        if read_result.status == "success":
            installation.adopt_base_path(read_result.payload)
        elif read_result.status == "error":
            raise ConfigCorruptError(installation.model_paths.config_file, reason=read_result.message)
        else:
            logger.warning(f"No usable base_path in model path config ({read_result.status})")

    async def _check_packages(self, installation: "Installation", result: ValidationResult) -> None:
        environment = installation.environment
        assert environment is not None
        try:
            requirements_ok = await environment.has_requirements(installation.process_callbacks)
        except AppBaseError as e:
            logger.error(f"Unable to check installed packages: {e}")
            requirements_ok = False

        # Import check runs regardless of the package listing
        verification = await ImportVerifier(environment).verify(installation.app_config.environment.required_imports)
        result.missing_imports = verification.missing_imports
        result.python_packages = _status(requirements_ok and verification.success)
