"""Managed Python environment: venv, uv and the package set.

All work is delegated to ``uv``. Output is forwarded line by line to the
caller's callbacks while the command runs.
"""

import asyncio
import json
import os
import re
import shutil
import sys
from pathlib import Path

from comfysetup.exceptions import MissingRuntimeError, OperationalError
from comfysetup.logger import get_logger
from comfysetup.models.app_config import AppConfig
from comfysetup.models.installation import MirrorSettings, TorchDevice
from comfysetup.utils.paths import get_resources_dir
from comfysetup.utils.subprocess_executor import CommandResult, ProcessCallbacks, SubprocessExecutor

logger = get_logger(__name__)

TORCH_PACKAGES = ("torch", "torchvision", "torchaudio")

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def normalize_package_name(name: str) -> str:
    """Canonical distribution name (PEP 503)."""
    return re.sub(r"[-_.]+", "-", name).lower()


def parse_requirement_names(requirements_file: Path) -> set[str]:
    """Distribution names listed in a requirements file, normalized."""
    names: set[str] = set()
    with open(requirements_file, encoding="utf-8") as f:
        for line in f:
            line = line.split("#", 1)[0].strip()
            if not line or line.startswith("-"):
                continue
            match = _REQUIREMENT_NAME.match(line)
            if match:
                names.add(normalize_package_name(match.group(1)))
    return names


class EnvironmentManager:
    """Owns the virtual environment under a base path for one compute device.

    Instances are cheap and immutable in their inputs. Create a new one when the
    base path or device changes.
    """

    def __init__(
        self,
        base_path: Path,
        device: TorchDevice | None,
        app_config: AppConfig,
        mirror_settings: MirrorSettings | None = None,
    ) -> None:
        self.base_path = base_path
        self.device = device or TorchDevice.CPU
        self.app_config = app_config
        self.mirror_settings = mirror_settings or MirrorSettings()

        env_config = app_config.environment
        self.python_version = env_config.python_version
        self.venv_path = base_path / env_config.venv_dir_name
        self.cache_path = base_path / "uv-cache"
        self.requirements_file = get_resources_dir() / "requirements" / "comfyui.txt"

    @property
    def python_interpreter(self) -> Path:
        if sys.platform == "win32":
            return self.venv_path / "Scripts" / "python.exe"
        return self.venv_path / "bin" / "python"

    @property
    def uv_path(self) -> Path | None:
        """Resolve the uv executable: configured path, bundled copy, then PATH."""
        uv_source = self.app_config.tools.uv
        if uv_source.type == "custom" and uv_source.custom_path:
            return Path(uv_source.custom_path)

        exe_name = "uv.exe" if sys.platform == "win32" else "uv"
        bundled = get_resources_dir() / "uv" / sys.platform / exe_name
        if bundled.exists():
            return bundled

        system_uv = shutil.which("uv")
        if system_uv:
            return Path(system_uv)
        return None

    @property
    def torch_index_url(self) -> str | None:
        """Wheel index for torch packages. MPS builds come from the default index."""
        if self.mirror_settings.torch_mirror:
            return self.mirror_settings.torch_mirror
        torch_index = self.app_config.environment.torch_index
        if self.device == TorchDevice.CUDA:
            return torch_index.cuda
        if self.device == TorchDevice.ROCM:
            return torch_index.rocm
        if self.device == TorchDevice.CPU:
            return torch_index.cpu
        return None

    def exists(self) -> bool:
        return self.venv_path.is_dir()

    def _uv_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["VIRTUAL_ENV"] = str(self.venv_path)
        env["UV_CACHE_DIR"] = str(self.cache_path)
        env["UV_PYTHON_INSTALL_DIR"] = str(self.base_path / "python")

        if self.mirror_settings.python_mirror:
            env["UV_PYTHON_INSTALL_MIRROR"] = self.mirror_settings.python_mirror

        pypi_mirror = self.mirror_settings.pypi_mirror or self.app_config.environment.pypi_mirror
        if pypi_mirror:
            env["UV_DEFAULT_INDEX"] = pypi_mirror
        return env

    async def run_command(
        self,
        executable: Path | str,
        args: list[str],
        callbacks: ProcessCallbacks | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run an executable, streaming its output.

        Returns:
            CommandResult; a non-zero exit code is not an error here

        Raises:
            MissingRuntimeError: If the executable cannot be spawned
        """
        try:
            return await SubprocessExecutor.stream(
                str(executable), *args, cwd=self.base_path, env=env, callbacks=callbacks
            )
        except OSError as e:
            logger.error(f"Unable to start {executable}: {e}")
            raise MissingRuntimeError(executable, reason=str(e)) from e

    async def run_python_command(
        self, args: list[str], callbacks: ProcessCallbacks | None = None
    ) -> CommandResult:
        """Run the environment's interpreter."""
        return await self.run_command(self.python_interpreter, args, callbacks, env=self._uv_env())

    async def run_uv_command(self, args: list[str], callbacks: ProcessCallbacks | None = None) -> CommandResult:
        """Run uv with the environment's cache, mirror and venv settings."""
        uv_path = self.uv_path
        if uv_path is None:
            raise MissingRuntimeError("uv", reason="uv was not found")
        return await self.run_command(uv_path, args, callbacks, env=self._uv_env())

    async def _run_uv_checked(self, args: list[str], callbacks: ProcessCallbacks | None) -> None:
        result = await self.run_uv_command(args, callbacks)
        if result.exit_code != 0:
            raise OperationalError(
                "environment.command.failed", retriable=True, exit_code=result.exit_code, command=f"uv {' '.join(args)}"
            )

    async def create(self, callbacks: ProcessCallbacks | None = None) -> None:
        """Create the virtual environment with the configured Python version."""
        logger.info(f"Creating virtual environment at {self.venv_path} (python {self.python_version})")
        self.base_path.mkdir(parents=True, exist_ok=True)
        await self._run_uv_checked(
            ["venv", "--python", self.python_version, "--python-preference", "only-managed", str(self.venv_path)],
            callbacks,
        )

    async def upgrade_pip(self, callbacks: ProcessCallbacks | None = None) -> None:
        logger.info("Upgrading pip")
        await self._run_uv_checked(["pip", "install", "--upgrade", "pip"], callbacks)

    async def reinstall_requirements(self, callbacks: ProcessCallbacks | None = None) -> None:
        """Install torch for the selected device, then the rest of the manifest."""
        logger.info(f"Installing requirements for device {self.device.value}")

        torch_args = ["pip", "install", "--upgrade", *TORCH_PACKAGES]
        if index_url := self.torch_index_url:
            torch_args += ["--index-url", index_url]
        await self._run_uv_checked(torch_args, callbacks)

        await self._run_uv_checked(["pip", "install", "-r", str(self.requirements_file)], callbacks)

    async def has_requirements(self, callbacks: ProcessCallbacks | None = None) -> bool:
        """Compare installed distributions against the manifest.

        stdout is parsed here; stderr goes to ``callbacks``.

        Raises:
            OperationalError: If the installed package list cannot be obtained or parsed
        """
        stdout_lines: list[str] = []

        async def collect(line: str) -> None:
            stdout_lines.append(line)

        on_stderr = callbacks.on_stderr if callbacks else None
        result = await self.run_uv_command(
            ["pip", "list", "--format", "json"], ProcessCallbacks(on_stdout=collect, on_stderr=on_stderr)
        )
        if result.exit_code != 0:
            raise OperationalError("environment.packages.list_failed", reason=f"exit code {result.exit_code}")

        try:
            packages = json.loads("\n".join(stdout_lines) or "[]")
            installed = {normalize_package_name(p["name"]) for p in packages}
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise OperationalError("environment.packages.list_failed", reason=str(e)) from e

        missing = sorted(parse_requirement_names(self.requirements_file) - installed)
        if missing:
            logger.warning(f"Missing packages: {', '.join(missing)}")
            return False
        return True

    async def remove_directory(self) -> bool:
        """Delete the virtual environment. Failure is logged, not raised."""
        if not self.venv_path.exists():
            return True
        try:
            await asyncio.to_thread(shutil.rmtree, self.venv_path)
        except OSError as e:
            logger.error(f"Failed to remove {self.venv_path}: {e}")
            return False
        logger.info(f"Removed virtual environment {self.venv_path}")
        return True

    async def clear_cache(self, callbacks: ProcessCallbacks | None = None) -> bool:
        """Run ``uv cache clean``."""
        try:
            result = await self.run_uv_command(["cache", "clean"], callbacks)
        except MissingRuntimeError as e:
            logger.error(f"Unable to clear cache: {e}")
            return False
        return result.exit_code == 0

    async def reset(self, callbacks: ProcessCallbacks | None = None) -> None:
        """Rebuild the environment from scratch."""
        logger.info("Resetting virtual environment")
        if not await self.remove_directory():
            raise OperationalError("environment.command.failed", exit_code=-1, command=f"remove {self.venv_path}")
        await self.create(callbacks)
        await self.upgrade_pip(callbacks)
        await self.reinstall_requirements(callbacks)
