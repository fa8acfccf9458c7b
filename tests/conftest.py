"""Shared fixtures for installer tests."""

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from comfysetup.core.app_context import AppContext
from comfysetup.core.gpu import HardwareValidation
from comfysetup.models.app_config import AppConfig, PathsConfig, ToolSource
from comfysetup.models.installation import TorchDevice
from comfysetup.services.environment.manager import EnvironmentManager
from comfysetup.services.installation.channel import InstallChannel
from comfysetup.utils.subprocess_executor import CommandResult, ProcessCallbacks


def make_executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll ``predicate`` until it holds, yielding to the event loop in between."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Timed out waiting for condition")
        await asyncio.sleep(0.01)


class FakeDetector:
    def __init__(self, result: HardwareValidation) -> None:
        self.result = result

    def validate_hardware(self) -> HardwareValidation:
        return self.result


@dataclass
class FakeEnvironmentState:
    """Controls the patched environment operations."""

    missing: list[str] = field(default_factory=list)
    has_requirements: bool = True
    calls: list[str] = field(default_factory=list)


@dataclass
class EventRecorder:
    events: list[tuple[str, Any]] = field(default_factory=list)

    async def __call__(self, name: str, payload: Any) -> None:  # noqa: ANN401
        self.events.append((name, payload))

    def named(self, name: str) -> list[Any]:
        return [payload for event, payload in self.events if event == name]

    def has(self, name: str, payload: Any = None) -> bool:  # noqa: ANN401
        return any(event == name and (payload is None or p == payload) for event, p in self.events)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    config = AppConfig(paths=PathsConfig(config_dir=tmp_path / "config"))
    config.tools.uv = ToolSource(type="custom", custom_path=str(make_executable(tmp_path / "tools" / "uv")))
    config.tools.git = ToolSource(type="custom", custom_path=str(make_executable(tmp_path / "tools" / "git")))
    config.environment.required_imports = ["yaml", "torch", "uv"]
    return config


@pytest.fixture
def detector() -> FakeDetector:
    return FakeDetector(HardwareValidation(is_valid=True, gpu="nvidia", device=TorchDevice.CUDA))


@pytest.fixture
def context(app_config: AppConfig, detector: FakeDetector) -> AppContext:
    return AppContext(app_config, gpu_detector=detector)  # type: ignore[arg-type]


@pytest.fixture
def channel() -> InstallChannel:
    return InstallChannel()


@pytest.fixture
def events(channel: InstallChannel) -> EventRecorder:
    recorder = EventRecorder()
    channel.subscribe(recorder)
    return recorder


def write_record(app_config: AppConfig, **data: Any) -> None:  # noqa: ANN401
    config_file = app_config.paths.desktop_config_file
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(data))


def make_ready_base(base_path: Path, app_config: AppConfig) -> Path:
    """Create a base directory with a venv and an executable interpreter."""
    env = EnvironmentManager(base_path, TorchDevice.CPU, app_config)
    make_executable(env.python_interpreter)
    return base_path


@pytest.fixture
def fake_env(monkeypatch: pytest.MonkeyPatch) -> FakeEnvironmentState:
    """Replace package-level environment operations with in-memory fakes."""
    state = FakeEnvironmentState()

    async def has_requirements(self: EnvironmentManager, callbacks: ProcessCallbacks | None = None) -> bool:
        return state.has_requirements

    async def run_python_command(
        self: EnvironmentManager, args: list[str], callbacks: ProcessCallbacks | None = None
    ) -> CommandResult:
        payload = json.dumps({"failed_imports": state.missing, "success": not state.missing})
        if callbacks and callbacks.on_stdout:
            await callbacks.on_stdout(payload)
        return CommandResult(exit_code=1 if state.missing else 0, output=payload)

    async def create(self: EnvironmentManager, callbacks: ProcessCallbacks | None = None) -> None:
        state.calls.append("create")
        make_executable(self.python_interpreter)

    async def upgrade_pip(self: EnvironmentManager, callbacks: ProcessCallbacks | None = None) -> None:
        state.calls.append("upgrade_pip")

    async def reinstall_requirements(self: EnvironmentManager, callbacks: ProcessCallbacks | None = None) -> None:
        state.calls.append("reinstall_requirements")
        if callbacks and callbacks.on_stdout:
            await callbacks.on_stdout("Installed 3 packages")
        state.missing = []
        state.has_requirements = True

    async def clear_cache(self: EnvironmentManager, callbacks: ProcessCallbacks | None = None) -> bool:
        state.calls.append("clear_cache")
        return True

    monkeypatch.setattr(EnvironmentManager, "has_requirements", has_requirements)
    monkeypatch.setattr(EnvironmentManager, "run_python_command", run_python_command)
    monkeypatch.setattr(EnvironmentManager, "create", create)
    monkeypatch.setattr(EnvironmentManager, "upgrade_pip", upgrade_pip)
    monkeypatch.setattr(EnvironmentManager, "reinstall_requirements", reinstall_requirements)
    monkeypatch.setattr(EnvironmentManager, "clear_cache", clear_cache)
    return state
