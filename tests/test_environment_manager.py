"""Tests for the managed environment operations."""

import json
import sys
from pathlib import Path

import pytest

from comfysetup.exceptions import MissingRuntimeError, OperationalError
from comfysetup.models.app_config import AppConfig, ToolSource
from comfysetup.models.installation import MirrorSettings, TorchDevice
from comfysetup.services.environment.manager import EnvironmentManager, parse_requirement_names
from comfysetup.utils.subprocess_executor import CommandResult, ProcessCallbacks


def _environment(tmp_path: Path, app_config: AppConfig, device: TorchDevice = TorchDevice.CPU) -> EnvironmentManager:
    base = tmp_path / "base"
    base.mkdir(exist_ok=True)
    return EnvironmentManager(base, device, app_config)


def test_paths(tmp_path: Path, app_config: AppConfig) -> None:
    env = _environment(tmp_path, app_config)

    assert env.venv_path == tmp_path / "base" / ".venv"
    expected = ("Scripts", "python.exe") if sys.platform == "win32" else ("bin", "python")
    assert env.python_interpreter == env.venv_path.joinpath(*expected)
    assert env.uv_path == Path(app_config.tools.uv.custom_path)
    assert not env.exists()


def test_torch_index_follows_device_and_mirror(tmp_path: Path, app_config: AppConfig) -> None:
    index = app_config.environment.torch_index

    assert _environment(tmp_path, app_config, TorchDevice.CUDA).torch_index_url == index.cuda
    assert _environment(tmp_path, app_config, TorchDevice.ROCM).torch_index_url == index.rocm
    assert _environment(tmp_path, app_config, TorchDevice.CPU).torch_index_url == index.cpu
    assert _environment(tmp_path, app_config, TorchDevice.MPS).torch_index_url is None

    mirrored = EnvironmentManager(
        tmp_path, TorchDevice.CUDA, app_config, MirrorSettings(torch_mirror="https://mirror.example/torch")
    )
    assert mirrored.torch_index_url == "https://mirror.example/torch"


def test_requirement_manifest_includes_torch(tmp_path: Path, app_config: AppConfig) -> None:
    names = parse_requirement_names(_environment(tmp_path, app_config).requirements_file)

    assert {"torch", "torchvision", "torchaudio", "pyyaml", "uv"} <= names
    assert "sqlalchemy" in names


@pytest.mark.asyncio
async def test_run_command_streams_and_collects(tmp_path: Path, app_config: AppConfig) -> None:
    env = _environment(tmp_path, app_config)
    seen: list[str] = []

    async def collect(line: str) -> None:
        seen.append(line)

    script = "import sys; print('hello'); print('warn', file=sys.stderr); sys.exit(2)"
    result = await env.run_command(sys.executable, ["-c", script], ProcessCallbacks(collect, collect))

    assert result.exit_code == 2
    assert sorted(seen) == ["hello", "warn"]
    assert "hello" in result.output


@pytest.mark.asyncio
async def test_spawn_failure_is_missing_runtime(tmp_path: Path, app_config: AppConfig) -> None:
    env = _environment(tmp_path, app_config)

    with pytest.raises(MissingRuntimeError) as exc_info:
        await env.run_python_command(["-c", "print(1)"])

    assert exc_info.value.executable == env.python_interpreter


@pytest.mark.asyncio
async def test_missing_uv_is_missing_runtime(tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch) -> None:
    app_config.tools.uv = ToolSource()
    monkeypatch.setattr("comfysetup.services.environment.manager.shutil.which", lambda name: None)
    env = _environment(tmp_path, app_config)

    assert env.uv_path is None
    with pytest.raises(MissingRuntimeError):
        await env.run_uv_command(["--version"])


def _fake_uv(
    env: EnvironmentManager, monkeypatch: pytest.MonkeyPatch, stdout: str = "", exit_code: int = 0, stderr: str = ""
) -> list[list[str]]:
    calls: list[list[str]] = []

    async def run_uv_command(args: list[str], callbacks: ProcessCallbacks | None = None) -> CommandResult:
        calls.append(args)
        if callbacks and callbacks.on_stdout:
            for line in stdout.splitlines():
                await callbacks.on_stdout(line)
        if callbacks and callbacks.on_stderr:
            for line in stderr.splitlines():
                await callbacks.on_stderr(line)
        return CommandResult(exit_code=exit_code, output=stdout)

    monkeypatch.setattr(env, "run_uv_command", run_uv_command)
    return calls


@pytest.mark.asyncio
async def test_has_requirements_true_when_all_installed(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = _environment(tmp_path, app_config)
    installed = [{"name": name, "version": "1.0"} for name in parse_requirement_names(env.requirements_file)]
    calls = _fake_uv(env, monkeypatch, stdout=json.dumps(installed))

    assert await env.has_requirements()
    assert calls == [["pip", "list", "--format", "json"]]


@pytest.mark.asyncio
async def test_has_requirements_normalizes_names(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = _environment(tmp_path, app_config)
    names = parse_requirement_names(env.requirements_file) - {"pyyaml"}
    installed = [{"name": name, "version": "1.0"} for name in names] + [{"name": "PyYAML", "version": "6.0"}]
    _fake_uv(env, monkeypatch, stdout=json.dumps(installed))

    assert await env.has_requirements()


@pytest.mark.asyncio
async def test_has_requirements_false_when_missing(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = _environment(tmp_path, app_config)
    _fake_uv(env, monkeypatch, stdout=json.dumps([{"name": "numpy", "version": "2.0"}]))

    assert not await env.has_requirements()


@pytest.mark.asyncio
async def test_has_requirements_forwards_stderr(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = _environment(tmp_path, app_config)
    _fake_uv(env, monkeypatch, stdout="[]", stderr="Using Python 3.12 environment")
    stdout_seen: list[str] = []
    stderr_seen: list[str] = []

    async def on_stdout(line: str) -> None:
        stdout_seen.append(line)

    async def on_stderr(line: str) -> None:
        stderr_seen.append(line)

    assert not await env.has_requirements(ProcessCallbacks(on_stdout, on_stderr))
    assert stderr_seen == ["Using Python 3.12 environment"]
    assert stdout_seen == []


@pytest.mark.asyncio
@pytest.mark.parametrize(("stdout", "exit_code"), [("[]", 1), ("not json", 0), ('[{"version": "1"}]', 0)])
async def test_has_requirements_raises_when_listing_fails(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch, stdout: str, exit_code: int
) -> None:
    env = _environment(tmp_path, app_config)
    _fake_uv(env, monkeypatch, stdout=stdout, exit_code=exit_code)

    with pytest.raises(OperationalError):
        await env.has_requirements()


@pytest.mark.asyncio
async def test_reinstall_requirements_uses_device_index(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = _environment(tmp_path, app_config, TorchDevice.CUDA)
    calls = _fake_uv(env, monkeypatch)

    await env.reinstall_requirements()

    torch_call, manifest_call = calls
    assert torch_call[:3] == ["pip", "install", "--upgrade"]
    assert torch_call[torch_call.index("--index-url") + 1] == app_config.environment.torch_index.cuda
    assert manifest_call == ["pip", "install", "-r", str(env.requirements_file)]


@pytest.mark.asyncio
async def test_reinstall_requirements_mps_uses_default_index(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = _environment(tmp_path, app_config, TorchDevice.MPS)
    calls = _fake_uv(env, monkeypatch)

    await env.reinstall_requirements()

    assert "--index-url" not in calls[0]


@pytest.mark.asyncio
async def test_create_raises_on_nonzero_exit(
    tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    env = _environment(tmp_path, app_config)
    calls = _fake_uv(env, monkeypatch, exit_code=1)

    with pytest.raises(OperationalError):
        await env.create()

    assert calls[0][:3] == ["venv", "--python", app_config.environment.python_version]


@pytest.mark.asyncio
async def test_remove_directory(tmp_path: Path, app_config: AppConfig) -> None:
    env = _environment(tmp_path, app_config)
    (env.venv_path / "lib").mkdir(parents=True)

    assert await env.remove_directory()
    assert not env.venv_path.exists()
    # Already gone
    assert await env.remove_directory()


@pytest.mark.asyncio
async def test_clear_cache_reports_failure(tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch) -> None:
    env = _environment(tmp_path, app_config)
    calls = _fake_uv(env, monkeypatch, exit_code=2)

    assert not await env.clear_cache()
    assert calls == [["cache", "clean"]]


@pytest.mark.asyncio
async def test_reset_runs_steps_in_order(tmp_path: Path, app_config: AppConfig, monkeypatch: pytest.MonkeyPatch) -> None:
    env = _environment(tmp_path, app_config)
    env.venv_path.mkdir()
    order: list[str] = []

    def record(name: str):  # noqa: ANN202
        async def step(callbacks: ProcessCallbacks | None = None) -> None:
            assert not env.venv_path.exists()
            order.append(name)

        return step

    monkeypatch.setattr(env, "create", record("create"))
    monkeypatch.setattr(env, "upgrade_pip", record("upgrade_pip"))
    monkeypatch.setattr(env, "reinstall_requirements", record("reinstall_requirements"))

    await env.reset()

    assert order == ["create", "upgrade_pip", "reinstall_requirements"]
