"""Tests for settings loading, environment overrides and the application context."""

from pathlib import Path

import pytest
import yaml

from comfysetup.core.app_config import AppConfigManager
from comfysetup.core.app_context import AppContext


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "COMFYSETUP_CONFIG_DIR",
        "COMFYSETUP_LOG_LEVEL",
        "COMFYSETUP_UV_PATH",
        "COMFYSETUP_GIT_PATH",
        "COMFYSETUP_PYPI_MIRROR",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path: Path) -> None:
    config = AppConfigManager(tmp_path / "settings.yaml").load()

    assert config.advanced.log_level == "INFO"
    assert config.environment.python_version == "3.12"
    assert config.paths.logs_dir == config.paths.config_dir / "logs"
    assert config.paths.desktop_config_file.name == "config.json"


def test_file_values_are_applied(tmp_path: Path) -> None:
    settings = tmp_path / "settings.yaml"
    settings.write_text(
        yaml.safe_dump(
            {
                "paths": {"config_dir": str(tmp_path / "cfg")},
                "environment": {"python_version": "3.11", "required_imports": ["yaml"]},
            }
        )
    )

    config = AppConfigManager(settings).load()

    assert config.paths.config_dir == tmp_path / "cfg"
    assert config.paths.model_paths_file == tmp_path / "cfg" / "extra_models_config.yaml"
    assert config.environment.python_version == "3.11"
    assert config.environment.required_imports == ["yaml"]


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COMFYSETUP_CONFIG_DIR", str(tmp_path / "override"))
    monkeypatch.setenv("COMFYSETUP_LOG_LEVEL", "debug")
    monkeypatch.setenv("COMFYSETUP_UV_PATH", "/opt/uv")
    monkeypatch.setenv("COMFYSETUP_PYPI_MIRROR", "https://pypi.example/simple")

    config = AppConfigManager(tmp_path / "settings.yaml").load()

    assert config.paths.config_dir == tmp_path / "override"
    assert config.paths.logs_dir == tmp_path / "override" / "logs"
    assert config.advanced.log_level == "DEBUG"
    assert config.tools.uv.type == "custom"
    assert config.tools.uv.custom_path == "/opt/uv"
    assert config.environment.pypi_mirror == "https://pypi.example/simple"


def test_invalid_log_level_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("COMFYSETUP_LOG_LEVEL", "LOUD")
    assert AppConfigManager(tmp_path / "settings.yaml").load().advanced.log_level == "INFO"


def test_save_round_trip(tmp_path: Path) -> None:
    manager = AppConfigManager(tmp_path / "nested" / "settings.yaml")
    config = manager.load()
    config.environment.pypi_mirror = "https://mirror.example"
    manager.save(config)

    assert manager.reload().environment.pypi_mirror == "https://mirror.example"
    assert manager.get_config() is manager.get_config()


def test_context_from_settings_file(tmp_path: Path) -> None:
    settings = tmp_path / "settings.yaml"
    settings.write_text(yaml.safe_dump({"paths": {"config_dir": str(tmp_path / "cfg")}}))

    context = AppContext.create(settings)

    assert context.config.paths.config_dir == tmp_path / "cfg"
    assert (tmp_path / "cfg" / "logs").is_dir()
    assert context.desktop_config.config_file == tmp_path / "cfg" / "config.json"
    assert context.config_manager is not None


def test_dispose_locks_settings(tmp_path: Path) -> None:
    context = AppContext(AppConfigManager(tmp_path / "settings.yaml").load())
    settings = context.comfy_settings(tmp_path / "base")
    assert context.comfy_settings(tmp_path / "base") is settings

    context.dispose()

    assert context.disposed
    assert settings.write_locked
    assert context.comfy_settings(tmp_path / "other").write_locked
