"""Application configuration models for comfysetup."""

import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


def default_config_dir() -> Path:
    """Platform-specific directory holding the persisted documents."""
    if sys.platform == "win32":
        # Windows: %APPDATA%\ComfyUI
        return Path(os.getenv("APPDATA", str(Path.home()))) / "ComfyUI"
    if sys.platform == "darwin":
        # macOS: ~/Library/Application Support/ComfyUI
        return Path.home() / "Library" / "Application Support" / "ComfyUI"
    # Linux/Unix: ~/.config/ComfyUI
    return Path.home() / ".config" / "ComfyUI"


class PathsConfig(BaseModel):
    """Paths configuration."""

    config_dir: Path = Field(default_factory=default_config_dir)
    logs_dir: Path | None = None

    @field_validator("config_dir", mode="before")
    @classmethod
    def expand_config_dir(cls, v: str | Path) -> Path:
        """Expand user path for config_dir."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("logs_dir", mode="before")
    @classmethod
    def expand_optional_path(cls, v: str | Path | None) -> Path | None:
        """Expand user path for optional paths."""
        if v is None:
            return None
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    def model_post_init(self, __context: object) -> None:
        """Set default subdirectories if not specified."""
        if self.logs_dir is None:
            self.logs_dir = self.config_dir / "logs"

    @property
    def desktop_config_file(self) -> Path:
        return self.config_dir / "config.json"

    @property
    def model_paths_file(self) -> Path:
        return self.config_dir / "extra_models_config.yaml"


class ToolSource(BaseModel):
    """Tool source configuration."""

    type: Literal["bundled", "custom"] = "bundled"
    custom_path: str = ""


class ToolsConfig(BaseModel):
    """Tools configuration."""

    git: ToolSource = Field(default_factory=ToolSource)
    uv: ToolSource = Field(default_factory=ToolSource)


class TorchIndexConfig(BaseModel):
    """PyTorch wheel index per compute device."""

    cuda: str = "https://download.pytorch.org/whl/cu128"
    rocm: str = "https://download.pytorch.org/whl/rocm6.3"
    cpu: str = "https://download.pytorch.org/whl/cpu"


class EnvironmentConfig(BaseModel):
    """Managed Python environment configuration."""

    python_version: str = "3.12"
    venv_dir_name: str = ".venv"
    # Modules that must import cleanly inside the environment
    required_imports: list[str] = Field(
        default_factory=lambda: [
            "yaml",
            "torch",
            "torchvision",
            "torchaudio",
            "numpy",
            "PIL",
            "aiohttp",
            "safetensors",
            "sqlalchemy",
            "alembic",
            "uv",
        ]
    )
    torch_index: TorchIndexConfig = Field(default_factory=TorchIndexConfig)
    pypi_mirror: str = ""


class AdvancedConfig(BaseModel):
    """Advanced configuration."""

    log_level: Literal["INFO", "DEBUG", "TRACE"] = "INFO"


class AppConfig(BaseModel):
    """Application configuration."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)
