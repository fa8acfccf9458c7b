"""Persisted documents: installation record, model paths and frontend settings."""

from comfysetup.services.config.comfy_settings import DEFAULT_SETTINGS, ComfySettings
from comfysetup.services.config.desktop_config import DesktopConfigStore
from comfysetup.services.config.model_paths import ModelPathsConfig

__all__ = ["DEFAULT_SETTINGS", "ComfySettings", "DesktopConfigStore", "ModelPathsConfig"]
