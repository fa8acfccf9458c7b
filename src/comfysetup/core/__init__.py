"""Core services for comfysetup."""

from comfysetup.core.app_config import AppConfigManager
from comfysetup.core.gpu import GPUDetector, GPUInfo, HardwareValidation

__all__ = [
    "AppConfigManager",
    "GPUDetector",
    "GPUInfo",
    "HardwareValidation",
]
