"""Data models for comfysetup."""

from comfysetup.models.app_config import AppConfig
from comfysetup.models.installation import (
    ImportVerificationResult,
    InstallationRecord,
    InstallOptions,
    InstallState,
    ReadResult,
    RepairTask,
    TorchDevice,
    ValidationResult,
    ValidationStatus,
)

__all__ = [
    "AppConfig",
    "ImportVerificationResult",
    "InstallOptions",
    "InstallState",
    "InstallationRecord",
    "ReadResult",
    "RepairTask",
    "TorchDevice",
    "ValidationResult",
    "ValidationStatus",
]
