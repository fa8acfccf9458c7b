"""Utilities for comfysetup."""

from comfysetup.utils.paths import can_execute, get_resources_dir, path_accessible
from comfysetup.utils.subprocess_executor import CommandResult, ProcessCallbacks, SubprocessExecutor

__all__ = [
    "CommandResult",
    "ProcessCallbacks",
    "SubprocessExecutor",
    "can_execute",
    "get_resources_dir",
    "path_accessible",
]
