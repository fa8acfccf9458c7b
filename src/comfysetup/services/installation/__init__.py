"""Installation lifecycle: validation, fresh install, upgrade and repair."""

from comfysetup.services.installation.channel import InstallChannel, create_process_callbacks
from comfysetup.services.installation.installation import Installation
from comfysetup.services.installation.orchestrator import InstallationOrchestrator, get_repair_tasks
from comfysetup.services.installation.path_validation import PathValidationResult, validate_install_path
from comfysetup.services.installation.stages import InstallStage, InstallStageInfo, get_install_stage_name
from comfysetup.services.installation.validator import ValidationEngine
from comfysetup.services.installation.wizard import InstallWizard

__all__ = [
    "InstallChannel",
    "Installation",
    "InstallationOrchestrator",
    "InstallStage",
    "InstallStageInfo",
    "InstallWizard",
    "PathValidationResult",
    "ValidationEngine",
    "create_process_callbacks",
    "get_install_stage_name",
    "get_repair_tasks",
    "validate_install_path",
]
