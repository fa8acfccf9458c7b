"""Install stage tracking published to the UI."""

import time
from enum import Enum

from pydantic import Field

from comfysetup.models.installation import CamelModel


class InstallStage(str, Enum):
    IDLE = "idle"
    APP_INITIALIZING = "app_initializing"
    CHECKING_EXISTING_INSTALL = "checking_existing_install"
    HARDWARE_VALIDATION = "hardware_validation"
    GIT_CHECK = "git_check"
    WELCOME_SCREEN = "welcome_screen"
    INSTALL_OPTIONS_SELECTION = "install_options_selection"
    CREATING_DIRECTORIES = "creating_directories"
    INITIALIZING_CONFIG = "initializing_config"
    PYTHON_ENVIRONMENT_SETUP = "python_environment_setup"
    INSTALLING_REQUIREMENTS = "installing_requirements"
    MIGRATING_CUSTOM_NODES = "migrating_custom_nodes"
    VALIDATION_IN_PROGRESS = "validation_in_progress"
    MAINTENANCE_MODE = "maintenance_mode"
    READY = "ready"
    ERROR = "error"


_STAGE_NAMES: dict[InstallStage, str] = {
    InstallStage.IDLE: "Idle",
    InstallStage.APP_INITIALIZING: "Initializing Application",
    InstallStage.CHECKING_EXISTING_INSTALL: "Checking Existing Installation",
    InstallStage.HARDWARE_VALIDATION: "Validating Hardware",
    InstallStage.GIT_CHECK: "Checking Git Installation",
    InstallStage.WELCOME_SCREEN: "Welcome Screen",
    InstallStage.INSTALL_OPTIONS_SELECTION: "Selecting Installation Options",
    InstallStage.CREATING_DIRECTORIES: "Creating Directories",
    InstallStage.INITIALIZING_CONFIG: "Initializing Configuration",
    InstallStage.PYTHON_ENVIRONMENT_SETUP: "Setting up Python Environment",
    InstallStage.INSTALLING_REQUIREMENTS: "Installing Requirements",
    InstallStage.MIGRATING_CUSTOM_NODES: "Migrating Custom Nodes",
    InstallStage.VALIDATION_IN_PROGRESS: "Validating Installation",
    InstallStage.MAINTENANCE_MODE: "Maintenance Mode",
    InstallStage.READY: "Ready",
    InstallStage.ERROR: "Error",
}


class InstallStageInfo(CamelModel):
    stage: InstallStage
    progress: int = Field(default=0, ge=0, le=100)
    message: str | None = None
    error: str | None = None
    timestamp: float = Field(default_factory=lambda: time.time() * 1000)


def get_install_stage_name(stage: InstallStage | str) -> str:
    """Human-readable name for a stage. Unknown values are returned unchanged."""
    try:
        return _STAGE_NAMES[InstallStage(stage)]
    except ValueError:
        return str(stage)
