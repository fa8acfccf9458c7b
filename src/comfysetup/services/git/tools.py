"""Git tool discovery."""

import shutil
from pathlib import Path

from comfysetup.logger import get_logger
from comfysetup.models.app_config import ToolsConfig

logger = get_logger(__name__)


class GitToolManager:
    """Locates the Git executable the app will use."""

    def __init__(self, tools_config: ToolsConfig) -> None:
        self.tools_config = tools_config

    def get_git_executable(self) -> Path | None:
        """Get Git executable path based on configuration, or None when Git is not available."""
        if self.tools_config.git.type == "custom" and self.tools_config.git.custom_path:
            return Path(self.tools_config.git.custom_path)

        system_git = shutil.which("git")
        if system_git:
            return Path(system_git)

        return None

