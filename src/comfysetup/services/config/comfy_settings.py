"""Frontend settings file (user/default/comfy.settings.json).

The server owns this file once it starts. Until then the installer may seed it;
after ``lock_writes()`` every mutation raises.
"""

import copy
import json
from pathlib import Path
from typing import Any

from comfysetup.exceptions import OperationalError
from comfysetup.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS: dict[str, Any] = {
    "Comfy-Desktop.AutoUpdate": True,
    "Comfy-Desktop.SendStatistics": True,
    "Comfy.ColorPalette": "dark",
    "Comfy.UseNewMenu": "Top",
    "Comfy.Workflow.WorkflowTabsPosition": "Topbar",
    "Comfy.Workflow.ShowMissingModelsWarning": True,
    "Comfy.Server.LaunchArgs": {},
    "Comfy-Desktop.UV.PythonInstallMirror": "",
    "Comfy-Desktop.UV.PypiInstallMirror": "",
    "Comfy-Desktop.UV.TorchInstallMirror": "",
}


class ComfySettings:
    """In-memory copy of the frontend settings, persisted on ``save()``."""

    def __init__(self, base_path: Path) -> None:
        self.file_path = base_path / "user" / "default" / "comfy.settings.json"
        self._settings: dict[str, Any] = copy.deepcopy(DEFAULT_SETTINGS)
        self._loaded = False
        self._write_locked = False

    @property
    def write_locked(self) -> bool:
        return self._write_locked

    def lock_writes(self) -> None:
        self._write_locked = True

    def load(self) -> None:
        """Merge the file over the defaults. A missing file is created from defaults."""
        if self._loaded:
            return
        self._loaded = True

        if not self.file_path.exists():
            logger.info(f"Settings file {self.file_path} does not exist, using defaults")
            if not self._write_locked:
                self.save()
            return

        try:
            with open(self.file_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Settings file cannot be loaded: {e}")
            return

        if isinstance(data, dict):
            self._settings.update(data)

    def get(self, key: str) -> Any:  # noqa: ANN401
        self.load()
        value = self._settings.get(key)
        if value is None:
            return copy.deepcopy(DEFAULT_SETTINGS.get(key))
        return value

    def set(self, key: str, value: Any) -> None:  # noqa: ANN401
        """Set a value in memory only."""
        self._check_unlocked()
        self.load()
        self._settings[key] = value

    def save(self) -> None:
        """Overwrite the settings file with the in-memory copy."""
        self._check_unlocked()
        self.load()

        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.file_path, "w", encoding="utf-8") as f:
            json.dump(self._settings, f, indent=2)

    def _check_unlocked(self) -> None:
        if self._write_locked:
            logger.error("Attempted to modify locked settings")
            raise OperationalError("settings.locked")
