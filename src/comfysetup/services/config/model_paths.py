"""Model-path configuration file (extra_models_config.yaml).

The file maps named sections to a ``base_path`` and per-category model folders.
Its presence without an installation record marks a legacy install.
"""

from pathlib import Path
from typing import Any

import yaml

from comfysetup.logger import get_logger
from comfysetup.models.installation import ReadResult

logger = get_logger(__name__)

DESKTOP_SECTION = "comfyui_desktop"
MIGRATION_SECTION = "comfyui_migration"

MODEL_CATEGORIES = (
    "checkpoints",
    "classifiers",
    "clip",
    "clip_vision",
    "configs",
    "controlnet",
    "diffusers",
    "diffusion_models",
    "embeddings",
    "gligen",
    "hypernetworks",
    "loras",
    "photomaker",
    "style_models",
    "text_encoders",
    "unet",
    "upscale_models",
    "vae",
    "vae_approx",
)

BASE_DIRECTORIES = ("custom_nodes", "input", "output", "user", "models")

REPO_CONFIG_NAME = "extra_model_paths.yaml"


class ModelPathsConfig:
    """Reads and writes the model-path configuration file."""

    def __init__(self, config_file: Path) -> None:
        self.config_file = config_file

    def exists(self) -> bool:
        return self.config_file.exists()

    @staticmethod
    def get_base_model_paths_from_repo_path(repo_path: Path | str) -> dict[str, Any]:
        """Model folder mapping for a standard repository layout rooted at ``repo_path``."""
        models_dir = Path(repo_path) / "models" if str(repo_path) else Path("models")
        return {category: f"{(models_dir / category).as_posix()}/" for category in MODEL_CATEGORIES}

    @classmethod
    def get_base_config(cls) -> dict[str, Any]:
        """Default desktop section, without a ``base_path``."""
        return {
            "is_default": True,
            **cls.get_base_model_paths_from_repo_path(""),
            "custom_nodes": "custom_nodes/",
            "download_model_base": "models",
        }

    def read(self) -> ReadResult:
        """Parse the file into a mapping of sections."""
        if not self.config_file.exists():
            return ReadResult(status="notFound")

        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Unable to read model path config {self.config_file}: {e}")
            return ReadResult(status="error", message=str(e))

        if not isinstance(data, dict):
            return ReadResult(status="invalid", message="Config root is not a mapping")
        return ReadResult(status="success", payload=data)

    def read_base_path(self) -> ReadResult:
        """Read the desktop section's ``base_path``.

        Returns:
            ReadResult whose payload is the base path as a ``Path`` on success.
            A readable file without a usable ``base_path`` is ``invalid``.
        """
        result = self.read()
        if not result.ok:
            return result

        section = result.payload.get(DESKTOP_SECTION)
        if not isinstance(section, dict):
            return ReadResult(status="invalid", message=f"Missing section: {DESKTOP_SECTION}")

        base_path = section.get("base_path")
        if not isinstance(base_path, str) or not base_path:
            return ReadResult(status="invalid", message="base_path is missing or not a string")

        return ReadResult(status="success", payload=Path(base_path))

    def create_config_file(self, sections: dict[str, dict[str, Any]]) -> bool:
        """Write ``sections`` to the config file, replacing any previous content."""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.safe_dump(sections, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
        except OSError as e:
            logger.error(f"Failed to write model path config {self.config_file}: {e}")
            return False

        logger.info(f"Wrote model path config: {self.config_file}")
        return True

    @staticmethod
    def get_config_from_repo_path(repo_path: Path) -> dict[str, Any]:
        """Sections declared by an existing repository's own ``extra_model_paths.yaml``.

        Returns an empty mapping when the file is absent or unusable.
        """
        repo_config = repo_path / REPO_CONFIG_NAME
        if not repo_config.exists():
            return {}

        try:
            with open(repo_config, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable repository config {repo_config}: {e}")
            return {}

        if not isinstance(data, dict):
            return {}
        return {name: section for name, section in data.items() if isinstance(section, dict)}

    @staticmethod
    def create_comfy_directories(base_path: Path) -> None:
        """Create the standard folder layout under ``base_path``."""
        logger.info(f"Creating directory layout in {base_path}")
        for name in BASE_DIRECTORIES:
            (base_path / name).mkdir(parents=True, exist_ok=True)
        for category in MODEL_CATEGORIES:
            (base_path / "models" / category).mkdir(parents=True, exist_ok=True)
        (base_path / "user" / "default").mkdir(parents=True, exist_ok=True)

    @staticmethod
    def is_comfy_directory(path: Path) -> bool:
        """Whether ``path`` looks like an existing ComfyUI directory usable as a migration source."""
        return all((path / name).is_dir() for name in ("models", "custom_nodes"))
