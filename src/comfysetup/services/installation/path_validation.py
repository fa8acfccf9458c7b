"""Checks a candidate install directory before it is accepted as the base path."""

import asyncio
import os
import shutil
import sys
from pathlib import Path

from comfysetup.logger import get_logger
from comfysetup.models.installation import CamelModel

logger = get_logger(__name__)

GIB = 1024 * 1024 * 1024
DEFAULT_REQUIRED_SPACE = 10 * GIB
MAC_REQUIRED_SPACE = 5 * GIB


class PathValidationResult(CamelModel):
    is_valid: bool = True
    free_space: int = -1
    required_space: int = DEFAULT_REQUIRED_SPACE
    is_one_drive: bool = False
    is_non_default_drive: bool = False
    parent_missing: bool = False
    exists: bool = False
    cannot_write: bool = False
    error: str | None = None


def required_space() -> int:
    return MAC_REQUIRED_SPACE if sys.platform == "darwin" else DEFAULT_REQUIRED_SPACE


def _nearest_existing(path: Path) -> Path | None:
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return None


def _check_path(input_path: Path, bypass_space_check: bool) -> PathValidationResult:
    result = PathValidationResult(required_space=required_space())

    try:
        if sys.platform == "win32":
            one_drive = os.getenv("OneDrive")
            if one_drive and str(input_path.resolve()).lower().startswith(str(Path(one_drive).resolve()).lower()):
                result.is_one_drive = True

            system_drive = os.getenv("SystemDrive", "C:")
            if not str(input_path).upper().startswith(system_drive.upper()):
                result.is_non_default_drive = True

        parent = input_path.parent
        if not parent.exists():
            result.parent_missing = True

        # A non-empty target is reported but does not invalidate the path
        if input_path.exists():
            result.exists = not input_path.is_dir() or any(input_path.iterdir())

        if not os.access(parent, os.W_OK):
            result.cannot_write = True

        probe = _nearest_existing(input_path)
        if probe is not None:
            result.free_space = shutil.disk_usage(probe).free
        else:
            logger.warning(f"No existing ancestor for {input_path}, skipping disk space check")
            result.free_space = result.required_space
    except OSError as e:
        logger.error(f"Error validating install path: {e}")
        result.error = str(e)

    not_enough_space = not bypass_space_check and result.free_space < result.required_space
    result.is_valid = not (
        result.cannot_write or result.parent_missing or not_enough_space or result.error or result.is_one_drive
    )
    return result


async def validate_install_path(input_path: Path | str, bypass_space_check: bool = False) -> PathValidationResult:
    """Validate that ``input_path`` can hold a new installation."""
    path = Path(input_path).expanduser()
    logger.debug(f"Validating install path {path} (bypass_space_check={bypass_space_check})")
    result = await asyncio.to_thread(_check_path, path, bypass_space_check)
    logger.debug(f"Install path validation: {result.model_dump()}")
    return result
