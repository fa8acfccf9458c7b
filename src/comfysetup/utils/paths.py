"""Path utilities for comfysetup, compatible with PyInstaller."""

import asyncio
import os
import sys
from pathlib import Path


def get_resources_dir() -> Path:
    """Get the resources directory path.

    This function returns the correct path for both:
    - Development environment: src/comfysetup/resources
    - PyInstaller packaged environment: <MEIPASS>/comfysetup/resources

    Returns:
        Path to the resources directory
    """
    if getattr(sys, "frozen", False):
        # PyInstaller packaged environment
        base_path = Path(sys._MEIPASS)  # type: ignore[attr-defined]
        return base_path / "comfysetup" / "resources"
    else:
        # This file is at src/comfysetup/utils/paths.py
        return Path(__file__).parent.parent / "resources"


def _is_readable_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.R_OK)


def _is_executable_file(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


async def path_accessible(path: Path | str | None) -> bool:
    """Whether ``path`` is an existing, readable directory."""
    if not path:
        return False
    return await asyncio.to_thread(_is_readable_dir, Path(path))


async def can_execute(path: Path | str | None) -> bool:
    """Whether ``path`` is an existing file the current user may execute."""
    if not path:
        return False
    return await asyncio.to_thread(_is_executable_file, Path(path))
