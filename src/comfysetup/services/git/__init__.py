"""Git services."""

from .tools import GitToolManager

__all__ = ["GitToolManager"]
