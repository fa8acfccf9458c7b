"""Installation lifecycle and environment validation for the ComfyUI desktop app."""

__version__ = "0.1.0"
