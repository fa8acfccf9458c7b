"""Centralized exception hierarchy for comfysetup.

Each error carries a dot-path key that the UI can map to its own copy, and an
English message used for logging.
"""

from pathlib import Path

_MESSAGES: dict[str, str] = {
    "installation.base_path.inaccessible": "Base path is missing or cannot be read: {path}",
    "installation.base_path.not_set": "Base path has not been configured",
    "installation.hardware.unsupported": "Hardware is not supported: {reason}",
    "installation.config.corrupt": "Unable to read configuration file: {path}",
    "installation.config.write_failed": "Unable to write configuration file: {path}",
    "installation.options.invalid": "Invalid install options: {reason}",
    "installation.migration.invalid_source": "Migration source is not a ComfyUI directory: {path}",
    "environment.runtime.missing": "Executable could not be started: {executable}",
    "environment.packages.incomplete": "Missing imports: {modules}",
    "environment.packages.list_failed": "Unable to list installed packages: {reason}",
    "environment.command.failed": "Command exited with code {exit_code}: {command}",
    "channel.handler.unknown": "No handler registered for request: {name}",
    "settings.locked": "Settings are locked and cannot be modified",
}


class AppBaseError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(
        self,
        error_key: str,
        status_code: int = 500,
        retriable: bool = False,
        **params: object,
    ) -> None:
        """
        Initialize the error.

        Args:
            error_key: Dot-path identifying the error (e.g., 'installation.config.corrupt')
            status_code: Recommended HTTP status code
            retriable: Whether the operation can be retried
            **params: Parameters for string formatting of the message
        """
        super().__init__(error_key)
        self.error_key = error_key
        self.status_code = status_code
        self.retriable = retriable
        self.params = params

    def __str__(self) -> str:
        """Returns the English version of the error message for logging."""
        template = _MESSAGES.get(self.error_key)
        if template is not None:
            try:
                return template.format(**self.params)
            except (KeyError, IndexError):
                pass
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"[{self.error_key}] {params_str} (retriable: {self.retriable})"


class ValidationError(AppBaseError):
    """Raised when input validation fails."""

    def __init__(self, error_key: str, **params: object) -> None:
        super().__init__(error_key, status_code=400, **params)


class OperationalError(AppBaseError):
    """Raised when an operational failure occurs (subprocess, filesystem, etc.)."""

    def __init__(self, error_key: str, retriable: bool = False, **params: object) -> None:
        super().__init__(error_key, status_code=500, retriable=retriable, **params)


class InaccessiblePathError(OperationalError):
    """Base path is missing or unreadable."""

    def __init__(self, path: Path | str | None) -> None:
        key = "installation.base_path.inaccessible" if path else "installation.base_path.not_set"
        super().__init__(key, retriable=True, path=path)


class MissingRuntimeError(OperationalError):
    """An interpreter, package manager or tool executable cannot be run."""

    def __init__(self, executable: Path | str, reason: str | None = None) -> None:
        super().__init__("environment.runtime.missing", retriable=True, executable=executable, reason=reason)
        self.executable = executable


class IncompleteEnvironmentError(OperationalError):
    """Import verification reported missing modules."""

    def __init__(self, missing_imports: list[str]) -> None:
        super().__init__(
            "environment.packages.incomplete", retriable=True, modules=", ".join(missing_imports)
        )
        self.missing_imports = missing_imports


class ConfigCorruptError(OperationalError):
    """A persisted document exists but cannot be parsed. Not repairable by the app."""

    def __init__(self, file_path: Path | str, reason: str | None = None) -> None:
        super().__init__("installation.config.corrupt", path=file_path, reason=reason)
        self.file_path = Path(file_path)


class HardwareUnsupportedError(OperationalError):
    """The hardware compatibility probe failed."""

    def __init__(self, reason: str) -> None:
        super().__init__("installation.hardware.unsupported", reason=reason)
        self.reason = reason
