"""Installation state and validation data models."""

from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class InstallState(str, Enum):
    """Lifecycle state of the desktop installation."""

    NOT_INSTALLED = "not_installed"
    STARTED = "started"
    UPGRADED = "upgraded"
    INSTALLED = "installed"


class TorchDevice(str, Enum):
    """Compute device the environment is built for."""

    CPU = "cpu"
    CUDA = "cuda"
    ROCM = "rocm"
    MPS = "mps"


class ValidationStatus(str, Enum):
    """Outcome of a single validation check."""

    OK = "OK"
    ERROR = "error"
    SKIPPED = "skipped"


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InstallationRecord(CamelModel):
    """Persisted description of the installation."""

    state: InstallState = Field(default=InstallState.NOT_INSTALLED, alias="installState")
    base_path: Path | None = None
    selected_device: TorchDevice | None = None
    detected_gpu: str | None = None
    migrate_custom_nodes_from: Path | None = None


class ValidationResult(CamelModel):
    """Snapshot of a validation pass.

    Check fields are ``None`` until the corresponding step has run.
    """

    in_progress: bool = False
    install_state: InstallState = InstallState.NOT_INSTALLED

    base_path: ValidationStatus | None = None
    venv_directory: ValidationStatus | None = None
    python_interpreter: ValidationStatus | None = None
    package_manager: ValidationStatus | None = None
    python_packages: ValidationStatus | None = None
    version_control_tool: ValidationStatus | None = None
    platform_runtime: ValidationStatus | None = None

    missing_imports: list[str] = Field(default_factory=list)

    CHECK_FIELDS: ClassVar[tuple[str, ...]] = (
        "base_path",
        "venv_directory",
        "python_interpreter",
        "package_manager",
        "python_packages",
        "version_control_tool",
        "platform_runtime",
    )

    @property
    def issues(self) -> list[str]:
        """Names of the checks currently reporting an error."""
        return [name for name in self.CHECK_FIELDS if getattr(self, name) == ValidationStatus.ERROR]

    @property
    def has_issues(self) -> bool:
        return len(self.issues) > 0

    @property
    def is_valid(self) -> bool:
        return self.install_state == InstallState.INSTALLED and not self.has_issues


class ImportVerificationResult(CamelModel):
    """Result of running the import verification script."""

    success: bool
    missing_imports: list[str] = Field(default_factory=list)
    error: str | None = None


ReadStatus = Literal["success", "notFound", "invalid", "error"]


class ReadResult(BaseModel):
    """Tagged outcome of reading a document from disk."""

    status: ReadStatus
    payload: Any = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class MirrorSettings(CamelModel):
    """Package mirror preferences chosen during install."""

    python_mirror: str = ""
    pypi_mirror: str = ""
    torch_mirror: str = ""


class InstallOptions(CamelModel):
    """Options submitted by the UI to start a fresh install."""

    base_path: Path
    device: TorchDevice | None = None
    migration_source_path: Path | None = None
    migration_item_ids: list[str] = Field(default_factory=list)
    auto_update: bool = True
    allow_metrics: bool = True
    mirror_settings: MirrorSettings = Field(default_factory=MirrorSettings)

    @field_validator("base_path", "migration_source_path", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        if v is None or v == "":
            return None
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"Path must be absolute: {v}")
        return path


class RepairTask(CamelModel):
    """An outstanding issue offered to the user, with the actions that may fix it."""

    id: str
    actions: list[str]
