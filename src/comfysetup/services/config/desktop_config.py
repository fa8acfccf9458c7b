"""Persisted installation record (config.json).

The document is a flat JSON object using camelCase keys. It is read once at
startup and rewritten in full on every mutation.
"""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from comfysetup.exceptions import ConfigCorruptError
from comfysetup.logger import get_logger
from comfysetup.models.installation import InstallationRecord, InstallState, ReadResult

logger = get_logger(__name__)


class DesktopConfigStore:
    """Owns the on-disk installation record."""

    def __init__(self, config_file: Path) -> None:
        self.config_file = config_file
        self._record: InstallationRecord | None = None

    def read(self) -> ReadResult:
        """Read the document without raising for expected failure modes.

        Returns:
            ``success`` with an InstallationRecord payload, ``notFound`` when the file
            does not exist, ``invalid`` when it parses but fails the schema, or
            ``error`` when it cannot be read or parsed.
        """
        if not self.config_file.exists():
            return ReadResult(status="notFound")

        try:
            with open(self.config_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            return ReadResult(status="error", message=str(e))

        if not isinstance(data, dict):
            return ReadResult(status="invalid", message="Document root is not an object")

        try:
            record = InstallationRecord.model_validate(data)
        except PydanticValidationError as e:
            return ReadResult(status="invalid", message=str(e))

        return ReadResult(status="success", payload=record)

    def load(self) -> InstallationRecord:
        """Load the record, creating an empty one on first run.

        Raises:
            ConfigCorruptError: If the file exists but cannot be used
        """
        result = self.read()
        if result.status == "notFound":
            logger.info(f"No installation record at {self.config_file}")
            self._record = InstallationRecord()
        elif result.status == "success":
            self._record = result.payload
        else:
            logger.error(f"Installation record is unreadable ({result.status}): {result.message}")
            raise ConfigCorruptError(self.config_file, reason=result.message)
        return self._record

    @property
    def record(self) -> InstallationRecord:
        if self._record is None:
            return self.load()
        return self._record

    def update(self, **changes: Any) -> InstallationRecord:  # noqa: ANN401
        """Apply field changes and rewrite the document."""
        record = self.record.model_copy(update=changes)
        # model_copy skips validation; round-trip to coerce enums and paths
        self._record = InstallationRecord.model_validate(record.model_dump())
        self.save()
        return self._record

    def set_state(self, state: InstallState) -> InstallationRecord:
        logger.info(f"Install state: {self.record.state.value} -> {state.value}")
        return self.update(state=state)

    def save(self) -> None:
        """Write the current record to disk."""
        data = self.record.model_dump(mode="json", by_alias=True, exclude_none=True)
        # Absence of installState is what marks a machine as not installed
        if self.record.state == InstallState.NOT_INSTALLED:
            data.pop("installState", None)

        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.config_file.with_suffix(".json.tmp")
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_file.replace(self.config_file)
