"""Verifies that modules import cleanly inside the managed environment.

Package managers occasionally report success while leaving a broken install
behind. Importing each module in the target interpreter catches that.
"""

import json
from dataclasses import dataclass
from typing import Literal, Protocol

from pydantic import BaseModel, StrictBool, StrictStr
from pydantic import ValidationError as PydanticValidationError

from comfysetup.exceptions import MissingRuntimeError
from comfysetup.logger import get_logger
from comfysetup.models.installation import ImportVerificationResult
from comfysetup.utils.subprocess_executor import CommandResult, ProcessCallbacks

logger = get_logger(__name__)


class PythonRunner(Protocol):
    async def run_python_command(
        self, args: list[str], callbacks: ProcessCallbacks | None = None
    ) -> CommandResult: ...


class ImportCheckPayload(BaseModel):
    """JSON document printed by the verification script."""

    success: StrictBool
    failed_imports: list[StrictStr]


@dataclass
class OutputInterpretation:
    kind: Literal["ok", "parse_error", "invalid_format"]
    payload: ImportCheckPayload | None = None
    message: str = ""


def generate_import_test_script(imports: list[str]) -> str:
    """Build a ``python -c`` script that tries every import and reports failures as JSON."""
    return f"""
import json
import sys

failed_imports = []

for module_name in {json.dumps(imports)}:
    try:
        __import__(module_name)
    except ImportError:
        failed_imports.append(module_name)

print(json.dumps({{
    "failed_imports": failed_imports,
    "success": len(failed_imports) == 0
}}))

sys.exit(0 if len(failed_imports) == 0 else 1)
"""


def interpret_output(output: str) -> OutputInterpretation:
    """Classify script output without side effects.

    The whole output is tried first; if it is not JSON, the last non-empty
    line is tried, since interpreters may print warnings before the result.
    """
    candidates = [output]
    lines = [line for line in output.splitlines() if line.strip()]
    if lines and lines[-1] != output:
        candidates.append(lines[-1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        try:
            return OutputInterpretation(kind="ok", payload=ImportCheckPayload.model_validate(data))
        except PydanticValidationError as e:
            return OutputInterpretation(kind="invalid_format", message=str(e))

    return OutputInterpretation(kind="parse_error")


class ImportVerifier:
    """Runs the import check in an environment's interpreter."""

    def __init__(self, runner: PythonRunner) -> None:
        self.runner = runner

    async def verify(self, imports: list[str]) -> ImportVerificationResult:
        if not imports:
            return ImportVerificationResult(success=True)

        logger.info(f"Verifying Python imports - testing {len(imports)} modules")

        chunks: list[str] = []

        async def collect(line: str) -> None:
            chunks.append(line)

        callbacks = ProcessCallbacks(on_stdout=collect, on_stderr=collect)
        try:
            result = await self.runner.run_python_command(["-c", generate_import_test_script(imports)], callbacks)
        except MissingRuntimeError as e:
            logger.error(f"Error during Python import verification: {e}")
            return ImportVerificationResult(success=False, error=str(e))

        output = "\n".join(chunks)
        interpretation = interpret_output(output)

        if interpretation.kind == "parse_error":
            logger.error(f"Failed to parse verification output: {output}")
            return ImportVerificationResult(
                success=False,
                error=f"Python import verification failed with exit code {result.exit_code}: {output}",
            )

        if interpretation.kind == "invalid_format":
            logger.error(f"Invalid Python output format: {interpretation.message}")
            return ImportVerificationResult(
                success=False, error=f"Invalid verification output format: {interpretation.message}"
            )

        payload = interpretation.payload
        assert payload is not None
        if payload.success:
            logger.info("Python import verification successful - all modules available")
            return ImportVerificationResult(success=True)

        missing = payload.failed_imports
        logger.error(f"Python import verification failed - missing modules: {', '.join(missing)}")
        return ImportVerificationResult(
            success=False, missing_imports=missing, error=f"Missing imports: {', '.join(missing)}"
        )
