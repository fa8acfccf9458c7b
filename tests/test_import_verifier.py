"""Tests for the import verification script and output interpretation."""

import json

import pytest

from comfysetup.exceptions import MissingRuntimeError
from comfysetup.services.environment.import_verifier import (
    ImportVerifier,
    generate_import_test_script,
    interpret_output,
)
from comfysetup.utils.subprocess_executor import CommandResult, ProcessCallbacks


class FakeRunner:
    def __init__(self, stdout: str = "", stderr: str = "", exit_code: int = 0, error: Exception | None = None) -> None:
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.error = error
        self.calls: list[list[str]] = []

    async def run_python_command(self, args: list[str], callbacks: ProcessCallbacks | None = None) -> CommandResult:
        self.calls.append(args)
        if self.error:
            raise self.error
        if callbacks:
            for line in self.stdout.splitlines():
                await callbacks.on_stdout(line)  # type: ignore[misc]
            for line in self.stderr.splitlines():
                await callbacks.on_stderr(line)  # type: ignore[misc]
        return CommandResult(exit_code=self.exit_code, output=self.stdout + self.stderr)


@pytest.mark.asyncio
async def test_empty_import_list_does_not_spawn() -> None:
    runner = FakeRunner()
    result = await ImportVerifier(runner).verify([])

    assert result.success
    assert result.missing_imports == []
    assert runner.calls == []


@pytest.mark.asyncio
async def test_script_embeds_imports() -> None:
    imports = ["yaml", "torch", "uv"]
    runner = FakeRunner(stdout=json.dumps({"failed_imports": [], "success": True}))

    result = await ImportVerifier(runner).verify(imports)

    assert result.success
    args = runner.calls[0]
    assert args[0] == "-c"
    assert f"for module_name in {json.dumps(imports)}:" in args[1]


@pytest.mark.asyncio
async def test_missing_imports_reported() -> None:
    failed = ["toml", "uv"]
    runner = FakeRunner(stdout=json.dumps({"failed_imports": failed, "success": False}), exit_code=1)

    result = await ImportVerifier(runner).verify(["toml", "uv", "yaml"])

    assert not result.success
    assert result.missing_imports == failed
    assert result.error == "Missing imports: toml, uv"


@pytest.mark.asyncio
async def test_missing_success_field_is_invalid_format() -> None:
    runner = FakeRunner(stdout=json.dumps({"failed_imports": []}))

    result = await ImportVerifier(runner).verify(["yaml"])

    assert not result.success
    assert result.error is not None
    assert result.error.startswith("Invalid verification output format:")


@pytest.mark.asyncio
async def test_wrong_field_type_is_invalid_format() -> None:
    runner = FakeRunner(stdout=json.dumps({"failed_imports": "not-an-array", "success": True}))

    result = await ImportVerifier(runner).verify(["yaml"])

    assert not result.success
    assert result.error is not None
    assert result.error.startswith("Invalid verification output format:")


@pytest.mark.asyncio
async def test_non_json_output_reports_exit_code_and_output() -> None:
    noisy = "some warning\nnot-json output"
    runner = FakeRunner(stdout=noisy, exit_code=1)

    result = await ImportVerifier(runner).verify(["yaml"])

    assert not result.success
    assert result.error == f"Python import verification failed with exit code 1: {noisy}"


@pytest.mark.asyncio
async def test_stderr_is_collected() -> None:
    runner = FakeRunner(stderr="Traceback: boom", exit_code=2)

    result = await ImportVerifier(runner).verify(["yaml"])

    assert not result.success
    assert result.error is not None
    assert "Traceback: boom" in result.error
    assert "exit code 2" in result.error


@pytest.mark.asyncio
async def test_spawn_failure_is_a_failed_result() -> None:
    runner = FakeRunner(error=MissingRuntimeError("/missing/python", reason="not found"))

    result = await ImportVerifier(runner).verify(["yaml"])

    assert not result.success
    assert result.error is not None
    assert "/missing/python" in result.error


def test_interpret_output_uses_last_line_after_warnings() -> None:
    output = "DeprecationWarning: something\n" + json.dumps({"failed_imports": ["torch"], "success": False})

    interpretation = interpret_output(output)

    assert interpretation.kind == "ok"
    assert interpretation.payload is not None
    assert interpretation.payload.failed_imports == ["torch"]


def test_interpret_output_parse_error() -> None:
    assert interpret_output("").kind == "parse_error"
    assert interpret_output("garbage").kind == "parse_error"


def test_interpret_output_rejects_non_bool_success() -> None:
    interpretation = interpret_output(json.dumps({"failed_imports": [], "success": "yes"}))
    assert interpretation.kind == "invalid_format"


def test_generated_script_exits_nonzero_on_failure() -> None:
    script = generate_import_test_script(["a"])
    assert "sys.exit(0 if len(failed_imports) == 0 else 1)" in script
    assert "except ImportError:" in script
