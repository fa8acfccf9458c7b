"""Subprocess execution utilities with automatic logging."""

import asyncio
import subprocess
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any, NamedTuple

from comfysetup.logger import get_logger

logger = get_logger(__name__)

LineCallback = Callable[[str], Awaitable[None]]


class ProcessCallbacks(NamedTuple):
    """Receivers for live subprocess output, one line at a time."""

    on_stdout: LineCallback | None = None
    on_stderr: LineCallback | None = None


class CommandResult(NamedTuple):
    """Exit code and collected output of a finished subprocess."""

    exit_code: int
    output: str


class SubprocessExecutor:
    """Executes subprocess commands with automatic debug logging."""

    @staticmethod
    def run_sync(
        *args: str,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        check: bool = False,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[bytes]:
        """
        Execute a synchronous subprocess command with automatic debug logging.

        Raises:
            subprocess.CalledProcessError: If check=True and returncode != 0
            subprocess.TimeoutExpired: If timeout is exceeded
        """
        cmd_str = " ".join(args)
        logger.debug(f"Executing sync subprocess: {cmd_str}")

        try:
            result = subprocess.run(
                args, check=check, capture_output=True, cwd=str(cwd) if cwd else None, env=env, timeout=timeout
            )

            if result.stdout:
                logger.debug(f"Subprocess stdout: {result.stdout.decode('utf-8', errors='replace')}")
            if result.stderr:
                logger.debug(f"Subprocess stderr: {result.stderr.decode('utf-8', errors='replace')}")

            return result

        except subprocess.TimeoutExpired:
            logger.error(f"Subprocess timeout after {timeout}s: {cmd_str}")
            raise
        except Exception as e:
            logger.error(f"Subprocess execution failed: {cmd_str} - {e}")
            raise

    @staticmethod
    async def stream(
        *args: str,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        callbacks: ProcessCallbacks | None = None,
    ) -> CommandResult:
        """
        Execute a subprocess, forwarding each stdout/stderr line to ``callbacks`` as it arrives.

        A non-zero exit code is returned, not raised; interpretation is left to the caller.

        Args:
            *args: Command arguments
            cwd: Working directory
            env: Environment variables
            callbacks: Live output receivers

        Returns:
            CommandResult with the exit code and all output lines joined in arrival order

        Raises:
            OSError: If the executable cannot be spawned (missing, not executable)
        """
        cmd_str = " ".join(args)
        logger.debug(f"Executing subprocess with streaming: {cmd_str}")

        output_lines: list[str] = []
        exit_code = 0
        try:
            async for line, source in SubprocessExecutor.iter_lines(*args, cwd=cwd, env=env):
                output_lines.append(line)
                logger.debug(f"Subprocess {source}: {line}")
                if callbacks is None:
                    continue
                callback = callbacks.on_stderr if source == "stderr" else callbacks.on_stdout
                if callback:
                    await callback(line)
        except subprocess.CalledProcessError as e:
            exit_code = e.returncode
            logger.warning(f"Subprocess exited with code {exit_code}: {cmd_str}")

        return CommandResult(exit_code=exit_code, output="\n".join(output_lines))

    @staticmethod
    async def iter_lines(
        *args: str,
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
        encoding: str = "utf-8",
        errors: str = "replace",
    ) -> AsyncIterator[tuple[str, str]]:
        """
        Async generator that yields (line, source) tuples from a subprocess in real-time.

        Yields:
            Tuple[line, source] where source is 'stdout' or 'stderr'.

        Notes:
            - If the subprocess exits with a non-zero code, a
              `subprocess.CalledProcessError` is raised after all lines are yielded.
        """
        proc_kwargs: dict[str, Any] = {}
        if cwd:
            proc_kwargs["cwd"] = str(cwd)
        if env:
            proc_kwargs["env"] = env

        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **proc_kwargs,
        )

        # Use a sentinel to signal reader completion to avoid deadlocks
        sentinel = object()
        queue: asyncio.Queue[tuple[str, str] | object] = asyncio.Queue()

        async def _reader(stream: asyncio.StreamReader, source: str) -> None:
            try:
                async for raw in stream:
                    line = raw.decode(encoding, errors=errors).rstrip("\n\r")
                    await queue.put((line, source))
            except Exception as e:
                logger.error(f"Error reading from subprocess {source}: {e}")
            finally:
                await queue.put(sentinel)

        readers: list[asyncio.Task[Any]] = []
        if process.stdout:
            readers.append(asyncio.create_task(_reader(process.stdout, "stdout")))
        if process.stderr:
            readers.append(asyncio.create_task(_reader(process.stderr, "stderr")))

        active_readers = len(readers)

        try:
            while active_readers > 0:
                item = await queue.get()
                if item is sentinel:
                    active_readers -= 1
                else:
                    yield item  # type: ignore

            if readers:
                await asyncio.gather(*readers, return_exceptions=True)

            await process.wait()

            if process.returncode is not None and process.returncode != 0:
                raise subprocess.CalledProcessError(process.returncode, args)

        finally:
            for t in readers:
                if not t.done():
                    t.cancel()
