"""
Command execution for the diagnostic agent.

The agent runs as an external process. ``CommandExecutor`` is the seam that
lets tests substitute a scripted executor for a real subprocess.
"""

import asyncio
import contextlib
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command execution."""

    stdout: str
    stderr: str
    returncode: int | None
    timed_out: bool = False


class CommandExecutor(Protocol):
    """Runs a command to completion under a wall-clock timeout."""

    async def run(
        self,
        args: Sequence[str],
        cwd: str,
        env: Mapping[str, str],
        timeout: float,
        kill_grace: float,
        stdin_path: str | None = None,
    ) -> CommandResult:
        """Run ``args`` and collect its output.

        When ``stdin_path`` is given the file is connected to the process's
        standard input, otherwise stdin is empty.

        On timeout the process is sent SIGTERM, then SIGKILL if it is still
        alive after ``kill_grace`` seconds. Output produced before the timeout
        is returned with ``timed_out`` set.

        Raises:
            OSError: If the process cannot be spawned.
        """
        ...


async def _drain(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            return
        chunks.append(chunk)


class SubprocessExecutor:
    """CommandExecutor backed by ``asyncio.create_subprocess_exec``."""

    async def run(
        self,
        args: Sequence[str],
        cwd: str,
        env: Mapping[str, str],
        timeout: float,
        kill_grace: float,
        stdin_path: str | None = None,
    ) -> CommandResult:
        stdin = open(stdin_path, "rb") if stdin_path else asyncio.subprocess.DEVNULL
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                env=dict(env),
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        finally:
            # The child keeps its own copy of the descriptor.
            if stdin_path:
                stdin.close()

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        readers = [
            asyncio.create_task(_drain(process.stdout, stdout_chunks)),
            asyncio.create_task(_drain(process.stderr, stderr_chunks)),
        ]

        timed_out = False
        try:
            try:
                await asyncio.wait_for(process.wait(), timeout=timeout)
            except TimeoutError:
                timed_out = True
                logger.warning(f"Process {args[0]} timed out after {timeout}s, sending SIGTERM")
                with contextlib.suppress(ProcessLookupError):
                    process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=kill_grace)
                except TimeoutError:
                    logger.warning(f"Process {args[0]} still running after {kill_grace}s, sending SIGKILL")
                    with contextlib.suppress(ProcessLookupError):
                        process.kill()
                    await process.wait()
        finally:
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()

        # A grandchild may still hold the pipes open after the process died.
        _, pending = await asyncio.wait(readers, timeout=max(kill_grace, 1.0))
        for task in pending:
            task.cancel()

        return CommandResult(
            stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            returncode=process.returncode,
            timed_out=timed_out,
        )
