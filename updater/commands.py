"""Async subprocess execution for devbox and git."""

import asyncio
import time
from pathlib import Path

from .logger import ActionLogger
from .models import CommandResult

DEFAULT_TIMEOUT_SECONDS = 300.0


async def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    log: ActionLogger | None = None,
) -> CommandResult:
    """Run a command and capture its output as text.

    Args:
        cmd: Command and arguments
        cwd: Working directory for the command
        timeout: Seconds to wait before killing the process
        log: Optional logger for command tracing

    Returns:
        CommandResult with exit code, output and duration in seconds

    Raises:
        FileNotFoundError: If the executable does not exist
        asyncio.TimeoutError: If the command exceeds ``timeout``
    """
    cmd_str = " ".join(cmd)
    if log:
        log.debug(f"$ {cmd_str}")

    start = time.monotonic()
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd is not None else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        if log:
            log.error(f"Command timed out after {timeout}s: {cmd_str}")
        raise

    result = CommandResult(
        command=list(cmd),
        return_code=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        duration=time.monotonic() - start,
    )

    if log and not result.ok:
        log.debug(f"Command exited with {result.return_code}: {cmd_str}")

    return result
