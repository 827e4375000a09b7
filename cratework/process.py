"""Running external commands (cargo, git) with a time budget."""

import asyncio
import logging
import subprocess
from pathlib import Path

from .errors import CommandError, CommandTimeoutError
from .models import CommandResult

logger = logging.getLogger(__name__)


def run_command(argv: list[str], cwd: str | Path | None = None, timeout: float | None = None) -> CommandResult:
    """Run a command to completion and capture its output.

    Raises:
        CommandError: The command could not be started
        CommandTimeoutError: The command ran longer than ``timeout`` seconds
    """
    logger.debug("Running %s in %s", argv, cwd)
    try:
        completed = subprocess.run(
            argv,
            cwd=cwd,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimeoutError(argv, timeout) from e
    except OSError as e:
        raise CommandError(argv, str(e)) from e

    return CommandResult(completed.returncode, completed.stdout, completed.stderr)


async def run_command_async(
    argv: list[str],
    cwd: str | Path | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Async variant of run_command; the process is killed on timeout."""
    logger.debug("Spawning %s in %s", argv, cwd)
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(argv, str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        process.kill()
        await process.wait()
        logger.warning("Killed %s after %ss", " ".join(argv), timeout)
        raise CommandTimeoutError(argv, timeout) from e

    return CommandResult(
        process.returncode,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )
