"""Helpers to run external commands and capture their output.

Command failures never raise: callers get empty output (or ``None`` for
the synchronous variant) and the condition is logged.
"""

import asyncio
import logging
import subprocess

logger = logging.getLogger(__name__)


def run_command(command: list[str], timeout: float = 30) -> str | None:
    """Run a command synchronously and return its stdout.

    Returns None if the command is missing, exits non-zero, or times out.
    """
    if not command:
        logger.error("Command list is empty")
        return None
    try:
        logger.debug("Executing command: %s", " ".join(command))
        result = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True,
            timeout=timeout,
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        logger.warning("Command %s exited with %s: %s", command[0], e.returncode, e.stderr)
        return None
    except subprocess.TimeoutExpired:
        logger.warning("Command timed out after %ss: %s", timeout, " ".join(command))
        return None
    except OSError as e:
        logger.error("Cannot execute %s: %s", command[0], e)
        return None


async def run_command_async(command: list[str], timeout: float = 60) -> str:
    """Run a command without blocking the event loop.

    Returns combined stdout and stderr. Exit status is ignored because
    success is judged from live device state, not from the command.
    Returns "" if the command cannot be started or times out.
    """
    if not command:
        logger.error("Command list is empty")
        return ""
    try:
        logger.debug("Executing command: %s", " ".join(command))
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except OSError as e:
        logger.error("Cannot execute %s: %s", command[0], e)
        return ""

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning("Command timed out after %ss: %s", timeout, " ".join(command))
        process.kill()
        await process.wait()
        return ""
    return stdout.decode("utf-8", errors="replace")
