import asyncio
import logging
from pathlib import Path
from typing import Mapping, NamedTuple, Optional, Sequence

from src.domain.exceptions import ProcessException, ProcessTimeoutException

logger = logging.getLogger(__name__)


class CommandResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str


async def run_command(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    """
    Runs an external command and returns its decoded output.

    `env`, when given, is the complete environment of the child; the parent
    process environment is never modified.

    Raises:
        ProcessTimeoutException: the command outlived `timeout`; it is killed first.
        ProcessException: the command could not start or exited non-zero.
    """
    command = " ".join(args)
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessException(command, -1, str(e)) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise ProcessTimeoutException(command, timeout)
    except asyncio.CancelledError:
        proc.kill()
        await proc.wait()
        raise

    result = CommandResult(
        proc.returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )
    if result.returncode != 0:
        raise ProcessException(command, result.returncode, result.stderr)

    logger.debug(f"'{command}' finished.")
    return result
