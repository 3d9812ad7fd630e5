"""Async subprocess helpers shared by the tmux and process probes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Exit status and decoded output of a finished command."""
    returncode: int
    stdout: str
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[[Sequence[str]], Awaitable[CommandResult]]


async def run_command(argv: Sequence[str], timeout: float = 3.0) -> CommandResult:
    """Run a command and capture its output.

    Never raises for missing binaries, non-zero exits, or timeouts; those come
    back as a non-zero return code so callers can degrade to "no data".

    Args:
        argv: Command and arguments.
        timeout: Seconds to wait before killing the process.

    Returns:
        CommandResult (returncode 127 if the binary is missing, 124 on timeout).
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug("Failed to start %s: %s", argv[0], e)
        return CommandResult(127, "", str(e))

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.debug("Timed out after %.1fs: %s", timeout, " ".join(argv))
        proc.kill()
        await proc.wait()
        return CommandResult(124, "", "timeout")

    return CommandResult(
        proc.returncode if proc.returncode is not None else 1,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )
