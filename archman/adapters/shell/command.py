"""
Shell command helper — run an external tool and capture its output.

This is the most fundamental backend building block: pacman, the AUR
helper and systemctl backends all run their commands through here.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass

from archman.core.errors import BackendError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600   # package transactions can be slow
QUERY_TIMEOUT = 60


@dataclass
class CommandResult:
    """Captured outcome of a finished command."""

    args: list[str]
    return_code: int
    stdout: str
    stderr: str
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.return_code == 0


def tool_available(tool: str) -> bool:
    """Whether ``tool`` is on PATH."""
    return shutil.which(tool) is not None


def run_command(
    args: list[str],
    timeout: int = DEFAULT_TIMEOUT,
    check: bool = True,
) -> CommandResult:
    """Run a command without a shell and capture its output.

    Args:
        args: Program and arguments.
        timeout: Timeout in seconds.
        check: If True, a non-zero exit raises BackendError.

    Returns:
        CommandResult with stripped stdout/stderr.

    Raises:
        BackendError: If the command cannot be started, times out, or
            (with ``check``) exits non-zero.
    """
    logger.debug("Executing: %s", " ".join(args))
    start = time.monotonic()

    try:
        proc = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise BackendError(f"{args[0]} timed out after {timeout}s") from e
    except OSError as e:
        raise BackendError(f"Cannot run {args[0]}: {e}") from e

    result = CommandResult(
        args=list(args),
        return_code=proc.returncode,
        stdout=proc.stdout.strip(),
        stderr=proc.stderr.strip(),
        duration_ms=int((time.monotonic() - start) * 1000),
    )

    if check and not result.ok:
        raise BackendError(
            result.stderr or f"{' '.join(args)} exited with code {result.return_code}"
        )
    return result
