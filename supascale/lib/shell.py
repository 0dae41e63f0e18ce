"""Thin wrapper around ``subprocess.run`` for the external tools Supascale drives.

Every helper raises :class:`~supascale.errors.CommandError` instead of
``subprocess.CalledProcessError`` so callers only deal with Supascale errors.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from supascale.errors import CommandError, DependencyError

logger = logging.getLogger("supascale.lib.shell")

INSTALL_HINTS = {
    "git": "Install it with your package manager, e.g. 'sudo apt install git'.",
    "docker": "Install Docker Engine with the compose plugin: https://docs.docker.com/engine/install/",
}


def require_tools(*tools: str) -> None:
    """Pre-flight check that every tool in *tools* is on PATH.

    Raises:
        DependencyError: For the first missing tool.
    """
    for tool in tools:
        if shutil.which(tool) is None:
            raise DependencyError(tool, INSTALL_HINTS.get(tool, ""))


def run_command(
    cmd: list[str],
    *,
    cwd: str | Path | None = None,
    capture: bool = True,
    timeout: float | None = None,
) -> str:
    """Run *cmd* and return its stripped stdout.

    Args:
        cmd: Program and arguments.
        cwd: Working directory for the process.
        capture: When False the child inherits stdout/stderr so long-running
            commands (clone, image pulls) stream their progress to the user;
            the return value is then empty.
        timeout: Seconds before the process is killed. ``None`` waits forever.

    Raises:
        DependencyError: If the program is not found.
        CommandError: On non-zero exit or timeout.
    """
    logger.debug("Running %s (cwd=%s)", cmd, cwd)
    try:
        result = subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            check=True,
            cwd=str(cwd) if cwd else None,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise DependencyError(cmd[0], INSTALL_HINTS.get(cmd[0], "")) from None
    except subprocess.TimeoutExpired:
        raise CommandError(cmd, None, timed_out=True) from None
    except subprocess.CalledProcessError as e:
        raise CommandError(cmd, e.returncode, e.stderr or "") from None

    return (result.stdout or "").strip() if capture else ""
