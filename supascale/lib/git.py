"""Git operations -- only the shallow clone of the platform repository."""

from __future__ import annotations

import logging
from pathlib import Path

from supascale.lib.shell import run_command

logger = logging.getLogger("supascale.lib.git")


def clone(
    repo_url: str,
    dest: Path,
    *,
    depth: int | None = 1,
    timeout: float | None = None,
) -> None:
    """Clone *repo_url* into *dest*, streaming git's progress output.

    Raises:
        DependencyError: If git is not installed.
        CommandError: If the clone fails.
    """
    cmd = ["git", "clone"]
    if depth:
        cmd += ["--depth", str(depth)]
    cmd += [repo_url, str(dest)]
    run_command(cmd, capture=False, timeout=timeout)
    logger.info("Cloned %s into %s", repo_url, dest)
