"""``docker compose`` invocations scoped to one project namespace."""

from __future__ import annotations

import logging
from pathlib import Path

from supascale.lib.shell import run_command

logger = logging.getLogger("supascale.lib.compose")


def _compose_cmd(project_name: str, *args: str, sudo: bool = False) -> list[str]:
    cmd = ["docker", "compose", "-p", project_name, *args]
    return ["sudo", *cmd] if sudo else cmd


def up(
    project_dir: Path,
    project_name: str,
    *,
    sudo: bool = False,
    timeout: float | None = None,
) -> None:
    """Start all services of the compose file in *project_dir*, detached."""
    cmd = _compose_cmd(project_name, "up", "-d", sudo=sudo)
    run_command(cmd, cwd=project_dir, capture=False, timeout=timeout)
    logger.info("compose up for %s", project_name)


def down(
    project_dir: Path,
    project_name: str,
    *,
    remove_volumes: bool = True,
    sudo: bool = False,
    timeout: float | None = None,
) -> None:
    """Stop and remove the project's containers.

    With *remove_volumes* the named volumes go too, which wipes the
    instance's database.
    """
    args = ["down"]
    if remove_volumes:
        args.append("-v")
    args.append("--remove-orphans")
    cmd = _compose_cmd(project_name, *args, sudo=sudo)
    run_command(cmd, cwd=project_dir, capture=False, timeout=timeout)
    logger.info("compose down for %s (volumes removed: %s)", project_name, remove_volumes)
