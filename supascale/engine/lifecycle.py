"""Project lifecycle -- add, start, stop, remove and list Supabase instances.

Per project: ``absent -> configured -> (running <-> stopped) -> absent``.
The registry only knows *configured*; running/stopped live in the container
runtime.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from supascale.config import SupascaleConfig
from supascale.engine import materialize
from supascale.engine.materialize import GeneratedSecrets, ProjectPaths
from supascale.engine.models import ProjectRecord
from supascale.engine.ports import busy_ports
from supascale.engine.registry import ProjectRegistry
from supascale.engine.saga import Saga
from supascale.errors import (
    InvalidProjectIdError,
    ProjectExistsError,
    ProjectFilesMissingError,
    ProjectNotFoundError,
    SupascaleError,
    TemplateMissingError,
)
from supascale.lib import compose, git, host
from supascale.lib.shell import require_tools

logger = logging.getLogger("supascale.engine.lifecycle")

# Compose project names allow lowercase letters, digits, dashes and underscores.
PROJECT_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


@dataclass
class AddResult:
    """Outcome of a successful ``add``."""

    record: ProjectRecord
    secrets: GeneratedSecrets
    env_file: Path
    warnings: list[str] = field(default_factory=list)


@dataclass
class StartResult:
    project_id: str
    host: str
    studio_url: str
    api_url: str
    env_recreated: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class RemoveResult:
    record: ProjectRecord
    stop_error: str | None = None


def validate_project_id(project_id: str) -> str:
    """Return the stripped id, or raise if it cannot name a directory and compose project."""
    project_id = project_id.strip()
    if not PROJECT_ID_PATTERN.match(project_id):
        raise InvalidProjectIdError(
            f"Invalid project ID '{project_id}': use lowercase letters, digits, "
            "'-' and '_', starting with a letter or digit."
        )
    return project_id


class ProjectManager:
    """Composes the registry, port allocator, materializer and external tools."""

    def __init__(
        self,
        config: SupascaleConfig,
        registry: ProjectRegistry | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or ProjectRegistry(
            config.registry_file, base_port=config.base_port
        )

    def _require(self, project_id: str) -> ProjectRecord:
        record = self.registry.get(project_id)
        if record is None:
            raise ProjectNotFoundError(project_id)
        return record

    def _docker_dir(self, record: ProjectRecord) -> Path:
        paths = ProjectPaths(Path(record.directory))
        if not paths.docker_dir.is_dir():
            raise ProjectFilesMissingError(
                f"Project directory {paths.docker_dir} is missing."
            )
        return paths.docker_dir

    # ── add ───────────────────────────────────────────────────────────

    def add(self, project_id: str) -> AddResult:
        """Create, clone, configure and register a new project.

        The registry lock is held for the whole operation. Any failure undoes
        the completed steps: the project directory is deleted and, if the
        record was already persisted, it is unregistered again (the port
        watermark stays advanced).

        Raises:
            InvalidProjectIdError, ProjectExistsError: Before any change.
            DependencyError: If git is missing.
            CommandError: If the clone fails.
            TemplateMissingError, TemplateFormatError: If the checkout lacks
                the expected templates.
        """
        project_id = validate_project_id(project_id)
        directory = self.config.project_directory(project_id)
        paths = ProjectPaths(directory)

        with self.registry.locked():
            if self.registry.exists(project_id):
                raise ProjectExistsError(f"Project ID '{project_id}' already exists.")
            if directory.exists():
                raise ProjectExistsError(f"Directory '{directory}' already exists.")
            require_tools("git")

            with Saga(f"add {project_id}") as saga:
                saga.step(
                    "create project directory",
                    lambda: directory.mkdir(parents=True),
                    compensate=lambda: shutil.rmtree(directory, ignore_errors=True),
                )
                saga.step(
                    "clone platform repository",
                    lambda: self._clone(paths),
                )
                generated, warnings = saga.step(
                    "write .env with generated secrets",
                    lambda: materialize.materialize_env(paths),
                )
                record = saga.step(
                    "allocate and persist ports",
                    lambda: self.registry.register(project_id, directory),
                    compensate=lambda: self.registry.unregister(project_id),
                )
                warnings += saga.step(
                    "rewrite compose and CLI config",
                    lambda: materialize.render_project_files(project_id, record.ports, paths),
                )

        busy = busy_ports(record.ports)
        if busy:
            warnings.append(
                f"Ports already in use on this host: {', '.join(map(str, busy))}."
            )
        logger.info("Added project %s at %s", project_id, directory)
        return AddResult(record=record, secrets=generated, env_file=paths.env_file, warnings=warnings)

    def _clone(self, paths: ProjectPaths) -> None:
        git.clone(
            self.config.repo_url,
            paths.repo_dir,
            depth=self.config.clone_depth,
            timeout=self.config.command_timeout,
        )
        if not paths.docker_dir.is_dir():
            raise TemplateMissingError(
                f"Cloned repository has no docker directory at {paths.docker_dir}"
            )

    # ── start / stop ──────────────────────────────────────────────────

    def start(self, project_id: str) -> StartResult:
        """Bring the project's containers up and return its access URLs."""
        record = self._require(project_id)
        require_tools("docker")
        docker_dir = self._docker_dir(record)
        env_recreated = materialize.ensure_env(ProjectPaths(Path(record.directory)))

        warnings: list[str] = []
        if env_recreated:
            warnings.append(
                ".env was missing and has been copied from .env.example; "
                "secrets may need manual population."
            )
        busy = busy_ports(record.ports)
        if busy:
            warnings.append(f"Ports already in use on this host: {', '.join(map(str, busy))}.")

        compose.up(
            docker_dir,
            project_id,
            sudo=self.config.use_sudo,
            timeout=self.config.command_timeout,
        )

        address = host.primary_ip()
        if address is None:
            address = host.FALLBACK_HOST
            warnings.append(
                "Could not determine the host IP address; showing URLs with 'localhost'."
            )
        return StartResult(
            project_id=project_id,
            host=address,
            studio_url=f"http://{address}:{record.ports.studio}",
            api_url=f"http://{address}:{record.ports.api}",
            env_recreated=env_recreated,
            warnings=warnings,
        )

    def stop(self, project_id: str, *, remove_volumes: bool = True) -> None:
        """Stop the project's containers.

        With *remove_volumes* (the default) named volumes are deleted too,
        which wipes the instance's database.
        """
        record = self._require(project_id)
        require_tools("docker")
        docker_dir = self._docker_dir(record)
        compose.down(
            docker_dir,
            project_id,
            remove_volumes=remove_volumes,
            sudo=self.config.use_sudo,
            timeout=self.config.command_timeout,
        )

    # ── remove / list ─────────────────────────────────────────────────

    def remove(self, project_id: str) -> RemoveResult:
        """Stop the project (best effort) and delete its registry record.

        The registry lock is held throughout. Files, images and containers
        that survive the stop are left alone.
        """
        with self.registry.locked():
            self._require(project_id)
            stop_error: str | None = None
            try:
                self.stop(project_id)
            except SupascaleError as e:
                stop_error = str(e)
                logger.warning("Stopping %s failed, removing anyway: %s", project_id, e)

            record = self.registry.unregister(project_id)
        return RemoveResult(record=record, stop_error=stop_error)

    def list_projects(self) -> list[ProjectRecord]:
        return self.registry.all()
