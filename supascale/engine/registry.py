"""Project Registry -- the single JSON document listing every project."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from supascale.engine import ports
from supascale.engine.models import DEFAULT_BASE_PORT, ProjectRecord, Registry
from supascale.errors import ProjectExistsError, ProjectNotFoundError, RegistryError

logger = logging.getLogger("supascale.engine.registry")

_LOCK_SUFFIX = ".lock"


class ProjectRegistry:
    """Reads and writes the registry document.

    Every mutation is a read-modify-write inside :meth:`transaction`, which
    holds an exclusive ``fcntl`` lock on a ``.lock`` sidecar file so two
    processes never observe the same port watermark. The lock is re-entrant
    within one instance, letting a caller hold it across a longer operation.
    """

    def __init__(self, path: Path, base_port: int = DEFAULT_BASE_PORT) -> None:
        self._path = Path(path)
        self._base_port = base_port
        self._lock_depth = 0

    @property
    def path(self) -> Path:
        return self._path

    def _empty(self) -> Registry:
        return Registry(last_port_assigned=self._base_port)

    # ── persistence ───────────────────────────────────────────────────

    def load(self) -> Registry:
        """Load the registry, or an empty one if the document does not exist.

        Raises:
            RegistryError: If the document exists but cannot be parsed.
        """
        if not self._path.exists():
            return self._empty()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return Registry.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise RegistryError(f"Cannot read project registry {self._path}: {e}") from e

    def save(self, registry: Registry) -> None:
        """Save the registry atomically (temp file + rename)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self._path.parent),
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(registry.to_json())
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved registry with %d projects", len(registry.projects))

    def initialize(self) -> bool:
        """Write an empty registry if none exists. Returns True if one was created."""
        with self.locked():
            if self._path.exists():
                return False
            self.save(self._empty())
        logger.info("Initialized project registry at %s", self._path)
        return True

    # ── locking ───────────────────────────────────────────────────────

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the exclusive registry lock for the duration of the context."""
        if self._lock_depth:
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
            return

        lock_path = self._path.with_name(self._path.name + _LOCK_SUFFIX)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with lock_path.open("a+", encoding="utf-8") as lock_handle:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX)
            self._lock_depth = 1
            try:
                yield
            finally:
                self._lock_depth = 0
                fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)

    @contextmanager
    def transaction(self) -> Iterator[Registry]:
        """Load under lock, yield for modification, save on clean exit.

        If the body raises, nothing is written.
        """
        with self.locked():
            registry = self.load()
            yield registry
            self.save(registry)

    # ── queries ───────────────────────────────────────────────────────

    def exists(self, project_id: str) -> bool:
        return project_id in self.load().projects

    def get(self, project_id: str) -> ProjectRecord | None:
        """Get a project record by id."""
        return self.load().projects.get(project_id)

    def all(self) -> list[ProjectRecord]:
        """All project records in insertion order."""
        return list(self.load().projects.values())

    # ── mutations ─────────────────────────────────────────────────────

    def register(self, project_id: str, directory: Path | str) -> ProjectRecord:
        """Allocate a port block for *project_id* and persist the new record.

        The watermark is read, used and advanced inside one locked transaction.

        Raises:
            ProjectExistsError: If the id is already registered.
            PortRangeError: If the watermark has run past the port range.
        """
        with self.transaction() as registry:
            if project_id in registry.projects:
                raise ProjectExistsError(f"Project ID '{project_id}' already exists.")
            block, next_watermark = ports.allocate(registry.last_port_assigned)
            record = ProjectRecord(
                project_id=project_id, directory=str(directory), ports=block
            )
            registry.projects[project_id] = record
            registry.last_port_assigned = max(registry.last_port_assigned, next_watermark)
        logger.info("Registered project %s (api port %d)", project_id, block.api)
        return record

    def unregister(self, project_id: str) -> ProjectRecord:
        """Remove a project record. The watermark is left untouched.

        Raises:
            ProjectNotFoundError: If the id is not registered. The document
                on disk is not rewritten in that case.
        """
        with self.transaction() as registry:
            record = registry.projects.pop(project_id, None)
            if record is None:
                raise ProjectNotFoundError(project_id)
        logger.info("Unregistered project %s", project_id)
        return record
