"""Supascale engine -- registry, port allocation, materialization, lifecycle."""

from supascale.engine.lifecycle import AddResult, ProjectManager, RemoveResult, StartResult
from supascale.engine.models import PortBlock, ProjectRecord, Registry
from supascale.engine.ports import allocate
from supascale.engine.registry import ProjectRegistry

__all__ = [
    "AddResult",
    "ProjectManager",
    "RemoveResult",
    "StartResult",
    "PortBlock",
    "ProjectRecord",
    "Registry",
    "allocate",
    "ProjectRegistry",
]
