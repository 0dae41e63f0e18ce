"""Saga -- run ordered steps and undo the completed ones when a later step fails."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

logger = logging.getLogger("supascale.engine.saga")

T = TypeVar("T")


@dataclass
class _Compensation:
    description: str
    action: Callable[[], Any]


@dataclass
class Saga:
    """A multi-step transaction with compensating actions.

    Usage::

        with Saga("add demo") as saga:
            saga.step("create directory", make_dir, compensate=remove_dir)
            saga.step("clone repository", clone)

    If the body raises, compensations of the steps that completed run in
    reverse order and the original exception propagates. A compensation that
    itself fails is logged and recorded in :attr:`rollback_errors`; the
    remaining compensations still run.
    """

    name: str
    completed: list[str] = field(default_factory=list)
    rollback_errors: list[str] = field(default_factory=list)
    _compensations: list[_Compensation] = field(default_factory=list, repr=False)

    def step(
        self,
        description: str,
        action: Callable[[], T],
        compensate: Callable[[], Any] | None = None,
    ) -> T:
        """Run *action*; register *compensate* only once it succeeded."""
        logger.debug("[%s] %s", self.name, description)
        result = action()
        self.completed.append(description)
        if compensate is not None:
            self._compensations.append(_Compensation(description, compensate))
        return result

    def rollback(self) -> None:
        """Run registered compensations newest first."""
        while self._compensations:
            comp = self._compensations.pop()
            try:
                comp.action()
                logger.info("[%s] rolled back: %s", self.name, comp.description)
            except Exception as exc:
                msg = f"{comp.description}: {exc}"
                self.rollback_errors.append(msg)
                logger.error("[%s] rollback failed for %s", self.name, msg)

    def __enter__(self) -> Saga:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            logger.warning("[%s] failed, rolling back %d step(s)", self.name, len(self._compensations))
            self.rollback()
        return False
