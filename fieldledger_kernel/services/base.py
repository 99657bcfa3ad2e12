"""
BaseService -- abstract base for kernel and module services.

Responsibility:
    Provides the common constructor contract for every service: a
    SQLAlchemy ``Session`` supplied by the caller, an injected ``Clock``,
    and helpers for the two transaction styles used in this codebase.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Kernel services (SequenceService, allocators) flush within the
      caller's transaction and never commit.
    - Module services that expose a public operation own its transaction
      boundary: the operation commits on success and rolls back on any
      exception before re-raising it.  ``_commit_or_rollback`` is that
      boundary.

Failure modes:
    - StaleDataError from the version column is translated by the caller
      into a typed concurrency error.
"""

from abc import ABC
from collections.abc import Callable
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fieldledger_kernel.db.base import Base
from fieldledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)
ResultType = TypeVar("ResultType")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and an optional ``Clock``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in selectors.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def _commit_or_rollback(self, operation: Callable[[], ResultType]) -> ResultType:
        """Run ``operation`` and commit, or roll back and re-raise."""
        try:
            result = operation()
            self.session.commit()
            return result
        except Exception:
            self.session.rollback()
            raise
