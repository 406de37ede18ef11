"""
BaseService -- abstract base for kernel stores.

Responsibility:
    Provides the common constructor and session-handling contract for
    the kernel's persistence services.  Concrete stores receive a
    SQLAlchemy ``Session`` that they use via ``session.flush()`` --
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: stores flush within the caller's transaction
    and never commit or roll back themselves.  The caller
    (FuelTransactionService, an HTTP handler, or the test harness) owns
    commit/rollback, which is what lets a fuel record, a ledger debit and
    a ticket completion share one atomic unit.

Failure modes:
    - If a subclass calls ``session.commit()``, the all-or-nothing
      guarantee of FuelTransactionService is broken.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fleet_kernel.db.base import Base
from fleet_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel stores.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide listing queries -- those belong in
          ``fleet_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source for written timestamps. Defaults to SystemClock.
        """
        self.session = session
        self.clock = clock or SystemClock()
