"""
Bounded retry for conditional (compare-and-set) updates.

Responsibility:
    Runs one read-check-write attempt repeatedly until it either succeeds,
    raises a domain error, or loses the race ``max_attempts`` times in a
    row, at which point ConflictError is raised.

Architecture position:
    Kernel > Services -- shared by LedgerService and ApprovalWorkflow.

Invariants enforced:
    - Every attempt re-reads from the store; nothing read in a losing
      attempt is reused.
    - Retries are bounded; callers never block indefinitely.
"""

import logging
import random
import time
from typing import Callable, TypeVar

from fleet_kernel.exceptions import ConflictError

T = TypeVar("T")


class _Lost:
    """Marker returned by an attempt whose conditional update matched no row."""

    def __repr__(self) -> str:
        return "LOST_RACE"


LOST_RACE = _Lost()


def retry_on_conflict(
    attempt: Callable[[int], T | _Lost],
    *,
    entity_type: str,
    entity_id: str,
    max_attempts: int,
    backoff_seconds: float,
    logger: logging.Logger,
    retry_event: str,
) -> T:
    """
    Run ``attempt(n)`` for n = 1..max_attempts until it returns a value.

    ``attempt`` returns LOST_RACE when its conditional update affected no
    row.  Domain errors raised by ``attempt`` propagate immediately.

    Raises:
        ConflictError: after ``max_attempts`` lost races.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for n in range(1, max_attempts + 1):
        result = attempt(n)
        if result is not LOST_RACE:
            return result

        logger.info(
            retry_event,
            extra={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "attempt": n,
                "max_attempts": max_attempts,
            },
        )
        if n < max_attempts and backoff_seconds > 0:
            # Linear backoff with jitter so colliding writers spread out
            time.sleep(backoff_seconds * n * (0.5 + random.random()))

    raise ConflictError(entity_type, entity_id, max_attempts)
