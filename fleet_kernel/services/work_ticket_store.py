"""
WorkTicketStore -- persistence for work tickets.

Responsibility:
    Inserts and reads work tickets, and performs the one write that moves a
    ticket between statuses: a conditional UPDATE guarded by the status the
    caller expects the row to be in.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - ``compare_and_set_status`` is a single
      ``UPDATE ... WHERE id = :id AND status = :expected``.  Two writers that
      both expect ``pending`` cannot both succeed.
    - Reads use ``populate_existing`` so a retrying caller never sees a stale
      identity-map copy.

Failure modes:
    - WorkTicketNotFoundError from ``load()``.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select, update

from fleet_kernel.domain.workflow import TicketStatus
from fleet_kernel.exceptions import WorkTicketNotFoundError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.work_ticket import WorkTicket
from fleet_kernel.services.base import BaseService

logger = get_logger("services.work_ticket_store")

# Columns a status transition may write alongside ``status``
_TRANSITION_FIELDS = frozenset({
    "approved_by",
    "approved_at",
    "rejected_by",
    "rejected_at",
    "rejection_reason",
    "completed_at",
    "updated_at",
})


class WorkTicketStore(BaseService[WorkTicket]):
    """Flush-only store for WorkTicket rows."""

    def insert(self, ticket: WorkTicket) -> WorkTicket:
        self.session.add(ticket)
        self.session.flush()
        logger.debug("work_ticket_inserted", extra={"ticket_id": str(ticket.id)})
        return ticket

    def get(self, ticket_id: UUID) -> WorkTicket | None:
        """Fresh read of one ticket, or None."""
        return self.session.execute(
            select(WorkTicket)
            .where(WorkTicket.id == ticket_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def load(self, ticket_id: UUID) -> WorkTicket:
        ticket = self.get(ticket_id)
        if ticket is None:
            raise WorkTicketNotFoundError(str(ticket_id))
        return ticket

    def compare_and_set_status(
        self,
        ticket_id: UUID,
        expected: TicketStatus,
        new_status: TicketStatus,
        **fields: Any,
    ) -> bool:
        """
        Move the ticket to ``new_status`` only if it is still ``expected``.

        Args:
            ticket_id: Ticket to update.
            expected: Status the row must currently have.
            new_status: Status to write.
            **fields: Transition columns written in the same statement
                (approved_by, rejected_at, completed_at, updated_at, ...).

        Returns:
            True if exactly one row changed; False if the row is missing or
            its status was not ``expected``.
        """
        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Not a transition field: {', '.join(sorted(unknown))}")

        result = self.session.execute(
            update(WorkTicket)
            .where(WorkTicket.id == ticket_id)
            .where(WorkTicket.status == expected.value)
            .values(status=new_status.value, **fields)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1

        logger.debug(
            "work_ticket_cas",
            extra={
                "ticket_id": str(ticket_id),
                "expected": expected.value,
                "new_status": new_status.value,
                "changed": changed,
            },
        )
        return changed
