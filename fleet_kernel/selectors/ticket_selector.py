"""
Module: fleet_kernel.selectors.ticket_selector
Responsibility: Read-only work-ticket listings and status counts for the
    approval queue and dashboard.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from fleet_kernel.domain.dtos import WorkTicketRecord
from fleet_kernel.domain.workflow import TicketStatus
from fleet_kernel.models.work_ticket import WorkTicket
from fleet_kernel.selectors.base import BaseSelector


class TicketSelector(BaseSelector[WorkTicket]):
    """Queries over work tickets. Results are newest first."""

    def list_tickets(
        self,
        status: TicketStatus | str | None = None,
        driver_id: UUID | None = None,
        vehicle_id: UUID | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[WorkTicketRecord]:
        query = select(WorkTicket).order_by(
            WorkTicket.created_at.desc(), WorkTicket.id,
        )

        if status is not None:
            query = query.where(WorkTicket.status == TicketStatus(status).value)
        if driver_id is not None:
            query = query.where(WorkTicket.driver_id == driver_id)
        if vehicle_id is not None:
            query = query.where(WorkTicket.vehicle_id == vehicle_id)
        if limit is not None:
            query = query.limit(limit)
        if offset is not None:
            query = query.offset(offset)

        rows = self.session.execute(
            query.execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def pending(self) -> list[WorkTicketRecord]:
        """The approval queue."""
        return self.list_tickets(status=TicketStatus.PENDING)

    def count_by_status(self) -> dict[TicketStatus, int]:
        """Ticket count for every status, zero-filled."""
        counts = {status: 0 for status in TicketStatus}
        rows = self.session.execute(
            select(WorkTicket.status, func.count(WorkTicket.id))
            .group_by(WorkTicket.status)
        ).all()
        for status, count in rows:
            counts[TicketStatus(status)] = count
        return counts
