"""
Module: fleet_kernel.models.work_ticket
Responsibility: ORM persistence for work tickets -- requests for vehicle and
    fuel authorization that must be approved before fuel is dispensed.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Status values are limited by a check constraint.
    - Approval and rejection fields are mutually exclusive (check constraint).
    - Status transitions are NOT written here: WorkTicketStore's conditional
      update is the only writer of ``status``.

Failure modes:
    - IntegrityError on a status outside the enumeration or on a row that
      carries both approval and rejection fields.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase, UUIDString
from fleet_kernel.domain.dtos import WorkTicketRecord
from fleet_kernel.domain.workflow import TicketStatus


class WorkTicket(TrackedBase):
    """
    A request for vehicle + fuel authorization.

    Guarantees:
        - Driver and vehicle display fields are snapshots taken at
          submission time; later edits to the driver or vehicle do not
          change them.
        - approved_* is populated only for approved/completed tickets and
          rejected_* only for rejected tickets.
    """

    __tablename__ = "work_tickets"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'completed')",
            name="ck_work_tickets_valid_status",
        ),
        CheckConstraint(
            "approved_by IS NULL OR rejected_by IS NULL",
            name="ck_work_tickets_single_decision",
        ),
        Index("idx_work_tickets_status", "status"),
        Index("idx_work_tickets_driver", "driver_id", "created_at"),
    )

    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    driver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    driver_license: Mapped[str] = mapped_column(String(100), nullable=False)

    vehicle_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    vehicle_registration: Mapped[str] = mapped_column(String(50), nullable=False)

    destination: Mapped[str] = mapped_column(String(255), nullable=False)
    purpose: Mapped[str] = mapped_column(Text, nullable=False)

    # Requested liters
    fuel_required: Mapped[Decimal] = mapped_column(nullable=False)
    estimated_distance: Mapped[Decimal] = mapped_column(nullable=False)

    departure_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    return_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TicketStatus.PENDING.value,
    )

    submitted_by: Mapped[str] = mapped_column(String(255), nullable=False)

    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    rejected_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<WorkTicket {self.id} {self.vehicle_registration} status={self.status}>"

    def to_dto(self) -> WorkTicketRecord:
        """Convert ORM model to frozen domain DTO."""
        return WorkTicketRecord(
            id=self.id,
            driver_id=self.driver_id,
            driver_name=self.driver_name,
            driver_license=self.driver_license,
            vehicle_id=self.vehicle_id,
            vehicle_registration=self.vehicle_registration,
            destination=self.destination,
            purpose=self.purpose,
            fuel_required=self.fuel_required,
            estimated_distance=self.estimated_distance,
            departure_date=self.departure_date,
            return_date=self.return_date,
            notes=self.notes,
            status=TicketStatus(self.status),
            submitted_by=self.submitted_by,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejected_by=self.rejected_by,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            completed_at=self.completed_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
