"""
Module: fleet_kernel.models.fuel_record
Responsibility: ORM persistence for fuel transactions.  A fuel record is
    append-only: corrections are new records, never edits.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - total_cost == quantity * cost_per_liter (computed by the service, and
      checked again by a before_insert listener).
    - quantity > 0, cost_per_liter >= 0 (validated by FuelTransactionService
      before the row is built).
    - Immutable once flushed: before_update / before_delete listeners raise
      ImmutabilityViolationError.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE or on an insert whose
      total_cost disagrees with its inputs.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import Base, UUIDString
from fleet_kernel.domain.dtos import FuelRecordRecord
from fleet_kernel.domain.ledger import FuelType, compute_total_cost
from fleet_kernel.exceptions import ImmutabilityViolationError


class FuelRecord(Base):
    """One fuel dispensing event."""

    __tablename__ = "fuel_records"

    __table_args__ = (
        Index("idx_fuel_records_vehicle", "vehicle_id", "created_at"),
        Index("idx_fuel_records_account", "bulk_account_id"),
        Index("idx_fuel_records_ticket", "work_ticket_id"),
    )

    vehicle_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    driver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    fuel_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    cost_per_liter: Mapped[Decimal] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)

    # Advisory only; regressions are logged, not rejected
    odometer_reading: Mapped[int | None] = mapped_column(nullable=True)

    station: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    receipt_number: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    bulk_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("bulk_fuel_accounts.id"),
        nullable=True,
    )
    work_ticket_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("work_tickets.id"),
        nullable=True,
    )

    recorded_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<FuelRecord {self.id} {self.quantity}L total={self.total_cost}>"

    def to_dto(self) -> FuelRecordRecord:
        """Convert ORM model to frozen domain DTO."""
        return FuelRecordRecord(
            id=self.id,
            vehicle_id=self.vehicle_id,
            driver_id=self.driver_id,
            fuel_type=FuelType(self.fuel_type),
            quantity=self.quantity,
            cost_per_liter=self.cost_per_liter,
            total_cost=self.total_cost,
            odometer_reading=self.odometer_reading,
            station=self.station,
            receipt_number=self.receipt_number,
            transaction_date=self.transaction_date,
            bulk_account_id=self.bulk_account_id,
            work_ticket_id=self.work_ticket_id,
            recorded_by=self.recorded_by,
            created_at=self.created_at,
        )


# =============================================================================
# ORM-Level Integrity (Append-Only)
# =============================================================================


@event.listens_for(FuelRecord, "before_insert")
def verify_total_cost(mapper, connection, target):
    """Refuse to store a total that does not match its inputs."""
    expected = compute_total_cost(target.quantity, target.cost_per_liter)
    if target.total_cost != expected:
        raise ImmutabilityViolationError(
            entity_type="FuelRecord",
            entity_id=str(target.id),
            reason=f"total_cost {target.total_cost} != quantity x cost_per_liter {expected}",
        )


@event.listens_for(FuelRecord, "before_update")
def prevent_fuel_record_update(mapper, connection, target):
    """Prevent updates to fuel records."""
    raise ImmutabilityViolationError(
        entity_type="FuelRecord",
        entity_id=str(target.id),
        reason="Fuel records are immutable -- record a correcting transaction",
    )


@event.listens_for(FuelRecord, "before_delete")
def prevent_fuel_record_delete(mapper, connection, target):
    """Prevent deletion of fuel records."""
    raise ImmutabilityViolationError(
        entity_type="FuelRecord",
        entity_id=str(target.id),
        reason="Fuel records are immutable -- cannot delete",
    )
