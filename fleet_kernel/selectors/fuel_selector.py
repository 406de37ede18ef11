"""
Module: fleet_kernel.selectors.fuel_selector
Responsibility: Read-only fuel-record history by account, ticket and
    vehicle, and the latest odometer reading per vehicle.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from fleet_kernel.domain.dtos import FuelRecordRecord
from fleet_kernel.models.fuel_record import FuelRecord
from fleet_kernel.selectors.base import BaseSelector


class FuelSelector(BaseSelector[FuelRecord]):
    """Fuel history queries. Listings are oldest first."""

    def _records(self, *criteria) -> list[FuelRecordRecord]:
        rows = self.session.execute(
            select(FuelRecord)
            .where(*criteria)
            .order_by(FuelRecord.created_at, FuelRecord.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get(self, record_id: UUID) -> FuelRecordRecord | None:
        record = self.session.get(FuelRecord, record_id)
        return record.to_dto() if record is not None else None

    def for_account(self, account_id: UUID) -> list[FuelRecordRecord]:
        return self._records(FuelRecord.bulk_account_id == account_id)

    def for_ticket(self, ticket_id: UUID) -> list[FuelRecordRecord]:
        return self._records(FuelRecord.work_ticket_id == ticket_id)

    def for_vehicle(self, vehicle_id: UUID) -> list[FuelRecordRecord]:
        return self._records(FuelRecord.vehicle_id == vehicle_id)

    def latest_odometer(self, vehicle_id: UUID) -> int | None:
        """
        Highest odometer reading recorded for the vehicle, or None.

        The maximum rather than the most recent row: a regression is
        measured against the furthest distance the vehicle is known to
        have covered.
        """
        return self.session.execute(
            select(func.max(FuelRecord.odometer_reading))
            .where(FuelRecord.vehicle_id == vehicle_id)
        ).scalar_one_or_none()
