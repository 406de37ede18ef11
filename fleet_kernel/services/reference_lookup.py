"""
Vehicle and driver lookups used for referential validation.

The fleet CRUD screens own vehicles and drivers.  The kernel only asks
"does this vehicle/driver exist, and what do I snapshot from it?", through
the ``ReferenceLookup`` protocol.  ``SqlReferenceLookup`` answers from the
kernel's own ``vehicles``/``drivers`` tables; callers with another source of
truth pass their own implementation.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_kernel.domain.dtos import DriverRef, VehicleRef
from fleet_kernel.exceptions import (
    DriverNotFoundError,
    FieldError,
    ValidationError,
    VehicleNotFoundError,
)
from fleet_kernel.models.fleet import Driver, Vehicle


class ReferenceLookup(Protocol):
    """Existence lookup for the entities a ticket or fuel record references."""

    def get_vehicle(self, vehicle_id: UUID) -> VehicleRef | None: ...

    def get_driver(self, driver_id: UUID) -> DriverRef | None: ...


class SqlReferenceLookup:
    """ReferenceLookup backed by the kernel's vehicles and drivers tables."""

    def __init__(self, session: Session):
        self._session = session

    def get_vehicle(self, vehicle_id: UUID) -> VehicleRef | None:
        vehicle = self._session.get(Vehicle, vehicle_id)
        return vehicle.to_ref() if vehicle is not None else None

    def get_driver(self, driver_id: UUID) -> DriverRef | None:
        driver = self._session.get(Driver, driver_id)
        return driver.to_ref() if driver is not None else None


def resolve_references(
    lookup: ReferenceLookup,
    vehicle_id: UUID,
    driver_id: UUID,
) -> tuple[VehicleRef, DriverRef]:
    """
    Load both references or fail.

    Raises:
        VehicleNotFoundError / DriverNotFoundError: if either is missing.
        ValidationError: if either is marked inactive.
    """
    vehicle = lookup.get_vehicle(vehicle_id)
    if vehicle is None:
        raise VehicleNotFoundError(str(vehicle_id))
    driver = lookup.get_driver(driver_id)
    if driver is None:
        raise DriverNotFoundError(str(driver_id))

    errors = []
    if not vehicle.is_active:
        errors.append(FieldError("vehicle_id", "vehicle is not active"))
    if not driver.is_active:
        errors.append(FieldError("driver_id", "driver is not active"))
    if errors:
        raise ValidationError(errors)

    return vehicle, driver
