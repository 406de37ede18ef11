"""
Module: fleet_kernel.models.fleet
Responsibility: Minimal vehicle and driver reference rows.  The fleet CRUD
    screens own the full records; the kernel keeps only what it needs for
    referential validation and for the work-ticket snapshot.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import Base
from fleet_kernel.domain.dtos import DriverRef, VehicleRef


class Vehicle(Base):
    """A fleet vehicle."""

    __tablename__ = "vehicles"

    __table_args__ = (
        UniqueConstraint("registration", name="uq_vehicle_registration"),
    )

    registration: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Vehicle {self.registration}>"

    def to_ref(self) -> VehicleRef:
        return VehicleRef(id=self.id, registration=self.registration, is_active=self.is_active)


class Driver(Base):
    """A licensed driver."""

    __tablename__ = "drivers"

    __table_args__ = (
        UniqueConstraint("license_number", name="uq_driver_license"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    license_number: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Driver {self.name} ({self.license_number})>"

    def to_ref(self) -> DriverRef:
        return DriverRef(
            id=self.id,
            name=self.name,
            license_number=self.license_number,
            is_active=self.is_active,
        )
