"""ORM models for the fleet kernel."""

from fleet_kernel.models.bulk_fuel_account import BalanceAdjustment, BulkFuelAccount
from fleet_kernel.models.fleet import Driver, Vehicle
from fleet_kernel.models.fuel_record import FuelRecord
from fleet_kernel.models.work_ticket import WorkTicket

__all__ = [
    "BalanceAdjustment",
    "BulkFuelAccount",
    "Driver",
    "FuelRecord",
    "Vehicle",
    "WorkTicket",
]
