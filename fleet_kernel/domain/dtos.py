"""
Data transfer objects for the fleet kernel.

Frozen dataclasses that cross the service boundary.  Inputs (drafts) are
what callers hand to services; records are immutable snapshots of stored
rows that services hand back.  ORM instances never leave the kernel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.ledger import AccountStatus, FuelType
from fleet_kernel.domain.workflow import TicketStatus


# =============================================================================
# Reference data
# =============================================================================


@dataclass(frozen=True)
class VehicleRef:
    """What the kernel needs to know about a vehicle."""

    id: UUID
    registration: str
    is_active: bool = True


@dataclass(frozen=True)
class DriverRef:
    """What the kernel needs to know about a driver."""

    id: UUID
    name: str
    license_number: str
    is_active: bool = True


# =============================================================================
# Work tickets
# =============================================================================


@dataclass(frozen=True)
class WorkTicketDraft:
    """Caller input for ApprovalWorkflow.submit()."""

    driver_id: UUID | None
    vehicle_id: UUID | None
    destination: str | None
    purpose: str | None
    fuel_required: Decimal | None
    estimated_distance: Decimal = Decimal("0")
    departure_date: date | None = None
    return_date: date | None = None
    notes: str = ""


@dataclass(frozen=True)
class WorkTicketRecord:
    """Stored work ticket."""

    id: UUID
    driver_id: UUID
    driver_name: str
    driver_license: str
    vehicle_id: UUID
    vehicle_registration: str
    destination: str
    purpose: str
    fuel_required: Decimal
    estimated_distance: Decimal
    departure_date: date | None
    return_date: date | None
    notes: str
    status: TicketStatus
    submitted_by: str
    approved_by: str | None
    approved_at: datetime | None
    rejected_by: str | None
    rejected_at: datetime | None
    rejection_reason: str | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Ledger
# =============================================================================


@dataclass(frozen=True)
class BulkFuelAccountRecord:
    """Stored bulk fuel account."""

    id: UUID
    account_name: str
    supplier_name: str
    account_number: str | None
    contact_person: str | None
    contact_phone: str | None
    contact_email: str | None
    initial_balance: Decimal
    current_balance: Decimal
    credit_limit: Decimal
    fuel_types: frozenset[FuelType]
    status: AccountStatus
    version: int
    created_at: datetime
    updated_at: datetime

    @property
    def available(self) -> Decimal:
        """Largest debit the account can still absorb."""
        return self.current_balance + self.credit_limit

    def accepts(self, fuel_type: FuelType) -> bool:
        """An account with no declared fuel types accepts every type."""
        return not self.fuel_types or fuel_type in self.fuel_types


@dataclass(frozen=True)
class BalanceAdjustmentRecord:
    """One administrative correction to an account balance."""

    id: UUID
    account_id: UUID
    delta: Decimal
    balance_after: Decimal
    reason: str
    adjusted_by: str
    created_at: datetime


# =============================================================================
# Fuel records
# =============================================================================


@dataclass(frozen=True)
class FuelRecordInput:
    """
    Caller input for FuelTransactionService.record_fuel().

    ``total_cost`` is optional.  When supplied it is checked against
    quantity x cost_per_liter and rejected on mismatch; it is never stored
    as given.
    """

    vehicle_id: UUID | None
    driver_id: UUID | None
    fuel_type: FuelType | str | None
    quantity: Decimal | None
    cost_per_liter: Decimal | None
    transaction_date: date | None
    odometer_reading: int | None = None
    station: str = ""
    receipt_number: str = ""
    bulk_account_id: UUID | None = None
    work_ticket_id: UUID | None = None
    total_cost: Decimal | None = None


@dataclass(frozen=True)
class FuelRecordRecord:
    """Stored, immutable fuel record."""

    id: UUID
    vehicle_id: UUID
    driver_id: UUID
    fuel_type: FuelType
    quantity: Decimal
    cost_per_liter: Decimal
    total_cost: Decimal
    odometer_reading: int | None
    station: str
    receipt_number: str
    transaction_date: date
    bulk_account_id: UUID | None
    work_ticket_id: UUID | None
    recorded_by: str
    created_at: datetime


@dataclass(frozen=True)
class FuelTransactionResult:
    """Outcome of one fuel transaction."""

    record: FuelRecordRecord
    account: BulkFuelAccountRecord | None = None
    ticket: WorkTicketRecord | None = None
    ticket_completion_skipped: bool = False
    warnings: tuple[str, ...] = field(default_factory=tuple)
