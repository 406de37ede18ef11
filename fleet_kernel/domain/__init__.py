"""Pure domain layer: statuses, transition tables, ledger arithmetic, DTOs, clock."""

from fleet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fleet_kernel.domain.dtos import (
    BalanceAdjustmentRecord,
    BulkFuelAccountRecord,
    DriverRef,
    FuelRecordInput,
    FuelRecordRecord,
    FuelTransactionResult,
    VehicleRef,
    WorkTicketDraft,
    WorkTicketRecord,
)
from fleet_kernel.domain.ledger import ACCOUNT_TRANSITIONS, AccountStatus, FuelType
from fleet_kernel.domain.workflow import (
    TERMINAL_TICKET_STATUSES,
    TICKET_TRANSITIONS,
    CompletionPolicy,
    TicketAction,
    TicketStatus,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "TicketStatus",
    "TicketAction",
    "TICKET_TRANSITIONS",
    "TERMINAL_TICKET_STATUSES",
    "CompletionPolicy",
    "AccountStatus",
    "ACCOUNT_TRANSITIONS",
    "FuelType",
    "VehicleRef",
    "DriverRef",
    "WorkTicketDraft",
    "WorkTicketRecord",
    "BulkFuelAccountRecord",
    "BalanceAdjustmentRecord",
    "FuelRecordInput",
    "FuelRecordRecord",
    "FuelTransactionResult",
]
