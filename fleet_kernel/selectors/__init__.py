"""Read-only query selectors."""

from fleet_kernel.selectors.base import BaseSelector
from fleet_kernel.selectors.fuel_selector import FuelSelector
from fleet_kernel.selectors.ledger_selector import (
    AccountReconciliation,
    AccountSummary,
    LedgerSelector,
)
from fleet_kernel.selectors.ticket_selector import TicketSelector

__all__ = [
    "BaseSelector",
    "FuelSelector",
    "LedgerSelector",
    "AccountReconciliation",
    "AccountSummary",
    "TicketSelector",
]
