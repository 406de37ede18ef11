"""Kernel services: the imperative shell around the pure domain layer."""

from fleet_kernel.services.approval_workflow import ApprovalWorkflow
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.fuel_transaction_service import FuelTransactionService
from fleet_kernel.services.ledger_service import LedgerService
from fleet_kernel.services.reference_lookup import ReferenceLookup, SqlReferenceLookup
from fleet_kernel.services.work_ticket_store import WorkTicketStore

__all__ = [
    "BaseService",
    "ApprovalWorkflow",
    "FuelTransactionService",
    "LedgerService",
    "ReferenceLookup",
    "SqlReferenceLookup",
    "WorkTicketStore",
]
