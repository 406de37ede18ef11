"""
Config -> Kernel bridges.

Functions that turn a FleetConfig into configured kernel objects.  They
live in fleet_config because the kernel must never import fleet_config.

Usage:
    from fleet_config import get_active_config
    from fleet_config.bridges import build_fuel_transaction_service, init_engine

    config = get_active_config()
    init_engine(config)
    with session_scope() as session:
        service = build_fuel_transaction_service(session, config)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from fleet_config.schema import FleetConfig
from fleet_kernel.db.engine import init_engine_from_url
from fleet_kernel.domain.clock import Clock
from fleet_kernel.logging_config import configure_logging
from fleet_kernel.services.approval_workflow import ApprovalWorkflow
from fleet_kernel.services.fuel_transaction_service import FuelTransactionService
from fleet_kernel.services.ledger_service import LedgerService
from fleet_kernel.services.reference_lookup import ReferenceLookup


def init_engine(config: FleetConfig) -> Engine:
    """Configure logging and the module-level engine from ``config``."""
    configure_logging(level=config.logging.level_number)
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        sqlite_busy_timeout=db.sqlite_busy_timeout,
    )


def build_ledger_service(
    session: Session,
    config: FleetConfig,
    clock: Clock | None = None,
) -> LedgerService:
    return LedgerService(
        session,
        clock,
        max_retries=config.ledger.max_retries,
        retry_backoff_seconds=config.ledger.retry_backoff_seconds,
    )


def build_approval_workflow(
    session: Session,
    config: FleetConfig,
    clock: Clock | None = None,
    lookup: ReferenceLookup | None = None,
) -> ApprovalWorkflow:
    return ApprovalWorkflow(
        session,
        clock,
        lookup=lookup,
        max_retries=config.workflow.max_retries,
    )


def build_fuel_transaction_service(
    session: Session,
    config: FleetConfig,
    clock: Clock | None = None,
    lookup: ReferenceLookup | None = None,
    auto_commit: bool = True,
) -> FuelTransactionService:
    """FuelTransactionService whose ledger and workflow honour ``config``."""
    return FuelTransactionService(
        session,
        clock,
        lookup=lookup,
        ledger=build_ledger_service(session, config, clock),
        workflow=build_approval_workflow(session, config, clock, lookup),
        completion_policy=config.workflow.completion_policy,
        auto_commit=auto_commit,
    )
