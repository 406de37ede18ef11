"""
FuelTransactionService -- records dispensed fuel as one atomic unit.

Responsibility:
    Validates a fuel transaction, stores its FuelRecord, debits the bulk
    fuel account it draws on and completes the work ticket it was issued
    against, all inside one database transaction.

Architecture position:
    Kernel > Services -- the only service that owns a transaction boundary.
    Composes LedgerService and ApprovalWorkflow; both only flush.

Invariants enforced:
    - total_cost == quantity x cost_per_liter, computed here; a caller-supplied
      total is checked, never trusted.
    - Record, debit and completion commit together or not at all.  A failed
      debit leaves no fuel record behind.
    - Every stored record references a vehicle and driver that exist.

Failure modes:
    - ValidationError: bad amounts, precision, fuel type, total mismatch,
      or a fuel type the account does not accept.
    - VehicleNotFoundError / DriverNotFoundError / AccountNotFoundError /
      WorkTicketNotFoundError.
    - AccountInactiveError, InsufficientCreditError, ConflictError from the
      ledger.
    - InvalidTransitionError when the ticket is not approved, unless the
      completion policy is LOG_AND_PROCEED.

Audit relevance:
    Each call logs ``fuel_transaction_started`` and then either
    ``fuel_transaction_completed`` or ``fuel_transaction_failed`` with
    duration_ms, all under one correlation_id.
"""

from __future__ import annotations

import time
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fleet_kernel.db.types import ZERO
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import FuelRecordInput, FuelTransactionResult
from fleet_kernel.domain.ledger import (
    AccountStatus,
    FuelType,
    compute_total_cost,
    validate_fuel_amounts,
)
from fleet_kernel.domain.workflow import CompletionPolicy
from fleet_kernel.exceptions import (
    AccountInactiveError,
    FieldError,
    FleetKernelError,
    InvalidTransitionError,
    ValidationError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.fuel_record import FuelRecord
from fleet_kernel.selectors.fuel_selector import FuelSelector
from fleet_kernel.services.approval_workflow import ApprovalWorkflow
from fleet_kernel.services.ledger_service import LedgerService
from fleet_kernel.services.reference_lookup import (
    ReferenceLookup,
    SqlReferenceLookup,
    resolve_references,
)

logger = get_logger("services.fuel_transaction")


def _str_or_none(value: UUID | None) -> str | None:
    return str(value) if value is not None else None


def validate_fuel_input(fuel_input: FuelRecordInput, recorded_by: str) -> list[FieldError]:
    """Every problem with a fuel input, in field order. Empty when valid."""
    errors: list[FieldError] = []

    if fuel_input.vehicle_id is None:
        errors.append(FieldError("vehicle_id", "is required"))
    if fuel_input.driver_id is None:
        errors.append(FieldError("driver_id", "is required"))

    if fuel_input.fuel_type is None:
        errors.append(FieldError("fuel_type", "is required"))
    else:
        try:
            FuelType(fuel_input.fuel_type)
        except ValueError:
            errors.append(FieldError(
                "fuel_type",
                f"must be one of {', '.join(ft.value for ft in FuelType)}",
            ))

    amount_errors = validate_fuel_amounts(fuel_input.quantity, fuel_input.cost_per_liter)
    errors += amount_errors

    if fuel_input.total_cost is not None and not amount_errors:
        expected = compute_total_cost(fuel_input.quantity, fuel_input.cost_per_liter)
        if fuel_input.total_cost != expected:
            errors.append(FieldError(
                "total_cost",
                f"does not equal quantity x cost_per_liter ({expected})",
            ))

    if fuel_input.transaction_date is None:
        errors.append(FieldError("transaction_date", "is required"))

    odometer = fuel_input.odometer_reading
    if odometer is not None and (isinstance(odometer, bool) or not isinstance(odometer, int)):
        errors.append(FieldError("odometer_reading", "must be an integer"))
    elif odometer is not None and odometer < 0:
        errors.append(FieldError("odometer_reading", "must not be negative"))

    if not recorded_by or not recorded_by.strip():
        errors.append(FieldError("recorded_by", "is required"))

    return errors


class FuelTransactionService:
    """
    Atomic record / debit / complete.

    Contract:
        With ``auto_commit=True`` (default) ``record_fuel`` commits on
        success and rolls back on any exception.  With ``auto_commit=False``
        the caller owns commit/rollback and must roll back on failure.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lookup: ReferenceLookup | None = None,
        ledger: LedgerService | None = None,
        workflow: ApprovalWorkflow | None = None,
        completion_policy: CompletionPolicy = CompletionPolicy.REJECT,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._lookup = lookup or SqlReferenceLookup(session)
        self._ledger = ledger or LedgerService(session, self._clock)
        self._workflow = workflow or ApprovalWorkflow(
            session, self._clock, lookup=self._lookup,
        )
        self._fuel = FuelSelector(session)
        self._completion_policy = CompletionPolicy(completion_policy)
        self._auto_commit = auto_commit

    def record_fuel(
        self,
        fuel_input: FuelRecordInput,
        recorded_by: str,
    ) -> FuelTransactionResult:
        """
        Record a fuel transaction.

        Postconditions (on success):
            - One FuelRecord exists with total_cost = quantity x cost_per_liter.
            - The referenced account balance is lower by exactly total_cost.
            - The referenced ticket is ``completed`` (or the result reports
              ``ticket_completion_skipped`` under LOG_AND_PROCEED).
        """
        record_id = uuid4()
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=recorded_by or None,
            fuel_record_id=str(record_id),
            account_id=_str_or_none(fuel_input.bulk_account_id),
            ticket_id=_str_or_none(fuel_input.work_ticket_id),
        ):
            logger.info(
                "fuel_transaction_started",
                extra={
                    "vehicle_id": _str_or_none(fuel_input.vehicle_id),
                    "quantity": str(fuel_input.quantity),
                    "cost_per_liter": str(fuel_input.cost_per_liter),
                },
            )
            t0 = time.monotonic()

            try:
                result = self._do_record_fuel(record_id, fuel_input, recorded_by)

                if self._auto_commit:
                    self._session.commit()

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    "fuel_transaction_completed",
                    extra={
                        "total_cost": str(result.record.total_cost),
                        "balance_after": (
                            str(result.account.current_balance)
                            if result.account is not None else None
                        ),
                        "ticket_completion_skipped": result.ticket_completion_skipped,
                        "duration_ms": duration_ms,
                    },
                )
                return result

            except FleetKernelError:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    "fuel_transaction_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "fuel_transaction_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

    def _do_record_fuel(
        self,
        record_id: UUID,
        fuel_input: FuelRecordInput,
        recorded_by: str,
    ) -> FuelTransactionResult:
        # 1. Validate
        errors = validate_fuel_input(fuel_input, recorded_by)
        if errors:
            raise ValidationError(errors)

        fuel_type = FuelType(fuel_input.fuel_type)
        total_cost = compute_total_cost(fuel_input.quantity, fuel_input.cost_per_liter)

        vehicle, driver = resolve_references(
            self._lookup, fuel_input.vehicle_id, fuel_input.driver_id,
        )

        # 2. Referenced ticket must exist; account must take this fuel
        if fuel_input.work_ticket_id is not None:
            self._workflow.get(fuel_input.work_ticket_id)

        if fuel_input.bulk_account_id is not None:
            account = self._ledger.get_account(fuel_input.bulk_account_id)
            if not account.accepts(fuel_type):
                raise ValidationError.single(
                    "fuel_type",
                    f"account {account.account_name} does not accept {fuel_type.value}",
                )

        warnings: list[str] = []
        if fuel_input.odometer_reading is not None:
            previous = self._fuel.latest_odometer(vehicle.id)
            if previous is not None and fuel_input.odometer_reading < previous:
                logger.warning(
                    "odometer_regression",
                    extra={
                        "vehicle_id": str(vehicle.id),
                        "previous_reading": previous,
                        "new_reading": fuel_input.odometer_reading,
                    },
                )
                warnings.append(
                    f"odometer reading {fuel_input.odometer_reading} is below "
                    f"previous reading {previous}"
                )

        # 3. Persist the record
        record = FuelRecord(
            id=record_id,
            vehicle_id=vehicle.id,
            driver_id=driver.id,
            fuel_type=fuel_type.value,
            quantity=fuel_input.quantity,
            cost_per_liter=fuel_input.cost_per_liter,
            total_cost=total_cost,
            odometer_reading=fuel_input.odometer_reading,
            station=fuel_input.station or "",
            receipt_number=fuel_input.receipt_number or "",
            transaction_date=fuel_input.transaction_date,
            bulk_account_id=fuel_input.bulk_account_id,
            work_ticket_id=fuel_input.work_ticket_id,
            recorded_by=recorded_by,
            created_at=self._clock.now(),
        )
        self._session.add(record)
        self._session.flush()

        # 4. Debit
        account_after = None
        if fuel_input.bulk_account_id is not None:
            if total_cost > ZERO:
                account_after = self._ledger.debit(fuel_input.bulk_account_id, total_cost)
            else:
                # Free fuel moves no money but still needs a usable account
                account_after = self._ledger.get_account(fuel_input.bulk_account_id)
                if account_after.status is not AccountStatus.ACTIVE:
                    raise AccountInactiveError(
                        str(fuel_input.bulk_account_id), account_after.status.value,
                    )

        # 5. Complete the ticket
        ticket = None
        skipped = False
        if fuel_input.work_ticket_id is not None:
            try:
                ticket = self._workflow.complete(fuel_input.work_ticket_id)
            except InvalidTransitionError as exc:
                if self._completion_policy is CompletionPolicy.REJECT:
                    raise
                skipped = True
                logger.warning(
                    "ticket_completion_skipped",
                    extra={"current_status": exc.current_status},
                )
                warnings.append(
                    f"ticket not completed: status is '{exc.current_status}'"
                )
                ticket = self._workflow.get(fuel_input.work_ticket_id)

        return FuelTransactionResult(
            record=record.to_dto(),
            account=account_after,
            ticket=ticket,
            ticket_completion_skipped=skipped,
            warnings=tuple(warnings),
        )
