"""
ApprovalWorkflow -- submission and status transitions of work tickets.

Responsibility:
    Validates and stores new work tickets, and drives every ticket status
    change (approve, reject, complete) through the transition table in
    ``fleet_kernel.domain.workflow``.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    Persistence goes through WorkTicketStore; vehicle and driver existence
    through a ReferenceLookup.

Invariants enforced:
    - Every transition is a compare-and-set on status.  Of two concurrent
      approve/reject calls on one pending ticket exactly one succeeds; the
      other sees the changed status and gets InvalidTransitionError.
    - Approval fields are written only by approve(), rejection fields only
      by reject(), completed_at only by complete().
    - Driver and vehicle display values are snapshotted at submission.

Failure modes:
    - ValidationError: missing/invalid draft fields, blank approver/reason.
    - DriverNotFoundError / VehicleNotFoundError on submit.
    - WorkTicketNotFoundError: unknown ticket id.
    - InvalidTransitionError: ticket not in the action's source status.
    - ConflictError: status unchanged but the write kept missing.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fleet_kernel.db.types import ZERO
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import WorkTicketDraft, WorkTicketRecord
from fleet_kernel.domain.workflow import (
    TicketAction,
    TicketStatus,
    next_status,
    required_status,
)
from fleet_kernel.exceptions import FieldError, InvalidTransitionError, ValidationError
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.work_ticket import WorkTicket
from fleet_kernel.services.optimistic import LOST_RACE, retry_on_conflict
from fleet_kernel.services.reference_lookup import (
    ReferenceLookup,
    SqlReferenceLookup,
    resolve_references,
)
from fleet_kernel.services.work_ticket_store import WorkTicketStore

logger = get_logger("services.approval_workflow")


def validate_draft(draft: WorkTicketDraft) -> list[FieldError]:
    """Every problem with a draft, in field order. Empty when valid."""
    errors: list[FieldError] = []

    if draft.driver_id is None:
        errors.append(FieldError("driver_id", "is required"))
    if draft.vehicle_id is None:
        errors.append(FieldError("vehicle_id", "is required"))
    if not draft.destination or not draft.destination.strip():
        errors.append(FieldError("destination", "is required"))
    if not draft.purpose or not draft.purpose.strip():
        errors.append(FieldError("purpose", "is required"))

    if draft.fuel_required is None:
        errors.append(FieldError("fuel_required", "is required"))
    elif not isinstance(draft.fuel_required, Decimal) or not draft.fuel_required.is_finite():
        errors.append(FieldError("fuel_required", "must be a finite Decimal"))
    elif draft.fuel_required <= ZERO:
        errors.append(FieldError("fuel_required", "must be greater than 0"))

    distance = draft.estimated_distance
    if not isinstance(distance, Decimal) or not distance.is_finite():
        errors.append(FieldError("estimated_distance", "must be a finite Decimal"))
    elif distance < ZERO:
        errors.append(FieldError("estimated_distance", "must not be negative"))

    for name in ("departure_date", "return_date"):
        value = getattr(draft, name)
        if value is not None and not isinstance(value, date):
            errors.append(FieldError(name, "must be a date"))

    if (
        isinstance(draft.departure_date, date)
        and isinstance(draft.return_date, date)
        and draft.return_date < draft.departure_date
    ):
        errors.append(FieldError("return_date", "must not be before departure_date"))

    return errors


class ApprovalWorkflow:
    """
    Work-ticket state machine over WorkTicketStore.

    Contract:
        submit -> pending; approve/reject from pending only; complete from
        approved only.  Each call returns a fresh WorkTicketRecord.

    Non-goals:
        Does NOT commit.  Does NOT decide who may approve; the caller
        authenticates and passes the approver's identity.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lookup: ReferenceLookup | None = None,
        store: WorkTicketStore | None = None,
        max_retries: int = 3,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._lookup = lookup or SqlReferenceLookup(session)
        self._store = store or WorkTicketStore(session, self._clock)
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._max_retries = max_retries

    # =========================================================================
    # Submission and reads
    # =========================================================================

    def submit(self, draft: WorkTicketDraft, submitted_by: str) -> WorkTicketRecord:
        """
        Validate and store a new ticket in ``pending``.

        Raises:
            ValidationError: listing every missing or invalid field.
            DriverNotFoundError / VehicleNotFoundError: unknown reference.
        """
        errors = validate_draft(draft)
        if not submitted_by or not submitted_by.strip():
            errors.append(FieldError("submitted_by", "is required"))
        if errors:
            raise ValidationError(errors)

        vehicle, driver = resolve_references(
            self._lookup, draft.vehicle_id, draft.driver_id,
        )

        now = self._clock.now()
        ticket = WorkTicket(
            id=uuid4(),
            driver_id=driver.id,
            driver_name=driver.name,
            driver_license=driver.license_number,
            vehicle_id=vehicle.id,
            vehicle_registration=vehicle.registration,
            destination=draft.destination.strip(),
            purpose=draft.purpose.strip(),
            fuel_required=draft.fuel_required,
            estimated_distance=draft.estimated_distance,
            departure_date=draft.departure_date,
            return_date=draft.return_date,
            notes=draft.notes or "",
            status=TicketStatus.PENDING.value,
            submitted_by=submitted_by,
            created_at=now,
            updated_at=now,
        )
        self._store.insert(ticket)

        logger.info(
            "ticket_submitted",
            extra={
                "ticket_id": str(ticket.id),
                "driver_id": str(driver.id),
                "vehicle_id": str(vehicle.id),
                "fuel_required": str(draft.fuel_required),
                "submitted_by": submitted_by,
            },
        )
        return ticket.to_dto()

    def get(self, ticket_id: UUID) -> WorkTicketRecord:
        """Raises WorkTicketNotFoundError."""
        return self._store.load(ticket_id).to_dto()

    # =========================================================================
    # Transitions
    # =========================================================================

    def approve(self, ticket_id: UUID, approver: str) -> WorkTicketRecord:
        if not approver or not approver.strip():
            raise ValidationError.single("approver", "is required")

        now = self._clock.now()
        ticket = self._transition(
            ticket_id,
            TicketAction.APPROVE,
            approved_by=approver,
            approved_at=now,
            updated_at=now,
        )
        logger.info(
            "ticket_approved",
            extra={"ticket_id": str(ticket_id), "approver": approver},
        )
        return ticket

    def reject(self, ticket_id: UUID, approver: str, reason: str) -> WorkTicketRecord:
        errors: list[FieldError] = []
        if not approver or not approver.strip():
            errors.append(FieldError("approver", "is required"))
        if not reason or not reason.strip():
            errors.append(FieldError("reason", "is required"))
        if errors:
            raise ValidationError(errors)

        now = self._clock.now()
        ticket = self._transition(
            ticket_id,
            TicketAction.REJECT,
            rejected_by=approver,
            rejected_at=now,
            rejection_reason=reason.strip(),
            updated_at=now,
        )
        logger.info(
            "ticket_rejected",
            extra={"ticket_id": str(ticket_id), "approver": approver},
        )
        return ticket

    def complete(self, ticket_id: UUID) -> WorkTicketRecord:
        """
        Mark an approved ticket completed.

        Called by FuelTransactionService when fuel is dispensed against the
        ticket, inside the same transaction as the fuel record.
        """
        now = self._clock.now()
        ticket = self._transition(
            ticket_id,
            TicketAction.COMPLETE,
            completed_at=now,
            updated_at=now,
        )
        logger.info("ticket_completed", extra={"ticket_id": str(ticket_id)})
        return ticket

    def _transition(
        self,
        ticket_id: UUID,
        action: TicketAction,
        **fields: Any,
    ) -> WorkTicketRecord:
        expected = required_status(action)
        target = next_status(expected, action)

        def attempt(n: int):
            if self._store.compare_and_set_status(ticket_id, expected, target, **fields):
                return self._store.load(ticket_id).to_dto()

            # Zero rows: find out why before deciding to retry
            current = TicketStatus(self._store.load(ticket_id).status)
            if current != expected:
                raise InvalidTransitionError(
                    entity_type="WorkTicket",
                    entity_id=str(ticket_id),
                    current_status=current.value,
                    action=action.value,
                )
            return LOST_RACE

        with LogContext.bind(ticket_id=str(ticket_id)):
            return retry_on_conflict(
                attempt,
                entity_type="WorkTicket",
                entity_id=str(ticket_id),
                max_attempts=self._max_retries,
                backoff_seconds=0.0,
                logger=logger,
                retry_event="ticket_transition_conflict_retry",
            )
