"""
ApprovalWorkflow and WorkTicketStore tests.

Covers:
- submit: validation of every field, reference existence, snapshots
- approve / reject: preconditions, recorded decision fields, actor checks
- complete: only from approved; pending/rejected tickets are unchanged
- get: unknown ids
- WorkTicketStore.compare_and_set_status semantics
- Lost-race handling inside _transition
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fleet_kernel.domain.dtos import DriverRef, VehicleRef
from fleet_kernel.domain.workflow import TicketStatus
from fleet_kernel.exceptions import (
    ConflictError,
    DriverNotFoundError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    VehicleNotFoundError,
    WorkTicketNotFoundError,
)
from fleet_kernel.services.approval_workflow import ApprovalWorkflow
from fleet_kernel.services.work_ticket_store import WorkTicketStore


# =============================================================================
# Submission
# =============================================================================


class TestSubmit:

    def test_submit_stores_pending_ticket_with_snapshots(
        self, session, approval_workflow, make_draft, vehicle, driver, deterministic_clock,
    ):
        ticket = approval_workflow.submit(make_draft(notes="Return empty"), submitted_by="clerk")
        session.commit()

        assert ticket.status == TicketStatus.PENDING
        assert ticket.driver_name == "Jane Mwangi"
        assert ticket.driver_license == driver.license_number
        assert ticket.vehicle_registration == "KBX-101A"
        assert ticket.fuel_required == Decimal("20")
        assert ticket.submitted_by == "clerk"
        assert ticket.notes == "Return empty"
        assert ticket.created_at == deterministic_clock.now()
        assert ticket.approved_by is None and ticket.rejected_by is None

    def test_snapshot_survives_later_edits(self, session, approval_workflow, make_draft, driver):
        ticket = approval_workflow.submit(make_draft(), submitted_by="clerk")
        session.commit()

        driver.name = "Renamed Driver"
        session.commit()

        assert approval_workflow.get(ticket.id).driver_name == "Jane Mwangi"

    def test_missing_fields_are_all_reported(self, approval_workflow, make_draft):
        draft = make_draft(
            driver_id=None,
            vehicle_id=None,
            destination="  ",
            purpose=None,
            fuel_required=None,
        )
        with pytest.raises(ValidationError) as exc_info:
            approval_workflow.submit(draft, submitted_by="")
        assert exc_info.value.fields == (
            "driver_id",
            "vehicle_id",
            "destination",
            "purpose",
            "fuel_required",
            "submitted_by",
        )

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"fuel_required": Decimal("0")}, "fuel_required"),
            ({"fuel_required": Decimal("-5")}, "fuel_required"),
            ({"estimated_distance": Decimal("-1")}, "estimated_distance"),
            (
                {"departure_date": date(2024, 1, 5), "return_date": date(2024, 1, 4)},
                "return_date",
            ),
        ],
    )
    def test_invalid_values(self, approval_workflow, make_draft, overrides, field):
        with pytest.raises(ValidationError) as exc_info:
            approval_workflow.submit(make_draft(**overrides), submitted_by="clerk")
        assert exc_info.value.fields == (field,)

    def test_same_day_return_is_valid(self, approval_workflow, make_draft):
        ticket = approval_workflow.submit(
            make_draft(departure_date=date(2024, 1, 5), return_date=date(2024, 1, 5)),
            submitted_by="clerk",
        )
        assert ticket.status == TicketStatus.PENDING

    def test_unknown_driver(self, approval_workflow, make_draft):
        with pytest.raises(DriverNotFoundError) as exc_info:
            approval_workflow.submit(make_draft(driver_id=uuid4()), submitted_by="clerk")
        assert isinstance(exc_info.value, NotFoundError)
        assert exc_info.value.code == "DRIVER_NOT_FOUND"

    def test_unknown_vehicle(self, approval_workflow, make_draft):
        with pytest.raises(VehicleNotFoundError):
            approval_workflow.submit(make_draft(vehicle_id=uuid4()), submitted_by="clerk")

    def test_inactive_vehicle_is_rejected(self, approval_workflow, make_draft, create_vehicle):
        parked = create_vehicle("KCC-999Z", is_active=False)
        with pytest.raises(ValidationError) as exc_info:
            approval_workflow.submit(make_draft(vehicle_id=parked.id), submitted_by="clerk")
        assert exc_info.value.fields == ("vehicle_id",)

    def test_custom_reference_lookup(self, session, deterministic_clock, make_draft):
        vehicle_id, driver_id = uuid4(), uuid4()

        class StaticLookup:
            def get_vehicle(self, vid):
                return VehicleRef(id=vid, registration="EXT-1") if vid == vehicle_id else None

            def get_driver(self, did):
                return DriverRef(id=did, name="External", license_number="X1") if did == driver_id else None

        workflow = ApprovalWorkflow(session, deterministic_clock, lookup=StaticLookup())
        ticket = workflow.submit(
            make_draft(vehicle_id=vehicle_id, driver_id=driver_id),
            submitted_by="clerk",
        )
        assert ticket.vehicle_registration == "EXT-1"
        assert ticket.driver_name == "External"


# =============================================================================
# Decisions
# =============================================================================


class TestApproveReject:

    def test_approve_sets_decision_fields(self, session, approval_workflow, submit_ticket, deterministic_clock):
        ticket = submit_ticket()
        deterministic_clock.advance(60)

        approved = approval_workflow.approve(ticket.id, approver="A")
        session.commit()

        assert approved.status == TicketStatus.APPROVED
        assert approved.approved_by == "A"
        assert approved.approved_at == deterministic_clock.now()
        assert approved.updated_at == deterministic_clock.now()
        assert approved.rejected_by is None

    def test_reject_sets_reason(self, session, approval_workflow, submit_ticket):
        ticket = submit_ticket()
        rejected = approval_workflow.reject(ticket.id, approver="B", reason="  Vehicle due for service ")

        assert rejected.status == TicketStatus.REJECTED
        assert rejected.rejected_by == "B"
        assert rejected.rejection_reason == "Vehicle due for service"
        assert rejected.approved_by is None

    def test_reject_requires_reason_and_approver(self, approval_workflow, submit_ticket):
        ticket = submit_ticket()
        with pytest.raises(ValidationError) as exc_info:
            approval_workflow.reject(ticket.id, approver="", reason=" ")
        assert exc_info.value.fields == ("approver", "reason")
        assert approval_workflow.get(ticket.id).status == TicketStatus.PENDING

    def test_approve_requires_approver(self, approval_workflow, submit_ticket):
        ticket = submit_ticket()
        with pytest.raises(ValidationError):
            approval_workflow.approve(ticket.id, approver="   ")

    def test_second_decision_is_invalid(self, session, approval_workflow, submit_ticket):
        ticket = submit_ticket()
        approval_workflow.approve(ticket.id, approver="A")
        session.commit()

        with pytest.raises(InvalidTransitionError) as exc_info:
            approval_workflow.reject(ticket.id, approver="B", reason="Too late")
        err = exc_info.value
        assert err.current_status == "approved"
        assert err.action == "reject"
        assert err.code == "INVALID_TRANSITION"

        with pytest.raises(InvalidTransitionError):
            approval_workflow.approve(ticket.id, approver="A")

        stored = approval_workflow.get(ticket.id)
        assert stored.rejected_by is None
        assert stored.approved_by == "A"

    def test_unknown_ticket(self, approval_workflow):
        with pytest.raises(WorkTicketNotFoundError):
            approval_workflow.approve(uuid4(), approver="A")
        with pytest.raises(WorkTicketNotFoundError):
            approval_workflow.get(uuid4())


# =============================================================================
# Completion
# =============================================================================


class TestComplete:

    def test_complete_approved_ticket(self, approval_workflow, approved_ticket, deterministic_clock):
        ticket = approved_ticket()
        deterministic_clock.advance(3600)

        completed = approval_workflow.complete(ticket.id)
        assert completed.status == TicketStatus.COMPLETED
        assert completed.completed_at == deterministic_clock.now()
        assert completed.approved_by == "A"

    def test_complete_pending_fails_and_leaves_ticket(self, approval_workflow, submit_ticket):
        ticket = submit_ticket()
        with pytest.raises(InvalidTransitionError) as exc_info:
            approval_workflow.complete(ticket.id)
        assert exc_info.value.current_status == "pending"
        stored = approval_workflow.get(ticket.id)
        assert stored.status == TicketStatus.PENDING
        assert stored.completed_at is None

    def test_complete_rejected_fails_and_leaves_ticket(self, approval_workflow, submit_ticket):
        ticket = submit_ticket()
        approval_workflow.reject(ticket.id, approver="B", reason="No budget")
        with pytest.raises(InvalidTransitionError):
            approval_workflow.complete(ticket.id)
        assert approval_workflow.get(ticket.id).status == TicketStatus.REJECTED

    def test_complete_twice_fails(self, approval_workflow, approved_ticket):
        ticket = approved_ticket()
        approval_workflow.complete(ticket.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            approval_workflow.complete(ticket.id)
        assert exc_info.value.current_status == "completed"


# =============================================================================
# Store
# =============================================================================


class TestWorkTicketStore:

    def test_compare_and_set_matches_only_expected_status(
        self, session, submit_ticket, deterministic_clock,
    ):
        ticket = submit_ticket()
        store = WorkTicketStore(session, deterministic_clock)

        assert store.compare_and_set_status(
            ticket.id, TicketStatus.APPROVED, TicketStatus.COMPLETED,
        ) is False
        assert store.compare_and_set_status(
            ticket.id, TicketStatus.PENDING, TicketStatus.APPROVED,
            approved_by="A", approved_at=deterministic_clock.now(),
        ) is True
        assert store.compare_and_set_status(
            ticket.id, TicketStatus.PENDING, TicketStatus.REJECTED,
        ) is False

        stored = store.load(ticket.id)
        assert stored.status == "approved"
        assert stored.approved_by == "A"

    def test_missing_row_is_not_changed(self, session):
        store = WorkTicketStore(session)
        assert store.compare_and_set_status(
            uuid4(), TicketStatus.PENDING, TicketStatus.APPROVED,
        ) is False
        assert store.get(uuid4()) is None
        with pytest.raises(WorkTicketNotFoundError):
            store.load(uuid4())

    def test_only_transition_fields_may_be_written(self, session, submit_ticket):
        ticket = submit_ticket()
        store = WorkTicketStore(session)
        with pytest.raises(ValueError):
            store.compare_and_set_status(
                ticket.id, TicketStatus.PENDING, TicketStatus.APPROVED,
                fuel_required=Decimal("999"),
            )


class TestTransitionRaces:

    def test_unchanged_status_with_lost_write_raises_conflict(
        self, session, deterministic_clock, submit_ticket, monkeypatch,
    ):
        ticket = submit_ticket()
        workflow = ApprovalWorkflow(session, deterministic_clock, max_retries=2)
        monkeypatch.setattr(
            workflow._store, "compare_and_set_status", lambda *args, **kwargs: False,
        )

        with pytest.raises(ConflictError) as exc_info:
            workflow.approve(ticket.id, approver="A")
        assert exc_info.value.attempts == 2

    def test_logging_of_decisions(self, approval_workflow, submit_ticket, captured_logs):
        ticket = submit_ticket()
        approval_workflow.approve(ticket.id, approver="A")

        messages = [r["message"] for r in captured_logs()]
        assert "ticket_submitted" in messages
        assert "ticket_approved" in messages
        approved = next(r for r in captured_logs() if r["message"] == "ticket_approved")
        assert approved["ticket_id"] == str(ticket.id)
        assert approved["approver"] == "A"
