"""
FuelTransactionService tests.

Covers:
- The ticket scenario: 20 L @ 150 -> 3000 debited, ticket completed, a
  second record against the same ticket fails and changes nothing
- Atomicity: a failed debit or a failed completion leaves no fuel record
  and no balance change
- Validation: amounts, precision, fuel type, supplied total_cost,
  references, fuel types accepted by the account
- Completion policy LOG_AND_PROCEED
- Odometer regression warning
- auto_commit=False leaves the transaction to the caller
- Structured logging of the transaction lifecycle
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from fleet_kernel.domain.ledger import AccountStatus, FuelType
from fleet_kernel.domain.workflow import TicketStatus
from fleet_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    InsufficientCreditError,
    InvalidTransitionError,
    ValidationError,
    VehicleNotFoundError,
    WorkTicketNotFoundError,
)
from fleet_kernel.models.fuel_record import FuelRecord
from fleet_kernel.selectors.fuel_selector import FuelSelector
from fleet_kernel.services.fuel_transaction_service import FuelTransactionService


def _record_count(session) -> int:
    return session.execute(select(func.count(FuelRecord.id))).scalar_one()


# =============================================================================
# Happy path
# =============================================================================


class TestRecordFuel:

    def test_ticket_scenario(
        self, session, fuel_service, approval_workflow, ledger_service,
        create_account, approved_ticket, make_fuel_input,
    ):
        account = create_account(initial_balance=Decimal("10000"))
        ticket = approved_ticket(fuel_required=Decimal("20"))
        assert ticket.approved_by == "A"

        result = fuel_service.record_fuel(
            make_fuel_input(
                quantity=Decimal("20"),
                cost_per_liter=Decimal("150"),
                bulk_account_id=account.id,
                work_ticket_id=ticket.id,
            ),
            recorded_by="pump-1",
        )

        assert result.record.total_cost == Decimal("3000")
        assert result.account.current_balance == Decimal("7000")
        assert result.ticket.status == TicketStatus.COMPLETED
        assert result.ticket_completion_skipped is False
        assert ledger_service.get_account(account.id).current_balance == Decimal("7000")
        assert approval_workflow.get(ticket.id).status == TicketStatus.COMPLETED

        # Second record against the completed ticket
        with pytest.raises(InvalidTransitionError):
            fuel_service.record_fuel(
                make_fuel_input(
                    bulk_account_id=account.id,
                    work_ticket_id=ticket.id,
                    receipt_number="R-0002",
                ),
                recorded_by="pump-1",
            )

        assert _record_count(session) == 1
        assert ledger_service.get_account(account.id).current_balance == Decimal("7000")

    def test_record_without_account_or_ticket(self, session, fuel_service, make_fuel_input):
        result = fuel_service.record_fuel(make_fuel_input(), recorded_by="pump-1")
        assert result.account is None
        assert result.ticket is None
        assert result.record.fuel_type == FuelType.DIESEL
        assert _record_count(session) == 1

    def test_record_is_committed(self, session_factory, fuel_service, make_fuel_input):
        result = fuel_service.record_fuel(make_fuel_input(), recorded_by="pump-1")

        other = session_factory()
        try:
            assert FuelSelector(other).get(result.record.id) is not None
        finally:
            other.close()

    def test_total_cost_is_exact(self, fuel_service, make_fuel_input):
        result = fuel_service.record_fuel(
            make_fuel_input(quantity=Decimal("12.345"), cost_per_liter=Decimal("1.2345")),
            recorded_by="pump-1",
        )
        assert result.record.total_cost == Decimal("15.2399025")
        stored = fuel_service._fuel.get(result.record.id)
        assert stored.total_cost == stored.quantity * stored.cost_per_liter

    def test_matching_supplied_total_is_accepted(self, fuel_service, make_fuel_input):
        result = fuel_service.record_fuel(
            make_fuel_input(total_cost=Decimal("3000.00")),
            recorded_by="pump-1",
        )
        assert result.record.total_cost == Decimal("3000")

    def test_fuel_type_as_string(self, fuel_service, make_fuel_input):
        result = fuel_service.record_fuel(make_fuel_input(fuel_type="petrol"), recorded_by="pump-1")
        assert result.record.fuel_type == FuelType.PETROL

    def test_zero_price_fuel_does_not_debit(self, fuel_service, create_account, make_fuel_input):
        account = create_account(initial_balance=Decimal("100"))
        result = fuel_service.record_fuel(
            make_fuel_input(cost_per_liter=Decimal("0"), bulk_account_id=account.id),
            recorded_by="pump-1",
        )
        assert result.record.total_cost == Decimal("0")
        assert result.account.current_balance == Decimal("100")
        assert result.account.version == 1


# =============================================================================
# Atomicity
# =============================================================================


class TestAtomicity:

    def test_failed_debit_leaves_no_record(
        self, session, fuel_service, ledger_service, create_account, approved_ticket, make_fuel_input,
    ):
        account = create_account(initial_balance=Decimal("1000"))
        ticket = approved_ticket()

        with pytest.raises(InsufficientCreditError):
            fuel_service.record_fuel(
                make_fuel_input(bulk_account_id=account.id, work_ticket_id=ticket.id),
                recorded_by="pump-1",
            )

        assert _record_count(session) == 0
        assert ledger_service.get_account(account.id).current_balance == Decimal("1000")
        assert ledger_service.get_account(account.id).version == 1
        assert fuel_service._workflow.get(ticket.id).status == TicketStatus.APPROVED

    def test_failed_completion_rolls_back_debit(
        self, session, fuel_service, ledger_service, create_account, submit_ticket, make_fuel_input,
    ):
        account = create_account(initial_balance=Decimal("10000"))
        pending = submit_ticket()

        with pytest.raises(InvalidTransitionError) as exc_info:
            fuel_service.record_fuel(
                make_fuel_input(bulk_account_id=account.id, work_ticket_id=pending.id),
                recorded_by="pump-1",
            )
        assert exc_info.value.current_status == "pending"

        assert _record_count(session) == 0
        assert ledger_service.get_account(account.id).current_balance == Decimal("10000")

    def test_unknown_ticket_always_aborts(
        self, session, lenient_fuel_service, ledger_service, create_account, make_fuel_input,
    ):
        account = create_account()
        with pytest.raises(WorkTicketNotFoundError):
            lenient_fuel_service.record_fuel(
                make_fuel_input(bulk_account_id=account.id, work_ticket_id=uuid4()),
                recorded_by="pump-1",
            )
        assert _record_count(session) == 0
        assert ledger_service.get_account(account.id).current_balance == Decimal("10000")

    def test_inactive_account_leaves_no_record(
        self, session, fuel_service, ledger_service, create_account, make_fuel_input,
    ):
        account = create_account()
        ledger_service.set_status(account.id, AccountStatus.SUSPENDED)
        session.commit()

        with pytest.raises(AccountInactiveError):
            fuel_service.record_fuel(
                make_fuel_input(bulk_account_id=account.id), recorded_by="pump-1",
            )
        assert _record_count(session) == 0

    def test_caller_owned_transaction(
        self, session, deterministic_clock, create_account, make_fuel_input,
    ):
        account = create_account()
        service = FuelTransactionService(session, deterministic_clock, auto_commit=False)

        service.record_fuel(make_fuel_input(bulk_account_id=account.id), recorded_by="pump-1")
        assert _record_count(session) == 1

        session.rollback()
        assert _record_count(session) == 0
        assert service._ledger.get_account(account.id).current_balance == Decimal("10000")


# =============================================================================
# Validation
# =============================================================================


class TestValidation:

    def test_all_bad_fields_reported(self, session, fuel_service, make_fuel_input):
        with pytest.raises(ValidationError) as exc_info:
            fuel_service.record_fuel(
                make_fuel_input(
                    vehicle_id=None,
                    fuel_type="kerosene",
                    quantity=Decimal("0"),
                    cost_per_liter=Decimal("-1"),
                    transaction_date=None,
                    odometer_reading=-5,
                ),
                recorded_by="",
            )
        assert exc_info.value.fields == (
            "vehicle_id",
            "fuel_type",
            "quantity",
            "cost_per_liter",
            "transaction_date",
            "odometer_reading",
            "recorded_by",
        )
        assert _record_count(session) == 0

    def test_precision_limits(self, fuel_service, make_fuel_input):
        with pytest.raises(ValidationError) as exc_info:
            fuel_service.record_fuel(
                make_fuel_input(quantity=Decimal("1.0005"), cost_per_liter=Decimal("1.00005")),
                recorded_by="pump-1",
            )
        assert exc_info.value.fields == ("quantity", "cost_per_liter")

    def test_mismatched_total_is_rejected(self, fuel_service, make_fuel_input):
        with pytest.raises(ValidationError) as exc_info:
            fuel_service.record_fuel(
                make_fuel_input(total_cost=Decimal("2999")),
                recorded_by="pump-1",
            )
        assert exc_info.value.fields == ("total_cost",)

    def test_unknown_vehicle(self, fuel_service, make_fuel_input):
        with pytest.raises(VehicleNotFoundError):
            fuel_service.record_fuel(make_fuel_input(vehicle_id=uuid4()), recorded_by="pump-1")

    def test_unknown_account(self, session, fuel_service, make_fuel_input):
        with pytest.raises(AccountNotFoundError):
            fuel_service.record_fuel(
                make_fuel_input(bulk_account_id=uuid4()), recorded_by="pump-1",
            )
        assert _record_count(session) == 0

    def test_account_must_accept_fuel_type(self, session, fuel_service, create_account, make_fuel_input):
        account = create_account(fuel_types=["petrol"])
        with pytest.raises(ValidationError) as exc_info:
            fuel_service.record_fuel(
                make_fuel_input(fuel_type=FuelType.DIESEL, bulk_account_id=account.id),
                recorded_by="pump-1",
            )
        assert exc_info.value.fields == ("fuel_type",)
        assert _record_count(session) == 0


# =============================================================================
# Completion policy
# =============================================================================


class TestLogAndProceed:

    def test_record_and_debit_kept_when_ticket_not_approved(
        self, session, lenient_fuel_service, ledger_service, approval_workflow,
        create_account, submit_ticket, make_fuel_input, captured_logs,
    ):
        account = create_account(initial_balance=Decimal("10000"))
        pending = submit_ticket()

        result = lenient_fuel_service.record_fuel(
            make_fuel_input(bulk_account_id=account.id, work_ticket_id=pending.id),
            recorded_by="pump-1",
        )

        assert result.ticket_completion_skipped is True
        assert result.ticket.status == TicketStatus.PENDING
        assert result.warnings
        assert _record_count(session) == 1
        assert ledger_service.get_account(account.id).current_balance == Decimal("7000")
        assert approval_workflow.get(pending.id).status == TicketStatus.PENDING

        skipped = [r for r in captured_logs() if r["message"] == "ticket_completion_skipped"]
        assert len(skipped) == 1
        assert skipped[0]["current_status"] == "pending"
        assert skipped[0]["ticket_id"] == str(pending.id)


# =============================================================================
# Odometer
# =============================================================================


class TestOdometer:

    def test_regression_is_warned_not_rejected(self, session, fuel_service, make_fuel_input, captured_logs):
        fuel_service.record_fuel(make_fuel_input(odometer_reading=15000), recorded_by="pump-1")
        result = fuel_service.record_fuel(
            make_fuel_input(odometer_reading=14000, receipt_number="R-0002"),
            recorded_by="pump-1",
        )

        assert _record_count(session) == 2
        assert len(result.warnings) == 1
        warnings = [r for r in captured_logs() if r["message"] == "odometer_regression"]
        assert len(warnings) == 1
        assert warnings[0]["previous_reading"] == 15000
        assert warnings[0]["new_reading"] == 14000
        assert warnings[0]["level"] == "WARNING"

    def test_increasing_readings_are_silent(self, fuel_service, make_fuel_input, captured_logs):
        fuel_service.record_fuel(make_fuel_input(odometer_reading=100), recorded_by="pump-1")
        result = fuel_service.record_fuel(make_fuel_input(odometer_reading=250), recorded_by="pump-1")
        assert result.warnings == ()
        assert not any(r["message"] == "odometer_regression" for r in captured_logs())


# =============================================================================
# Logging
# =============================================================================


class TestTransactionLogging:

    def test_lifecycle_shares_correlation_id(
        self, fuel_service, create_account, make_fuel_input, captured_logs,
    ):
        account = create_account()
        result = fuel_service.record_fuel(
            make_fuel_input(bulk_account_id=account.id), recorded_by="pump-1",
        )

        logs = captured_logs()
        started = next(r for r in logs if r["message"] == "fuel_transaction_started")
        completed = next(r for r in logs if r["message"] == "fuel_transaction_completed")
        debited = next(r for r in logs if r["message"] == "ledger_debited")

        assert started["correlation_id"] == completed["correlation_id"] == debited["correlation_id"]
        assert completed["fuel_record_id"] == str(result.record.id)
        assert completed["account_id"] == str(account.id)
        assert completed["actor_id"] == "pump-1"
        assert "duration_ms" in completed

    def test_failure_is_logged_with_error_code(
        self, fuel_service, create_account, make_fuel_input, captured_logs,
    ):
        account = create_account(initial_balance=Decimal("1"))
        with pytest.raises(InsufficientCreditError):
            fuel_service.record_fuel(
                make_fuel_input(bulk_account_id=account.id), recorded_by="pump-1",
            )

        failed = next(r for r in captured_logs() if r["message"] == "fuel_transaction_failed")
        assert failed["level"] == "WARNING"
        assert failed["exc_code"] == "INSUFFICIENT_CREDIT"
        assert failed["exc_type"] == "InsufficientCreditError"
