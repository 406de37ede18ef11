"""
Selector tests.

Covers:
- LedgerSelector.reconcile / reconcile_all / discrepancies / account_summaries
- TicketSelector listings, filters and status counts
- FuelSelector history by account, ticket and vehicle; latest odometer
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from fleet_kernel.domain.ledger import AccountStatus
from fleet_kernel.domain.workflow import TicketStatus
from fleet_kernel.exceptions import AccountNotFoundError
from fleet_kernel.models.bulk_fuel_account import BulkFuelAccount
from fleet_kernel.selectors.fuel_selector import FuelSelector
from fleet_kernel.selectors.ledger_selector import LedgerSelector
from fleet_kernel.selectors.ticket_selector import TicketSelector


# =============================================================================
# Ledger reconciliation
# =============================================================================


class TestLedgerSelector:

    def test_reconcile_after_fuel_and_adjustments(
        self, session, fuel_service, ledger_service, create_account, make_fuel_input,
    ):
        account = create_account(initial_balance=Decimal("10000"))
        fuel_service.record_fuel(make_fuel_input(bulk_account_id=account.id), recorded_by="pump-1")
        fuel_service.record_fuel(
            make_fuel_input(
                bulk_account_id=account.id,
                quantity=Decimal("10.5"),
                cost_per_liter=Decimal("151.25"),
            ),
            recorded_by="pump-1",
        )
        ledger_service.adjust(account.id, Decimal("500"), reason="Top-up", actor="finance")
        session.commit()

        recon = LedgerSelector(session).reconcile(account.id)
        assert recon.fuel_record_count == 2
        assert recon.fuel_total == Decimal("3000") + Decimal("1588.125")
        assert recon.adjustment_total == Decimal("500")
        assert recon.expected_balance == Decimal("5911.875")
        assert recon.stored_balance == Decimal("5911.875")
        assert recon.is_consistent

    def test_out_of_band_write_is_detected(self, session, create_account):
        account = create_account(initial_balance=Decimal("100"))
        session.execute(
            update(BulkFuelAccount)
            .where(BulkFuelAccount.id == account.id)
            .values(current_balance=Decimal("90"))
        )
        session.commit()

        selector = LedgerSelector(session)
        recon = selector.reconcile(account.id)
        assert not recon.is_consistent
        assert recon.difference == Decimal("-10")
        assert [r.account_id for r in selector.discrepancies()] == [account.id]

    def test_reconcile_all_orders_by_name(self, session, create_account):
        create_account(account_name="Zeta")
        create_account(account_name="Alpha")

        results = LedgerSelector(session).reconcile_all()
        assert [r.account_name for r in results] == ["Alpha", "Zeta"]
        assert all(r.is_consistent for r in results)

    def test_reconcile_unknown_account(self, session, db_engine):
        with pytest.raises(AccountNotFoundError):
            LedgerSelector(session).reconcile(uuid4())

    def test_account_summaries(
        self, session, fuel_service, ledger_service, create_account, make_fuel_input,
    ):
        main = create_account(account_name="Main", credit_limit=Decimal("250"))
        spare = create_account(account_name="Spare")
        ledger_service.set_status(spare.id, AccountStatus.SUSPENDED)
        session.commit()
        fuel_service.record_fuel(make_fuel_input(bulk_account_id=main.id), recorded_by="pump-1")

        summaries = LedgerSelector(session).account_summaries()
        by_name = {s.account_name: s for s in summaries}
        assert by_name["Main"].fuel_record_count == 1
        assert by_name["Main"].fuel_total == Decimal("3000")
        assert by_name["Main"].available == Decimal("7250")
        assert by_name["Spare"].status == AccountStatus.SUSPENDED

        active_only = LedgerSelector(session).account_summaries(status=AccountStatus.ACTIVE)
        assert [s.account_name for s in active_only] == ["Main"]


# =============================================================================
# Tickets
# =============================================================================


class TestTicketSelector:

    def test_listing_and_counts(
        self, session, approval_workflow, submit_ticket, deterministic_clock, create_driver,
    ):
        first = submit_ticket()
        deterministic_clock.advance(10)
        second = submit_ticket(destination="Eldoret")
        deterministic_clock.advance(10)
        other_driver = create_driver("Peter Otieno")
        third = submit_ticket(driver_id=other_driver.id)

        approval_workflow.approve(first.id, approver="A")
        approval_workflow.reject(second.id, approver="A", reason="Duplicate")
        session.commit()

        selector = TicketSelector(session)
        assert [t.id for t in selector.list_tickets()] == [third.id, second.id, first.id]
        assert [t.id for t in selector.pending()] == [third.id]
        assert [t.id for t in selector.list_tickets(driver_id=other_driver.id)] == [third.id]
        assert [t.id for t in selector.list_tickets(status="approved")] == [first.id]
        assert len(selector.list_tickets(limit=2)) == 2

        counts = selector.count_by_status()
        assert counts == {
            TicketStatus.PENDING: 1,
            TicketStatus.APPROVED: 1,
            TicketStatus.REJECTED: 1,
            TicketStatus.COMPLETED: 0,
        }


# =============================================================================
# Fuel history
# =============================================================================


class TestFuelSelector:

    def test_history_views(
        self, session, fuel_service, create_account, approved_ticket, make_fuel_input, create_vehicle,
    ):
        account = create_account()
        ticket = approved_ticket()
        other_vehicle = create_vehicle("KDD-222B")

        with_ticket = fuel_service.record_fuel(
            make_fuel_input(bulk_account_id=account.id, work_ticket_id=ticket.id, odometer_reading=1200),
            recorded_by="pump-1",
        )
        fuel_service.record_fuel(make_fuel_input(odometer_reading=1500), recorded_by="pump-1")
        fuel_service.record_fuel(
            make_fuel_input(vehicle_id=other_vehicle.id, odometer_reading=90000),
            recorded_by="pump-1",
        )

        selector = FuelSelector(session)
        assert [r.id for r in selector.for_account(account.id)] == [with_ticket.record.id]
        assert [r.id for r in selector.for_ticket(ticket.id)] == [with_ticket.record.id]
        assert len(selector.for_vehicle(with_ticket.record.vehicle_id)) == 2
        assert selector.latest_odometer(with_ticket.record.vehicle_id) == 1500
        assert selector.latest_odometer(other_vehicle.id) == 90000
        assert selector.latest_odometer(uuid4()) is None
        assert selector.get(uuid4()) is None
