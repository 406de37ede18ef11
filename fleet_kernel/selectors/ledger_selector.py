"""
Module: fleet_kernel.selectors.ledger_selector
Responsibility: Read-only reconciliation of bulk fuel accounts.  Recomputes
    each account's expected balance from its fuel records and adjustments
    and compares it with the stored ``current_balance``.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.

Invariants checked:
    current_balance == initial_balance
                       - sum(fuel_records.total_cost)
                       + sum(balance_adjustments.delta)

Failure modes:
    - AccountNotFoundError from reconcile() for an unknown account.

Audit relevance:
    A non-empty ``reconcile_all()`` discrepancy list means a balance was
    written outside LedgerService or a debit was lost.  The operator CLI
    ``scripts/reconcile_ledger.py`` exits non-zero in that case.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_kernel.db.types import ZERO
from fleet_kernel.domain.ledger import AccountStatus
from fleet_kernel.exceptions import AccountNotFoundError
from fleet_kernel.models.bulk_fuel_account import BalanceAdjustment, BulkFuelAccount
from fleet_kernel.models.fuel_record import FuelRecord
from fleet_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountReconciliation:
    """Expected vs stored balance for one account."""

    account_id: UUID
    account_name: str
    initial_balance: Decimal
    fuel_total: Decimal
    fuel_record_count: int
    adjustment_total: Decimal
    adjustment_count: int
    stored_balance: Decimal

    @property
    def expected_balance(self) -> Decimal:
        return self.initial_balance - self.fuel_total + self.adjustment_total

    @property
    def difference(self) -> Decimal:
        """stored - expected; zero when consistent."""
        return self.stored_balance - self.expected_balance

    @property
    def is_consistent(self) -> bool:
        return self.difference == ZERO


@dataclass(frozen=True)
class AccountSummary:
    """Dashboard row for one account."""

    account_id: UUID
    account_name: str
    supplier_name: str
    status: AccountStatus
    current_balance: Decimal
    credit_limit: Decimal
    fuel_record_count: int
    fuel_total: Decimal

    @property
    def available(self) -> Decimal:
        return self.current_balance + self.credit_limit


class LedgerSelector(BaseSelector[BulkFuelAccount]):
    """
    Reconciliation and summary queries over bulk fuel accounts.

    Amounts are summed in Python on Decimal values as loaded, so totals are
    exact on every backend.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def reconcile(self, account_id: UUID) -> AccountReconciliation:
        account = self.session.execute(
            select(BulkFuelAccount)
            .where(BulkFuelAccount.id == account_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))

        fuel = self._fuel_costs([account_id]).get(account_id, [])
        adjustments = self._adjustment_deltas([account_id]).get(account_id, [])
        return self._reconciliation(account, fuel, adjustments)

    def reconcile_all(self) -> list[AccountReconciliation]:
        """One reconciliation per account, ordered by account name."""
        accounts = self._all_accounts()
        ids = [a.id for a in accounts]
        fuel = self._fuel_costs(ids)
        adjustments = self._adjustment_deltas(ids)
        return [
            self._reconciliation(a, fuel.get(a.id, []), adjustments.get(a.id, []))
            for a in accounts
        ]

    def discrepancies(self) -> list[AccountReconciliation]:
        return [r for r in self.reconcile_all() if not r.is_consistent]

    def account_summaries(self, status: AccountStatus | None = None) -> list[AccountSummary]:
        accounts = self._all_accounts(status)
        fuel = self._fuel_costs([a.id for a in accounts])
        summaries = []
        for account in accounts:
            costs = fuel.get(account.id, [])
            summaries.append(
                AccountSummary(
                    account_id=account.id,
                    account_name=account.account_name,
                    supplier_name=account.supplier_name,
                    status=AccountStatus(account.status),
                    current_balance=account.current_balance,
                    credit_limit=account.credit_limit,
                    fuel_record_count=len(costs),
                    fuel_total=sum(costs, ZERO),
                )
            )
        return summaries

    # -------------------------------------------------------------------------

    def _all_accounts(self, status: AccountStatus | None = None) -> list[BulkFuelAccount]:
        query = (
            select(BulkFuelAccount)
            .order_by(BulkFuelAccount.account_name, BulkFuelAccount.id)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            query = query.where(BulkFuelAccount.status == AccountStatus(status).value)
        return list(self.session.execute(query).scalars().all())

    def _fuel_costs(self, account_ids: list[UUID]) -> dict[UUID, list[Decimal]]:
        costs: dict[UUID, list[Decimal]] = defaultdict(list)
        if not account_ids:
            return costs
        rows = self.session.execute(
            select(FuelRecord.bulk_account_id, FuelRecord.total_cost)
            .where(FuelRecord.bulk_account_id.in_(account_ids))
        ).all()
        for account_id, total_cost in rows:
            costs[account_id].append(total_cost)
        return costs

    def _adjustment_deltas(self, account_ids: list[UUID]) -> dict[UUID, list[Decimal]]:
        deltas: dict[UUID, list[Decimal]] = defaultdict(list)
        if not account_ids:
            return deltas
        rows = self.session.execute(
            select(BalanceAdjustment.account_id, BalanceAdjustment.delta)
            .where(BalanceAdjustment.account_id.in_(account_ids))
        ).all()
        for account_id, delta in rows:
            deltas[account_id].append(delta)
        return deltas

    @staticmethod
    def _reconciliation(
        account: BulkFuelAccount,
        fuel_costs: list[Decimal],
        adjustment_deltas: list[Decimal],
    ) -> AccountReconciliation:
        return AccountReconciliation(
            account_id=account.id,
            account_name=account.account_name,
            initial_balance=account.initial_balance,
            fuel_total=sum(fuel_costs, ZERO),
            fuel_record_count=len(fuel_costs),
            adjustment_total=sum(adjustment_deltas, ZERO),
            adjustment_count=len(adjustment_deltas),
            stored_balance=account.current_balance,
        )
