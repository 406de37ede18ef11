"""
Module: fleet_kernel.models.bulk_fuel_account
Responsibility: ORM persistence for prepaid bulk fuel accounts and the
    append-only log of administrative balance adjustments.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - current_balance is written ONLY by LedgerService, through a conditional
      UPDATE guarded by ``version``.  Nothing in this module mutates it.
    - credit_limit >= 0 and initial_balance >= 0 (validated by
      LedgerService.create_account; amounts are strings on SQLite, so a
      numeric CHECK would not hold there).
    - Ledger fields (balances, credit limit, status, version) cannot be
      changed through an ORM flush; an ORM listener rejects it.
    - Balance adjustments are append-only (ORM listeners reject UPDATE and
      DELETE).
    - Ledger identity: current_balance == initial_balance
        - sum(fuel_records.total_cost) + sum(balance_adjustments.delta).

Failure modes:
    - IntegrityError on an unknown status or a version below 1.
    - ImmutabilityViolationError on adjustment UPDATE/DELETE, or on an ORM
      flush that changes a ledger field of an account.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import get_history

from fleet_kernel.db.base import Base, TrackedBase, UUIDString
from fleet_kernel.domain.dtos import BalanceAdjustmentRecord, BulkFuelAccountRecord
from fleet_kernel.domain.ledger import AccountStatus, parse_fuel_types
from fleet_kernel.exceptions import ImmutabilityViolationError


class BulkFuelAccount(TrackedBase):
    """
    Prepaid fuel account shared by the fleet.

    Contract:
        ``version`` increases by exactly one on every write.  A writer
        that read version N may only write if the row still has version N.
    """

    __tablename__ = "bulk_fuel_accounts"

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'suspended', 'closed')",
            name="ck_bulk_fuel_accounts_valid_status",
        ),
        CheckConstraint("version >= 1", name="ck_bulk_fuel_accounts_version"),
        Index("idx_bulk_fuel_accounts_status", "status"),
    )

    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    contact_person: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Fixed at creation
    initial_balance: Mapped[Decimal] = mapped_column(nullable=False)

    current_balance: Mapped[Decimal] = mapped_column(nullable=False)

    # 0 means the balance may not go negative
    credit_limit: Mapped[Decimal] = mapped_column(nullable=False)

    # Comma-separated FuelType values; empty accepts every type
    fuel_types: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccountStatus.ACTIVE.value,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<BulkFuelAccount {self.account_name} "
            f"balance={self.current_balance} status={self.status} v{self.version}>"
        )

    def to_dto(self) -> BulkFuelAccountRecord:
        """Convert ORM model to frozen domain DTO."""
        return BulkFuelAccountRecord(
            id=self.id,
            account_name=self.account_name,
            supplier_name=self.supplier_name,
            account_number=self.account_number,
            contact_person=self.contact_person,
            contact_phone=self.contact_phone,
            contact_email=self.contact_email,
            initial_balance=self.initial_balance,
            current_balance=self.current_balance,
            credit_limit=self.credit_limit,
            fuel_types=parse_fuel_types(self.fuel_types),
            status=AccountStatus(self.status),
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class BalanceAdjustment(Base):
    """Administrative correction to an account balance. Append-only."""

    __tablename__ = "balance_adjustments"

    __table_args__ = (
        Index("idx_balance_adjustments_account", "account_id", "created_at"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bulk_fuel_accounts.id"),
        nullable=False,
    )
    delta: Mapped[Decimal] = mapped_column(nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    adjusted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> BalanceAdjustmentRecord:
        return BalanceAdjustmentRecord(
            id=self.id,
            account_id=self.account_id,
            delta=self.delta,
            balance_after=self.balance_after,
            reason=self.reason,
            adjusted_by=self.adjusted_by,
            created_at=self.created_at,
        )


@event.listens_for(BalanceAdjustment, "before_update")
def prevent_adjustment_update(mapper, connection, target):
    """Prevent updates to balance adjustment records."""
    raise ImmutabilityViolationError(
        entity_type="BalanceAdjustment",
        entity_id=str(target.id),
        reason="Balance adjustments are immutable -- post a new adjustment",
    )


@event.listens_for(BalanceAdjustment, "before_delete")
def prevent_adjustment_delete(mapper, connection, target):
    """Prevent deletion of balance adjustment records."""
    raise ImmutabilityViolationError(
        entity_type="BalanceAdjustment",
        entity_id=str(target.id),
        reason="Balance adjustments are immutable -- cannot delete",
    )


# Written only by LedgerService's version-guarded UPDATE statement, which
# bypasses mapper events.
ACCOUNT_LEDGER_FIELDS = (
    "initial_balance",
    "current_balance",
    "credit_limit",
    "status",
    "version",
)


@event.listens_for(BulkFuelAccount, "before_update")
def prevent_ledger_field_update(mapper, connection, target):
    """Reject ORM flushes that change balance-bearing fields of an account."""
    changed = [
        field for field in ACCOUNT_LEDGER_FIELDS
        if get_history(target, field).has_changes()
    ]
    if changed:
        raise ImmutabilityViolationError(
            entity_type="BulkFuelAccount",
            entity_id=str(target.id),
            reason=(
                f"{', '.join(changed)} may only change through LedgerService"
            ),
        )
