"""
LedgerService -- the only writer of bulk fuel account balances.

Responsibility:
    Creates bulk fuel accounts and applies debits, administrative
    adjustments, edits and status changes to them.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.
    Pure arithmetic lives in ``fleet_kernel.domain.ledger``; this service
    adds the read / check / conditional-write loop around it.

Invariants enforced:
    - current_balance is never written except by the conditional UPDATE in
      ``_write_account``, guarded by the ``version`` read together with the
      balance.  A lost race re-reads and retries; there is no
      read-modify-write without the guard.
    - ``version`` increases by exactly one per write: balance, status, credit
      limit or descriptive fields.
    - A balance never goes below ``-credit_limit``, including when the limit
      itself is lowered.
    - Only ``active`` accounts accept debits; ``closed`` accounts reject
      adjustments and edits.
    - current_balance == initial_balance - sum(fuel debits) + sum(adjustments).

Failure modes:
    - ValidationError: non-positive debit, zero adjustment, blank fields,
      amounts finer than the storage scale, a credit limit the balance
      already breaches.
    - AccountNotFoundError: unknown account id.
    - AccountInactiveError: debit against a suspended/closed account, or
      adjustment or edit against a closed one.
    - InsufficientCreditError: debit would breach the credit floor.
    - InvalidTransitionError: illegal status change.
    - ConflictError: ``max_retries`` consecutive lost races.

Audit relevance:
    Every adjustment appends a BalanceAdjustment row carrying the actor,
    the reason and the resulting balance.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fleet_kernel.db.types import STORAGE_DECIMAL_PLACES, ZERO, decimal_places
from fleet_kernel.domain.clock import Clock
from fleet_kernel.domain.dtos import BalanceAdjustmentRecord, BulkFuelAccountRecord
from fleet_kernel.domain.ledger import (
    AccountStatus,
    FuelType,
    apply_debit,
    can_transition_account,
    format_fuel_types,
)
from fleet_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    FieldError,
    InvalidTransitionError,
    ValidationError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.bulk_fuel_account import BalanceAdjustment, BulkFuelAccount
from fleet_kernel.services.base import BaseService
from fleet_kernel.services.optimistic import LOST_RACE, retry_on_conflict

logger = get_logger("services.ledger")


def _require_decimal(name: str, value) -> list[FieldError]:
    if not isinstance(value, Decimal) or not value.is_finite():
        return [FieldError(name, "must be a finite Decimal")]
    # NUMERIC(38, 9) silently rounds anything finer.
    if decimal_places(value) > STORAGE_DECIMAL_PLACES:
        return [
            FieldError(
                name,
                f"must have at most {STORAGE_DECIMAL_PLACES} decimal places",
            )
        ]
    return []


def _require_credit_limit(value) -> list[FieldError]:
    errors = _require_decimal("credit_limit", value)
    if not errors and value < ZERO:
        errors = [FieldError("credit_limit", "must not be negative")]
    return errors


def _require_text(name: str, value) -> list[FieldError]:
    if not isinstance(value, str) or not value.strip():
        return [FieldError(name, "is required")]
    return []


class LedgerService(BaseService[BulkFuelAccount]):
    """
    Bulk fuel account ledger.

    Contract:
        Every balance mutation goes through ``debit`` or ``adjust``.  Both
        re-read the account on every attempt and write only if the version
        they read is still current.

    Non-goals:
        Does NOT commit.  The caller's transaction decides whether a debit
        becomes visible (see FuelTransactionService).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_retries: int = 10,
        retry_backoff_seconds: float = 0.005,
    ):
        super().__init__(session, clock)
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._max_retries = max_retries
        self._backoff = retry_backoff_seconds

    # =========================================================================
    # Account lifecycle
    # =========================================================================

    def create_account(
        self,
        account_name: str,
        supplier_name: str,
        initial_balance: Decimal,
        credit_limit: Decimal = ZERO,
        fuel_types: Iterable[FuelType | str] = (),
        account_number: str | None = None,
        contact_person: str | None = None,
        contact_phone: str | None = None,
        contact_email: str | None = None,
    ) -> BulkFuelAccountRecord:
        """
        Open a new account with ``current_balance = initial_balance``.

        Raises:
            ValidationError: blank names, negative or non-Decimal amounts,
                unknown fuel types.
        """
        errors: list[FieldError] = []
        errors += _require_text("account_name", account_name)
        errors += _require_text("supplier_name", supplier_name)

        amount_errors = _require_decimal("initial_balance", initial_balance)
        if not amount_errors and initial_balance < ZERO:
            amount_errors = [FieldError("initial_balance", "must not be negative")]
        errors += amount_errors

        errors += _require_credit_limit(credit_limit)

        try:
            stored_fuel_types = format_fuel_types(fuel_types)
        except ValueError:
            errors.append(FieldError("fuel_types", "contains an unknown fuel type"))
            stored_fuel_types = ""

        if errors:
            raise ValidationError(errors)

        now = self.clock.now()
        account = BulkFuelAccount(
            id=uuid4(),
            account_name=account_name.strip(),
            supplier_name=supplier_name.strip(),
            account_number=account_number,
            contact_person=contact_person,
            contact_phone=contact_phone,
            contact_email=contact_email,
            initial_balance=initial_balance,
            current_balance=initial_balance,
            credit_limit=credit_limit,
            fuel_types=stored_fuel_types,
            status=AccountStatus.ACTIVE.value,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "initial_balance": str(initial_balance),
                "credit_limit": str(credit_limit),
            },
        )
        return account.to_dto()

    def get_account(self, account_id: UUID) -> BulkFuelAccountRecord:
        """Fresh read of one account. Raises AccountNotFoundError."""
        return self._read(account_id).to_dto()

    def update_account(
        self,
        account_id: UUID,
        *,
        account_name: str | None = None,
        supplier_name: str | None = None,
        account_number: str | None = None,
        contact_person: str | None = None,
        contact_phone: str | None = None,
        contact_email: str | None = None,
        credit_limit: Decimal | None = None,
        fuel_types: Iterable[FuelType | str] | None = None,
        changed_by: str | None = None,
    ) -> BulkFuelAccountRecord:
        """
        Edit an account's descriptive fields and credit limit.

        ``None`` leaves a field unchanged; an empty string clears an optional
        contact field.  Balances and status are never touched here.

        A lower credit limit is only accepted while the balance read in the
        same version still sits at or above ``-credit_limit``.

        Raises:
            ValidationError: blank names, bad limit, unknown fuel types, or
                a limit the current balance already exceeds.
            AccountNotFoundError, AccountInactiveError (closed account),
            ConflictError.
        """
        errors: list[FieldError] = []
        values: dict[str, object] = {}

        for name, value in (("account_name", account_name), ("supplier_name", supplier_name)):
            if value is not None:
                errors += _require_text(name, value)
                if isinstance(value, str):
                    values[name] = value.strip()

        for name, value in (
            ("account_number", account_number),
            ("contact_person", contact_person),
            ("contact_phone", contact_phone),
            ("contact_email", contact_email),
        ):
            if value is None:
                continue
            if not isinstance(value, str):
                errors.append(FieldError(name, "must be a string"))
            else:
                values[name] = value.strip() or None

        if credit_limit is not None:
            errors += _require_credit_limit(credit_limit)
            values["credit_limit"] = credit_limit

        if fuel_types is not None:
            try:
                values["fuel_types"] = format_fuel_types(fuel_types)
            except ValueError:
                errors.append(FieldError("fuel_types", "contains an unknown fuel type"))

        if errors:
            raise ValidationError(errors)
        if not values:
            return self.get_account(account_id)

        def attempt(n: int):
            account = self._read(account_id)
            if account.status == AccountStatus.CLOSED.value:
                raise AccountInactiveError(str(account_id), account.status)
            if credit_limit is not None and account.current_balance < -credit_limit:
                raise ValidationError.single(
                    "credit_limit",
                    f"balance {account.current_balance} is already below "
                    f"-{credit_limit}",
                )
            previous_limit = account.credit_limit
            if not self._write_account(account, **values):
                return LOST_RACE
            logger.info(
                "account_updated",
                extra={
                    "account_id": str(account_id),
                    "fields": sorted(values),
                    "credit_limit_before": str(previous_limit),
                    "credit_limit_after": str(values.get("credit_limit", previous_limit)),
                    "changed_by": changed_by,
                    "attempt": n,
                },
            )
            return self._read(account_id).to_dto()

        return retry_on_conflict(
            attempt,
            entity_type="BulkFuelAccount",
            entity_id=str(account_id),
            max_attempts=self._max_retries,
            backoff_seconds=self._backoff,
            logger=logger,
            retry_event="account_update_conflict_retry",
        )

    def set_status(
        self,
        account_id: UUID,
        status: AccountStatus | str,
        changed_by: str | None = None,
    ) -> BulkFuelAccountRecord:
        """
        Move the account along ACCOUNT_TRANSITIONS.

        Raises:
            ValidationError: unknown status value.
            InvalidTransitionError: the move is not in the table.
        """
        try:
            target = AccountStatus(status)
        except ValueError:
            raise ValidationError.single("status", f"unknown account status '{status}'")

        def attempt(n: int):
            account = self._read(account_id)
            current = AccountStatus(account.status)
            if not can_transition_account(current, target):
                raise InvalidTransitionError(
                    entity_type="BulkFuelAccount",
                    entity_id=str(account_id),
                    current_status=current.value,
                    action=f"set status to {target.value}",
                )
            if not self._write_account(account, status=target.value):
                return LOST_RACE
            logger.info(
                "account_status_changed",
                extra={
                    "account_id": str(account_id),
                    "from_status": current.value,
                    "to_status": target.value,
                    "changed_by": changed_by,
                    "attempt": n,
                },
            )
            return self._read(account_id).to_dto()

        return retry_on_conflict(
            attempt,
            entity_type="BulkFuelAccount",
            entity_id=str(account_id),
            max_attempts=self._max_retries,
            backoff_seconds=self._backoff,
            logger=logger,
            retry_event="account_status_conflict_retry",
        )

    # =========================================================================
    # Balance mutations
    # =========================================================================

    def debit(self, account_id: UUID, amount: Decimal) -> BulkFuelAccountRecord:
        """
        Subtract ``amount`` from the account balance.

        Preconditions:
            amount is a Decimal > 0.

        Postconditions:
            The balance is exactly ``amount`` lower than the balance of the
            version it was applied to, and ``version`` is one higher.

        Raises:
            ValidationError, AccountNotFoundError, AccountInactiveError,
            InsufficientCreditError, ConflictError.
        """
        errors = _require_decimal("amount", amount)
        if not errors and amount <= ZERO:
            errors = [FieldError("amount", "must be greater than 0")]
        if errors:
            raise ValidationError(errors)

        def attempt(n: int):
            account = self._read(account_id)
            if account.status != AccountStatus.ACTIVE.value:
                raise AccountInactiveError(str(account_id), account.status)

            balance_before = account.current_balance
            new_balance = apply_debit(
                str(account_id),
                balance_before,
                account.credit_limit,
                amount,
            )
            if not self._write_account(account, current_balance=new_balance):
                return LOST_RACE

            logger.info(
                "ledger_debited",
                extra={
                    "account_id": str(account_id),
                    "amount": str(amount),
                    "balance_before": str(balance_before),
                    "balance_after": str(new_balance),
                    "version": account.version + 1,
                    "attempt": n,
                },
            )
            return self._read(account_id).to_dto()

        return retry_on_conflict(
            attempt,
            entity_type="BulkFuelAccount",
            entity_id=str(account_id),
            max_attempts=self._max_retries,
            backoff_seconds=self._backoff,
            logger=logger,
            retry_event="ledger_debit_conflict_retry",
        )

    def adjust(
        self,
        account_id: UUID,
        delta: Decimal,
        reason: str,
        actor: str,
    ) -> BulkFuelAccountRecord:
        """
        Apply a signed administrative correction and record it.

        Positive deltas top the account up; negative deltas are held to the
        same credit floor as debits.  Suspended accounts may be adjusted,
        closed accounts may not.

        Raises:
            ValidationError, AccountNotFoundError, AccountInactiveError,
            InsufficientCreditError, ConflictError.
        """
        errors = _require_decimal("delta", delta)
        if not errors and delta == ZERO:
            errors = [FieldError("delta", "must not be zero")]
        errors += _require_text("reason", reason)
        errors += _require_text("actor", actor)
        if errors:
            raise ValidationError(errors)

        def attempt(n: int):
            account = self._read(account_id)
            if account.status == AccountStatus.CLOSED.value:
                raise AccountInactiveError(str(account_id), account.status)

            balance_before = account.current_balance
            if delta < ZERO:
                new_balance = apply_debit(
                    str(account_id),
                    balance_before,
                    account.credit_limit,
                    -delta,
                )
            else:
                new_balance = balance_before + delta

            if not self._write_account(account, current_balance=new_balance):
                return LOST_RACE

            adjustment = BalanceAdjustment(
                id=uuid4(),
                account_id=account_id,
                delta=delta,
                balance_after=new_balance,
                reason=reason.strip(),
                adjusted_by=actor,
                created_at=self.clock.now(),
            )
            self.session.add(adjustment)
            self.session.flush()

            logger.info(
                "ledger_adjusted",
                extra={
                    "account_id": str(account_id),
                    "delta": str(delta),
                    "balance_before": str(balance_before),
                    "balance_after": str(new_balance),
                    "adjusted_by": actor,
                    "attempt": n,
                },
            )
            return self._read(account_id).to_dto()

        return retry_on_conflict(
            attempt,
            entity_type="BulkFuelAccount",
            entity_id=str(account_id),
            max_attempts=self._max_retries,
            backoff_seconds=self._backoff,
            logger=logger,
            retry_event="ledger_adjust_conflict_retry",
        )

    def list_adjustments(self, account_id: UUID) -> list[BalanceAdjustmentRecord]:
        """Adjustments for one account, oldest first."""
        rows = self.session.execute(
            select(BalanceAdjustment)
            .where(BalanceAdjustment.account_id == account_id)
            .order_by(BalanceAdjustment.created_at, BalanceAdjustment.id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # =========================================================================
    # Internals
    # =========================================================================

    def _read(self, account_id: UUID) -> BulkFuelAccount:
        account = self.session.execute(
            select(BulkFuelAccount)
            .where(BulkFuelAccount.id == account_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _write_account(self, account: BulkFuelAccount, **values) -> bool:
        """
        Conditional UPDATE guarded by the version ``account`` was read at.

        Returns False when another writer got there first.
        """
        result = self.session.execute(
            update(BulkFuelAccount)
            .where(BulkFuelAccount.id == account.id)
            .where(BulkFuelAccount.version == account.version)
            .values(
                version=account.version + 1,
                updated_at=self.clock.now(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
