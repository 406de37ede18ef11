"""
Bulk fuel ledger rules (``fleet_kernel.domain.ledger``).

Responsibility
--------------
Pure arithmetic and status rules for prepaid bulk fuel accounts and for
fuel-record cost computation.  The ledger service calls these functions
between reading a row and issuing its conditional update, so the rules
themselves never touch the database.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  May import ``db.types`` and
``exceptions`` only.

Invariants enforced
-------------------
* Credit floor: a balance may never go below ``-credit_limit``.
* Exact cost: ``total_cost == quantity * cost_per_liter`` with no rounding;
  input precision limits guarantee the product fits storage scale.
* Account status machine: ``active`` <-> ``suspended``; either -> ``closed``
  (terminal).  Only ``active`` accounts accept debits.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from fleet_kernel.db.types import (
    PRICE_DECIMAL_PLACES,
    QUANTITY_DECIMAL_PLACES,
    ZERO,
    decimal_places,
)
from fleet_kernel.exceptions import FieldError, InsufficientCreditError


class AccountStatus(str, Enum):
    """Bulk fuel account lifecycle."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    CLOSED = "closed"


ACCOUNT_TRANSITIONS: dict[AccountStatus, frozenset[AccountStatus]] = {
    AccountStatus.ACTIVE: frozenset({AccountStatus.SUSPENDED, AccountStatus.CLOSED}),
    AccountStatus.SUSPENDED: frozenset({AccountStatus.ACTIVE, AccountStatus.CLOSED}),
    AccountStatus.CLOSED: frozenset(),
}


class FuelType(str, Enum):
    """Fuel types a record may carry and an account may accept."""

    PETROL = "petrol"
    DIESEL = "diesel"
    ELECTRIC = "electric"
    HYBRID = "hybrid"


def parse_fuel_types(value: str | None) -> frozenset[FuelType]:
    """Parse the comma-separated storage form of an account's fuel types."""
    if not value:
        return frozenset()
    return frozenset(FuelType(part.strip()) for part in value.split(",") if part.strip())


def format_fuel_types(fuel_types) -> str:
    """Canonical comma-separated storage form (sorted, deduplicated)."""
    return ",".join(sorted({FuelType(ft).value for ft in fuel_types}))


def can_transition_account(current: AccountStatus, target: AccountStatus) -> bool:
    return target in ACCOUNT_TRANSITIONS[current]


def apply_debit(
    account_id: str,
    current_balance: Decimal,
    credit_limit: Decimal,
    amount: Decimal,
) -> Decimal:
    """
    Compute the balance after debiting ``amount``.

    Raises:
        InsufficientCreditError: if the result would be below -credit_limit.
    """
    new_balance = current_balance - amount
    if new_balance < -credit_limit:
        raise InsufficientCreditError(
            account_id=account_id,
            amount=amount,
            current_balance=current_balance,
            credit_limit=credit_limit,
        )
    return new_balance


def compute_total_cost(quantity: Decimal, cost_per_liter: Decimal) -> Decimal:
    """Exact total cost of a fuel transaction."""
    return quantity * cost_per_liter


def validate_fuel_amounts(quantity, cost_per_liter) -> list[FieldError]:
    """
    Check quantity and unit price.

    Returns a list of FieldError (empty when both values are acceptable).
    """
    errors: list[FieldError] = []

    if not isinstance(quantity, Decimal) or not quantity.is_finite():
        errors.append(FieldError("quantity", "must be a finite Decimal"))
    elif quantity <= ZERO:
        errors.append(FieldError("quantity", "must be greater than 0"))
    elif decimal_places(quantity) > QUANTITY_DECIMAL_PLACES:
        errors.append(FieldError(
            "quantity", f"at most {QUANTITY_DECIMAL_PLACES} decimal places",
        ))

    if not isinstance(cost_per_liter, Decimal) or not cost_per_liter.is_finite():
        errors.append(FieldError("cost_per_liter", "must be a finite Decimal"))
    elif cost_per_liter < ZERO:
        errors.append(FieldError("cost_per_liter", "must not be negative"))
    elif decimal_places(cost_per_liter) > PRICE_DECIMAL_PLACES:
        errors.append(FieldError(
            "cost_per_liter", f"at most {PRICE_DECIMAL_PLACES} decimal places",
        ))

    return errors
