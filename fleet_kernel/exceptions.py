"""
Typed Exception Hierarchy for the Fleet Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (the HTTP shell, operator scripts, tests) must be able
to tell three situations apart without parsing messages:

  - "fix your input"            -> ValidationError
  - "state changed, re-read"    -> ConflictError / InvalidTransitionError
  - "this would break the ledger" -> InsufficientCreditError

Every exception therefore has:
  1. a TYPED class (catch by type, not message)
  2. a CODE class attribute (machine-readable, API-safe)
  3. structured DATA attributes (not just a message string)
  4. a RETRYABLE class attribute (whether re-reading and retrying can help)

Example:
    try:
        service.record_fuel(fuel_input, recorded_by="pump-7")
    except InsufficientCreditError as e:
        api_response(code=e.code, available=e.available, requested=e.amount)
    except ValidationError as e:
        api_response(code=e.code, fields=e.fields)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetKernelError (base)
    |
    +-- ValidationError
    |
    +-- NotFoundError
    |   +-- WorkTicketNotFoundError
    |   +-- AccountNotFoundError
    |   +-- VehicleNotFoundError
    |   +-- DriverNotFoundError
    |
    +-- InvalidTransitionError
    |
    +-- LedgerError
    |   +-- AccountInactiveError
    |   +-- InsufficientCreditError
    |
    +-- ConflictError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | When Raised
------------------------|----------------------------------------------------
VALIDATION_FAILED       | Missing/malformed input (lists every bad field)
TICKET_NOT_FOUND        | Work ticket id doesn't exist
ACCOUNT_NOT_FOUND       | Bulk fuel account id doesn't exist
VEHICLE_NOT_FOUND       | Referenced vehicle doesn't exist
DRIVER_NOT_FOUND        | Referenced driver doesn't exist
INVALID_TRANSITION      | Status precondition of a transition violated
ACCOUNT_INACTIVE        | Debit/adjust against a suspended or closed account
INSUFFICIENT_CREDIT     | Debit would push balance below -credit_limit
CONFLICT                | Conditional-update retries exhausted
IMMUTABILITY_VIOLATION  | Update/delete of an append-only record
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


class FleetKernelError(Exception):
    """
    Base exception for all fleet kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FLEET_KERNEL_ERROR"
    retryable: bool = False


# Input validation


@dataclass(frozen=True)
class FieldError:
    """One invalid or missing input field."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationError(FleetKernelError):
    """Input is malformed or incomplete. Resubmit corrected input."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, errors: list[FieldError] | tuple[FieldError, ...]):
        self.errors = tuple(errors)
        super().__init__(
            "Validation failed: " + "; ".join(str(e) for e in self.errors)
        )

    @property
    def fields(self) -> tuple[str, ...]:
        """Names of the offending fields, in the order they were found."""
        return tuple(e.field for e in self.errors)

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([FieldError(field, message)])


# Lookups


class NotFoundError(FleetKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    entity_type: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class WorkTicketNotFoundError(NotFoundError):
    code: str = "TICKET_NOT_FOUND"
    entity_type: str = "WorkTicket"


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"
    entity_type: str = "BulkFuelAccount"


class VehicleNotFoundError(NotFoundError):
    code: str = "VEHICLE_NOT_FOUND"
    entity_type: str = "Vehicle"


class DriverNotFoundError(NotFoundError):
    code: str = "DRIVER_NOT_FOUND"
    entity_type: str = "Driver"


# State machine


class InvalidTransitionError(FleetKernelError):
    """
    A status transition's precondition does not hold.

    Raised when the entity is not in a state from which the requested
    action is allowed, including when a concurrent request moved it first.
    """

    code: str = "INVALID_TRANSITION"
    retryable: bool = True

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id}: "
            f"current status is '{current_status}'"
        )


# Ledger


class LedgerError(FleetKernelError):
    """Base exception for ledger rule violations."""

    code: str = "LEDGER_ERROR"


class AccountInactiveError(LedgerError):
    """Account is suspended or closed and cannot be debited."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str, status: str):
        self.account_id = account_id
        self.status = status
        super().__init__(f"Account {account_id} is not active (status={status})")


class InsufficientCreditError(LedgerError):
    """Debit would take the balance below the account's credit floor."""

    code: str = "INSUFFICIENT_CREDIT"

    def __init__(
        self,
        account_id: str,
        amount: Decimal,
        current_balance: Decimal,
        credit_limit: Decimal,
    ):
        self.account_id = account_id
        self.amount = amount
        self.current_balance = current_balance
        self.credit_limit = credit_limit
        super().__init__(
            f"Insufficient credit on account {account_id}: "
            f"debit {amount} against balance {current_balance} "
            f"(credit limit {credit_limit})"
        )

    @property
    def available(self) -> Decimal:
        """Largest debit the account could still absorb."""
        return self.current_balance + self.credit_limit


# Concurrency


class ConflictError(FleetKernelError):
    """Conditional update kept losing races; bounded retries exhausted."""

    code: str = "CONFLICT"
    retryable: bool = True

    def __init__(self, entity_type: str, entity_id: str, attempts: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"gave up after {attempts} attempt(s)"
        )


# Immutability


class ImmutabilityViolationError(FleetKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
