"""
Work-ticket lifecycle (``fleet_kernel.domain.workflow``).

Responsibility
--------------
Pure definition of the work-ticket state machine: the closed set of
statuses, the closed set of actions, and the single transition table that
says which action moves a ticket from which status to which.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``TICKET_TRANSITIONS`` is the only source of legal transitions.
  ``pending`` -> ``approved`` | ``rejected``; ``approved`` -> ``completed``.
* Terminal statuses (``rejected``, ``completed``) have no outgoing edges.
* Every (status, action) pair resolves through ``next_status()``; unknown
  pairs resolve to ``None`` rather than raising, so callers decide how to
  report the violation.
"""

from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Work ticket lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class TicketAction(str, Enum):
    """Actions that move a ticket between statuses."""

    APPROVE = "approve"
    REJECT = "reject"
    COMPLETE = "complete"


TICKET_TRANSITIONS: dict[TicketStatus, dict[TicketAction, TicketStatus]] = {
    TicketStatus.PENDING: {
        TicketAction.APPROVE: TicketStatus.APPROVED,
        TicketAction.REJECT: TicketStatus.REJECTED,
    },
    TicketStatus.APPROVED: {
        TicketAction.COMPLETE: TicketStatus.COMPLETED,
    },
    TicketStatus.REJECTED: {},
    TicketStatus.COMPLETED: {},
}

TERMINAL_TICKET_STATUSES: frozenset[TicketStatus] = frozenset(
    status for status, edges in TICKET_TRANSITIONS.items() if not edges
)


def _action_sources(
    transitions: dict[TicketStatus, dict[TicketAction, TicketStatus]],
) -> dict[TicketAction, TicketStatus]:
    """Map each action to its only source status."""
    sources: dict[TicketAction, list[TicketStatus]] = {action: [] for action in TicketAction}
    for status, edges in transitions.items():
        for action in edges:
            sources[action].append(status)
    # The ticket CAS guard compares against exactly one expected status.
    ambiguous = {action.value: found for action, found in sources.items() if len(found) != 1}
    if ambiguous:
        raise RuntimeError(
            f"ticket actions without exactly one source status: {ambiguous}"
        )
    return {action: found[0] for action, found in sources.items()}


_ACTION_SOURCES = _action_sources(TICKET_TRANSITIONS)


def required_status(action: TicketAction) -> TicketStatus:
    """The single status from which ``action`` is allowed."""
    return _ACTION_SOURCES[action]


def next_status(current: TicketStatus, action: TicketAction) -> TicketStatus | None:
    """Resulting status of ``action`` from ``current``, or None if illegal."""
    return TICKET_TRANSITIONS[current].get(action)


def is_terminal(status: TicketStatus) -> bool:
    return status in TERMINAL_TICKET_STATUSES


class CompletionPolicy(str, Enum):
    """What a fuel transaction does when its ticket cannot be completed."""

    # Abort the whole fuel transaction
    REJECT = "reject"
    # Keep the record and debit; report the skipped completion
    LOG_AND_PROCEED = "log_and_proceed"
