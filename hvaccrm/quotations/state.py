"""Quotation status transition rules."""

from __future__ import annotations

from hvaccrm.models import QuotationStatus
from hvaccrm.quotations.errors import InvalidStateError

S = QuotationStatus

TRANSITIONS: dict[QuotationStatus, frozenset[QuotationStatus]] = {
    S.DRAFT: frozenset({S.SENT}),
    S.SENT: frozenset({S.VIEWED, S.APPROVED, S.REJECTED, S.EXPIRED}),
    S.VIEWED: frozenset({S.APPROVED, S.REJECTED, S.EXPIRED}),
    S.APPROVED: frozenset(),
    S.REJECTED: frozenset(),
    S.EXPIRED: frozenset(),
    S.SUPERSEDED: frozenset(),
}

TERMINAL_STATES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Statuses counted as "awaiting the customer"
OPEN_STATES = frozenset({S.SENT, S.VIEWED})


def is_terminal(status: QuotationStatus | str) -> bool:
    return QuotationStatus(status) in TERMINAL_STATES


def check_transition(
    current: QuotationStatus | str,
    target: QuotationStatus | str,
    strict: bool = True,
) -> None:
    """Raise InvalidStateError if ``current -> target`` is not allowed.

    In non-strict mode any move is accepted except out of a terminal state.
    ``superseded`` is never a valid target here; only versioning sets it.
    """
    current = QuotationStatus(current)
    target = QuotationStatus(target)

    if target == S.SUPERSEDED:
        raise InvalidStateError("Quotations are superseded by creating a new version")
    if current in TERMINAL_STATES:
        raise InvalidStateError(f"Quotation is {current.value}; create a new version instead")
    if strict and target not in TRANSITIONS[current]:
        raise InvalidStateError(f"Cannot move quotation from {current.value} to {target.value}")
