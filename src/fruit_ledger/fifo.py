"""First-in, first-out payment allocation.

A supplier payment is spread over that supplier's outstanding deliveries,
oldest first, fully clearing each before moving on to the next. The
allocation is a pure computation: it reports what *would* change and leaves
applying the result to the coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List

from .constants import OUTSTANDING_STATUSES, TransactionStatus
from .models import ZERO, Transaction, TransactionCleared


@dataclass(frozen=True)
class TransactionUpdate:
    """New balance and status for one transaction touched by a payment."""

    transaction_id: str
    remaining_balance: Decimal
    status: TransactionStatus


@dataclass(frozen=True)
class AllocationResult:
    """Outcome of allocating a payment.

    ``remaining_payment`` is whatever part of the payment exceeded every
    outstanding obligation. It is never negative.
    """

    cleared_transactions: tuple[TransactionCleared, ...]
    updates: tuple[TransactionUpdate, ...]
    remaining_payment: Decimal

    @property
    def allocated(self) -> Decimal:
        return sum((entry.amount_cleared for entry in self.cleared_transactions), ZERO)

    @property
    def is_empty(self) -> bool:
        return not self.cleared_transactions


def outstanding_in_fifo_order(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Return the unpaid transactions sorted oldest first.

    :func:`sorted` is stable, so deliveries sharing a date keep the order in
    which they were supplied.
    """

    pending = [t for t in transactions if t.status in OUTSTANDING_STATUSES]
    return sorted(pending, key=lambda t: t.date)


def allocate_payment(transactions: Iterable[Transaction], payment_amount: Decimal) -> AllocationResult:
    """Allocate ``payment_amount`` across ``transactions`` using FIFO.

    Args:
        transactions (Iterable[Transaction]): A supplier's transaction history.
            Fully paid entries are ignored.
        payment_amount (Decimal): Amount received. Zero or negative amounts
            allocate nothing and come back unchanged as ``remaining_payment``.

    Returns:
        AllocationResult: Cleared entries in allocation order, the matching
            balance/status updates, and any unallocated excess.
    """

    if payment_amount <= ZERO:
        return AllocationResult((), (), payment_amount)

    cleared: List[TransactionCleared] = []
    updates: List[TransactionUpdate] = []
    remaining = payment_amount

    for transaction in outstanding_in_fifo_order(transactions):
        if remaining <= ZERO:
            break
        to_allocate = min(remaining, transaction.remaining_balance)
        if to_allocate <= ZERO:
            continue
        new_balance = transaction.remaining_balance - to_allocate
        status = TransactionStatus.FULLY_PAID if new_balance == ZERO else TransactionStatus.PARTIALLY_PAID
        cleared.append(TransactionCleared(transaction.id, to_allocate, new_balance))
        updates.append(TransactionUpdate(transaction.id, new_balance, status))
        remaining -= to_allocate

    return AllocationResult(tuple(cleared), tuple(updates), remaining)


def preview_allocation(transactions: Iterable[Transaction], payment_amount: Decimal) -> AllocationResult:
    """Compute an allocation for display before any invoice is recorded."""

    return allocate_payment(transactions, payment_amount)


__all__ = [
    "TransactionUpdate",
    "AllocationResult",
    "outstanding_in_fifo_order",
    "allocate_payment",
    "preview_allocation",
]
