"""Unit tests for the FIFO payment allocator."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from fruit_ledger import fifo
from fruit_ledger.constants import TransactionStatus


@pytest.fixture
def two_deliveries(make_transaction):
    return [
        make_transaction("T-JAN15", "50", date(2024, 1, 15)),
        make_transaction("T-JAN01", "100", date(2024, 1, 1)),
    ]


def test_payment_clears_oldest_first(two_deliveries):
    result = fifo.allocate_payment(two_deliveries, Decimal("120"))

    assert [(c.transaction_id, c.amount_cleared, c.remaining_balance) for c in result.cleared_transactions] == [
        ("T-JAN01", Decimal("100"), Decimal("0")),
        ("T-JAN15", Decimal("20"), Decimal("30")),
    ]
    assert [u.status for u in result.updates] == [
        TransactionStatus.FULLY_PAID,
        TransactionStatus.PARTIALLY_PAID,
    ]
    assert result.remaining_payment == Decimal("0")
    assert result.allocated == Decimal("120")


def test_overpayment_returns_excess(two_deliveries):
    result = fifo.allocate_payment(two_deliveries, Decimal("200"))

    assert [c.remaining_balance for c in result.cleared_transactions] == [Decimal("0"), Decimal("0")]
    assert all(u.status is TransactionStatus.FULLY_PAID for u in result.updates)
    assert result.remaining_payment == Decimal("50")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
def test_non_positive_payment_allocates_nothing(two_deliveries, amount):
    result = fifo.allocate_payment(two_deliveries, amount)

    assert result.is_empty
    assert result.updates == ()
    assert result.remaining_payment == amount


def test_fully_paid_transactions_are_ignored(make_transaction):
    paid = make_transaction("T-PAID", "80", date(2023, 12, 1), remaining="0")
    open_one = make_transaction("T-OPEN", "40", date(2024, 2, 1))

    result = fifo.allocate_payment([paid, open_one], Decimal("10"))

    assert [c.transaction_id for c in result.cleared_transactions] == ["T-OPEN"]


def test_partially_paid_balance_is_used(make_transaction):
    partial = make_transaction("T-PART", "100", date(2024, 1, 1), remaining="40")

    result = fifo.allocate_payment([partial], Decimal("40"))

    assert result.cleared_transactions[0].amount_cleared == Decimal("40")
    assert result.updates[0].status is TransactionStatus.FULLY_PAID


def test_same_date_keeps_input_order(make_transaction):
    first = make_transaction("T-A", "30", date(2024, 3, 1))
    second = make_transaction("T-B", "30", date(2024, 3, 1))

    result = fifo.allocate_payment([first, second], Decimal("30"))

    assert [c.transaction_id for c in result.cleared_transactions] == ["T-A"]


def test_zero_balance_outstanding_entry_is_skipped(make_transaction):
    # Pending with nothing left to pay can appear after an edit.
    odd = make_transaction("T-ODD", "0", date(2024, 1, 1), status=TransactionStatus.PENDING)
    real = make_transaction("T-REAL", "25", date(2024, 1, 2))

    result = fifo.allocate_payment([odd, real], Decimal("10"))

    assert [c.transaction_id for c in result.cleared_transactions] == ["T-REAL"]


def test_allocation_does_not_mutate_inputs(two_deliveries):
    snapshot = [replace(t) for t in two_deliveries]

    fifo.allocate_payment(two_deliveries, Decimal("120"))

    assert two_deliveries == snapshot


def test_no_outstanding_transactions_gives_empty_result(make_transaction):
    paid = make_transaction("T-PAID", "80", date(2023, 12, 1), remaining="0")

    result = fifo.allocate_payment([paid], Decimal("10"))

    assert result.is_empty
    assert result.remaining_payment == Decimal("10")


def test_preview_matches_allocation(two_deliveries):
    assert fifo.preview_allocation(two_deliveries, Decimal("75")) == fifo.allocate_payment(
        two_deliveries, Decimal("75")
    )


def test_outstanding_in_fifo_order_sorts_by_date(two_deliveries):
    ordered = fifo.outstanding_in_fifo_order(two_deliveries)

    assert [t.id for t in ordered] == ["T-JAN01", "T-JAN15"]
