"""Derived-value calculator.

Pure functions over ledger records. None of them touch a repository or the
workbook; they are safe to call from reports, previews, and the coordinator
alike, and always produce the same answer for the same input regardless of
ordering.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Union

from .constants import (
    ACTIVE_CONTAINER_STATUSES,
    OUTSTANDING_STATUSES,
    ExpenseCategory,
)
from .models import (
    ZERO,
    Container,
    ContainerSupplier,
    Expense,
    PackagingItem,
    Supplier,
    Transaction,
)


@dataclass(frozen=True)
class MonthlyTotal:
    """Expense total for one calendar month."""

    year: int
    month: int
    amount: Decimal

    @property
    def label(self) -> str:
        return date(self.year, self.month, 1).strftime("%b %Y")


@dataclass(frozen=True)
class CategoryTotal:
    category: ExpenseCategory
    total: Decimal
    count: int


@dataclass(frozen=True)
class SupplierSummary:
    supplier_id: str
    name: str
    total_owed: Decimal
    total_paid: Decimal
    balance: Decimal
    transaction_count: int


@dataclass(frozen=True)
class DashboardSummary:
    """Headline figures shown on the dashboard."""

    total_pending_payments: Decimal
    active_containers: int
    low_stock_count: int
    monthly_expenses: Decimal


def supplier_balance(total_owed: Decimal, total_paid: Decimal) -> Decimal:
    """Return ``total_owed - total_paid``; negative when the supplier was overpaid."""

    return total_owed - total_paid


def container_total_value(
    container: Union[Container, Iterable[ContainerSupplier]],
) -> Decimal:
    """Sum the contribution amounts of a container or of a contribution list."""

    contributions = container.suppliers if isinstance(container, Container) else container
    return sum((entry.amount for entry in contributions), ZERO)


def total_pending_payments(transactions: Iterable[Transaction]) -> Decimal:
    """Sum the remaining balances of transactions that are not fully paid."""

    return sum(
        (t.remaining_balance for t in transactions if t.status in OUTSTANDING_STATUSES),
        ZERO,
    )


def is_low_stock(item: PackagingItem) -> bool:
    return item.quantity < item.min_quantity


def low_stock_items(items: Iterable[PackagingItem]) -> List[PackagingItem]:
    """Return items whose quantity has dropped strictly below the minimum."""

    return [item for item in items if is_low_stock(item)]


def monthly_expense_total(expenses: Iterable[Expense], year: int, month: int) -> Decimal:
    """Sum the expenses dated within the given calendar month."""

    return sum(
        (e.amount for e in expenses if e.date.year == year and e.date.month == month),
        ZERO,
    )


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def monthly_expense_series(
    expenses: Iterable[Expense],
    reference: date,
    *,
    months: int = 6,
) -> List[MonthlyTotal]:
    """Build a trend series ending with the month of ``reference``.

    The series is ordered oldest month first and includes months without any
    expenses as zero entries, which keeps charts evenly spaced.
    """

    if months <= 0:
        return []
    snapshot = list(expenses)
    series: List[MonthlyTotal] = []
    for offset in range(-(months - 1), 1):
        year, month = _shift_month(reference.year, reference.month, offset)
        series.append(MonthlyTotal(year, month, monthly_expense_total(snapshot, year, month)))
    return series


def expense_totals_by_category(expenses: Iterable[Expense]) -> List[CategoryTotal]:
    """Return a total and count for every expense category, in enum order."""

    totals: Dict[ExpenseCategory, Decimal] = {category: ZERO for category in ExpenseCategory}
    counts: Dict[ExpenseCategory, int] = {category: 0 for category in ExpenseCategory}
    for expense in expenses:
        totals[expense.category] += expense.amount
        counts[expense.category] += 1
    return [CategoryTotal(category, totals[category], counts[category]) for category in ExpenseCategory]


def supplier_summaries(
    suppliers: Iterable[Supplier],
    transactions: Sequence[Transaction],
) -> List[SupplierSummary]:
    counts: Dict[str, int] = {}
    for transaction in transactions:
        counts[transaction.supplier_id] = counts.get(transaction.supplier_id, 0) + 1
    return [
        SupplierSummary(
            supplier_id=supplier.id,
            name=supplier.name,
            total_owed=supplier.total_owed,
            total_paid=supplier.total_paid,
            balance=supplier.balance,
            transaction_count=counts.get(supplier.id, 0),
        )
        for supplier in suppliers
    ]


def active_container_count(containers: Iterable[Container]) -> int:
    """Count containers that are still being prepared or are at sea."""

    return sum(1 for container in containers if container.status in ACTIVE_CONTAINER_STATUSES)


def dashboard_summary(
    *,
    transactions: Iterable[Transaction],
    containers: Iterable[Container],
    items: Iterable[PackagingItem],
    expenses: Iterable[Expense],
    today: date,
) -> DashboardSummary:
    return DashboardSummary(
        total_pending_payments=total_pending_payments(transactions),
        active_containers=active_container_count(containers),
        low_stock_count=len(low_stock_items(items)),
        monthly_expenses=monthly_expense_total(expenses, today.year, today.month),
    )


__all__ = [
    "MonthlyTotal",
    "CategoryTotal",
    "SupplierSummary",
    "DashboardSummary",
    "supplier_balance",
    "container_total_value",
    "total_pending_payments",
    "is_low_stock",
    "low_stock_items",
    "monthly_expense_total",
    "monthly_expense_series",
    "expense_totals_by_category",
    "supplier_summaries",
    "active_container_count",
    "dashboard_summary",
]
