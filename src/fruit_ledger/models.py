"""Record types for every ledger aggregate.

All records are frozen dataclasses. The coordinator never mutates a record in
place; it builds a replacement with :func:`dataclasses.replace` and stores it
back into the owning repository. Embedded lists are tuples so that a record
handed out to a caller cannot change underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from .constants import ContainerStatus, ExpenseCategory, TransactionStatus


ZERO = Decimal("0")


@dataclass(frozen=True)
class Supplier:
    """Fruit supplier and its running financial position."""

    id: str
    name: str
    contact: str = ""
    email: str = ""
    phone: str = ""
    fruit_specialties: tuple[str, ...] = ()
    total_owed: Decimal = ZERO
    total_paid: Decimal = ZERO
    balance: Decimal = ZERO


@dataclass(frozen=True)
class Transaction:
    """One fruit delivery owed to a supplier."""

    id: str
    supplier_id: str
    supplier_name: str
    fruit_type: str
    quantity: Decimal
    amount: Decimal
    date: date
    status: TransactionStatus
    remaining_balance: Decimal
    container_id: Optional[str] = None


@dataclass(frozen=True)
class TransactionCleared:
    """Portion of a payment applied to a single transaction."""

    transaction_id: str
    amount_cleared: Decimal
    remaining_balance: Decimal


@dataclass(frozen=True)
class Invoice:
    """Immutable record of a single payment to a supplier."""

    id: str
    supplier_id: str
    supplier_name: str
    amount: Decimal
    date: date
    payment_method: str
    transactions_cleared: tuple[TransactionCleared, ...] = ()


@dataclass(frozen=True)
class Consignee:
    """Receiving party for a container shipment."""

    name: str
    company: str = ""
    location: str = ""
    city: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    additional_info: Optional[str] = None


@dataclass(frozen=True)
class ContainerSupplier:
    """Denormalized summary of one supply loaded into a container."""

    supplier_id: str
    supplier_name: str
    fruit_type: str
    quantity: Decimal
    transaction_id: str
    amount: Decimal


@dataclass(frozen=True)
class Container:
    """Shipping container and the supplier contributions loaded into it."""

    id: str
    container_number: str
    status: ContainerStatus = ContainerStatus.PREPARING
    suppliers: tuple[ContainerSupplier, ...] = ()
    consignee: Optional[Consignee] = None
    ship_date: Optional[date] = None
    delivery_date: Optional[date] = None
    total_value: Decimal = ZERO


@dataclass(frozen=True)
class Supply:
    """Delivery of fruit by one supplier into one container."""

    id: str
    date: date
    container_id: str
    container_number: str
    supplier_id: str
    supplier_name: str
    fruit_type: str
    quantity: Decimal
    price: Decimal
    total_amount: Decimal
    transaction_id: str
    details: str = ""


@dataclass(frozen=True)
class PackagingItem:
    """Packaging inventory line."""

    id: str
    name: str
    category: str
    quantity: Decimal
    min_quantity: Decimal
    unit: str
    last_restocked: Optional[datetime] = None


@dataclass(frozen=True)
class Expense:
    """Expense ledger entry, optionally tied to a supplier and an invoice."""

    id: str
    category: ExpenseCategory
    description: str
    amount: Decimal
    date: date
    supplier_id: Optional[str] = None
    invoice_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Patch types
#
# Each patch lists exactly the fields its update operation may change. A field
# left as ``None`` keeps the stored value.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SupplierPatch:
    name: Optional[str] = None
    contact: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    fruit_specialties: Optional[tuple[str, ...]] = None


@dataclass(frozen=True)
class TransactionPatch:
    fruit_type: Optional[str] = None
    quantity: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    date: Optional[date] = None
    container_id: Optional[str] = None
    remaining_balance: Optional[Decimal] = None


@dataclass(frozen=True)
class SupplyPatch:
    date: Optional[date] = None
    container_id: Optional[str] = None
    fruit_type: Optional[str] = None
    quantity: Optional[Decimal] = None
    price: Optional[Decimal] = None
    details: Optional[str] = None


@dataclass(frozen=True)
class ContainerPatch:
    container_number: Optional[str] = None
    status: Optional[ContainerStatus] = None
    suppliers: Optional[tuple[ContainerSupplier, ...]] = None
    consignee: Optional[Consignee] = None
    ship_date: Optional[date] = None
    delivery_date: Optional[date] = None


@dataclass(frozen=True)
class PackagingItemPatch:
    name: Optional[str] = None
    category: Optional[str] = None
    quantity: Optional[Decimal] = None
    min_quantity: Optional[Decimal] = None
    unit: Optional[str] = None


@dataclass(frozen=True)
class ExpensePatch:
    category: Optional[ExpenseCategory] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    date: Optional[date] = None


def patch_values(patch: object) -> dict[str, object]:
    """Return the fields of ``patch`` that were explicitly provided."""

    return {name: value for name, value in vars(patch).items() if value is not None}


__all__ = [
    "ZERO",
    "Supplier",
    "Transaction",
    "TransactionCleared",
    "Invoice",
    "Consignee",
    "ContainerSupplier",
    "Container",
    "Supply",
    "PackagingItem",
    "Expense",
    "SupplierPatch",
    "TransactionPatch",
    "SupplyPatch",
    "ContainerPatch",
    "PackagingItemPatch",
    "ExpensePatch",
    "patch_values",
]
