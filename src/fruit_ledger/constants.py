"""Enumerations shared across Fruit Ledger modules.

Centralises domain constants so that the data access layer (DAL), the
coordinator, and the command-line front end rely on a single source of truth
for status labels, expense categories, and worksheet names.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

DEFAULT_PAYMENT_METHOD = "Bank Transfer"


class TransactionStatus(str, Enum):
    """Enumerate the payment states a delivery transaction moves through."""

    PENDING = "Pending"
    PARTIALLY_PAID = "Partially Paid"
    FULLY_PAID = "Fully Paid"


# Statuses that still carry an outstanding balance.
OUTSTANDING_STATUSES: frozenset[TransactionStatus] = frozenset(
    {TransactionStatus.PENDING, TransactionStatus.PARTIALLY_PAID}
)


class ContainerStatus(str, Enum):
    """Enumerate the shipping states of a container."""

    PREPARING = "Preparing"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"


ACTIVE_CONTAINER_STATUSES: frozenset[ContainerStatus] = frozenset(
    {ContainerStatus.PREPARING, ContainerStatus.IN_TRANSIT}
)


class ExpenseCategory(str, Enum):
    """Enumerate the expense ledger categories."""

    SUPPLIER_PAYMENT = "Supplier Payment"
    PACKAGING_MATERIALS = "Packaging Materials"
    SHIPPING = "Shipping"
    LABOR = "Labor"
    OTHER = "Other"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL.

    Each top-level collection is stored on its own sheet. Lists embedded in a
    record (invoice allocations, container contributions) are flattened onto
    companion sheets keyed by the owning record id.
    """

    SUPPLIERS = "suppliers"
    TRANSACTIONS = "transactions"
    INVOICES = "invoices"
    INVOICE_ALLOCATIONS = "invoiceAllocations"
    CONTAINERS = "containers"
    CONTAINER_SUPPLIERS = "containerSuppliers"
    SUPPLIES = "supplies"
    PACKAGING_ITEMS = "packagingItems"
    EXPENSES = "expenses"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "DEFAULT_PAYMENT_METHOD",
    "TransactionStatus",
    "OUTSTANDING_STATUSES",
    "ContainerStatus",
    "ACTIVE_CONTAINER_STATUSES",
    "ExpenseCategory",
    "SheetName",
]
