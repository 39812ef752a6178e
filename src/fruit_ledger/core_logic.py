"""Business logic layer for Fruit Ledger.

This module is the coordinator that keeps suppliers, transactions, supplies,
containers, invoices, packaging and expenses consistent with one another. The
repositories in :mod:`fruit_ledger.repositories` each own a single aggregate;
every effect that crosses aggregates is applied here, in a fixed order, after
all referenced records have been looked up and all input validated.

The workbook is only touched when loading or persisting a
:class:`RuntimeContext`; every operation in between works on the in-memory
:class:`~fruit_ledger.repositories.LedgerStore`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from openpyxl.workbook import Workbook

from . import calculations, data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, ContainerStatus, ExpenseCategory, TransactionStatus
from .errors import BusinessRuleViolation, EmptyAllocationError, NotFoundError, ValidationError
from .fifo import AllocationResult, allocate_payment, preview_allocation
from .models import (
    ZERO,
    Consignee,
    Container,
    ContainerPatch,
    ContainerSupplier,
    Expense,
    ExpensePatch,
    Invoice,
    PackagingItem,
    PackagingItemPatch,
    Supplier,
    SupplierPatch,
    Supply,
    SupplyPatch,
    Transaction,
    TransactionPatch,
    patch_values,
)
from .repositories import LedgerStore


@dataclass(frozen=True)
class RuntimeContext:
    """Configuration, workbook handle and in-memory store used by the coordinator."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    store: LedgerStore = field(default_factory=LedgerStore)


# ---------------------------------------------------------------------------
# Command objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateSupplierCommand:
    name: str
    contact: str = ""
    email: str = ""
    phone: str = ""
    fruit_specialties: tuple[str, ...] = ()


@dataclass(frozen=True)
class CreateTransactionCommand:
    """User intent for recording an amount owed to a supplier."""

    supplier_id: str
    fruit_type: str
    quantity: Decimal
    amount: Decimal
    date: date
    container_id: Optional[str] = None


@dataclass(frozen=True)
class CreateSupplyCommand:
    """User intent for loading one supplier's fruit into a container."""

    supplier_id: str
    container_id: str
    fruit_type: str
    quantity: Decimal
    price: Decimal
    date: date
    details: str = ""


@dataclass(frozen=True)
class CreateInvoiceCommand:
    """User intent for paying a supplier.

    ``payment_method`` falls back to the configured default and ``date`` to
    today when omitted.
    """

    supplier_id: str
    amount: Decimal
    date: Optional[date] = None
    payment_method: Optional[str] = None


@dataclass(frozen=True)
class CreateContainerCommand:
    container_number: str
    status: ContainerStatus = ContainerStatus.PREPARING
    consignee: Optional[Consignee] = None
    ship_date: Optional[date] = None
    delivery_date: Optional[date] = None
    suppliers: tuple[ContainerSupplier, ...] = ()


@dataclass(frozen=True)
class CreatePackagingItemCommand:
    name: str
    category: str
    quantity: Decimal
    min_quantity: Decimal
    unit: str


@dataclass(frozen=True)
class CreateExpenseCommand:
    category: ExpenseCategory
    description: str
    amount: Decimal
    date: date
    supplier_id: Optional[str] = None
    invoice_id: Optional[str] = None


@dataclass(frozen=True)
class InvoiceOutcome:
    """Everything a recorded payment produced.

    ``unallocated`` is the part of the payment that exceeded the supplier's
    outstanding balances. It is not credited anywhere.
    """

    invoice: Invoice
    expense: Expense
    unallocated: Decimal


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration, open the workbook and populate the ledger store.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Context ready for coordinator operations.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options or worksheets are
            missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    store = data_manager.load_store(workbook)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook, store=store)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to work against a workbook written for another schema version.

    Raises:
        RuntimeError: If the configured schema version does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Write the store back into the workbook and save it to the configured path."""
    data_manager.write_store(context.workbook, context.store)
    data_manager.save_workbook(context.workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook and store, discarding unsaved in-memory changes.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    store = data_manager.load_store(workbook)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook, store=store)


# ---------------------------------------------------------------------------
# Validation and small helpers
# ---------------------------------------------------------------------------


def generate_id(prefix: str) -> str:
    """Return an opaque identifier such as ``SUP-3f2a9c0d1e7b4a55``."""
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def current_date() -> date:
    return datetime.now(UTC).date()


def require_text(value: Optional[str], label: str) -> str:
    """Return ``value`` stripped, raising :class:`ValidationError` when blank."""
    text = (value or "").strip()
    if not text:
        log.error("%s validation failed: empty value", label)
        raise ValidationError(f"{label} must not be empty")
    return text


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValidationError: If ``quantity`` is zero or negative.
    """
    if quantity <= ZERO:
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError("Quantity must be greater than zero")


def require_nonnegative_quantity(quantity: Decimal) -> None:
    if quantity < ZERO:
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError("Quantity must be zero or positive")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValidationError: If ``amount`` is less than zero.
    """
    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValidationError("Amount must be zero or positive")


def parse_decimal(raw: object, label: str = "Value") -> Decimal:
    """Convert user input into a :class:`Decimal` or raise :class:`ValidationError`."""
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError) as exc:
        log.error("%s is not a number: %r", label, raw)
        raise ValidationError(f"{label} must be a number, got {raw!r}") from exc
    if not value.is_finite():
        log.error("%s is not finite: %r", label, raw)
        raise ValidationError(f"{label} must be a finite number")
    return value


def parse_date(raw: str, label: str = "Date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` string."""
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError as exc:
        log.error("%s is not an ISO date: %r", label, raw)
        raise ValidationError(f"{label} must use YYYY-MM-DD, got {raw!r}") from exc


def derive_status(amount: Decimal, remaining_balance: Decimal) -> TransactionStatus:
    """Map a transaction's remaining balance onto its payment status."""
    if remaining_balance <= ZERO:
        return TransactionStatus.FULLY_PAID
    if remaining_balance < amount:
        return TransactionStatus.PARTIALLY_PAID
    return TransactionStatus.PENDING


def _clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(value, upper))


def _refresh_supplier_owed(context: RuntimeContext, supplier_id: str) -> Optional[Supplier]:
    """Recompute ``total_owed`` from the supplier's transactions and refresh the balance."""
    supplier = context.store.suppliers.find(supplier_id)
    if supplier is None:
        log.warning("Cannot refresh totals for missing supplier '%s'", supplier_id)
        return None
    total_owed = sum((t.amount for t in context.store.transactions.for_supplier(supplier_id)), ZERO)
    updated = replace(
        supplier,
        total_owed=total_owed,
        balance=calculations.supplier_balance(total_owed, supplier.total_paid),
    )
    return context.store.suppliers.replace(updated)


def _store_container(context: RuntimeContext, container: Container, *, new: bool = False) -> Container:
    """Save ``container`` with ``total_value`` recomputed from its contributions."""
    container = replace(container, total_value=calculations.container_total_value(container))
    if new:
        return context.store.containers.add(container)
    return context.store.containers.replace(container)


def _without_contribution(container: Container, transaction_id: str) -> Container:
    return replace(
        container,
        suppliers=tuple(entry for entry in container.suppliers if entry.transaction_id != transaction_id),
    )


def _contribution_for(supply: Supply) -> ContainerSupplier:
    return ContainerSupplier(
        supplier_id=supply.supplier_id,
        supplier_name=supply.supplier_name,
        fruit_type=supply.fruit_type,
        quantity=supply.quantity,
        transaction_id=supply.transaction_id,
        amount=supply.total_amount,
    )


# ---------------------------------------------------------------------------
# Read accessors
# ---------------------------------------------------------------------------


def list_suppliers(context: RuntimeContext) -> List[Supplier]:
    return context.store.suppliers.all()


def list_transactions(context: RuntimeContext) -> List[Transaction]:
    return context.store.transactions.all()


def list_invoices(context: RuntimeContext) -> List[Invoice]:
    return context.store.invoices.all()


def list_containers(context: RuntimeContext) -> List[Container]:
    return context.store.containers.all()


def list_supplies(context: RuntimeContext) -> List[Supply]:
    return context.store.supplies.all()


def list_packaging_items(context: RuntimeContext) -> List[PackagingItem]:
    return context.store.packaging_items.all()


def list_expenses(context: RuntimeContext) -> List[Expense]:
    return context.store.expenses.all()


def get_supplier(context: RuntimeContext, supplier_id: str) -> Supplier:
    return context.store.suppliers.get(supplier_id)


def get_transaction(context: RuntimeContext, transaction_id: str) -> Transaction:
    return context.store.transactions.get(transaction_id)


def get_invoice(context: RuntimeContext, invoice_id: str) -> Invoice:
    return context.store.invoices.get(invoice_id)


def get_container(context: RuntimeContext, container_id: str) -> Container:
    return context.store.containers.get(container_id)


def get_supply(context: RuntimeContext, supply_id: str) -> Supply:
    return context.store.supplies.get(supply_id)


def get_packaging_item(context: RuntimeContext, item_id: str) -> PackagingItem:
    return context.store.packaging_items.get(item_id)


def get_expense(context: RuntimeContext, expense_id: str) -> Expense:
    return context.store.expenses.get(expense_id)


def transactions_for_supplier(context: RuntimeContext, supplier_id: str) -> List[Transaction]:
    return context.store.transactions.for_supplier(supplier_id)


def transactions_for_container(context: RuntimeContext, container_id: str) -> List[Transaction]:
    return context.store.transactions.for_container(container_id)


def invoices_for_supplier(context: RuntimeContext, supplier_id: str) -> List[Invoice]:
    return context.store.invoices.for_supplier(supplier_id)


def supplies_for_container(context: RuntimeContext, container_id: str) -> List[Supply]:
    return context.store.supplies.for_container(container_id)


def supplies_for_supplier(context: RuntimeContext, supplier_id: str) -> List[Supply]:
    return context.store.supplies.for_supplier(supplier_id)


def expenses_for_supplier(context: RuntimeContext, supplier_id: str) -> List[Expense]:
    return context.store.expenses.for_supplier(supplier_id)


def expenses_for_category(context: RuntimeContext, category: ExpenseCategory) -> List[Expense]:
    return context.store.expenses.for_category(category)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def pending_payments_total(context: RuntimeContext) -> Decimal:
    return calculations.total_pending_payments(context.store.transactions)


def low_stock_report(context: RuntimeContext) -> List[PackagingItem]:
    return calculations.low_stock_items(context.store.packaging_items)


def supplier_report(context: RuntimeContext) -> List[calculations.SupplierSummary]:
    return calculations.supplier_summaries(context.store.suppliers, context.store.transactions.all())


def expense_breakdown(context: RuntimeContext) -> List[calculations.CategoryTotal]:
    return calculations.expense_totals_by_category(context.store.expenses)


def expense_trend(
    context: RuntimeContext,
    *,
    reference: Optional[date] = None,
    months: int = 6,
) -> List[calculations.MonthlyTotal]:
    return calculations.monthly_expense_series(
        context.store.expenses,
        reference or current_date(),
        months=months,
    )


def dashboard(context: RuntimeContext, *, today: Optional[date] = None) -> calculations.DashboardSummary:
    """Compute the headline figures for ``today`` (defaults to the current UTC date)."""
    store = context.store
    return calculations.dashboard_summary(
        transactions=store.transactions,
        containers=store.containers,
        items=store.packaging_items,
        expenses=store.expenses,
        today=today or current_date(),
    )


def preview_payment(context: RuntimeContext, supplier_id: str, amount: Decimal) -> AllocationResult:
    """Show how ``amount`` would be spread over the supplier's unpaid deliveries.

    Nothing is recorded.

    Raises:
        NotFoundError: If the supplier is unknown.
    """
    supplier = get_supplier(context, supplier_id)
    return preview_allocation(context.store.transactions.for_supplier(supplier.id), amount)


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------


def create_supplier(context: RuntimeContext, command: CreateSupplierCommand) -> Supplier:
    """Register a supplier with zero owed, paid and balance totals.

    Raises:
        ValidationError: If the name is blank.
    """
    name = require_text(command.name, "Supplier name")
    supplier = Supplier(
        id=generate_id("SUP"),
        name=name,
        contact=command.contact,
        email=command.email,
        phone=command.phone,
        fruit_specialties=tuple(command.fruit_specialties),
    )
    context.store.suppliers.add(supplier)
    log.info("Created supplier '%s' (%s)", supplier.id, supplier.name)
    return supplier


def update_supplier(context: RuntimeContext, supplier_id: str, patch: SupplierPatch) -> Supplier:
    """Change a supplier's descriptive fields. Financial totals are never patched."""
    supplier = get_supplier(context, supplier_id)
    values = patch_values(patch)
    if "name" in values:
        values["name"] = require_text(patch.name, "Supplier name")
    updated = context.store.suppliers.replace(replace(supplier, **values))
    log.info("Updated supplier '%s' fields: %s", supplier_id, ", ".join(sorted(values)) or "none")
    return updated


def delete_supplier(context: RuntimeContext, supplier_id: str) -> Supplier:
    """Remove a supplier that no ledger record refers to.

    Raises:
        NotFoundError: If the supplier is unknown.
        ValidationError: If transactions, supplies or invoices still reference
            the supplier.
    """
    supplier = get_supplier(context, supplier_id)
    store = context.store
    if store.transactions.for_supplier(supplier_id) or store.supplies.for_supplier(supplier_id) or store.invoices.for_supplier(supplier_id):
        log.error("Refusing to delete supplier '%s' with recorded history", supplier_id)
        raise ValidationError(f"Supplier '{supplier.name}' still has transactions, supplies or invoices")
    store.suppliers.remove(supplier_id)
    log.info("Deleted supplier '%s'", supplier_id)
    return supplier


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def create_transaction(context: RuntimeContext, command: CreateTransactionCommand) -> Transaction:
    """Record an amount owed to a supplier and refresh the supplier's totals.

    The new transaction starts as ``Pending`` with its whole amount
    outstanding. The supplier's ``total_owed`` is recomputed from all of its
    transactions rather than incremented.

    Args:
        context (RuntimeContext): Active runtime context.
        command (CreateTransactionCommand): Delivery details.

    Returns:
        Transaction: The stored transaction.

    Raises:
        NotFoundError: If the supplier (or the given container) is unknown.
        ValidationError: If the quantity is not positive or the amount is
            negative.
    """
    supplier = get_supplier(context, command.supplier_id)
    if command.container_id is not None:
        get_container(context, command.container_id)
    require_positive_quantity(command.quantity)
    require_nonnegative_money(command.amount)

    transaction = Transaction(
        id=generate_id("TXN"),
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        fruit_type=command.fruit_type,
        quantity=command.quantity,
        amount=command.amount,
        date=command.date,
        status=TransactionStatus.PENDING,
        remaining_balance=command.amount,
        container_id=command.container_id,
    )
    context.store.transactions.add(transaction)
    _refresh_supplier_owed(context, supplier.id)
    log.info(
        "Recorded transaction '%s' for supplier '%s' (amount=%s)",
        transaction.id,
        supplier.id,
        transaction.amount,
    )
    return transaction


def update_transaction(context: RuntimeContext, transaction_id: str, patch: TransactionPatch) -> Transaction:
    """Apply ``patch`` to a transaction, keeping balance and status consistent.

    When ``amount`` changes without an explicit ``remaining_balance``, the
    difference is added to the outstanding balance and the result clamped to
    ``[0, amount]``. An explicit ``remaining_balance`` must already lie in that
    range. The status is always derived from the final balance.

    Raises:
        NotFoundError: If the transaction or a referenced container is unknown.
        ValidationError: If a patched value is out of range.
    """
    transaction = get_transaction(context, transaction_id)
    values = patch_values(patch)
    if patch.container_id is not None:
        get_container(context, patch.container_id)
    if patch.quantity is not None:
        require_positive_quantity(patch.quantity)
    if patch.amount is not None:
        require_nonnegative_money(patch.amount)

    amount = values.pop("amount", transaction.amount)
    if patch.remaining_balance is not None:
        remaining = values.pop("remaining_balance")
        if remaining < ZERO or remaining > amount:
            log.error("Remaining balance %s outside [0, %s] for '%s'", remaining, amount, transaction_id)
            raise ValidationError(f"Remaining balance must be between 0 and {amount}")
    else:
        remaining = _clamp(transaction.remaining_balance + (amount - transaction.amount), ZERO, amount)

    updated = replace(
        transaction,
        **values,
        amount=amount,
        remaining_balance=remaining,
        status=derive_status(amount, remaining),
    )
    context.store.transactions.replace(updated)
    if amount != transaction.amount:
        _refresh_supplier_owed(context, transaction.supplier_id)
    log.info("Updated transaction '%s' (amount=%s, remaining=%s)", transaction_id, amount, remaining)
    return updated


def delete_transaction(context: RuntimeContext, transaction_id: str) -> Transaction:
    """Remove a transaction and recompute its supplier's ``total_owed``."""
    transaction = context.store.transactions.remove(transaction_id)
    _refresh_supplier_owed(context, transaction.supplier_id)
    log.info("Deleted transaction '%s'", transaction_id)
    return transaction


# ---------------------------------------------------------------------------
# Supplies
# ---------------------------------------------------------------------------


def create_supply(context: RuntimeContext, command: CreateSupplyCommand) -> Supply:
    """Record fruit delivered into a container and everything it implies.

    Steps, in order:

    1. Resolve the supplier and the container and validate the input.
    2. Compute ``total_amount = quantity * price``.
    3. Create the linked transaction (which refreshes the supplier totals).
    4. Append a contribution to the container and recompute its value.
    5. Store the supply with the transaction id.

    Returns:
        Supply: The stored supply.

    Raises:
        NotFoundError: If the supplier or container is unknown. Nothing is
            mutated in that case.
        ValidationError: If quantity, price or fruit type is invalid.
    """
    supplier = get_supplier(context, command.supplier_id)
    container = get_container(context, command.container_id)
    fruit_type = require_text(command.fruit_type, "Fruit type")
    require_positive_quantity(command.quantity)
    require_nonnegative_money(command.price)

    total_amount = command.quantity * command.price
    transaction = create_transaction(
        context,
        CreateTransactionCommand(
            supplier_id=supplier.id,
            fruit_type=fruit_type,
            quantity=command.quantity,
            amount=total_amount,
            date=command.date,
            container_id=container.id,
        ),
    )

    supply = Supply(
        id=generate_id("SPL"),
        date=command.date,
        container_id=container.id,
        container_number=container.container_number,
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        fruit_type=fruit_type,
        quantity=command.quantity,
        price=command.price,
        total_amount=total_amount,
        transaction_id=transaction.id,
        details=command.details,
    )
    _store_container(context, replace(container, suppliers=container.suppliers + (_contribution_for(supply),)))
    context.store.supplies.add(supply)
    log.info(
        "Recorded supply '%s' of %s %s from '%s' into container '%s' (total=%s)",
        supply.id,
        supply.quantity,
        supply.fruit_type,
        supplier.id,
        container.container_number,
        total_amount,
    )
    return supply


def update_supply(context: RuntimeContext, supply_id: str, patch: SupplyPatch) -> Supply:
    """Edit a supply and carry the change through transaction and containers.

    The linked transaction takes the new amount, date, fruit, quantity and
    container. Its outstanding balance moves by the same delta as the supply
    total, clamped to ``[0, total_amount]``; earlier payments are not
    re-allocated. When the container changes, the contribution moves from the
    old container to the new one; otherwise it is updated in place.

    Raises:
        NotFoundError: If the supply or the target container is unknown.
        ValidationError: If quantity, price or fruit type is invalid.
    """
    supply = get_supply(context, supply_id)
    values = patch_values(patch)
    moving = patch.container_id is not None and patch.container_id != supply.container_id
    target_container = get_container(context, patch.container_id) if moving else None
    if patch.quantity is not None:
        require_positive_quantity(patch.quantity)
    if patch.price is not None:
        require_nonnegative_money(patch.price)
    if patch.fruit_type is not None:
        values["fruit_type"] = require_text(patch.fruit_type, "Fruit type")

    quantity = values.get("quantity", supply.quantity)
    price = values.get("price", supply.price)
    total_amount = quantity * price
    updated = replace(supply, **values, total_amount=total_amount)
    if target_container is not None:
        updated = replace(updated, container_number=target_container.container_number)

    store = context.store
    transaction = store.transactions.find(supply.transaction_id)
    if transaction is None:
        log.warning("Supply '%s' references missing transaction '%s'", supply_id, supply.transaction_id)
    else:
        delta = total_amount - supply.total_amount
        remaining = _clamp(transaction.remaining_balance + delta, ZERO, total_amount)
        store.transactions.replace(
            replace(
                transaction,
                amount=total_amount,
                date=updated.date,
                fruit_type=updated.fruit_type,
                quantity=updated.quantity,
                container_id=updated.container_id,
                remaining_balance=remaining,
                status=derive_status(total_amount, remaining),
            )
        )
        _refresh_supplier_owed(context, transaction.supplier_id)

    contribution = _contribution_for(updated)
    if target_container is not None:
        previous = store.containers.find(supply.container_id)
        if previous is not None:
            _store_container(context, _without_contribution(previous, supply.transaction_id))
        _store_container(context, replace(target_container, suppliers=target_container.suppliers + (contribution,)))
        log.info("Moved supply '%s' from container '%s' to '%s'", supply_id, supply.container_id, target_container.id)
    else:
        container = store.containers.find(supply.container_id)
        if container is not None:
            entries = tuple(
                contribution if entry.transaction_id == supply.transaction_id else entry
                for entry in container.suppliers
            )
            _store_container(context, replace(container, suppliers=entries))

    store.supplies.replace(updated)
    log.info("Updated supply '%s' (total=%s)", supply_id, total_amount)
    return updated


def delete_supply(context: RuntimeContext, supply_id: str) -> Supply:
    """Remove a supply, its container contribution and its linked transaction."""
    supply = get_supply(context, supply_id)
    store = context.store
    container = store.containers.find(supply.container_id)
    if container is not None:
        _store_container(context, _without_contribution(container, supply.transaction_id))
    if supply.transaction_id in store.transactions:
        delete_transaction(context, supply.transaction_id)
    store.supplies.remove(supply_id)
    log.info("Deleted supply '%s'", supply_id)
    return supply


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


def create_invoice(context: RuntimeContext, command: CreateInvoiceCommand) -> InvoiceOutcome:
    """Pay a supplier, clearing outstanding deliveries oldest first.

    Steps, in order:

    1. Resolve the supplier.
    2. Allocate the payment over the supplier's transactions (FIFO).
    3. Reject the payment if nothing was cleared.
    4. Store the invoice with its cleared entries.
    5. Apply each cleared entry's balance and status to its transaction.
    6. Add the full amount to the supplier's ``total_paid``.
    7. Record a ``Supplier Payment`` expense referencing the invoice.

    Args:
        context (RuntimeContext): Active runtime context.
        command (CreateInvoiceCommand): Payment details.

    Returns:
        InvoiceOutcome: The invoice, the generated expense and any excess that
            could not be allocated.

    Raises:
        NotFoundError: If the supplier is unknown.
        EmptyAllocationError: If the payment would clear nothing. This covers
            non-positive amounts and suppliers with nothing outstanding; no
            record is changed.
    """
    supplier = get_supplier(context, command.supplier_id)
    store = context.store
    result = allocate_payment(store.transactions.for_supplier(supplier.id), command.amount)
    if result.is_empty:
        log.warning("Payment of %s to supplier '%s' clears no transactions", command.amount, supplier.id)
        raise EmptyAllocationError(
            f"Payment of {command.amount} to '{supplier.name}' does not clear any outstanding transaction"
        )

    paid_on = command.date or current_date()
    invoice = Invoice(
        id=generate_id("INV"),
        supplier_id=supplier.id,
        supplier_name=supplier.name,
        amount=command.amount,
        date=paid_on,
        payment_method=command.payment_method or context.settings.default_payment_method,
        transactions_cleared=result.cleared_transactions,
    )
    store.invoices.add(invoice)

    for update in result.updates:
        transaction = store.transactions.get(update.transaction_id)
        store.transactions.replace(
            replace(transaction, remaining_balance=update.remaining_balance, status=update.status)
        )

    total_paid = supplier.total_paid + command.amount
    store.suppliers.replace(
        replace(
            store.suppliers.get(supplier.id),
            total_paid=total_paid,
            balance=calculations.supplier_balance(supplier.total_owed, total_paid),
        )
    )

    expense = Expense(
        id=generate_id("EXP"),
        category=ExpenseCategory.SUPPLIER_PAYMENT,
        description=f"Payment to {supplier.name}",
        amount=command.amount,
        date=paid_on,
        supplier_id=supplier.id,
        invoice_id=invoice.id,
    )
    store.expenses.add(expense)

    if result.remaining_payment > ZERO:
        log.warning(
            "Payment '%s' to supplier '%s' exceeds outstanding balances by %s",
            invoice.id,
            supplier.id,
            result.remaining_payment,
        )
    log.info(
        "Recorded invoice '%s' for supplier '%s' (amount=%s, cleared=%d)",
        invoice.id,
        supplier.id,
        invoice.amount,
        len(invoice.transactions_cleared),
    )
    return InvoiceOutcome(invoice=invoice, expense=expense, unallocated=result.remaining_payment)


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


def create_container(context: RuntimeContext, command: CreateContainerCommand) -> Container:
    """Register a container. ``total_value`` is computed from ``suppliers``."""
    number = require_text(command.container_number, "Container number")
    container = Container(
        id=generate_id("CNT"),
        container_number=number,
        status=command.status,
        suppliers=tuple(command.suppliers),
        consignee=command.consignee,
        ship_date=command.ship_date,
        delivery_date=command.delivery_date,
    )
    stored = _store_container(context, container, new=True)
    log.info("Created container '%s' (%s)", stored.id, stored.container_number)
    return stored


def update_container(context: RuntimeContext, container_id: str, patch: ContainerPatch) -> Container:
    container = get_container(context, container_id)
    values = patch_values(patch)
    if "container_number" in values:
        values["container_number"] = require_text(patch.container_number, "Container number")
    stored = _store_container(context, replace(container, **values))
    log.info("Updated container '%s' fields: %s", container_id, ", ".join(sorted(values)) or "none")
    return stored


def delete_container(context: RuntimeContext, container_id: str) -> Container:
    """Remove an empty container.

    Raises:
        ValidationError: If any supply still references the container.
    """
    container = get_container(context, container_id)
    if context.store.supplies.for_container(container_id):
        log.error("Refusing to delete container '%s' with recorded supplies", container_id)
        raise ValidationError(f"Container '{container.container_number}' still has supplies")
    context.store.containers.remove(container_id)
    log.info("Deleted container '%s'", container_id)
    return container


# ---------------------------------------------------------------------------
# Packaging inventory
# ---------------------------------------------------------------------------


def add_packaging_item(context: RuntimeContext, command: CreatePackagingItemCommand) -> PackagingItem:
    name = require_text(command.name, "Item name")
    require_nonnegative_quantity(command.quantity)
    require_nonnegative_quantity(command.min_quantity)
    item = PackagingItem(
        id=generate_id("PKG"),
        name=name,
        category=command.category,
        quantity=command.quantity,
        min_quantity=command.min_quantity,
        unit=command.unit,
    )
    context.store.packaging_items.add(item)
    log.info("Added packaging item '%s' (%s %s)", item.id, item.quantity, item.unit)
    return item


def update_packaging_item(context: RuntimeContext, item_id: str, patch: PackagingItemPatch) -> PackagingItem:
    item = get_packaging_item(context, item_id)
    values = patch_values(patch)
    if "name" in values:
        values["name"] = require_text(patch.name, "Item name")
    for key in ("quantity", "min_quantity"):
        if key in values:
            require_nonnegative_quantity(values[key])
    updated = context.store.packaging_items.replace(replace(item, **values))
    log.info("Updated packaging item '%s'", item_id)
    return updated


def delete_packaging_item(context: RuntimeContext, item_id: str) -> PackagingItem:
    item = context.store.packaging_items.remove(item_id)
    log.info("Deleted packaging item '%s'", item_id)
    return item


def restock_item(
    context: RuntimeContext,
    item_id: str,
    quantity: Decimal,
    *,
    when: Optional[datetime] = None,
) -> PackagingItem:
    """Add ``quantity`` to an item's stock and stamp the restock time.

    Args:
        context (RuntimeContext): Active runtime context.
        item_id (str): Packaging item to restock.
        quantity (Decimal): Units received; must be positive.
        when (datetime | None): Restock timestamp, defaulting to now in UTC.

    Raises:
        NotFoundError: If the item is unknown.
        ValidationError: If ``quantity`` is not positive.
    """
    item = get_packaging_item(context, item_id)
    require_positive_quantity(quantity)
    updated = replace(
        item,
        quantity=item.quantity + quantity,
        last_restocked=when if when is not None else datetime.now(UTC),
    )
    context.store.packaging_items.replace(updated)
    log.info("Restocked '%s' by %s (now %s %s)", item_id, quantity, updated.quantity, updated.unit)
    if calculations.is_low_stock(updated):
        log.warning("Packaging item '%s' is still below its minimum of %s", item_id, updated.min_quantity)
    return updated


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


def add_expense(context: RuntimeContext, command: CreateExpenseCommand) -> Expense:
    """Record a manual expense.

    Raises:
        NotFoundError: If a referenced supplier or invoice is unknown.
        ValidationError: If the description is blank or the amount negative.
    """
    if command.supplier_id is not None:
        get_supplier(context, command.supplier_id)
    if command.invoice_id is not None:
        get_invoice(context, command.invoice_id)
    description = require_text(command.description, "Description")
    require_nonnegative_money(command.amount)
    expense = Expense(
        id=generate_id("EXP"),
        category=command.category,
        description=description,
        amount=command.amount,
        date=command.date,
        supplier_id=command.supplier_id,
        invoice_id=command.invoice_id,
    )
    context.store.expenses.add(expense)
    log.info("Recorded %s expense '%s' (amount=%s)", expense.category.value, expense.id, expense.amount)
    return expense


def update_expense(context: RuntimeContext, expense_id: str, patch: ExpensePatch) -> Expense:
    expense = get_expense(context, expense_id)
    values = patch_values(patch)
    if "description" in values:
        values["description"] = require_text(patch.description, "Description")
    if patch.amount is not None:
        require_nonnegative_money(patch.amount)
    updated = context.store.expenses.replace(replace(expense, **values))
    log.info("Updated expense '%s'", expense_id)
    return updated


def delete_expense(context: RuntimeContext, expense_id: str) -> Expense:
    expense = context.store.expenses.remove(expense_id)
    log.info("Deleted expense '%s'", expense_id)
    return expense


__all__ = [
    "BusinessRuleViolation",
    "EmptyAllocationError",
    "NotFoundError",
    "ValidationError",
    "RuntimeContext",
    "CreateSupplierCommand",
    "CreateTransactionCommand",
    "CreateSupplyCommand",
    "CreateInvoiceCommand",
    "CreateContainerCommand",
    "CreatePackagingItemCommand",
    "CreateExpenseCommand",
    "InvoiceOutcome",
    "load_runtime_context",
    "ensure_schema_version",
    "persist_context",
    "refresh_context",
    "generate_id",
    "parse_decimal",
    "parse_date",
    "derive_status",
    "create_supplier",
    "update_supplier",
    "delete_supplier",
    "create_transaction",
    "update_transaction",
    "delete_transaction",
    "create_supply",
    "update_supply",
    "delete_supply",
    "create_invoice",
    "preview_payment",
    "create_container",
    "update_container",
    "delete_container",
    "add_packaging_item",
    "update_packaging_item",
    "delete_packaging_item",
    "restock_item",
    "add_expense",
    "update_expense",
    "delete_expense",
]
