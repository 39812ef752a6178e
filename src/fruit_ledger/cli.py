"""Command-line entry points for Fruit Ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by
:mod:`fruit_ledger.core_logic`, and printing plain-text reports. The workbook
is only written back after a mutating command succeeds.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log
from .constants import ContainerStatus, ExpenseCategory
from .errors import BusinessRuleViolation, ValidationError
from .models import ZERO, Consignee, ContainerPatch, SupplyPatch


SubParsers = argparse._SubParsersAction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    ``writes`` marks commands whose success should be persisted to the
    workbook.
    """

    name: str
    help_text: str
    register: Callable[[SubParsers], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    writes: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="fruit-ledger",
        description="Record suppliers, supplies, containers and payments in the Fruit Ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to an upward search from the working directory).",
    )
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands."""
    specs = {
        "add-supplier": _spec("add-supplier", "Register a new supplier.", _args_add_supplier, run_add_supplier),
        "add-container": _spec("add-container", "Register a new shipping container.", _args_add_container, run_add_container),
        "update-container": _spec(
            "update-container", "Change a container's number, status or dates.", _args_update_container, run_update_container
        ),
        "supply": _spec("supply", "Record fruit delivered into a container.", _args_supply, run_supply),
        "update-supply": _spec("update-supply", "Edit a recorded supply.", _args_update_supply, run_update_supply),
        "delete-supply": _spec("delete-supply", "Delete a supply and its transaction.", _args_delete_supply, run_delete_supply),
        "pay": _spec("pay", "Pay a supplier, clearing the oldest deliveries first.", _args_pay, run_pay),
        "add-item": _spec("add-item", "Add a packaging inventory item.", _args_add_item, run_add_item),
        "restock": _spec("restock", "Restock a packaging item.", _args_restock, run_restock),
        "add-expense": _spec("add-expense", "Record a manual expense.", _args_add_expense, run_add_expense),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "suppliers": _spec("suppliers", "List suppliers with their balances.", _args_none, run_suppliers_report, writes=False),
        "transactions": _spec(
            "transactions", "List transactions, optionally filtered.", _args_transactions, run_transactions_report, writes=False
        ),
        "containers": _spec("containers", "List containers and their value.", _args_none, run_containers_report, writes=False),
        "invoices": _spec("invoices", "List recorded payments.", _args_invoices, run_invoices_report, writes=False),
        "preview-payment": _spec(
            "preview-payment", "Show how a payment would be allocated.", _args_preview_payment, run_preview_payment, writes=False
        ),
        "low-stock": _spec("low-stock", "List packaging items below their minimum.", _args_none, run_low_stock_report, writes=False),
        "dashboard": _spec("dashboard", "Show headline figures.", _args_none, run_dashboard, writes=False),
        "expense-trend": _spec(
            "expense-trend", "Show monthly expense totals.", _args_expense_trend, run_expense_trend, writes=False
        ),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _spec(
    name: str,
    help_text: str,
    add_arguments: Callable[[argparse.ArgumentParser], None],
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    *,
    writes: bool = True,
) -> CommandSpec:
    """Build a :class:`CommandSpec` whose registrar adds ``name`` and its arguments."""

    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        add_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, writes=writes)


# ---------------------------------------------------------------------------
# Argument declarations
# ---------------------------------------------------------------------------


def _args_none(parser: argparse.ArgumentParser) -> None:
    return None


def _args_add_supplier(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--contact", default="")
    parser.add_argument("--email", default="")
    parser.add_argument("--phone", default="")
    parser.add_argument("--specialties", default="", help="Comma-separated fruit types.")


def _args_add_container(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--number", required=True, help="Container number printed on the box.")
    parser.add_argument("--status", choices=[s.value for s in ContainerStatus], default=ContainerStatus.PREPARING.value)
    parser.add_argument("--ship-date")
    parser.add_argument("--delivery-date")
    parser.add_argument("--consignee-name")
    parser.add_argument("--consignee-company", default="")
    parser.add_argument("--consignee-location", default="")
    parser.add_argument("--consignee-country")


def _args_update_container(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--container-id", required=True)
    parser.add_argument("--number")
    parser.add_argument("--status", choices=[s.value for s in ContainerStatus])
    parser.add_argument("--ship-date")
    parser.add_argument("--delivery-date")


def _args_supply(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--supplier-id", required=True)
    parser.add_argument("--container-id", required=True)
    parser.add_argument("--fruit", required=True)
    parser.add_argument("--quantity", required=True)
    parser.add_argument("--price", required=True, help="Price per unit.")
    parser.add_argument("--date", help="Delivery date (YYYY-MM-DD, defaults to today).")
    parser.add_argument("--details", default="")


def _args_update_supply(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--supply-id", required=True)
    parser.add_argument("--container-id")
    parser.add_argument("--fruit")
    parser.add_argument("--quantity")
    parser.add_argument("--price")
    parser.add_argument("--date")
    parser.add_argument("--details")


def _args_delete_supply(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--supply-id", required=True)


def _args_pay(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--supplier-id", required=True)
    parser.add_argument("--amount", required=True)
    parser.add_argument("--date")
    parser.add_argument("--method", help="Payment method (defaults to the configured one).")


def _args_add_item(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--category", required=True)
    parser.add_argument("--quantity", required=True)
    parser.add_argument("--min-quantity", required=True)
    parser.add_argument("--unit", required=True)


def _args_restock(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--item-id", required=True)
    parser.add_argument("--quantity", required=True)


def _args_add_expense(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--category", required=True, choices=[c.value for c in ExpenseCategory])
    parser.add_argument("--description", required=True)
    parser.add_argument("--amount", required=True)
    parser.add_argument("--date")
    parser.add_argument("--supplier-id")


def _args_transactions(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--supplier-id")
    group.add_argument("--container-id")


def _args_invoices(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--supplier-id")


def _args_preview_payment(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--supplier-id", required=True)
    parser.add_argument("--amount", required=True)


def _args_expense_trend(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--months", type=int, default=6)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if getattr(args, "command", None) is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translators
# ---------------------------------------------------------------------------


def _optional_date(raw: Optional[str], label: str) -> Optional[date]:
    return core_logic.parse_date(raw, label) if raw else None


def _optional_decimal(raw: Optional[str], label: str) -> Optional[Decimal]:
    return core_logic.parse_decimal(raw, label) if raw is not None else None


def translate_add_supplier(args: argparse.Namespace) -> core_logic.CreateSupplierCommand:
    specialties = tuple(part.strip() for part in (args.specialties or "").split(",") if part.strip())
    return core_logic.CreateSupplierCommand(
        name=args.name,
        contact=args.contact,
        email=args.email,
        phone=args.phone,
        fruit_specialties=specialties,
    )


def translate_add_container(args: argparse.Namespace) -> core_logic.CreateContainerCommand:
    consignee = None
    if args.consignee_name:
        consignee = Consignee(
            name=args.consignee_name,
            company=args.consignee_company,
            location=args.consignee_location,
            country=args.consignee_country,
        )
    return core_logic.CreateContainerCommand(
        container_number=args.number,
        status=ContainerStatus(args.status),
        consignee=consignee,
        ship_date=_optional_date(args.ship_date, "Ship date"),
        delivery_date=_optional_date(args.delivery_date, "Delivery date"),
    )


def translate_update_container(args: argparse.Namespace) -> ContainerPatch:
    return ContainerPatch(
        container_number=args.number,
        status=ContainerStatus(args.status) if args.status else None,
        ship_date=_optional_date(args.ship_date, "Ship date"),
        delivery_date=_optional_date(args.delivery_date, "Delivery date"),
    )


def translate_supply(args: argparse.Namespace) -> core_logic.CreateSupplyCommand:
    return core_logic.CreateSupplyCommand(
        supplier_id=args.supplier_id,
        container_id=args.container_id,
        fruit_type=args.fruit,
        quantity=core_logic.parse_decimal(args.quantity, "Quantity"),
        price=core_logic.parse_decimal(args.price, "Price"),
        date=_optional_date(args.date, "Date") or core_logic.current_date(),
        details=args.details,
    )


def translate_update_supply(args: argparse.Namespace) -> SupplyPatch:
    return SupplyPatch(
        date=_optional_date(args.date, "Date"),
        container_id=args.container_id,
        fruit_type=args.fruit,
        quantity=_optional_decimal(args.quantity, "Quantity"),
        price=_optional_decimal(args.price, "Price"),
        details=args.details,
    )


def translate_pay(args: argparse.Namespace) -> core_logic.CreateInvoiceCommand:
    """Translate CLI args into an invoice command; the amount must be positive."""
    amount = core_logic.parse_decimal(args.amount, "Amount")
    if amount <= ZERO:
        log.error("Payment amount must be positive: %s", amount)
        raise ValidationError("Payment amount must be greater than zero")
    return core_logic.CreateInvoiceCommand(
        supplier_id=args.supplier_id,
        amount=amount,
        date=_optional_date(args.date, "Date"),
        payment_method=args.method,
    )


def translate_add_item(args: argparse.Namespace) -> core_logic.CreatePackagingItemCommand:
    return core_logic.CreatePackagingItemCommand(
        name=args.name,
        category=args.category,
        quantity=core_logic.parse_decimal(args.quantity, "Quantity"),
        min_quantity=core_logic.parse_decimal(args.min_quantity, "Minimum quantity"),
        unit=args.unit,
    )


def translate_add_expense(args: argparse.Namespace) -> core_logic.CreateExpenseCommand:
    return core_logic.CreateExpenseCommand(
        category=ExpenseCategory(args.category),
        description=args.description,
        amount=core_logic.parse_decimal(args.amount, "Amount"),
        date=_optional_date(args.date, "Date") or core_logic.current_date(),
        supplier_id=args.supplier_id,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def _money(value: Decimal) -> str:
    return f"{value:,.2f}"


def run_add_supplier(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    supplier = core_logic.create_supplier(context, translate_add_supplier(args))
    print(f"Created supplier {supplier.id} ({supplier.name})")
    return 0


def run_add_container(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    container = core_logic.create_container(context, translate_add_container(args))
    print(f"Created container {container.id} ({container.container_number})")
    return 0


def run_update_container(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    container = core_logic.update_container(context, args.container_id, translate_update_container(args))
    print(f"Updated container {container.id}: {container.status.value}")
    return 0


def run_supply(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    supply = core_logic.create_supply(context, translate_supply(args))
    print(f"Recorded supply {supply.id} (total {_money(supply.total_amount)}, transaction {supply.transaction_id})")
    return 0


def run_update_supply(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    supply = core_logic.update_supply(context, args.supply_id, translate_update_supply(args))
    print(f"Updated supply {supply.id} (total {_money(supply.total_amount)})")
    return 0


def run_delete_supply(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    supply = core_logic.delete_supply(context, args.supply_id)
    print(f"Deleted supply {supply.id}")
    return 0


def run_pay(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    outcome = core_logic.create_invoice(context, translate_pay(args))
    invoice = outcome.invoice
    print(f"Recorded invoice {invoice.id} for {invoice.supplier_name}: {_money(invoice.amount)}")
    for entry in invoice.transactions_cleared:
        print(f"  {entry.transaction_id}: cleared {_money(entry.amount_cleared)}, remaining {_money(entry.remaining_balance)}")
    if outcome.unallocated > ZERO:
        print(f"Warning: {_money(outcome.unallocated)} exceeds the outstanding balance and was not allocated.")
    return 0


def run_add_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = core_logic.add_packaging_item(context, translate_add_item(args))
    print(f"Added packaging item {item.id} ({item.name})")
    return 0


def run_restock(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = core_logic.restock_item(context, args.item_id, core_logic.parse_decimal(args.quantity, "Quantity"))
    print(f"Restocked {item.name}: now {item.quantity} {item.unit}")
    return 0


def run_add_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expense = core_logic.add_expense(context, translate_add_expense(args))
    print(f"Recorded expense {expense.id} ({expense.category.value}, {_money(expense.amount)})")
    return 0


def run_suppliers_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for row in core_logic.supplier_report(context):
        print(
            f"{row.supplier_id}  {row.name:<24} owed {_money(row.total_owed):>12}  "
            f"paid {_money(row.total_paid):>12}  balance {_money(row.balance):>12}  ({row.transaction_count} deliveries)"
        )
    return 0


def run_transactions_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.supplier_id:
        transactions = core_logic.transactions_for_supplier(context, args.supplier_id)
    elif args.container_id:
        transactions = core_logic.transactions_for_container(context, args.container_id)
    else:
        transactions = core_logic.list_transactions(context)
    for t in transactions:
        print(
            f"{t.id}  {t.date.isoformat()}  {t.supplier_name:<20} {t.fruit_type:<12} "
            f"{_money(t.amount):>12}  remaining {_money(t.remaining_balance):>12}  {t.status.value}"
        )
    return 0


def run_containers_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for container in core_logic.list_containers(context):
        print(
            f"{container.id}  {container.container_number:<14} {container.status.value:<10} "
            f"{len(container.suppliers)} contributions  value {_money(container.total_value)}"
        )
    return 0


def run_invoices_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.supplier_id:
        invoices = core_logic.invoices_for_supplier(context, args.supplier_id)
    else:
        invoices = core_logic.list_invoices(context)
    for invoice in invoices:
        print(
            f"{invoice.id}  {invoice.date.isoformat()}  {invoice.supplier_name:<20} "
            f"{_money(invoice.amount):>12}  {invoice.payment_method}  ({len(invoice.transactions_cleared)} cleared)"
        )
    return 0


def run_preview_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    amount = core_logic.parse_decimal(args.amount, "Amount")
    result = core_logic.preview_payment(context, args.supplier_id, amount)
    if result.is_empty:
        print("Nothing would be cleared.")
    for entry in result.cleared_transactions:
        print(f"{entry.transaction_id}: clear {_money(entry.amount_cleared)}, remaining {_money(entry.remaining_balance)}")
    if result.remaining_payment > ZERO:
        print(f"Unallocated: {_money(result.remaining_payment)}")
    return 0


def run_low_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for item in core_logic.low_stock_report(context):
        print(f"{item.id}  {item.name:<24} {item.quantity} {item.unit} (minimum {item.min_quantity})")
    return 0


def run_dashboard(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    summary = core_logic.dashboard(context)
    print(f"{context.settings.company_name}")
    print(f"Pending payments:  {_money(summary.total_pending_payments)}")
    print(f"Active containers: {summary.active_containers}")
    print(f"Low-stock items:   {summary.low_stock_count}")
    print(f"Expenses (month):  {_money(summary.monthly_expenses)}")
    return 0


def run_expense_trend(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for row in core_logic.expense_trend(context, months=args.months):
        print(f"{row.label}  {_money(row.amount):>12}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(f"Cannot write workbook (is it open in Excel?): {error}") from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        core_logic.ensure_schema_version(context)
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].writes:
            persist_workbook(context)
        return exit_code
    except Exception as error:
        return handle_cli_error(error)


if __name__ == "__main__":
    raise SystemExit(main())
