"""Integration tests driving full ledger lifecycles through a real workbook."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fruit_ledger import cli, core_logic
from fruit_ledger.constants import ContainerStatus, TransactionStatus
from fruit_ledger.models import ContainerPatch, SupplyPatch


def test_supply_and_payment_survive_persist_and_reload(runtime_context, config_file):
    context = runtime_context
    supplier = core_logic.create_supplier(
        context, core_logic.CreateSupplierCommand(name="Green Valley", fruit_specialties=("Mango",))
    )
    container = core_logic.create_container(context, core_logic.CreateContainerCommand(container_number="MSKU7654321"))
    first = core_logic.create_supply(
        context,
        core_logic.CreateSupplyCommand(
            supplier_id=supplier.id,
            container_id=container.id,
            fruit_type="Mango",
            quantity=Decimal("100"),
            price=Decimal("1"),
            date=date(2024, 1, 1),
        ),
    )
    second = core_logic.create_supply(
        context,
        core_logic.CreateSupplyCommand(
            supplier_id=supplier.id,
            container_id=container.id,
            fruit_type="Avocado",
            quantity=Decimal("25"),
            price=Decimal("2"),
            date=date(2024, 1, 15),
        ),
    )
    outcome = core_logic.create_invoice(
        context,
        core_logic.CreateInvoiceCommand(supplier_id=supplier.id, amount=Decimal("120"), date=date(2024, 2, 1)),
    )
    core_logic.update_container(context, container.id, ContainerPatch(status=ContainerStatus.IN_TRANSIT))
    core_logic.persist_context(context)

    reloaded = core_logic.load_runtime_context(config_file)

    stored_supplier = core_logic.get_supplier(reloaded, supplier.id)
    assert stored_supplier.total_owed == Decimal("150")
    assert stored_supplier.total_paid == Decimal("120")
    assert stored_supplier.balance == Decimal("30")
    assert core_logic.get_transaction(reloaded, first.transaction_id).status is TransactionStatus.FULLY_PAID
    remaining = core_logic.get_transaction(reloaded, second.transaction_id)
    assert (remaining.remaining_balance, remaining.status) == (Decimal("30"), TransactionStatus.PARTIALLY_PAID)
    stored_container = core_logic.get_container(reloaded, container.id)
    assert stored_container.status is ContainerStatus.IN_TRANSIT
    assert stored_container.total_value == Decimal("150")
    assert len(stored_container.suppliers) == 2
    assert core_logic.get_invoice(reloaded, outcome.invoice.id) == outcome.invoice
    assert core_logic.expenses_for_supplier(reloaded, supplier.id) == [outcome.expense]


def test_refresh_context_discards_unsaved_changes(runtime_context):
    core_logic.create_supplier(runtime_context, core_logic.CreateSupplierCommand(name="Unsaved Farm"))

    fresh = core_logic.refresh_context(runtime_context)

    assert core_logic.list_suppliers(fresh) == []


def test_deleting_rows_shrinks_the_workbook(runtime_context, config_file):
    context = runtime_context
    supplier = core_logic.create_supplier(context, core_logic.CreateSupplierCommand(name="Green Valley"))
    container = core_logic.create_container(context, core_logic.CreateContainerCommand(container_number="MSKU1"))
    supply = core_logic.create_supply(
        context,
        core_logic.CreateSupplyCommand(
            supplier_id=supplier.id,
            container_id=container.id,
            fruit_type="Mango",
            quantity=Decimal("3"),
            price=Decimal("4"),
            date=date(2024, 1, 1),
        ),
    )
    core_logic.persist_context(context)

    core_logic.update_supply(context, supply.id, SupplyPatch(quantity=Decimal("5")))
    core_logic.delete_supply(context, supply.id)
    core_logic.persist_context(context)

    reloaded = core_logic.load_runtime_context(config_file)
    assert core_logic.list_supplies(reloaded) == []
    assert core_logic.list_transactions(reloaded) == []
    assert core_logic.get_container(reloaded, container.id).suppliers == ()
    assert core_logic.get_supplier(reloaded, supplier.id).total_owed == Decimal("0")


def test_cli_commands_round_trip_through_config(config_file, capsys):
    config = str(config_file)

    assert cli.main(["--config", config, "add-supplier", "--name", "Sunrise Orchards"]) == 0
    context = core_logic.load_runtime_context(config_file)
    supplier_id = core_logic.list_suppliers(context)[0].id

    assert cli.main(["--config", config, "add-container", "--number", "TGHU0000001"]) == 0
    context = core_logic.load_runtime_context(config_file)
    container_id = core_logic.list_containers(context)[0].id

    assert cli.main(
        [
            "--config", config,
            "supply",
            "--supplier-id", supplier_id,
            "--container-id", container_id,
            "--fruit", "Pineapple",
            "--quantity", "40",
            "--price", "1.25",
            "--date", "2024-03-05",
        ]
    ) == 0
    assert cli.main(["--config", config, "pay", "--supplier-id", supplier_id, "--amount", "20"]) == 0
    capsys.readouterr()

    assert cli.main(["--config", config, "transactions", "--supplier-id", supplier_id]) == 0
    report = capsys.readouterr().out
    assert "Pineapple" in report
    assert "Partially Paid" in report

    context = core_logic.load_runtime_context(config_file)
    assert core_logic.get_supplier(context, supplier_id).balance == Decimal("30")


def test_cli_rejected_payment_leaves_workbook_untouched(config_file):
    config = str(config_file)
    assert cli.main(["--config", config, "add-supplier", "--name", "Idle Farm"]) == 0
    supplier_id = core_logic.list_suppliers(core_logic.load_runtime_context(config_file))[0].id

    assert cli.main(["--config", config, "pay", "--supplier-id", supplier_id, "--amount", "50"]) == 2

    context = core_logic.load_runtime_context(config_file)
    assert core_logic.list_invoices(context) == []
    assert core_logic.list_expenses(context) == []
