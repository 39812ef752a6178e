"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from fruit_ledger import constants, data_manager
from fruit_ledger.constants import ContainerStatus, ExpenseCategory, SheetName, TransactionStatus
from fruit_ledger.models import (
    Consignee,
    Container,
    ContainerSupplier,
    Expense,
    Invoice,
    PackagingItem,
    Supplier,
    Supply,
    Transaction,
    TransactionCleared,
)
from fruit_ledger.repositories import LedgerStore
from fruit_ledger.setup_excel import build_master_workbook


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_walks_up_from_cwd(tmp_path, monkeypatch):
    """Auto-discovery should find config.ini in a parent of the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=ledger.xlsx")
    nested = tmp_path / "reports" / "2024"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)

    assert parser.get("System", "CompanyName") == "Test Fruit Exports"
    assert parser.get("Defaults", "PaymentMethod") == constants.DEFAULT_PAYMENT_METHOD


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = data_manager.read_config(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.directory)

    assert settings.data_file == bundle.workbook_path.resolve()
    assert settings.company_name == bundle.company_name


def test_parse_settings_payment_method_is_optional(tmp_path):
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile = ledger.xlsx\nCompanyName = X\nSchemaVersion = 1.0.0\n")

    settings = data_manager.parse_settings(parser, base_path=tmp_path)

    assert settings.default_payment_method == constants.DEFAULT_PAYMENT_METHOD
    assert settings.data_file == (tmp_path / "ledger.xlsx").resolve()


def test_parse_settings_requires_system_entries():
    parser = configparser.ConfigParser()
    parser.read_string("[System]\nDataFile = ledger.xlsx\n")

    with pytest.raises(KeyError):
        data_manager.parse_settings(parser)


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def test_open_workbook_returns_openpyxl_instance(workbook_factory):
    workbook = data_manager.open_workbook(workbook_factory())

    assert isinstance(workbook, OpenpyxlWorkbook)
    assert data_manager.missing_sheets(workbook) == []


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_refresh_workbook_discards_unsaved_changes(workbook_factory):
    path = workbook_factory()
    workbook = data_manager.open_workbook(path)
    workbook[SheetName.SUPPLIERS.value].append(["SUP-1", "Unsaved"])

    fresh = data_manager.refresh_workbook(path)

    assert fresh is not workbook
    assert list(data_manager.iter_sheet_records(fresh, SheetName.SUPPLIERS.value)) == []


def test_master_workbook_headers_match_columns():
    workbook = build_master_workbook()

    assert workbook.sheetnames == list(data_manager.SHEET_COLUMNS)
    for name, columns in data_manager.SHEET_COLUMNS.items():
        assert [cell.value for cell in workbook[name][1]] == list(columns)


def test_write_sheet_replaces_existing_rows():
    workbook = build_master_workbook()
    sheet_name = SheetName.SUPPLIERS.value
    data_manager.write_sheet(workbook, sheet_name, [["A", "first"], ["B", "second"], ["C", "third"]])

    written = data_manager.write_sheet(workbook, sheet_name, [["D", "only"]])

    rows = list(data_manager.iter_sheet_records(workbook, sheet_name))
    assert written == 1
    assert [(row["SupplierID"], row["Name"]) for row in rows] == [("D", "only")]


def test_load_store_requires_every_sheet():
    workbook = build_master_workbook()
    del workbook[SheetName.EXPENSES.value]

    with pytest.raises(KeyError, match="expenses"):
        data_manager.load_store(workbook)


# ---------------------------------------------------------------------------
# Store round-trip
# ---------------------------------------------------------------------------


@pytest.fixture
def populated_store() -> LedgerStore:
    store = LedgerStore()
    store.suppliers.add(
        Supplier(
            id="SUP-1",
            name="Green Valley",
            contact="Amina",
            email="amina@example.com",
            phone="+254 700",
            fruit_specialties=("Mango", "Avocado"),
            total_owed=Decimal("150.50"),
            total_paid=Decimal("100"),
            balance=Decimal("50.50"),
        )
    )
    store.transactions.add(
        Transaction(
            id="TXN-1",
            supplier_id="SUP-1",
            supplier_name="Green Valley",
            fruit_type="Mango",
            quantity=Decimal("10"),
            amount=Decimal("150.50"),
            date=date(2024, 1, 5),
            status=TransactionStatus.PARTIALLY_PAID,
            remaining_balance=Decimal("50.50"),
            container_id="CNT-1",
        )
    )
    store.invoices.add(
        Invoice(
            id="INV-1",
            supplier_id="SUP-1",
            supplier_name="Green Valley",
            amount=Decimal("100"),
            date=date(2024, 1, 20),
            payment_method="Cash",
            transactions_cleared=(TransactionCleared("TXN-1", Decimal("100"), Decimal("50.50")),),
        )
    )
    store.containers.add(
        Container(
            id="CNT-1",
            container_number="MSKU1234567",
            status=ContainerStatus.IN_TRANSIT,
            suppliers=(
                ContainerSupplier("SUP-1", "Green Valley", "Mango", Decimal("10"), "TXN-1", Decimal("150.50")),
            ),
            consignee=Consignee(name="Fresh BV", company="Fresh", location="Rotterdam", country="NL"),
            ship_date=date(2024, 1, 10),
            total_value=Decimal("150.50"),
        )
    )
    store.containers.add(Container(id="CNT-2", container_number="EMPTY0000001"))
    store.supplies.add(
        Supply(
            id="SPL-1",
            date=date(2024, 1, 5),
            container_id="CNT-1",
            container_number="MSKU1234567",
            supplier_id="SUP-1",
            supplier_name="Green Valley",
            fruit_type="Mango",
            quantity=Decimal("10"),
            price=Decimal("15.05"),
            total_amount=Decimal("150.50"),
            transaction_id="TXN-1",
            details="Grade A",
        )
    )
    store.packaging_items.add(
        PackagingItem(
            id="PKG-1",
            name="Carton",
            category="Boxes",
            quantity=Decimal("40"),
            min_quantity=Decimal("50"),
            unit="pcs",
            last_restocked=datetime(2024, 1, 2, 8, 0, tzinfo=UTC),
        )
    )
    store.expenses.add(
        Expense(
            id="EXP-1",
            category=ExpenseCategory.SUPPLIER_PAYMENT,
            description="Payment to Green Valley",
            amount=Decimal("100"),
            date=date(2024, 1, 20),
            supplier_id="SUP-1",
            invoice_id="INV-1",
        )
    )
    return store


def test_store_survives_save_and_reload(populated_store, tmp_path):
    path = tmp_path / "ledger.xlsx"
    workbook = build_master_workbook()
    data_manager.write_store(workbook, populated_store)
    data_manager.save_workbook(workbook, path)

    loaded = data_manager.load_store(openpyxl.load_workbook(path))

    assert loaded.suppliers.all() == populated_store.suppliers.all()
    assert loaded.transactions.all() == populated_store.transactions.all()
    assert loaded.invoices.all() == populated_store.invoices.all()
    assert loaded.containers.all() == populated_store.containers.all()
    assert loaded.supplies.all() == populated_store.supplies.all()
    assert loaded.packaging_items.all() == populated_store.packaging_items.all()
    assert loaded.expenses.all() == populated_store.expenses.all()


def test_embedded_lists_are_flattened_into_their_own_sheets(populated_store):
    workbook = build_master_workbook()
    data_manager.write_store(workbook, populated_store)

    allocations = list(data_manager.iter_sheet_records(workbook, SheetName.INVOICE_ALLOCATIONS.value))
    contributions = list(data_manager.iter_sheet_records(workbook, SheetName.CONTAINER_SUPPLIERS.value))

    assert [(row["InvoiceID"], row["TransactionID"]) for row in allocations] == [("INV-1", "TXN-1")]
    assert [(row["ContainerID"], row["TransactionID"]) for row in contributions] == [("CNT-1", "TXN-1")]


def test_container_without_consignee_reads_back_as_none(populated_store):
    workbook = build_master_workbook()
    data_manager.write_store(workbook, populated_store)

    loaded = data_manager.load_store(workbook)

    assert loaded.containers.get("CNT-2").consignee is None
    assert loaded.containers.get("CNT-2").suppliers == ()


def test_serialize_supplier_preserves_column_order(populated_store):
    row = data_manager.serialize_supplier(populated_store.suppliers.get("SUP-1"))

    assert len(row) == len(data_manager.SHEET_COLUMNS[SheetName.SUPPLIERS.value])
    assert row[5] == "Mango, Avocado"


def test_deserialize_transaction_accepts_native_cell_types():
    transaction = data_manager.deserialize_transaction(
        {
            "TransactionID": "TXN-9",
            "SupplierID": "SUP-1",
            "SupplierName": "Green Valley",
            "FruitType": "Mango",
            "Quantity": 3,
            "Amount": 12.5,
            "Date": datetime(2024, 2, 1, 0, 0),
            "ContainerID": None,
            "Status": "Pending",
            "RemainingBalance": 12.5,
        }
    )

    assert transaction.amount == Decimal("12.5")
    assert transaction.date == date(2024, 2, 1)
    assert transaction.container_id is None
    assert transaction.status is TransactionStatus.PENDING
