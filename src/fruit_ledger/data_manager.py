"""Data access layer for Fruit Ledger.

This module provides low-level helpers that read from and write to the
ledger workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: converting worksheet rows into ledger records and
   rewriting whole sheets from the in-memory store.
"""


from __future__ import annotations

import configparser
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_PAYMENT_METHOD,
    ContainerStatus,
    ExpenseCategory,
    SheetName,
    TransactionStatus,
)
from .models import (
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
from .repositories import (
    ContainerRepository,
    ExpenseRepository,
    InvoiceRepository,
    LedgerStore,
    PackagingItemRepository,
    SupplierRepository,
    SupplyRepository,
    TransactionRepository,
)


CONFIG_FILE_NAME = "config.ini"

# Column layout of every worksheet, in storage order.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.SUPPLIERS.value: [
        "SupplierID",
        "Name",
        "Contact",
        "Email",
        "Phone",
        "FruitSpecialties",
        "TotalOwed",
        "TotalPaid",
        "Balance",
    ],
    SheetName.TRANSACTIONS.value: [
        "TransactionID",
        "SupplierID",
        "SupplierName",
        "FruitType",
        "Quantity",
        "Amount",
        "Date",
        "ContainerID",
        "Status",
        "RemainingBalance",
    ],
    SheetName.INVOICES.value: [
        "InvoiceID",
        "SupplierID",
        "SupplierName",
        "Amount",
        "Date",
        "PaymentMethod",
    ],
    SheetName.INVOICE_ALLOCATIONS.value: [
        "InvoiceID",
        "TransactionID",
        "AmountCleared",
        "RemainingBalance",
    ],
    SheetName.CONTAINERS.value: [
        "ContainerID",
        "ContainerNumber",
        "Status",
        "ShipDate",
        "DeliveryDate",
        "TotalValue",
        "ConsigneeName",
        "ConsigneeCompany",
        "ConsigneeLocation",
        "ConsigneeCity",
        "ConsigneeCountry",
        "ConsigneeEmail",
        "ConsigneePhone",
        "ConsigneeInfo",
    ],
    SheetName.CONTAINER_SUPPLIERS.value: [
        "ContainerID",
        "SupplierID",
        "SupplierName",
        "FruitType",
        "Quantity",
        "TransactionID",
        "Amount",
    ],
    SheetName.SUPPLIES.value: [
        "SupplyID",
        "Date",
        "ContainerID",
        "ContainerNumber",
        "SupplierID",
        "SupplierName",
        "Details",
        "FruitType",
        "Quantity",
        "Price",
        "TotalAmount",
        "TransactionID",
    ],
    SheetName.PACKAGING_ITEMS.value: [
        "ItemID",
        "Name",
        "Category",
        "Quantity",
        "MinQuantity",
        "Unit",
        "LastRestocked",
    ],
    SheetName.EXPENSES.value: [
        "ExpenseID",
        "Category",
        "Description",
        "Amount",
        "Date",
        "SupplierID",
        "InvoiceID",
    ],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    company_name: str
    schema_version: str
    default_payment_method: str = DEFAULT_PAYMENT_METHOD


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.
            Required entries are checked later by :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` must define ``DataFile``, ``CompanyName`` and
    ``SchemaVersion``. ``[Defaults] PaymentMethod`` is optional. A relative
    ``DataFile`` is anchored at ``base_path`` (or the working directory) and
    resolved to an absolute path.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        company_name = parser.get("System", "CompanyName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    payment_method = parser.get("Defaults", "PaymentMethod", fallback=DEFAULT_PAYMENT_METHOD)

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        company_name=company_name,
        schema_version=schema_version,
        default_payment_method=payment_method,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the ledger ``.xlsx`` file.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reopen ``data_file``, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def missing_sheets(workbook: Workbook) -> List[str]:
    """Return the names of expected worksheets absent from ``workbook``."""

    return [name for name in SHEET_COLUMNS if name not in workbook.sheetnames]


def iter_sheet_records(workbook: Workbook, sheet_name: str) -> Iterable[Dict[str, Any]]:
    """Yield each populated row of ``sheet_name`` as a header-keyed mapping.

    The header row provides the keys; fully empty rows are skipped.

    Raises:
        KeyError: If the worksheet does not exist.
    """

    sheet = workbook[sheet_name]
    headers = [cell.value for cell in sheet[1]]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield dict(zip(headers, raw))


def write_sheet(workbook: Workbook, sheet_name: str, rows: Iterable[Sequence[object]]) -> int:
    """Replace every data row of ``sheet_name`` with ``rows``.

    The header row is left untouched. Rows are written in place and any rows
    left over from the previous contents are deleted. Returns the number of
    rows written.
    """

    sheet = workbook[sheet_name]
    previous_last = sheet.max_row
    row_idx = 1
    for row in rows:
        row_idx += 1
        for col_idx, value in enumerate(row, 1):
            # Assign explicitly; ``sheet.cell(value=None)`` would keep the old value
            sheet.cell(row=row_idx, column=col_idx).value = value
    if previous_last > row_idx:
        sheet.delete_rows(row_idx + 1, previous_last - row_idx)
    return row_idx - 1


# ---------------------------------------------------------------------------
# Cell conversion helpers
# ---------------------------------------------------------------------------


def _to_decimal(raw: object, default: str = "0") -> Decimal:
    return Decimal(str(raw)) if raw is not None and raw != "" else Decimal(default)


def _to_text(raw: object) -> str:
    return str(raw) if raw is not None else ""


def _to_optional_text(raw: object) -> Optional[str]:
    return str(raw) if raw is not None and raw != "" else None


def _to_date(raw: object) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw))


def _to_optional_date(raw: object) -> Optional[date]:
    return _to_date(raw) if raw is not None and raw != "" else None


def _to_optional_datetime(raw: object) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Record serialization
# ---------------------------------------------------------------------------


def serialize_supplier(record: Supplier) -> list[object]:
    return [
        record.id,
        record.name,
        record.contact,
        record.email,
        record.phone,
        ", ".join(record.fruit_specialties),
        record.total_owed,
        record.total_paid,
        record.balance,
    ]


def deserialize_supplier(row: Mapping[str, Any]) -> Supplier:
    specialties_raw = _to_text(row.get("FruitSpecialties"))
    specialties = tuple(part.strip() for part in specialties_raw.split(",") if part.strip())
    return Supplier(
        id=str(row["SupplierID"]),
        name=_to_text(row.get("Name")),
        contact=_to_text(row.get("Contact")),
        email=_to_text(row.get("Email")),
        phone=_to_text(row.get("Phone")),
        fruit_specialties=specialties,
        total_owed=_to_decimal(row.get("TotalOwed")),
        total_paid=_to_decimal(row.get("TotalPaid")),
        balance=_to_decimal(row.get("Balance")),
    )


def serialize_transaction(record: Transaction) -> list[object]:
    return [
        record.id,
        record.supplier_id,
        record.supplier_name,
        record.fruit_type,
        record.quantity,
        record.amount,
        record.date.isoformat(),
        record.container_id,
        record.status.value,
        record.remaining_balance,
    ]


def deserialize_transaction(row: Mapping[str, Any]) -> Transaction:
    return Transaction(
        id=str(row["TransactionID"]),
        supplier_id=str(row["SupplierID"]),
        supplier_name=_to_text(row.get("SupplierName")),
        fruit_type=_to_text(row.get("FruitType")),
        quantity=_to_decimal(row.get("Quantity")),
        amount=_to_decimal(row.get("Amount")),
        date=_to_date(row["Date"]),
        container_id=_to_optional_text(row.get("ContainerID")),
        status=TransactionStatus(str(row["Status"])),
        remaining_balance=_to_decimal(row.get("RemainingBalance")),
    )


def serialize_invoice(record: Invoice) -> list[object]:
    return [
        record.id,
        record.supplier_id,
        record.supplier_name,
        record.amount,
        record.date.isoformat(),
        record.payment_method,
    ]


def serialize_invoice_allocations(record: Invoice) -> list[list[object]]:
    return [
        [record.id, entry.transaction_id, entry.amount_cleared, entry.remaining_balance]
        for entry in record.transactions_cleared
    ]


def deserialize_invoice(row: Mapping[str, Any], allocations: Sequence[Mapping[str, Any]] = ()) -> Invoice:
    cleared = tuple(
        TransactionCleared(
            transaction_id=str(entry["TransactionID"]),
            amount_cleared=_to_decimal(entry.get("AmountCleared")),
            remaining_balance=_to_decimal(entry.get("RemainingBalance")),
        )
        for entry in allocations
    )
    return Invoice(
        id=str(row["InvoiceID"]),
        supplier_id=str(row["SupplierID"]),
        supplier_name=_to_text(row.get("SupplierName")),
        amount=_to_decimal(row.get("Amount")),
        date=_to_date(row["Date"]),
        payment_method=_to_text(row.get("PaymentMethod")),
        transactions_cleared=cleared,
    )


def serialize_container(record: Container) -> list[object]:
    consignee = record.consignee
    consignee_cells: list[object] = (
        [
            consignee.name,
            consignee.company,
            consignee.location,
            consignee.city,
            consignee.country,
            consignee.email,
            consignee.phone,
            consignee.additional_info,
        ]
        if consignee is not None
        else [None] * 8
    )
    return [
        record.id,
        record.container_number,
        record.status.value,
        _iso(record.ship_date),
        _iso(record.delivery_date),
        record.total_value,
        *consignee_cells,
    ]


def serialize_container_suppliers(record: Container) -> list[list[object]]:
    return [
        [
            record.id,
            entry.supplier_id,
            entry.supplier_name,
            entry.fruit_type,
            entry.quantity,
            entry.transaction_id,
            entry.amount,
        ]
        for entry in record.suppliers
    ]


def deserialize_container(row: Mapping[str, Any], contributions: Sequence[Mapping[str, Any]] = ()) -> Container:
    """Rebuild a container and its embedded supplier contributions.

    The stored ``TotalValue`` is read back as-is; the coordinator recomputes it
    on the next write touching the container.
    """

    consignee: Optional[Consignee] = None
    if _to_optional_text(row.get("ConsigneeName")) is not None:
        consignee = Consignee(
            name=_to_text(row.get("ConsigneeName")),
            company=_to_text(row.get("ConsigneeCompany")),
            location=_to_text(row.get("ConsigneeLocation")),
            city=_to_optional_text(row.get("ConsigneeCity")),
            country=_to_optional_text(row.get("ConsigneeCountry")),
            email=_to_optional_text(row.get("ConsigneeEmail")),
            phone=_to_optional_text(row.get("ConsigneePhone")),
            additional_info=_to_optional_text(row.get("ConsigneeInfo")),
        )
    suppliers = tuple(
        ContainerSupplier(
            supplier_id=str(entry["SupplierID"]),
            supplier_name=_to_text(entry.get("SupplierName")),
            fruit_type=_to_text(entry.get("FruitType")),
            quantity=_to_decimal(entry.get("Quantity")),
            transaction_id=str(entry["TransactionID"]),
            amount=_to_decimal(entry.get("Amount")),
        )
        for entry in contributions
    )
    return Container(
        id=str(row["ContainerID"]),
        container_number=_to_text(row.get("ContainerNumber")),
        status=ContainerStatus(str(row["Status"])),
        suppliers=suppliers,
        consignee=consignee,
        ship_date=_to_optional_date(row.get("ShipDate")),
        delivery_date=_to_optional_date(row.get("DeliveryDate")),
        total_value=_to_decimal(row.get("TotalValue")),
    )


def serialize_supply(record: Supply) -> list[object]:
    return [
        record.id,
        record.date.isoformat(),
        record.container_id,
        record.container_number,
        record.supplier_id,
        record.supplier_name,
        record.details,
        record.fruit_type,
        record.quantity,
        record.price,
        record.total_amount,
        record.transaction_id,
    ]


def deserialize_supply(row: Mapping[str, Any]) -> Supply:
    return Supply(
        id=str(row["SupplyID"]),
        date=_to_date(row["Date"]),
        container_id=str(row["ContainerID"]),
        container_number=_to_text(row.get("ContainerNumber")),
        supplier_id=str(row["SupplierID"]),
        supplier_name=_to_text(row.get("SupplierName")),
        details=_to_text(row.get("Details")),
        fruit_type=_to_text(row.get("FruitType")),
        quantity=_to_decimal(row.get("Quantity")),
        price=_to_decimal(row.get("Price")),
        total_amount=_to_decimal(row.get("TotalAmount")),
        transaction_id=str(row["TransactionID"]),
    )


def serialize_packaging_item(record: PackagingItem) -> list[object]:
    return [
        record.id,
        record.name,
        record.category,
        record.quantity,
        record.min_quantity,
        record.unit,
        record.last_restocked.isoformat() if record.last_restocked is not None else None,
    ]


def deserialize_packaging_item(row: Mapping[str, Any]) -> PackagingItem:
    return PackagingItem(
        id=str(row["ItemID"]),
        name=_to_text(row.get("Name")),
        category=_to_text(row.get("Category")),
        quantity=_to_decimal(row.get("Quantity")),
        min_quantity=_to_decimal(row.get("MinQuantity")),
        unit=_to_text(row.get("Unit")),
        last_restocked=_to_optional_datetime(row.get("LastRestocked")),
    )


def serialize_expense(record: Expense) -> list[object]:
    return [
        record.id,
        record.category.value,
        record.description,
        record.amount,
        record.date.isoformat(),
        record.supplier_id,
        record.invoice_id,
    ]


def deserialize_expense(row: Mapping[str, Any]) -> Expense:
    return Expense(
        id=str(row["ExpenseID"]),
        category=ExpenseCategory(str(row["Category"])),
        description=_to_text(row.get("Description")),
        amount=_to_decimal(row.get("Amount")),
        date=_to_date(row["Date"]),
        supplier_id=_to_optional_text(row.get("SupplierID")),
        invoice_id=_to_optional_text(row.get("InvoiceID")),
    )


# ---------------------------------------------------------------------------
# Whole-store loading and persistence
# ---------------------------------------------------------------------------


def _group_by(rows: Iterable[Mapping[str, Any]], key: str) -> Dict[str, List[Mapping[str, Any]]]:
    grouped: Dict[str, List[Mapping[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[str(row[key])].append(row)
    return grouped


def load_store(workbook: Workbook) -> LedgerStore:
    """Build a :class:`LedgerStore` from every worksheet in ``workbook``.

    Embedded lists (invoice allocations, container contributions) are
    re-attached to their owning records in worksheet order.

    Args:
        workbook (Workbook): Workbook containing all ledger sheets.

    Returns:
        LedgerStore: Freshly populated repositories.

    Raises:
        KeyError: If a required worksheet is missing.
    """

    absent = missing_sheets(workbook)
    if absent:
        raise KeyError(f"Workbook is missing sheets: {', '.join(absent)}")

    allocations = _group_by(iter_sheet_records(workbook, SheetName.INVOICE_ALLOCATIONS.value), "InvoiceID")
    contributions = _group_by(iter_sheet_records(workbook, SheetName.CONTAINER_SUPPLIERS.value), "ContainerID")

    store = LedgerStore(
        suppliers=SupplierRepository(
            deserialize_supplier(row) for row in iter_sheet_records(workbook, SheetName.SUPPLIERS.value)
        ),
        transactions=TransactionRepository(
            deserialize_transaction(row) for row in iter_sheet_records(workbook, SheetName.TRANSACTIONS.value)
        ),
        invoices=InvoiceRepository(
            deserialize_invoice(row, allocations.get(str(row["InvoiceID"]), ()))
            for row in iter_sheet_records(workbook, SheetName.INVOICES.value)
        ),
        containers=ContainerRepository(
            deserialize_container(row, contributions.get(str(row["ContainerID"]), ()))
            for row in iter_sheet_records(workbook, SheetName.CONTAINERS.value)
        ),
        supplies=SupplyRepository(
            deserialize_supply(row) for row in iter_sheet_records(workbook, SheetName.SUPPLIES.value)
        ),
        packaging_items=PackagingItemRepository(
            deserialize_packaging_item(row) for row in iter_sheet_records(workbook, SheetName.PACKAGING_ITEMS.value)
        ),
        expenses=ExpenseRepository(
            deserialize_expense(row) for row in iter_sheet_records(workbook, SheetName.EXPENSES.value)
        ),
    )
    log.debug(
        "Loaded ledger store: %d suppliers, %d transactions, %d invoices, %d containers",
        len(store.suppliers),
        len(store.transactions),
        len(store.invoices),
        len(store.containers),
    )
    return store


def write_store(workbook: Workbook, store: LedgerStore) -> None:
    """Rewrite every ledger worksheet from the contents of ``store``."""

    invoices = store.invoices.all()
    containers = store.containers.all()
    write_sheet(workbook, SheetName.SUPPLIERS.value, map(serialize_supplier, store.suppliers.all()))
    write_sheet(workbook, SheetName.TRANSACTIONS.value, map(serialize_transaction, store.transactions.all()))
    write_sheet(workbook, SheetName.INVOICES.value, map(serialize_invoice, invoices))
    write_sheet(
        workbook,
        SheetName.INVOICE_ALLOCATIONS.value,
        (row for invoice in invoices for row in serialize_invoice_allocations(invoice)),
    )
    write_sheet(workbook, SheetName.CONTAINERS.value, map(serialize_container, containers))
    write_sheet(
        workbook,
        SheetName.CONTAINER_SUPPLIERS.value,
        (row for container in containers for row in serialize_container_suppliers(container)),
    )
    write_sheet(workbook, SheetName.SUPPLIES.value, map(serialize_supply, store.supplies.all()))
    write_sheet(workbook, SheetName.PACKAGING_ITEMS.value, map(serialize_packaging_item, store.packaging_items.all()))
    write_sheet(workbook, SheetName.EXPENSES.value, map(serialize_expense, store.expenses.all()))
