"""In-memory ledger data store.

Every aggregate owns exactly one repository. A repository only ever touches
its own records: cross-aggregate effects are the coordinator's job
(:mod:`fruit_ledger.core_logic`). Records are kept in insertion order, keyed
by their opaque string identifier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

from . import log
from .constants import ExpenseCategory
from .errors import NotFoundError
from .models import (
    Container,
    Expense,
    Invoice,
    PackagingItem,
    Supplier,
    Supply,
    Transaction,
)


RecordT = TypeVar("RecordT")


class AppendOnlyRepository(Generic[RecordT]):
    """Repository supporting inserts and lookups but no edits or removals."""

    entity_name = "record"

    def __init__(self, records: Optional[Iterable[RecordT]] = None) -> None:
        self._records: Dict[str, RecordT] = {}
        for record in records or ():
            self.add(record)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def __iter__(self) -> Iterator[RecordT]:
        return iter(list(self._records.values()))

    def add(self, record: RecordT) -> RecordT:
        """Insert ``record``; identifiers must be unique within the repository."""

        record_id = record.id  # type: ignore[attr-defined]
        if record_id in self._records:
            raise ValueError(f"Duplicate {self.entity_name} id: {record_id}")
        self._records[record_id] = record
        log.debug("Stored %s '%s'", self.entity_name, record_id)
        return record

    def find(self, record_id: str) -> Optional[RecordT]:
        return self._records.get(record_id)

    def get(self, record_id: str) -> RecordT:
        """Return the record for ``record_id`` or raise :class:`NotFoundError`."""

        try:
            return self._records[record_id]
        except KeyError as exc:
            log.warning("%s lookup failed for id '%s'", self.entity_name.capitalize(), record_id)
            raise NotFoundError(f"Unknown {self.entity_name} id: {record_id}") from exc

    def all(self) -> List[RecordT]:
        """Return a snapshot list of every record in insertion order."""

        return list(self._records.values())

    def filter(self, predicate: Callable[[RecordT], bool]) -> List[RecordT]:
        return [record for record in self._records.values() if predicate(record)]


class Repository(AppendOnlyRepository[RecordT]):
    """Repository that also supports replacing and removing records."""

    def replace(self, record: RecordT) -> RecordT:
        """Swap the stored record sharing ``record.id`` for ``record``."""

        record_id = record.id  # type: ignore[attr-defined]
        self.get(record_id)
        self._records[record_id] = record
        log.debug("Replaced %s '%s'", self.entity_name, record_id)
        return record

    def remove(self, record_id: str) -> RecordT:
        """Delete and return the record stored under ``record_id``."""

        record = self.get(record_id)
        del self._records[record_id]
        log.debug("Removed %s '%s'", self.entity_name, record_id)
        return record


class SupplierRepository(Repository[Supplier]):
    entity_name = "supplier"


class TransactionRepository(Repository[Transaction]):
    entity_name = "transaction"

    def for_supplier(self, supplier_id: str) -> List[Transaction]:
        return self.filter(lambda transaction: transaction.supplier_id == supplier_id)

    def for_container(self, container_id: str) -> List[Transaction]:
        return self.filter(lambda transaction: transaction.container_id == container_id)


class InvoiceRepository(AppendOnlyRepository[Invoice]):
    entity_name = "invoice"

    def for_supplier(self, supplier_id: str) -> List[Invoice]:
        return self.filter(lambda invoice: invoice.supplier_id == supplier_id)


class ContainerRepository(Repository[Container]):
    entity_name = "container"


class SupplyRepository(Repository[Supply]):
    entity_name = "supply"

    def for_container(self, container_id: str) -> List[Supply]:
        return self.filter(lambda supply: supply.container_id == container_id)

    def for_supplier(self, supplier_id: str) -> List[Supply]:
        return self.filter(lambda supply: supply.supplier_id == supplier_id)


class PackagingItemRepository(Repository[PackagingItem]):
    entity_name = "packaging item"


class ExpenseRepository(Repository[Expense]):
    entity_name = "expense"

    def for_supplier(self, supplier_id: str) -> List[Expense]:
        return self.filter(lambda expense: expense.supplier_id == supplier_id)

    def for_category(self, category: ExpenseCategory) -> List[Expense]:
        return self.filter(lambda expense: expense.category == category)


@dataclass
class LedgerStore:
    """Bundle of the seven aggregate repositories handed to the coordinator."""

    suppliers: SupplierRepository = field(default_factory=SupplierRepository)
    transactions: TransactionRepository = field(default_factory=TransactionRepository)
    invoices: InvoiceRepository = field(default_factory=InvoiceRepository)
    containers: ContainerRepository = field(default_factory=ContainerRepository)
    supplies: SupplyRepository = field(default_factory=SupplyRepository)
    packaging_items: PackagingItemRepository = field(default_factory=PackagingItemRepository)
    expenses: ExpenseRepository = field(default_factory=ExpenseRepository)


__all__ = [
    "AppendOnlyRepository",
    "Repository",
    "SupplierRepository",
    "TransactionRepository",
    "InvoiceRepository",
    "ContainerRepository",
    "SupplyRepository",
    "PackagingItemRepository",
    "ExpenseRepository",
    "LedgerStore",
]
