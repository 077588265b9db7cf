from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable

from rental_tax_ledger.domain.records import Invoice, Property, Transaction
from rental_tax_ledger.domain.value_objects import (
    ZERO,
    Category,
    ReconciliationStatus,
)


@runtime_checkable
class ClassificationClient(Protocol):
    """External classifier. Returns free-form text expected to hold a JSON
    object with ``category``, ``propertyId``, ``confidence`` and ``reasoning``.
    """

    async def classify(
        self, description: str, amount: Decimal, properties: Sequence[Property]
    ) -> str: ...


@runtime_checkable
class DocumentExtractor(Protocol):
    """External document reader for receipts and bank statements."""

    async def extract_invoice(self, payload: bytes, mime_type: str) -> str: ...

    async def extract_statement(self, payload: bytes, mime_type: str) -> str: ...


@dataclass(frozen=True)
class CategorizationResult:
    category: Category = Category.UNCATEGORIZED
    property_id: str | None = None
    confidence: float = 0.0
    reasoning: str = ""
    property_defaulted: bool = True

    @classmethod
    def fallback(
        cls, property_id: str | None = None, reasoning: str = ""
    ) -> CategorizationResult:
        return cls(property_id=property_id, reasoning=reasoning)


@dataclass(frozen=True)
class StatementRow:
    """One bank line before it becomes a Transaction."""

    date: date
    description: str
    amount: Decimal


@dataclass(frozen=True)
class InvoiceFields:
    date: date
    vendor: str
    amount: Decimal
    description: str = ""
    document: str | None = None
    document_mime_type: str | None = None


@dataclass
class ImportSummary:
    imported: int = 0
    skipped: int = 0
    rejected: int = 0
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = f"Imported {self.imported}. Skipped {self.skipped} duplicates."
        if self.rejected:
            text += f" Rejected {self.rejected} unreadable rows."
        return text


@dataclass
class InvoiceMatchOutcome:
    invoice: Invoice
    transaction: Transaction | None = None

    @property
    def matched(self) -> bool:
        return self.transaction is not None


@dataclass
class ChecklistItem:
    transaction: Transaction

    @property
    def has_receipt(self) -> bool:
        return self.transaction.has_receipt

    @property
    def is_done(self) -> bool:
        return (
            self.has_receipt
            or self.transaction.status == ReconciliationStatus.RECONCILED
        )


@dataclass
class ReceiptChecklist:
    items: list[ChecklistItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def completed(self) -> int:
        return sum(1 for item in self.items if item.is_done)

    @property
    def progress(self) -> float:
        if not self.items:
            return 0.0
        return self.completed / self.total

    @property
    def missing_amount(self) -> Decimal:
        """Spend still lacking a receipt or sign-off."""
        return sum(
            (abs(item.transaction.amount) for item in self.items if not item.is_done),
            ZERO,
        )
