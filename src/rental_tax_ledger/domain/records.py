"""Ledger records: bank transactions, receipts (invoices) and properties."""

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import uuid4

from rental_tax_ledger.domain.tax_years import normalize_date
from rental_tax_ledger.domain.value_objects import (
    ZERO,
    Category,
    InvoiceStatus,
    OwnerTag,
    ReconciliationStatus,
    TransactionOrigin,
    sign_of,
    to_decimal,
)
from rental_tax_ledger.exceptions import (
    InvalidAmountError,
    InvoiceNotFoundError,
    LinkStateError,
    PropertyNotFoundError,
    TransactionNotFoundError,
)


def new_record_id() -> str:
    return uuid4().hex


@dataclass
class Transaction:
    """A bank ledger line. Positive amounts are income, negative are expenses.

    Assignments are coerced on the way in: dates are normalized, categories
    must be members of ``Category`` and an amount may never change sign once
    set.
    """

    id: str
    date: date
    description: str
    amount: Decimal
    property_id: str | None = None
    category: Category = Category.UNCATEGORIZED
    status: ReconciliationStatus = ReconciliationStatus.PENDING
    origin: TransactionOrigin = TransactionOrigin.IMPORTED
    matched_invoice_id: str | None = None
    tag: OwnerTag | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "amount":
            value = to_decimal(value)
            current = self.__dict__.get("amount")
            if current is not None and sign_of(current) != sign_of(value):
                raise InvalidAmountError(
                    str(value), "the sign of a transaction amount cannot change"
                )
        elif name == "date":
            value = normalize_date(value)
        elif name == "category":
            value = Category.parse(value)
        elif name == "status":
            value = ReconciliationStatus(value)
        elif name == "origin":
            value = TransactionOrigin(value)
        elif name == "tag" and value is not None:
            value = OwnerTag(value)
        elif name == "property_id" and value == "":
            value = None
        object.__setattr__(self, name, value)

    @property
    def is_income(self) -> bool:
        return self.amount > ZERO

    @property
    def is_expense(self) -> bool:
        return self.amount < ZERO

    @property
    def is_allowable_expense(self) -> bool:
        """An outgoing that is neither personal nor unclassified."""
        return self.is_expense and not self.category.is_excluded

    @property
    def has_receipt(self) -> bool:
        return self.matched_invoice_id is not None


@dataclass
class Invoice:
    """A receipt record, usually produced by document extraction."""

    id: str
    date: date
    vendor: str
    amount: Decimal
    description: str = ""
    status: InvoiceStatus = InvoiceStatus.UNMATCHED
    document: str | None = None
    document_mime_type: str | None = None
    matched_transaction_id: str | None = None

    def __post_init__(self) -> None:
        self.date = normalize_date(self.date)
        self.amount = to_decimal(self.amount)
        self.status = InvoiceStatus(self.status)
        if self.amount < ZERO:
            raise InvalidAmountError(str(self.amount), "invoice amounts are positive")

    @property
    def is_matched(self) -> bool:
        return self.status == InvoiceStatus.MATCHED

    def validate(self) -> None:
        if self.is_matched != (self.matched_transaction_id is not None):
            raise LinkStateError(
                f"Invoice {self.id} has status {self.status.value} "
                f"with link {self.matched_transaction_id!r}",
                context={"invoice_id": self.id},
            )

    def link(self, transaction_id: str) -> None:
        self.status = InvoiceStatus.MATCHED
        self.matched_transaction_id = transaction_id

    def unlink(self) -> None:
        self.status = InvoiceStatus.UNMATCHED
        self.matched_transaction_id = None


@dataclass
class Property:
    name: str
    address: str = ""
    id: str = field(default_factory=new_record_id)
    keywords: list[str] = field(default_factory=list)

    @staticmethod
    def parse_keywords(raw: str | Iterable[str] | None) -> list[str]:
        """Split a comma separated keyword string into trimmed keywords."""
        if raw is None:
            return []
        parts = raw.split(",") if isinstance(raw, str) else list(raw)
        return [p.strip() for p in parts if p and p.strip()]

    @property
    def search_terms(self) -> list[str]:
        """Lower-cased terms that identify this property in a bank description."""
        terms = [k.lower() for k in self.keywords]
        if self.name.strip():
            terms.append(self.name.strip().lower())
        if self.address.strip():
            # First address line, e.g. "12 Acacia Avenue"
            terms.append(self.address.split(",")[0].strip().lower())
        return [t for t in terms if len(t) >= 3]


@dataclass
class LedgerSnapshot:
    """The whole record set as loaded from, and written back to, the store."""

    transactions: list[Transaction] = field(default_factory=list)
    invoices: list[Invoice] = field(default_factory=list)
    properties: list[Property] = field(default_factory=list)

    def copy(self) -> "LedgerSnapshot":
        return copy.deepcopy(self)

    def get_transaction(self, transaction_id: str) -> Transaction | None:
        return next((t for t in self.transactions if t.id == transaction_id), None)

    def require_transaction(self, transaction_id: str) -> Transaction:
        txn = self.get_transaction(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        return txn

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        return next((i for i in self.invoices if i.id == invoice_id), None)

    def require_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def get_property(self, property_id: str) -> Property | None:
        return next((p for p in self.properties if p.id == property_id), None)

    def require_property(self, property_id: str) -> Property:
        prop = self.get_property(property_id)
        if prop is None:
            raise PropertyNotFoundError(property_id)
        return prop

    @property
    def transaction_ids(self) -> set[str]:
        return {t.id for t in self.transactions}
