"""Pydantic v2 schemas for API request/response models."""

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rental_tax_ledger.domain.records import Invoice, Property, Transaction
from rental_tax_ledger.domain.tax import TaxEstimate


class HealthResponse(BaseModel):
    status: str
    version: str = "0.1.0"


# Property Schemas
class PropertyCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    address: str = ""
    keywords: list[str] | str | None = None


class PropertyResponse(BaseModel):
    id: str
    name: str
    address: str
    keywords: list[str]

    @classmethod
    def from_domain(cls, prop: Property) -> "PropertyResponse":
        return cls(
            id=prop.id, name=prop.name, address=prop.address, keywords=prop.keywords
        )


# Transaction Schemas
class StatementRowIn(BaseModel):
    """One bank line. Amount is a decimal string (or number) signed as on the statement."""

    date: str
    description: str
    amount: str | int | float


class ImportRowsRequest(BaseModel):
    rows: list[StatementRowIn] = Field(..., min_length=1)


class ManualTransactionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    date: date
    description: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=r"^-?\d+(\.\d+)?$")
    category: str = "UNCATEGORIZED"
    property_id: str | None = None
    tag: str | None = Field(default=None, pattern=r"^(D|J)$")
    status: str = Field(default="reconciled", pattern=r"^(pending|reconciled|flagged)$")


class TransactionUpdate(BaseModel):
    """Partial update. Send ``property_id``/``tag`` as null to clear them."""

    model_config = ConfigDict(str_strip_whitespace=True)

    description: str | None = Field(default=None, min_length=1)
    amount: str | None = Field(default=None, pattern=r"^-?\d+(\.\d+)?$")
    category: str | None = None
    property_id: str | None = None
    tag: str | None = Field(default=None, pattern=r"^(D|J)$")


class BulkTagRequest(BaseModel):
    transaction_ids: list[str] = Field(..., min_length=1)
    tag: str | None = Field(default=None, pattern=r"^(D|J)$")


class BulkDeleteRequest(BaseModel):
    transaction_ids: list[str] = Field(..., min_length=1)


class TransactionResponse(BaseModel):
    id: str
    date: date
    description: str
    amount: str
    property_id: str | None
    category: str
    category_label: str
    status: str
    origin: str
    matched_invoice_id: str | None
    tag: str | None

    @classmethod
    def from_domain(cls, txn: Transaction) -> "TransactionResponse":
        return cls(
            id=txn.id,
            date=txn.date,
            description=txn.description,
            amount=str(txn.amount),
            property_id=txn.property_id,
            category=txn.category.value,
            category_label=txn.category.label,
            status=txn.status.value,
            origin=txn.origin.value,
            matched_invoice_id=txn.matched_invoice_id,
            tag=txn.tag.value if txn.tag else None,
        )


class ImportSummaryResponse(BaseModel):
    imported: int
    skipped: int
    rejected: int
    message: str
    transactions: list[TransactionResponse]


class BulkDeleteResponse(BaseModel):
    deleted: int


# Invoice Schemas
class InvoiceCreate(BaseModel):
    """Receipt fields entered by hand or produced by an upstream extractor."""

    model_config = ConfigDict(str_strip_whitespace=True)

    date: date
    vendor: str = Field(..., min_length=1)
    amount: str = Field(..., pattern=r"^\d+(\.\d+)?$")
    description: str = ""
    tax_year: str | None = None


class DocumentUpload(BaseModel):
    """A receipt or statement document, base64 encoded."""

    content_base64: str = Field(..., min_length=1)
    mime_type: str = "image/jpeg"
    tax_year: str | None = None


class InvoiceResponse(BaseModel):
    id: str
    date: date
    vendor: str
    amount: str
    description: str
    status: str
    matched_transaction_id: str | None
    has_document: bool

    @classmethod
    def from_domain(cls, invoice: Invoice) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            date=invoice.date,
            vendor=invoice.vendor,
            amount=str(invoice.amount),
            description=invoice.description,
            status=invoice.status.value,
            matched_transaction_id=invoice.matched_transaction_id,
            has_document=invoice.document is not None,
        )


class InvoiceMatchResponse(BaseModel):
    invoice: InvoiceResponse
    matched: bool
    transaction: TransactionResponse | None = None


# Tax Schemas
class TaxEstimateResponse(BaseModel):
    tax_year: str
    label: str
    figures: dict[str, Any]

    @classmethod
    def from_domain(
        cls, tax_year: str, label: str, estimate: TaxEstimate
    ) -> "TaxEstimateResponse":
        return cls(tax_year=tax_year, label=label, figures=_stringify(estimate.to_dict()))


# Report Schemas
class ReportResponse(BaseModel):
    report_name: str
    tax_year: str
    data: Any


class ChecklistItemResponse(BaseModel):
    transaction: TransactionResponse
    has_receipt: bool
    is_done: bool


class ChecklistResponse(BaseModel):
    tax_year: str
    total: int
    completed: int
    progress: float
    missing_amount: str
    items: list[ChecklistItemResponse]


class GroupTotalResponse(BaseModel):
    property_id: str | None
    property_name: str
    category: str
    amount: str
    count: int


def _stringify(value: Any) -> Any:
    """Render Decimals (and nested ones) as strings for JSON."""
    if isinstance(value, dict):
        return {k: _stringify(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_stringify(v) for v in value]
    if isinstance(value, (int, float, str, bool)) or value is None:
        return value
    return str(value)


def serialize_report_data(data: Any) -> Any:
    return _stringify(data)
