"""Getting records into the ledger: bank rows, statements, manual entries and receipts.

Bank imports are idempotent. Each row's deterministic identity is checked
against the ledger (and the rest of the batch) before any classifier call is
made; surviving rows are classified concurrently and the whole batch is
written in one store update once every call has resolved.
"""

import base64
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any

from rental_tax_ledger.domain.records import Transaction
from rental_tax_ledger.domain.tax_years import TaxYear, normalize_date
from rental_tax_ledger.domain.value_objects import (
    ZERO,
    Category,
    OwnerTag,
    ReconciliationStatus,
    TransactionOrigin,
    to_decimal,
)
from rental_tax_ledger.exceptions import (
    CollaboratorNotConfiguredError,
    ValidationError,
)
from rental_tax_ledger.logging_config import get_logger
from rental_tax_ledger.services.categorization import CategorizationOrchestrator
from rental_tax_ledger.services.deduplication import import_identity, manual_identity
from rental_tax_ledger.services.interfaces import (
    DocumentExtractor,
    ImportSummary,
    InvoiceFields,
    InvoiceMatchOutcome,
    StatementRow,
)
from rental_tax_ledger.services.json_extraction import extract_json_payload
from rental_tax_ledger.services.reconciliation import ReconciliationService

logger = get_logger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"
DEFAULT_INVOICE_DESCRIPTION = "Uploaded Invoice"
FAILED_VENDOR = "Unknown (AI Failed)"
FAILED_DESCRIPTION = "Manual Review Required"


def coerce_statement_row(raw: StatementRow | Mapping[str, Any]) -> StatementRow:
    """Build a StatementRow from a mapping with date, description and amount.

    Raises:
        ValidationError: The date or amount is unreadable
        ValueError: The description is blank
        KeyError: A field is missing
    """
    if isinstance(raw, StatementRow):
        return raw
    description = str(raw["description"] or "").strip()
    if not description:
        raise ValueError("description is blank")
    return StatementRow(
        date=normalize_date(raw["date"]),
        description=description,
        amount=to_decimal(raw["amount"]),
    )


def _statement_rows(payload: Any) -> list[Any]:
    if isinstance(payload, dict):
        rows = payload.get("transactions", [])
    else:
        rows = payload
    return rows if isinstance(rows, list) else []


class IngestionService:
    """Creates transactions and invoices from user input and collaborator output.

    Attributes:
        orchestrator: Categorizes imported rows
        reconciliation: Owns the ledger snapshot and receipt matching
        extractor: Document reader, or None when not configured
    """

    def __init__(
        self,
        orchestrator: CategorizationOrchestrator,
        reconciliation: ReconciliationService,
        extractor: DocumentExtractor | None = None,
        today: Callable[[], date] = date.today,
        clock_ns: Callable[[], int] = time.time_ns,
    ) -> None:
        self.orchestrator = orchestrator
        self.reconciliation = reconciliation
        self.extractor = extractor
        self._today = today
        self._clock_ns = clock_ns

    async def import_rows(
        self, rows: Iterable[StatementRow | Mapping[str, Any]]
    ) -> ImportSummary:
        """Import bank rows, skipping any already in the ledger.

        Unreadable rows are counted as rejected rather than raised.

        Returns:
            Counts of imported, skipped and rejected rows plus the new
            transactions in input order.
        """
        summary = ImportSummary()
        snapshot = self.reconciliation.load()
        known = snapshot.transaction_ids

        pending: list[tuple[str, StatementRow]] = []
        for raw in rows:
            try:
                row = coerce_statement_row(raw)
            except (ValidationError, ValueError, KeyError, TypeError) as e:
                summary.rejected += 1
                logger.warning("statement_row_rejected", error=str(e))
                continue
            identity = import_identity(row.date, row.description, row.amount)
            if identity in known:
                summary.skipped += 1
                continue
            known.add(identity)
            pending.append((identity, row))

        if not pending:
            logger.info("rows_imported", **self._summary_fields(summary))
            return summary

        results = await self.orchestrator.categorize_many(
            [(row.description, row.amount) for _, row in pending],
            snapshot.properties,
        )

        snapshot = self.reconciliation.load()
        existing = snapshot.transaction_ids
        for (identity, row), result in zip(pending, results, strict=True):
            if identity in existing:
                summary.skipped += 1
                continue
            txn = Transaction(
                id=identity,
                date=row.date,
                description=row.description,
                amount=row.amount,
                property_id=result.property_id,
                category=result.category,
                status=ReconciliationStatus.PENDING,
                origin=TransactionOrigin.IMPORTED,
            )
            snapshot.transactions.append(txn)
            summary.transactions.append(txn)
            summary.imported += 1

        if summary.imported:
            self.reconciliation.store.replace_snapshot(snapshot)
        logger.info("rows_imported", **self._summary_fields(summary))
        return summary

    async def import_statement(self, payload: bytes, mime_type: str) -> ImportSummary:
        """Extract rows from a statement document and import them.

        An extraction failure imports nothing; it is logged, not raised.

        Raises:
            CollaboratorNotConfiguredError: No document extractor is set up
        """
        extractor = self._require_extractor()
        try:
            text = await extractor.extract_statement(payload, mime_type)
        except Exception as e:
            logger.warning(
                "statement_extraction_failed",
                mime_type=mime_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ImportSummary()

        rows = _statement_rows(extract_json_payload(text))
        if not rows:
            logger.warning("statement_extraction_empty", mime_type=mime_type)
            return ImportSummary()
        return await self.import_rows(rows)

    def add_manual_transaction(
        self,
        txn_date: date | str,
        description: str,
        amount: Decimal | int | float | str,
        *,
        category: Category | str = Category.UNCATEGORIZED,
        property_id: str | None = None,
        tag: OwnerTag | str | None = None,
        status: ReconciliationStatus | str = ReconciliationStatus.RECONCILED,
    ) -> Transaction:
        """Record a transaction the user typed in.

        Manual entries are signed off on entry unless another status is
        given, and never collide with imported rows.

        Raises:
            PropertyNotFoundError: ``property_id`` names no property
            ValidationError: Bad date, amount or category
        """
        if not description or not description.strip():
            raise ValueError("description is required")
        snapshot = self.reconciliation.load()
        if property_id:
            snapshot.require_property(property_id)
        txn = Transaction(
            id=manual_identity(txn_date, description.strip(), amount, self._clock_ns),
            date=txn_date,
            description=description.strip(),
            amount=amount,
            property_id=property_id or None,
            category=category,
            status=status,
            origin=TransactionOrigin.MANUAL,
            tag=tag,
        )
        snapshot.transactions.append(txn)
        self.reconciliation.store.replace_snapshot(snapshot)
        logger.info(
            "manual_transaction_added",
            transaction_id=txn.id,
            amount=str(txn.amount),
            category=txn.category.value,
        )
        return txn

    async def ingest_invoice_document(
        self,
        payload: bytes,
        mime_type: str,
        tax_year: TaxYear | str | None = None,
    ) -> InvoiceMatchOutcome:
        """Read a receipt document, store it and try to match it.

        When extraction fails the receipt is still kept, as an unmatched
        draft flagged for manual review.

        Raises:
            CollaboratorNotConfiguredError: No document extractor is set up
        """
        extractor = self._require_extractor()
        document = base64.b64encode(payload).decode("ascii")
        try:
            text = await extractor.extract_invoice(payload, mime_type)
        except Exception as e:
            logger.warning(
                "invoice_extraction_failed",
                mime_type=mime_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            draft = InvoiceFields(
                date=self._today(),
                vendor=FAILED_VENDOR,
                amount=ZERO,
                description=FAILED_DESCRIPTION,
                document=document,
                document_mime_type=mime_type,
            )
            return self.reconciliation.ingest_invoice(draft, tax_year, match=False)

        fields = self.invoice_fields_from_payload(
            extract_json_payload(text), document=document, mime_type=mime_type
        )
        return self.reconciliation.ingest_invoice(
            fields, tax_year, match=fields.amount > ZERO
        )

    def invoice_fields_from_payload(
        self,
        payload: Any,
        document: str | None = None,
        mime_type: str | None = None,
    ) -> InvoiceFields:
        """Fill receipt fields from an extracted payload, defaulting what is missing."""
        data = payload if isinstance(payload, dict) else {}

        invoice_date = self._today()
        if data.get("date"):
            try:
                invoice_date = normalize_date(data["date"])
            except ValidationError:
                logger.info("invoice_date_unreadable", value=str(data["date"]))

        amount = ZERO
        if data.get("amount") not in (None, ""):
            try:
                amount = abs(to_decimal(data["amount"]))
            except ValidationError:
                logger.info("invoice_amount_unreadable", value=str(data["amount"]))

        vendor = str(data.get("vendor") or "").strip() or UNKNOWN_VENDOR
        description = (
            str(data.get("description") or "").strip() or DEFAULT_INVOICE_DESCRIPTION
        )
        return InvoiceFields(
            date=invoice_date,
            vendor=vendor,
            amount=amount,
            description=description,
            document=document,
            document_mime_type=mime_type,
        )

    def _require_extractor(self) -> DocumentExtractor:
        if self.extractor is None:
            raise CollaboratorNotConfiguredError("RTL_GEMINI_API_KEY")
        return self.extractor

    @staticmethod
    def _summary_fields(summary: ImportSummary) -> dict[str, int]:
        return {
            "imported": summary.imported,
            "skipped": summary.skipped,
            "rejected": summary.rejected,
        }
