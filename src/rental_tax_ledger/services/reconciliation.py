"""Reconciliation engine: receipt matching and link-preserving ledger edits.

Every mutation works on a copy of the stored snapshot and writes it back in a
single ``replace_snapshot`` call, so an operation either applies completely
or not at all. Invoice/transaction links are kept symmetric: a ``matched``
invoice always points at a ``reconciled`` transaction that points back.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import Any

from rental_tax_ledger.domain.records import (
    Invoice,
    LedgerSnapshot,
    Property,
    Transaction,
    new_record_id,
)
from rental_tax_ledger.domain.tax_years import TaxYear
from rental_tax_ledger.domain.value_objects import (
    Category,
    InvoiceStatus,
    OwnerTag,
    ReconciliationStatus,
)
from rental_tax_ledger.exceptions import (
    LinkedTransactionError,
    TransactionNotFoundError,
)
from rental_tax_ledger.logging_config import get_logger
from rental_tax_ledger.repositories.interfaces import RecordStore
from rental_tax_ledger.services.interfaces import (
    ChecklistItem,
    InvoiceFields,
    InvoiceMatchOutcome,
    ReceiptChecklist,
)

logger = get_logger(__name__)

MATCH_AMOUNT_TOLERANCE = Decimal("0.10")
MATCH_WINDOW_DAYS = 7

_UNSET: Any = object()


def is_match_candidate(txn: Transaction, tax_year: TaxYear | None) -> bool:
    """Unlinked, deductible-category expense inside the period (if one is given)."""
    if not txn.is_expense or txn.category.is_excluded:
        return False
    if txn.matched_invoice_id is not None:
        return False
    return tax_year is None or tax_year.contains(txn.date)


def find_match(
    invoice_date: date,
    invoice_amount: Decimal,
    transactions: Iterable[Transaction],
    tax_year: TaxYear | None = None,
    tolerance: Decimal = MATCH_AMOUNT_TOLERANCE,
    window_days: int = MATCH_WINDOW_DAYS,
) -> Transaction | None:
    """Return the first transaction a receipt can be paired with.

    Candidates are visited newest date first, keeping stored order among
    equal dates, and the first one within ``tolerance`` of the receipt amount
    (strictly) and ``window_days`` of its date (inclusive) wins. There is no
    scoring between several qualifying candidates. A receipt without a
    positive amount never matches.
    """
    if invoice_amount <= 0:
        return None
    candidates = [t for t in transactions if is_match_candidate(t, tax_year)]
    candidates.sort(key=lambda t: t.date, reverse=True)
    for txn in candidates:
        amount_gap = abs(abs(txn.amount) - invoice_amount)
        day_gap = abs((txn.date - invoice_date).days)
        if amount_gap < tolerance and day_gap <= window_days:
            return txn
    return None


def heal_links(snapshot: LedgerSnapshot) -> int:
    """Repair non-reciprocal invoice/transaction links in place.

    A dangling side is cleared (invoice back to ``unmatched``, transaction
    back to ``pending``); a fully reciprocal pair is forced to
    ``matched``/``reconciled``.

    Returns:
        Number of records repaired.
    """
    transactions = {t.id: t for t in snapshot.transactions}
    invoices = {i.id: i for i in snapshot.invoices}
    repaired = 0

    for invoice in snapshot.invoices:
        if invoice.matched_transaction_id is None:
            if invoice.status == InvoiceStatus.MATCHED:
                invoice.status = InvoiceStatus.UNMATCHED
                repaired += 1
            continue
        txn = transactions.get(invoice.matched_transaction_id)
        if txn is None or txn.matched_invoice_id != invoice.id:
            invoice.unlink()
            repaired += 1
            continue
        if invoice.status != InvoiceStatus.MATCHED:
            invoice.status = InvoiceStatus.MATCHED
            repaired += 1
        if txn.status != ReconciliationStatus.RECONCILED:
            txn.status = ReconciliationStatus.RECONCILED
            repaired += 1

    for txn in snapshot.transactions:
        if txn.matched_invoice_id is None:
            continue
        linked = invoices.get(txn.matched_invoice_id)
        if linked is None or linked.matched_transaction_id != txn.id:
            txn.matched_invoice_id = None
            txn.status = ReconciliationStatus.PENDING
            repaired += 1

    return repaired


def check_link_symmetry(snapshot: LedgerSnapshot) -> list[str]:
    """Describe every link that breaks symmetry. Empty means consistent."""
    transactions = {t.id: t for t in snapshot.transactions}
    invoices = {i.id: i for i in snapshot.invoices}
    problems: list[str] = []

    for invoice in snapshot.invoices:
        if invoice.is_matched != (invoice.matched_transaction_id is not None):
            problems.append(
                f"invoice {invoice.id}: status {invoice.status.value} "
                f"with link {invoice.matched_transaction_id!r}"
            )
        if invoice.matched_transaction_id is None:
            continue
        txn = transactions.get(invoice.matched_transaction_id)
        if txn is None:
            problems.append(
                f"invoice {invoice.id}: linked transaction "
                f"{invoice.matched_transaction_id} does not exist"
            )
        elif txn.matched_invoice_id != invoice.id:
            problems.append(f"invoice {invoice.id}: transaction {txn.id} does not link back")
        elif txn.status != ReconciliationStatus.RECONCILED:
            problems.append(
                f"transaction {txn.id}: linked to invoice {invoice.id} "
                f"but status is {txn.status.value}"
            )

    for txn in snapshot.transactions:
        if txn.matched_invoice_id is None:
            continue
        linked = invoices.get(txn.matched_invoice_id)
        if linked is None:
            problems.append(
                f"transaction {txn.id}: linked invoice {txn.matched_invoice_id} "
                "does not exist"
            )
        elif linked.matched_transaction_id != txn.id:
            problems.append(f"transaction {txn.id}: invoice {linked.id} does not link back")

    return problems


def _require_all(snapshot: LedgerSnapshot, ids: Iterable[str]) -> list[Transaction]:
    """Resolve every id or raise before anything is touched."""
    found: list[Transaction] = []
    seen: set[str] = set()
    for transaction_id in ids:
        if transaction_id in seen:
            continue
        seen.add(transaction_id)
        txn = snapshot.get_transaction(transaction_id)
        if txn is None:
            raise TransactionNotFoundError(transaction_id)
        found.append(txn)
    return found


class ReconciliationService:
    """Ledger edits that must keep invoice links and statuses consistent.

    Attributes:
        store: Whole-snapshot record store
        tolerance: Strict upper bound on |transaction| - invoice amount difference
        window_days: Inclusive bound on the date difference for a match
    """

    def __init__(
        self,
        store: RecordStore,
        tolerance: Decimal = MATCH_AMOUNT_TOLERANCE,
        window_days: int = MATCH_WINDOW_DAYS,
    ) -> None:
        self.store = store
        self.tolerance = tolerance
        self.window_days = window_days

    def load(self) -> LedgerSnapshot:
        """Load the ledger, persisting any link repairs found on the way."""
        snapshot = self.store.load_snapshot()
        repaired = heal_links(snapshot)
        if repaired:
            logger.warning("ledger_links_healed", repaired=repaired)
            self.store.replace_snapshot(snapshot)
        return snapshot

    def _save(self, snapshot: LedgerSnapshot) -> None:
        self.store.replace_snapshot(snapshot)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def ingest_invoice(
        self,
        fields: InvoiceFields,
        tax_year: TaxYear | str | None = None,
        match: bool = True,
    ) -> InvoiceMatchOutcome:
        """Store a receipt and pair it with an expense transaction if one fits.

        Args:
            fields: Extracted or user-entered receipt fields
            tax_year: Period to search. Defaults to the period containing the
                receipt date; no period filter when none is modelled.
            match: False stores the receipt unmatched without searching

        Returns:
            The stored invoice and the transaction it was linked to, if any.
        """
        snapshot = self.load()
        invoice = Invoice(
            id=new_record_id(),
            date=fields.date,
            vendor=fields.vendor,
            amount=fields.amount,
            description=fields.description,
            document=fields.document,
            document_mime_type=fields.document_mime_type,
        )
        year = (
            TaxYear.parse(tax_year)
            if tax_year is not None
            else TaxYear.containing(invoice.date)
        )

        txn = None
        if match:
            txn = find_match(
                invoice.date,
                invoice.amount,
                snapshot.transactions,
                year,
                self.tolerance,
                self.window_days,
            )
        if txn is not None:
            invoice.link(txn.id)
            txn.matched_invoice_id = invoice.id
            txn.status = ReconciliationStatus.RECONCILED

        snapshot.invoices.append(invoice)
        self._save(snapshot)
        logger.info(
            "invoice_ingested",
            invoice_id=invoice.id,
            vendor=invoice.vendor,
            amount=str(invoice.amount),
            matched_transaction_id=txn.id if txn else None,
        )
        return InvoiceMatchOutcome(invoice=invoice, transaction=txn)

    def delete_invoice(self, invoice_id: str) -> Invoice:
        """Remove a receipt, releasing the transaction it was matched to."""
        snapshot = self.load()
        invoice = snapshot.require_invoice(invoice_id)
        if invoice.matched_transaction_id is not None:
            txn = snapshot.get_transaction(invoice.matched_transaction_id)
            if txn is not None and txn.matched_invoice_id == invoice.id:
                txn.matched_invoice_id = None
                txn.status = ReconciliationStatus.PENDING
        snapshot.invoices = [i for i in snapshot.invoices if i.id != invoice_id]
        self._save(snapshot)
        logger.info(
            "invoice_deleted",
            invoice_id=invoice_id,
            released_transaction_id=invoice.matched_transaction_id,
        )
        return invoice

    def list_invoices(self, status: InvoiceStatus | str | None = None) -> list[Invoice]:
        invoices = self.load().invoices
        if status is not None:
            wanted = InvoiceStatus(status)
            invoices = [i for i in invoices if i.status == wanted]
        return sorted(invoices, key=lambda i: i.date, reverse=True)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def list_transactions(
        self,
        tax_year: TaxYear | str | None = None,
        property_id: str | None = None,
        category: Category | str | None = None,
        status: ReconciliationStatus | str | None = None,
    ) -> list[Transaction]:
        """Transactions newest first, optionally filtered."""
        transactions = self.load().transactions
        if tax_year is not None:
            year = TaxYear.parse(tax_year)
            transactions = [t for t in transactions if year.contains(t.date)]
        if property_id is not None:
            transactions = [t for t in transactions if t.property_id == property_id]
        if category is not None:
            wanted_category = Category.parse(category)
            transactions = [t for t in transactions if t.category == wanted_category]
        if status is not None:
            wanted_status = ReconciliationStatus(status)
            transactions = [t for t in transactions if t.status == wanted_status]
        return sorted(transactions, key=lambda t: t.date, reverse=True)

    def get_transaction(self, transaction_id: str) -> Transaction:
        return self.load().require_transaction(transaction_id)

    def toggle_reconciled(self, transaction_id: str) -> Transaction:
        """Manual sign-off for a transaction that has no receipt.

        ``reconciled`` goes back to ``pending``; ``pending`` and ``flagged``
        become ``reconciled``.

        Raises:
            TransactionNotFoundError: Unknown id
            LinkedTransactionError: A receipt is linked; delete it instead
        """
        snapshot = self.load()
        txn = snapshot.require_transaction(transaction_id)
        if txn.matched_invoice_id is not None:
            raise LinkedTransactionError(txn.id, txn.matched_invoice_id)
        if txn.status == ReconciliationStatus.RECONCILED:
            txn.status = ReconciliationStatus.PENDING
        else:
            txn.status = ReconciliationStatus.RECONCILED
        self._save(snapshot)
        logger.info("transaction_toggled", transaction_id=txn.id, status=txn.status.value)
        return txn

    def flag_transaction(self, transaction_id: str) -> Transaction:
        snapshot = self.load()
        txn = snapshot.require_transaction(transaction_id)
        if txn.matched_invoice_id is not None:
            raise LinkedTransactionError(txn.id, txn.matched_invoice_id)
        txn.status = ReconciliationStatus.FLAGGED
        self._save(snapshot)
        logger.info("transaction_flagged", transaction_id=txn.id)
        return txn

    def delete_transactions(self, transaction_ids: Sequence[str]) -> int:
        """Delete a batch of transactions, all or none.

        Receipts matched to a deleted transaction go back to ``unmatched``.

        Raises:
            TransactionNotFoundError: Any id is unknown; nothing is deleted
        """
        snapshot = self.load()
        doomed = {t.id for t in _require_all(snapshot, transaction_ids)}
        released = 0
        for invoice in snapshot.invoices:
            if invoice.matched_transaction_id in doomed:
                invoice.unlink()
                released += 1
        snapshot.transactions = [t for t in snapshot.transactions if t.id not in doomed]
        self._save(snapshot)
        logger.info("transactions_deleted", count=len(doomed), invoices_released=released)
        return len(doomed)

    def apply_tag(
        self, transaction_ids: Sequence[str], tag: OwnerTag | str | None
    ) -> list[Transaction]:
        """Set (or clear, with None) the owner tag on a batch, all or none."""
        owner_tag = OwnerTag(tag) if tag is not None else None
        snapshot = self.load()
        targets = _require_all(snapshot, transaction_ids)
        for txn in targets:
            txn.tag = owner_tag
        self._save(snapshot)
        logger.info(
            "transactions_tagged",
            count=len(targets),
            tag=owner_tag.value if owner_tag else None,
        )
        return targets

    def recategorize(self, transaction_id: str, category: Category | str) -> Transaction:
        return self.update_transaction(transaction_id, category=category)

    def assign_property(
        self, transaction_id: str, property_id: str | None
    ) -> Transaction:
        return self.update_transaction(transaction_id, property_id=property_id)

    def update_transaction(
        self,
        transaction_id: str,
        *,
        description: str | None = None,
        amount: Decimal | str | None = None,
        category: Category | str | None = None,
        property_id: str | None = _UNSET,
        tag: OwnerTag | str | None = _UNSET,
    ) -> Transaction:
        """Edit fields of one transaction in a single write.

        ``property_id`` and ``tag`` accept None to clear them; leave them out
        to keep the current value. Amount edits may not change the sign.

        Raises:
            TransactionNotFoundError: Unknown transaction
            PropertyNotFoundError: ``property_id`` names no property
            InvalidCategoryError: ``category`` is not a known code
            InvalidAmountError: ``amount`` would flip the sign
        """
        snapshot = self.load()
        txn = snapshot.require_transaction(transaction_id)
        if description is not None:
            txn.description = description
        if amount is not None:
            txn.amount = amount
        if category is not None:
            txn.category = category
        if property_id is not _UNSET:
            property_id = property_id or None
            if property_id is not None:
                snapshot.require_property(property_id)
            txn.property_id = property_id
        if tag is not _UNSET:
            txn.tag = tag
        self._save(snapshot)
        logger.info(
            "transaction_updated",
            transaction_id=txn.id,
            category=txn.category.value,
            property_id=txn.property_id,
        )
        return txn

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def list_properties(self) -> list[Property]:
        return self.load().properties

    def add_property(
        self,
        name: str,
        address: str = "",
        keywords: str | Iterable[str] | None = None,
    ) -> Property:
        if not name or not name.strip():
            raise ValueError("property name is required")
        prop = Property(
            name=name.strip(),
            address=address.strip(),
            keywords=Property.parse_keywords(keywords),
        )
        snapshot = self.load()
        snapshot.properties.append(prop)
        self._save(snapshot)
        logger.info("property_added", property_id=prop.id, name=prop.name)
        return prop

    def delete_property(self, property_id: str) -> int:
        """Remove a property; its transactions become unassigned.

        Returns:
            Number of transactions unassigned.
        """
        snapshot = self.load()
        snapshot.require_property(property_id)
        unassigned = 0
        for txn in snapshot.transactions:
            if txn.property_id == property_id:
                txn.property_id = None
                unassigned += 1
        snapshot.properties = [p for p in snapshot.properties if p.id != property_id]
        self._save(snapshot)
        logger.info("property_deleted", property_id=property_id, unassigned=unassigned)
        return unassigned

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def receipt_checklist(self, tax_year: TaxYear | str) -> ReceiptChecklist:
        """Expenses in the period that should carry a receipt, newest first."""
        year = TaxYear.parse(tax_year)
        expenses = [
            t
            for t in self.load().transactions
            if t.is_allowable_expense and year.contains(t.date)
        ]
        expenses.sort(key=lambda t: t.date, reverse=True)
        return ReceiptChecklist(items=[ChecklistItem(t) for t in expenses])

    def check_link_symmetry(self) -> list[str]:
        return check_link_symmetry(self.store.load_snapshot())
