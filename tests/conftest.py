import asyncio
import json
from collections.abc import Callable, Iterator, Sequence
from datetime import date
from decimal import Decimal

import pytest

from rental_tax_ledger.config import get_settings
from rental_tax_ledger.container import reset_container
from rental_tax_ledger.domain.records import LedgerSnapshot, Property, Transaction
from rental_tax_ledger.domain.value_objects import Category
from rental_tax_ledger.repositories.memory import InMemoryRecordStore
from rental_tax_ledger.services.categorization import CategorizationOrchestrator
from rental_tax_ledger.services.ingestion import IngestionService
from rental_tax_ledger.services.reconciliation import ReconciliationService
from rental_tax_ledger.services.reporting import ReportingService
from rental_tax_ledger.services.tax_estimation import TaxEstimationService


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch) -> Iterator[None]:
    """Keep every test away from the user's home database and real API keys."""
    monkeypatch.setenv("RTL_SQLITE_PATH", str(tmp_path / "default.db"))
    monkeypatch.delenv("RTL_GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("RTL_DEFAULT_TAX_YEAR", raising=False)
    get_settings.cache_clear()
    yield
    reset_container()
    get_settings.cache_clear()


class StubClassifier:
    """Classifier double. ``replies`` maps a description to reply text or an exception."""

    def __init__(
        self,
        replies: dict[str, str | Exception] | None = None,
        default: str | Exception = "{}",
        delay: float = 0.0,
    ) -> None:
        self.replies = replies or {}
        self.default = default
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def classify(
        self, description: str, amount: Decimal, properties: Sequence[Property]
    ) -> str:
        self.calls.append(description)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.replies.get(description, self.default)
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1


class StubExtractor:
    def __init__(
        self,
        invoice_reply: str | Exception = "{}",
        statement_reply: str | Exception = "{}",
    ) -> None:
        self.invoice_reply = invoice_reply
        self.statement_reply = statement_reply
        self.invoice_calls: list[tuple[bytes, str]] = []
        self.statement_calls: list[tuple[bytes, str]] = []

    async def extract_invoice(self, payload: bytes, mime_type: str) -> str:
        self.invoice_calls.append((payload, mime_type))
        if isinstance(self.invoice_reply, Exception):
            raise self.invoice_reply
        return self.invoice_reply

    async def extract_statement(self, payload: bytes, mime_type: str) -> str:
        self.statement_calls.append((payload, mime_type))
        if isinstance(self.statement_reply, Exception):
            raise self.statement_reply
        return self.statement_reply


def classification(
    category: str,
    property_id: str | None = None,
    confidence: float | None = 0.9,
    reasoning: str = "",
) -> str:
    payload: dict[str, object] = {"category": category, "reasoning": reasoning}
    if property_id is not None:
        payload["propertyId"] = property_id
    if confidence is not None:
        payload["confidence"] = confidence
    return json.dumps(payload)


@pytest.fixture
def reply() -> Callable[..., str]:
    """Build a classifier reply: ``reply("REPAIRS_101", "prop-acacia")``."""
    return classification


@pytest.fixture
def acacia() -> Property:
    return Property(
        id="prop-acacia",
        name="Acacia Flat",
        address="12 Acacia Avenue, Leeds",
        keywords=["SMITH", "Acacia"],
    )


@pytest.fixture
def harbour() -> Property:
    return Property(
        id="prop-harbour",
        name="Harbour View",
        address="3 Quay Street, Bristol",
        keywords=["JONES"],
    )


@pytest.fixture
def properties(acacia: Property, harbour: Property) -> list[Property]:
    return [acacia, harbour]


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    counter = iter(range(1, 10_000))

    def _make(
        amount: str,
        txn_date: date = date(2025, 6, 10),
        category: Category | str = Category.REPAIRS_101,
        description: str | None = None,
        **kwargs,
    ) -> Transaction:
        n = next(counter)
        return Transaction(
            id=kwargs.pop("id", f"txn-{n}"),
            date=txn_date,
            description=description or f"Transaction {n}",
            amount=Decimal(amount),
            category=category,
            **kwargs,
        )

    return _make


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def seeded_store(properties: list[Property]) -> InMemoryRecordStore:
    return InMemoryRecordStore(LedgerSnapshot(properties=list(properties)))


@pytest.fixture
def reconciliation(seeded_store: InMemoryRecordStore) -> ReconciliationService:
    return ReconciliationService(seeded_store)


@pytest.fixture
def classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def extractor() -> StubExtractor:
    return StubExtractor()


@pytest.fixture
def ingestion(
    classifier: StubClassifier,
    extractor: StubExtractor,
    reconciliation: ReconciliationService,
) -> IngestionService:
    return IngestionService(
        CategorizationOrchestrator(classifier, concurrency=4),
        reconciliation,
        extractor,
        today=lambda: date(2025, 9, 1),
        clock_ns=lambda: 1_700_000_000_000_000_000,
    )


@pytest.fixture
def tax_service(seeded_store: InMemoryRecordStore) -> TaxEstimationService:
    return TaxEstimationService(seeded_store)


@pytest.fixture
def reporting(seeded_store: InMemoryRecordStore) -> ReportingService:
    return ReportingService(seeded_store, today=lambda: date(2026, 4, 30))


@pytest.fixture
def seed(seeded_store: InMemoryRecordStore) -> Callable[..., None]:
    """Append records to the seeded store as one write."""

    def _seed(transactions=(), invoices=()) -> None:
        snapshot = seeded_store.load_snapshot()
        snapshot.transactions.extend(transactions)
        snapshot.invoices.extend(invoices)
        seeded_store.replace_snapshot(snapshot)

    return _seed
