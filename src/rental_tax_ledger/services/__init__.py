from rental_tax_ledger.services.categorization import CategorizationOrchestrator
from rental_tax_ledger.services.ingestion import IngestionService
from rental_tax_ledger.services.interfaces import (
    CategorizationResult,
    ClassificationClient,
    DocumentExtractor,
    ImportSummary,
    InvoiceFields,
    InvoiceMatchOutcome,
    ReceiptChecklist,
    StatementRow,
)
from rental_tax_ledger.services.reconciliation import ReconciliationService
from rental_tax_ledger.services.reporting import ReportingService
from rental_tax_ledger.services.tax_estimation import (
    TaxEstimationService,
    estimate_tax,
)

__all__ = [
    "CategorizationOrchestrator",
    "CategorizationResult",
    "ClassificationClient",
    "DocumentExtractor",
    "ImportSummary",
    "IngestionService",
    "InvoiceFields",
    "InvoiceMatchOutcome",
    "ReceiptChecklist",
    "ReconciliationService",
    "ReportingService",
    "StatementRow",
    "TaxEstimationService",
    "estimate_tax",
]
