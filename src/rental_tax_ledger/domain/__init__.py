from rental_tax_ledger.domain.records import (
    Invoice,
    LedgerSnapshot,
    Property,
    Transaction,
)
from rental_tax_ledger.domain.tax import (
    UK_RULES,
    BandResult,
    TaxBand,
    TaxBreakdown,
    TaxEstimate,
    TaxRules,
)
from rental_tax_ledger.domain.tax_years import TaxYear, TaxYearDates, normalize_date
from rental_tax_ledger.domain.value_objects import (
    Category,
    InvoiceStatus,
    OwnerTag,
    ReconciliationStatus,
    TransactionOrigin,
)

__all__ = [
    "BandResult",
    "Category",
    "Invoice",
    "InvoiceStatus",
    "LedgerSnapshot",
    "OwnerTag",
    "Property",
    "ReconciliationStatus",
    "TaxBand",
    "TaxBreakdown",
    "TaxEstimate",
    "TaxRules",
    "TaxYear",
    "TaxYearDates",
    "Transaction",
    "TransactionOrigin",
    "UK_RULES",
    "normalize_date",
]
