from rental_tax_ledger.domain.records import (
    Invoice,
    LedgerSnapshot,
    Property,
    Transaction,
)
from rental_tax_ledger.domain.tax import TaxEstimate, TaxRules
from rental_tax_ledger.domain.tax_years import TaxYear
from rental_tax_ledger.domain.value_objects import Category

__all__ = [
    "Category",
    "Invoice",
    "LedgerSnapshot",
    "Property",
    "TaxEstimate",
    "TaxRules",
    "TaxYear",
    "Transaction",
]

__version__ = "0.1.0"
