from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from rental_tax_ledger.exceptions import InvalidAmountError, InvalidCategoryError

ZERO = Decimal("0")
PENNY = Decimal("0.01")


class Category(str, Enum):
    """Tax-authority expense categories, in display order.

    PERSONAL_000 marks non-deductible personal spending and UNCATEGORIZED is the
    default for anything not yet classified. Neither counts towards deductible
    expenses or appears on receipt checklists.
    """

    RENTAL_INC_001 = "RENTAL_INC_001"
    REPAIRS_101 = "REPAIRS_101"
    MGMT_201 = "MGMT_201"
    INSUR_301 = "INSUR_301"
    UTIL_401 = "UTIL_401"
    COUNCIL_501 = "COUNCIL_501"
    ADVERT_501 = "ADVERT_501"
    PROF_601 = "PROF_601"
    MORT_INT_701 = "MORT_INT_701"
    TRAVEL_801 = "TRAVEL_801"
    MISC_901 = "MISC_901"
    PERSONAL_000 = "PERSONAL_000"
    UNCATEGORIZED = "UNCATEGORIZED"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]

    @property
    def is_finance_cost(self) -> bool:
        return self is FINANCE_COST_CATEGORY

    @property
    def is_excluded(self) -> bool:
        """Personal or unclassified: never deductible, never needs a receipt."""
        return self in EXCLUDED_CATEGORIES

    @classmethod
    def parse(cls, value: "Category | str") -> "Category":
        if isinstance(value, Category):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidCategoryError(str(value)) from None

    @classmethod
    def is_known(cls, value: object) -> bool:
        return isinstance(value, str) and value.strip().upper() in {c.value for c in cls}


CATEGORY_LABELS: dict[Category, str] = {
    Category.RENTAL_INC_001: "Rental Income",
    Category.REPAIRS_101: "Repairs & Maintenance",
    Category.MGMT_201: "Management Fees",
    Category.INSUR_301: "Insurance",
    Category.UTIL_401: "Utilities",
    Category.COUNCIL_501: "Council Tax",
    Category.ADVERT_501: "Advertising & Lettings",
    Category.PROF_601: "Professional Fees",
    Category.MORT_INT_701: "Mortgage Interest (Sec 24)",
    Category.TRAVEL_801: "Travel & Vehicle",
    Category.MISC_901: "Misc / Office",
    Category.PERSONAL_000: "Personal Expense",
    Category.UNCATEGORIZED: "Uncategorized",
}

FINANCE_COST_CATEGORY = Category.MORT_INT_701
EXCLUDED_CATEGORIES = frozenset({Category.PERSONAL_000, Category.UNCATEGORIZED})


class ReconciliationStatus(str, Enum):
    PENDING = "pending"
    RECONCILED = "reconciled"
    FLAGGED = "flagged"


class TransactionOrigin(str, Enum):
    IMPORTED = "imported"
    MANUAL = "manual"


class InvoiceStatus(str, Enum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    PROCESSING = "processing"


class OwnerTag(str, Enum):
    """Co-owner split tag."""

    D = "D"
    J = "J"


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a monetary input to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip().replace(",", ""))
        except ArithmeticError:
            raise InvalidAmountError(str(value), "not a number") from None
    if not result.is_finite():
        raise InvalidAmountError(str(value), "must be finite")
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round for presentation only. Intermediate sums stay unrounded."""
    return value.quantize(PENNY, rounding=ROUND_HALF_UP)


def sign_of(value: Decimal) -> int:
    if value > ZERO:
        return 1
    if value < ZERO:
        return -1
    return 0


__all__ = [
    "CATEGORY_LABELS",
    "Category",
    "EXCLUDED_CATEGORIES",
    "FINANCE_COST_CATEGORY",
    "InvoiceStatus",
    "OwnerTag",
    "PENNY",
    "ReconciliationStatus",
    "TransactionOrigin",
    "ZERO",
    "quantize_money",
    "sign_of",
    "to_decimal",
]
