"""Fiscal period resolution.

A tax year runs from 6 April through 5 April of the following calendar year.
Every date entering the system is normalized to a ``datetime.date`` first, so
range checks compare canonical values (equivalent to comparing ``YYYY-MM-DD``
strings lexicographically).
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from dateutil import parser as date_parser  # type: ignore[import-untyped]
from dateutil.relativedelta import relativedelta  # type: ignore[import-untyped]

from rental_tax_ledger.exceptions import InvalidDateError, InvalidTaxYearError

PERIOD_START_MONTH = 4
PERIOD_START_DAY = 6


def normalize_date(value: date | datetime | str) -> date:
    """Normalize a date-like input to a calendar date (no time component).

    ISO strings (``2024-01-15``, ``2024-01-15T10:00:00``) are parsed as such;
    other year-first strings stay year-first and everything else is parsed
    day-first, as UK bank exports write ``15/01/2024``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        raise InvalidDateError(text)
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    year_first = text[:4].isdigit()
    try:
        return date_parser.parse(
            text, dayfirst=not year_first, yearfirst=year_first
        ).date()
    except (ValueError, OverflowError):
        raise InvalidDateError(text) from None


@dataclass(frozen=True, slots=True)
class TaxYearDates:
    start: date
    end: date
    label: str

    def contains(self, value: date | datetime | str) -> bool:
        return self.start <= normalize_date(value) <= self.end


class TaxYear(str, Enum):
    """Supported reporting periods, oldest first."""

    TY_2023_24 = "2023-2024"
    TY_2024_25 = "2024-2025"
    TY_2025_26 = "2025-2026"
    TY_2026_27 = "2026-2027"

    @property
    def start_year(self) -> int:
        return int(self.value.split("-")[0])

    @property
    def dates(self) -> TaxYearDates:
        start = date(self.start_year, PERIOD_START_MONTH, PERIOD_START_DAY)
        end = start + relativedelta(years=1) - timedelta(days=1)
        label = f"{self.start_year}/{str(self.start_year + 1)[2:]}"
        return TaxYearDates(start=start, end=end, label=label)

    @property
    def label(self) -> str:
        return self.dates.label

    def contains(self, value: date | datetime | str) -> bool:
        return self.dates.contains(value)

    @classmethod
    def parse(cls, value: "TaxYear | str") -> "TaxYear":
        """Accept ``2025-2026``, ``2025/26`` or ``2025-26``."""
        if isinstance(value, TaxYear):
            return value
        text = str(value).strip()
        for year in cls:
            if text in (year.value, year.label, year.label.replace("/", "-")):
                return year
        raise InvalidTaxYearError(text)

    @classmethod
    def containing(cls, value: date | datetime | str) -> "TaxYear | None":
        day = normalize_date(value)
        for year in cls:
            if year.contains(day):
                return year
        return None


def get_tax_year_dates(year: TaxYear | str) -> TaxYearDates:
    return TaxYear.parse(year).dates


def is_date_in_tax_year(value: date | datetime | str, year: TaxYear | str) -> bool:
    return TaxYear.parse(year).contains(value)


def fiscal_month_index(value: date | datetime | str) -> int:
    """Position of a date's month within the fiscal year: April is 0, March 11."""
    return (normalize_date(value).month - PERIOD_START_MONTH) % 12


FISCAL_MONTH_NAMES = [
    "Apr", "May", "Jun", "Jul", "Aug", "Sep",
    "Oct", "Nov", "Dec", "Jan", "Feb", "Mar",
]
