"""Aggregations and CSV exports over a tax year's transactions.

Everything here is a derived, read-only view. Figures are summed at full
precision and rounded to pennies only when rendered.
"""

import csv
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from io import StringIO
from pathlib import Path
from typing import Any

from rental_tax_ledger.domain.records import Property, Transaction
from rental_tax_ledger.domain.tax_years import (
    FISCAL_MONTH_NAMES,
    TaxYear,
    fiscal_month_index,
)
from rental_tax_ledger.domain.value_objects import (
    ZERO,
    Category,
    OwnerTag,
    quantize_money,
)
from rental_tax_ledger.logging_config import get_logger
from rental_tax_ledger.repositories.interfaces import RecordStore

logger = get_logger(__name__)

JOURNAL_ACCOUNT_CODES: dict[Category, str] = {
    Category.RENTAL_INC_001: "200",
    Category.REPAIRS_101: "320",
    Category.MGMT_201: "400",
    Category.INSUR_301: "433",
    Category.UTIL_401: "445",
    Category.COUNCIL_501: "460",
    Category.ADVERT_501: "401",
    Category.PROF_601: "404",
    Category.MORT_INT_701: "440",
    Category.TRAVEL_801: "465",
    Category.MISC_901: "429",
    Category.PERSONAL_000: "000",
    Category.UNCATEGORIZED: "429",
}

UNKNOWN_PROPERTY = "Unknown Property"


@dataclass
class GroupTotal:
    property_id: str | None
    property_name: str
    category: Category
    amount: Decimal = ZERO
    count: int = 0


def _in_period(transactions: Iterable[Transaction], tax_year: TaxYear) -> list[Transaction]:
    return [t for t in transactions if tax_year.contains(t.date)]


def _property_names(properties: Sequence[Property]) -> dict[str, str]:
    return {p.id: p.name for p in properties}


def _money(value: Decimal) -> str:
    return str(quantize_money(value))


def grouped_totals(
    transactions: Iterable[Transaction],
    properties: Sequence[Property],
    tax_year: TaxYear | str,
) -> list[GroupTotal]:
    """Signed totals per (property, category), personal spending left out.

    Groups appear in the order their first transaction does.
    """
    year = TaxYear.parse(tax_year)
    names = _property_names(properties)
    groups: dict[tuple[str | None, Category], GroupTotal] = {}
    for txn in _in_period(transactions, year):
        if txn.category == Category.PERSONAL_000:
            continue
        key = (txn.property_id, txn.category)
        group = groups.get(key)
        if group is None:
            group = GroupTotal(
                property_id=txn.property_id,
                property_name=names.get(txn.property_id or "", UNKNOWN_PROPERTY),
                category=txn.category,
            )
            groups[key] = group
        group.amount += txn.amount
        group.count += 1
    return list(groups.values())


def itemized_rows(
    transactions: Iterable[Transaction],
    properties: Sequence[Property],
    tax_year: TaxYear | str,
) -> list[dict[str, Any]]:
    """Flat listing of the period's transactions in stored order."""
    year = TaxYear.parse(tax_year)
    names = _property_names(properties)
    return [
        {
            "date": txn.date,
            "description": txn.description,
            "amount": txn.amount,
            "category": txn.category.label,
            "property": names.get(txn.property_id or "", "Unknown"),
            "code": txn.category.value,
            "owner_tag": txn.tag.value if txn.tag else "Unassigned",
            "invoice_matched": txn.has_receipt,
        }
        for txn in _in_period(transactions, year)
    ]


def export_journals_csv(
    transactions: Iterable[Transaction],
    properties: Sequence[Property],
    tax_year: TaxYear | str,
    journal_date: date,
) -> str:
    """Accounting-journal import: one line per (property, category) group.

    Negative group totals are debits and the rest credits, both as absolute
    values.
    """
    year = TaxYear.parse(tax_year)
    year_label = year.label.replace("/", "-")
    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(
        [
            "Date",
            "Narration",
            "AccountCode",
            "AccountName",
            "TrackingName1",
            "TrackingOption1",
            "Reference",
            "Debit",
            "Credit",
        ]
    )
    for group in grouped_totals(transactions, properties, year):
        amount = _money(abs(group.amount))
        is_debit = group.amount < ZERO
        writer.writerow(
            [
                journal_date.strftime("%d/%m/%Y"),
                f"Aggregated {group.category.label} - {year_label}",
                JOURNAL_ACCOUNT_CODES[group.category],
                group.category.label,
                "Property",
                group.property_name,
                group.category.value,
                amount if is_debit else "",
                "" if is_debit else amount,
            ]
        )
    return output.getvalue()


def export_bridging_csv(
    transactions: Iterable[Transaction],
    tax_year: TaxYear | str,
) -> str:
    """Per-category totals for the period, for bridging into a tax return."""
    year = TaxYear.parse(tax_year)
    totals = {category: [ZERO, 0] for category in Category}
    for txn in _in_period(transactions, year):
        totals[txn.category][0] += txn.amount
        totals[txn.category][1] += 1

    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(
        [
            "Category Code",
            "Category Name",
            "Tax Year Start",
            "Tax Year End",
            "Total Amount",
            "Transaction Count",
        ]
    )
    dates = year.dates
    for category in Category:
        amount, count = totals[category]
        if count == 0 or category == Category.PERSONAL_000:
            continue
        writer.writerow(
            [
                category.value,
                category.label,
                dates.start.isoformat(),
                dates.end.isoformat(),
                _money(amount),
                count,
            ]
        )
    return output.getvalue()


def export_itemized_csv(
    transactions: Iterable[Transaction],
    properties: Sequence[Property],
    tax_year: TaxYear | str,
) -> str:
    output = StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(
        [
            "Date",
            "Description",
            "Amount",
            "Category",
            "Property",
            "HMRC Code",
            "Owner Tag",
            "Invoice Matched",
        ]
    )
    for row in itemized_rows(transactions, properties, tax_year):
        writer.writerow(
            [
                row["date"].isoformat(),
                row["description"],
                _money(row["amount"]),
                row["category"],
                row["property"],
                row["code"],
                row["owner_tag"],
                "Yes" if row["invoice_matched"] else "No",
            ]
        )
    return output.getvalue()


def _share(part: Decimal, whole: Decimal) -> Decimal:
    if whole == ZERO:
        return ZERO
    return (part / whole * 100).quantize(Decimal("0.1"))


class ReportingService:
    """Dashboard figures and file exports for one tax year at a time."""

    EXPORT_KINDS = ("journals", "bridging", "itemized")

    def __init__(
        self, store: RecordStore, today: Callable[[], date] = date.today
    ) -> None:
        self._store = store
        self._today = today

    def dashboard_summary(self, tax_year: TaxYear | str) -> dict[str, Any]:
        """Headline income, deductible spend and profit for the period."""
        year = TaxYear.parse(tax_year)
        transactions = _in_period(self._store.load_transactions(), year)
        income = sum((t.amount for t in transactions if t.is_income), ZERO)
        expenses = sum(
            (abs(t.amount) for t in transactions if t.is_allowable_expense), ZERO
        )
        return {
            "report_name": "Dashboard Summary",
            "tax_year": year.value,
            "label": year.label,
            "data": {
                "income": quantize_money(income),
                "expenses": quantize_money(expenses),
                "profit": quantize_money(income - expenses),
                "transaction_count": len(transactions),
                "uncategorized_count": sum(
                    1 for t in transactions if t.category == Category.UNCATEGORIZED
                ),
            },
        }

    def owner_split(self, tax_year: TaxYear | str) -> dict[str, Any]:
        """Income and deductible spend per co-owner tag, with percentage shares.

        Untagged transactions are left out of both the figures and the totals
        the shares are taken of.
        """
        year = TaxYear.parse(tax_year)
        transactions = _in_period(self._store.load_transactions(), year)
        income = {tag: ZERO for tag in OwnerTag}
        expense = {tag: ZERO for tag in OwnerTag}
        for txn in transactions:
            if txn.tag is None:
                continue
            if txn.is_income:
                income[txn.tag] += txn.amount
            elif txn.is_allowable_expense:
                expense[txn.tag] += abs(txn.amount)

        total_income = sum(income.values(), ZERO)
        total_expense = sum(expense.values(), ZERO)
        return {
            "report_name": "Owner Split",
            "tax_year": year.value,
            "data": {
                tag.value: {
                    "income": quantize_money(income[tag]),
                    "expenses": quantize_money(expense[tag]),
                    "income_pct": _share(income[tag], total_income),
                    "expense_pct": _share(expense[tag], total_expense),
                }
                for tag in OwnerTag
            },
        }

    def property_stats(self, tax_year: TaxYear | str) -> list[dict[str, Any]]:
        year = TaxYear.parse(tax_year)
        snapshot = self._store.load_snapshot()
        transactions = _in_period(snapshot.transactions, year)
        stats = []
        for prop in snapshot.properties:
            own = [t for t in transactions if t.property_id == prop.id]
            income = sum((t.amount for t in own if t.is_income), ZERO)
            expenses = sum((abs(t.amount) for t in own if t.is_allowable_expense), ZERO)
            stats.append(
                {
                    "property_id": prop.id,
                    "name": prop.name,
                    "address": prop.address,
                    "income": quantize_money(income),
                    "expenses": quantize_money(expenses),
                    "profit": quantize_money(income - expenses),
                }
            )
        return stats

    def monthly_series(self, tax_year: TaxYear | str) -> list[dict[str, Any]]:
        """Twelve fiscal months, April first, of income and deductible spend."""
        year = TaxYear.parse(tax_year)
        series = [
            {"month": name, "income": ZERO, "expense": ZERO}
            for name in FISCAL_MONTH_NAMES
        ]
        for txn in _in_period(self._store.load_transactions(), year):
            bucket = series[fiscal_month_index(txn.date)]
            if txn.is_income:
                bucket["income"] += txn.amount
            elif txn.is_allowable_expense:
                bucket["expense"] += abs(txn.amount)
        for bucket in series:
            bucket["income"] = quantize_money(bucket["income"])
            bucket["expense"] = quantize_money(bucket["expense"])
        return series

    def grouped_totals(self, tax_year: TaxYear | str) -> list[GroupTotal]:
        snapshot = self._store.load_snapshot()
        return grouped_totals(snapshot.transactions, snapshot.properties, tax_year)

    def export(
        self,
        kind: str,
        tax_year: TaxYear | str,
        output_path: str | Path | None = None,
    ) -> str:
        """Render one of the CSV exports, optionally writing it to a file.

        Args:
            kind: ``journals``, ``bridging`` or ``itemized``
            tax_year: Period to export
            output_path: File to write; the CSV text is returned either way

        Raises:
            ValueError: Unknown export kind
        """
        year = TaxYear.parse(tax_year)
        snapshot = self._store.load_snapshot()
        if kind == "journals":
            content = export_journals_csv(
                snapshot.transactions, snapshot.properties, year, self._today()
            )
        elif kind == "bridging":
            content = export_bridging_csv(snapshot.transactions, year)
        elif kind == "itemized":
            content = export_itemized_csv(
                snapshot.transactions, snapshot.properties, year
            )
        else:
            raise ValueError(
                f"Unsupported export: {kind}. Use one of {', '.join(self.EXPORT_KINDS)}."
            )

        if output_path is not None:
            Path(output_path).write_text(content, encoding="utf-8")
        logger.info("report_exported", kind=kind, tax_year=year.value, path=str(output_path))
        return content

    def default_filename(self, kind: str, tax_year: TaxYear | str) -> str:
        year_label = TaxYear.parse(tax_year).label.replace("/", "-")
        prefix = {
            "journals": "Journals",
            "bridging": "Bridging_Summary",
            "itemized": "Tax_Transactions",
        }.get(kind, kind)
        return f"{prefix}_{year_label}.csv"
