"""Tests for dashboard aggregations and CSV exports."""

import csv
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from rental_tax_ledger.domain.value_objects import Category


@pytest.fixture
def ledger(seed, make_transaction):
    seed(
        transactions=[
            make_transaction(
                "1000", txn_date=date(2025, 5, 1), category=Category.RENTAL_INC_001,
                property_id="prop-acacia", tag="D", description="RENT SMITH",
            ),
            make_transaction(
                "500", txn_date=date(2025, 6, 1), category=Category.RENTAL_INC_001,
                property_id="prop-harbour", tag="J", description="RENT JONES",
            ),
            make_transaction(
                "-200", txn_date=date(2025, 5, 10), category=Category.REPAIRS_101,
                property_id="prop-acacia", tag="D", description="PLUMBER",
            ),
            make_transaction(
                "-300", txn_date=date(2025, 7, 1), category=Category.MORT_INT_701,
                property_id="prop-acacia", tag="J", description="MORTGAGE",
            ),
            make_transaction(
                "-50", txn_date=date(2025, 8, 1), category=Category.PERSONAL_000,
                description="SUPERMARKET",
            ),
            make_transaction(
                "-20", txn_date=date(2025, 8, 2), category=Category.UNCATEGORIZED,
                description="MYSTERY",
            ),
            make_transaction(
                "999", txn_date=date(2024, 5, 1), category=Category.RENTAL_INC_001,
                property_id="prop-acacia", description="LAST YEAR",
            ),
        ]
    )


def read_csv(content: str) -> list[list[str]]:
    return list(csv.reader(StringIO(content)))


@pytest.mark.usefixtures("ledger")
class TestDashboard:
    def test_summary_uses_allowable_expenses(self, reporting):
        report = reporting.dashboard_summary("2025-2026")

        assert report["label"] == "2025/26"
        assert report["data"] == {
            "income": Decimal("1500.00"),
            "expenses": Decimal("500.00"),
            "profit": Decimal("1000.00"),
            "transaction_count": 6,
            "uncategorized_count": 1,
        }

    def test_owner_split_shares(self, reporting):
        data = reporting.owner_split("2025/26")["data"]

        assert data["D"]["income"] == Decimal("1000.00")
        assert data["D"]["income_pct"] == Decimal("66.7")
        assert data["D"]["expense_pct"] == Decimal("40.0")
        assert data["J"]["income_pct"] == Decimal("33.3")
        assert data["J"]["expenses"] == Decimal("300.00")

    def test_owner_split_with_nothing_tagged(self, reporting):
        data = reporting.owner_split("2023-2024")["data"]

        assert data["D"]["income_pct"] == Decimal("0")

    def test_property_stats(self, reporting):
        stats = {s["property_id"]: s for s in reporting.property_stats("2025-2026")}

        assert stats["prop-acacia"]["income"] == Decimal("1000.00")
        assert stats["prop-acacia"]["expenses"] == Decimal("500.00")
        assert stats["prop-harbour"]["profit"] == Decimal("500.00")

    def test_monthly_series_starts_in_april(self, reporting):
        series = reporting.monthly_series("2025-2026")

        assert [m["month"] for m in series][:3] == ["Apr", "May", "Jun"]
        assert len(series) == 12
        assert series[1] == {"month": "May", "income": Decimal("1000.00"), "expense": Decimal("200.00")}
        assert series[3]["expense"] == Decimal("300.00")
        assert series[4]["expense"] == Decimal("0.00")

    def test_grouped_totals_skip_personal(self, reporting):
        groups = reporting.grouped_totals("2025-2026")

        assert [(g.property_name, g.category) for g in groups] == [
            ("Acacia Flat", Category.RENTAL_INC_001),
            ("Harbour View", Category.RENTAL_INC_001),
            ("Acacia Flat", Category.REPAIRS_101),
            ("Acacia Flat", Category.MORT_INT_701),
            ("Unknown Property", Category.UNCATEGORIZED),
        ]
        assert groups[2].amount == Decimal("-200")


@pytest.mark.usefixtures("ledger")
class TestExports:
    def test_journals(self, reporting):
        rows = read_csv(reporting.export("journals", "2025-2026"))

        assert rows[0] == [
            "Date", "Narration", "AccountCode", "AccountName", "TrackingName1",
            "TrackingOption1", "Reference", "Debit", "Credit",
        ]
        assert rows[1] == [
            "30/04/2026", "Aggregated Rental Income - 2025-26", "200", "Rental Income",
            "Property", "Acacia Flat", "RENTAL_INC_001", "", "1000.00",
        ]
        assert rows[3][2] == "320"
        assert rows[3][7:] == ["200.00", ""]
        assert len(rows) == 6

    def test_bridging_lists_categories_in_order(self, reporting):
        rows = read_csv(reporting.export("bridging", "2025-2026"))

        assert [r[0] for r in rows[1:]] == [
            "RENTAL_INC_001", "REPAIRS_101", "MORT_INT_701", "UNCATEGORIZED",
        ]
        assert rows[1][2:] == ["2025-04-06", "2026-04-05", "1500.00", "2"]

    def test_itemized(self, reporting):
        rows = read_csv(reporting.export("itemized", "2025-2026"))

        assert rows[0][-1] == "Invoice Matched"
        assert len(rows) == 7
        assert rows[1] == [
            "2025-05-01", "RENT SMITH", "1000.00", "Rental Income", "Acacia Flat",
            "RENTAL_INC_001", "D", "No",
        ]
        assert rows[5][4] == "Unknown"
        assert rows[5][6] == "Unassigned"

    def test_export_writes_file(self, reporting, tmp_path):
        target = tmp_path / "out.csv"

        content = reporting.export("bridging", "2025-2026", target)

        assert target.read_text(encoding="utf-8") == content

    def test_unknown_kind_raises(self, reporting):
        with pytest.raises(ValueError):
            reporting.export("pdf", "2025-2026")

    def test_default_filename(self, reporting):
        assert reporting.default_filename("journals", "2025-2026") == "Journals_2025-26.csv"
        assert reporting.default_filename("itemized", "2024/25") == "Tax_Transactions_2024-25.csv"
