"""Tests for deterministic import identities."""

from datetime import date
from decimal import Decimal

from rental_tax_ledger.services.deduplication import (
    MANUAL_PREFIX,
    import_identity,
    is_manual_identity,
    manual_identity,
)


class TestImportIdentity:
    def test_equal_triples_give_equal_ids(self):
        first = import_identity(date(2025, 5, 1), "TESCO STORES", Decimal("-12.5"))
        second = import_identity("2025-05-01", "TESCO STORES", "-12.50")

        assert first == second

    def test_date_formats_are_canonicalized(self):
        assert import_identity("01/05/2025", "X", "1") == import_identity(
            date(2025, 5, 1), "X", "1"
        )

    def test_any_field_change_changes_the_id(self):
        base = import_identity(date(2025, 5, 1), "RENT", "900")

        assert import_identity(date(2025, 5, 2), "RENT", "900") != base
        assert import_identity(date(2025, 5, 1), "RENT ", "900") != base
        assert import_identity(date(2025, 5, 1), "RENT", "-900") != base

    def test_long_descriptions_are_not_truncated_into_collisions(self):
        prefix = "DIRECT DEBIT PAYMENT TO BRITISH GAS SERVICES LIMITED REF "
        assert import_identity(date(2025, 5, 1), prefix + "0001", "-60") != import_identity(
            date(2025, 5, 1), prefix + "0002", "-60"
        )

    def test_negative_zero_matches_zero(self):
        assert import_identity(date(2025, 5, 1), "X", "-0.00") == import_identity(
            date(2025, 5, 1), "X", "0"
        )

    def test_ids_are_url_safe(self):
        identity = import_identity(date(2025, 5, 1), "A/B+C?", "-1")

        assert "/" not in identity
        assert "+" not in identity
        assert "=" not in identity


class TestManualIdentity:
    def test_manual_ids_are_prefixed_and_unique(self):
        first = manual_identity(date(2025, 5, 1), "Cash repair", "-20", clock=lambda: 1)
        second = manual_identity(date(2025, 5, 1), "Cash repair", "-20", clock=lambda: 1)

        assert first.startswith(MANUAL_PREFIX)
        assert first != second
        assert is_manual_identity(first)

    def test_manual_ids_never_equal_import_ids(self):
        imported = import_identity(date(2025, 5, 1), "Cash repair", "-20")

        assert manual_identity(date(2025, 5, 1), "Cash repair", "-20") != imported
        assert not is_manual_identity(imported)
