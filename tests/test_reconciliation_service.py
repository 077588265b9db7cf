"""Tests for receipt matching and link-preserving ledger edits."""

from datetime import date
from decimal import Decimal

import pytest

from rental_tax_ledger.domain.records import Invoice, LedgerSnapshot
from rental_tax_ledger.domain.tax_years import TaxYear
from rental_tax_ledger.domain.value_objects import (
    Category,
    InvoiceStatus,
    OwnerTag,
    ReconciliationStatus,
)
from rental_tax_ledger.exceptions import (
    InvalidAmountError,
    InvalidCategoryError,
    InvoiceNotFoundError,
    LinkedTransactionError,
    PropertyNotFoundError,
    TransactionNotFoundError,
)
from rental_tax_ledger.repositories.memory import InMemoryRecordStore
from rental_tax_ledger.services.interfaces import InvoiceFields
from rental_tax_ledger.services.reconciliation import (
    ReconciliationService,
    check_link_symmetry,
    find_match,
    heal_links,
)


def receipt(amount: str, on: date, vendor: str = "Plumb Co") -> InvoiceFields:
    return InvoiceFields(date=on, vendor=vendor, amount=Decimal(amount))


class TestFindMatch:
    def test_matches_within_tolerance_and_window(self, make_transaction):
        txn = make_transaction("-45.05", txn_date=date(2025, 6, 15))

        assert find_match(date(2025, 6, 10), Decimal("45.00"), [txn]) is txn

    def test_rejects_outside_the_window(self, make_transaction):
        txn = make_transaction("-45.05", txn_date=date(2025, 6, 20))

        assert find_match(date(2025, 6, 10), Decimal("45.00"), [txn]) is None

    def test_window_is_inclusive(self, make_transaction):
        txn = make_transaction("-45.00", txn_date=date(2025, 6, 17))

        assert find_match(date(2025, 6, 10), Decimal("45.00"), [txn]) is txn

    def test_tolerance_is_strict(self, make_transaction):
        txn = make_transaction("-45.10", txn_date=date(2025, 6, 10))

        assert find_match(date(2025, 6, 10), Decimal("45.00"), [txn]) is None

    @pytest.mark.parametrize("amount", ["0", "0.00", "-1"])
    def test_receipt_without_positive_amount_never_matches(self, amount, make_transaction):
        fee = make_transaction("-0.05", txn_date=date(2025, 6, 10), category=Category.MISC_901)

        assert find_match(date(2025, 6, 10), Decimal(amount), [fee]) is None

    def test_ignores_income_linked_and_excluded_transactions(self, make_transaction):
        candidates = [
            make_transaction("45.00", category=Category.RENTAL_INC_001),
            make_transaction("-45.00", matched_invoice_id="inv-x"),
            make_transaction("-45.00", category=Category.PERSONAL_000),
            make_transaction("-45.00", category=Category.UNCATEGORIZED),
        ]

        assert find_match(date(2025, 6, 10), Decimal("45.00"), candidates) is None

    def test_newest_candidate_wins(self, make_transaction):
        older = make_transaction("-45.00", txn_date=date(2025, 6, 8))
        newer = make_transaction("-45.00", txn_date=date(2025, 6, 12))

        assert find_match(date(2025, 6, 10), Decimal("45.00"), [older, newer]) is newer

    def test_stored_order_breaks_date_ties(self, make_transaction):
        first = make_transaction("-45.02", txn_date=date(2025, 6, 10))
        second = make_transaction("-45.00", txn_date=date(2025, 6, 10))

        assert find_match(date(2025, 6, 10), Decimal("45.00"), [first, second]) is first

    def test_period_filter(self, make_transaction):
        txn = make_transaction("-45.00", txn_date=date(2025, 4, 5))

        assert find_match(date(2025, 4, 6), Decimal("45.00"), [txn], TaxYear.TY_2025_26) is None
        assert find_match(date(2025, 4, 6), Decimal("45.00"), [txn], None) is txn


class TestIngestInvoice:
    def test_links_both_sides(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-45.05", txn_date=date(2025, 6, 15), id="t1")])

        outcome = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        assert outcome.matched
        assert outcome.invoice.status is InvoiceStatus.MATCHED
        assert outcome.invoice.matched_transaction_id == "t1"
        txn = reconciliation.get_transaction("t1")
        assert txn.status is ReconciliationStatus.RECONCILED
        assert txn.matched_invoice_id == outcome.invoice.id
        assert reconciliation.check_link_symmetry() == []

    def test_unmatched_receipt_is_still_stored(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-45.05", txn_date=date(2025, 6, 20), id="t1")])

        outcome = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        assert not outcome.matched
        assert outcome.invoice.status is InvoiceStatus.UNMATCHED
        assert reconciliation.get_transaction("t1").status is ReconciliationStatus.PENDING
        assert [i.id for i in reconciliation.list_invoices()] == [outcome.invoice.id]

    def test_zero_amount_receipt_leaves_small_expense_alone(
        self, reconciliation, seed, make_transaction
    ):
        seed(
            transactions=[
                make_transaction(
                    "-0.05", txn_date=date(2025, 6, 10), category=Category.MISC_901, id="fee"
                )
            ]
        )

        outcome = reconciliation.ingest_invoice(receipt("0", date(2025, 6, 10), vendor="Draft"))

        assert not outcome.matched
        assert outcome.invoice.status is InvoiceStatus.UNMATCHED
        assert outcome.invoice.matched_transaction_id is None
        fee = reconciliation.get_transaction("fee")
        assert fee.status is ReconciliationStatus.PENDING
        assert fee.matched_invoice_id is None
        assert [i.transaction.id for i in reconciliation.receipt_checklist("2025-2026").items] == [
            "fee"
        ]

    def test_match_false_skips_search(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-45.00", id="t1")])

        outcome = reconciliation.ingest_invoice(
            receipt("45.00", date(2025, 6, 10)), match=False
        )

        assert not outcome.matched

    def test_explicit_period_limits_candidates(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-45.00", txn_date=date(2025, 4, 4), id="t1")])

        outcome = reconciliation.ingest_invoice(
            receipt("45.00", date(2025, 4, 7)), tax_year="2025-2026"
        )

        assert not outcome.matched

    def test_second_receipt_cannot_claim_a_linked_transaction(
        self, reconciliation, seed, make_transaction
    ):
        seed(transactions=[make_transaction("-45.00", id="t1")])

        first = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))
        second = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        assert first.matched
        assert not second.matched

    def test_written_in_one_store_update(self, reconciliation, seeded_store, seed, make_transaction):
        seed(transactions=[make_transaction("-45.00", id="t1")])
        writes = seeded_store.write_count

        reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        assert seeded_store.write_count == writes + 1


class TestDeleteInvoice:
    def test_deleting_matched_receipt_resets_transaction(
        self, reconciliation, seed, make_transaction
    ):
        seed(transactions=[make_transaction("-45.05", txn_date=date(2025, 6, 15), id="t1")])
        outcome = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        deleted = reconciliation.delete_invoice(outcome.invoice.id)

        txn = reconciliation.get_transaction("t1")
        assert deleted.id == outcome.invoice.id
        assert txn.status is ReconciliationStatus.PENDING
        assert txn.matched_invoice_id is None
        assert reconciliation.list_invoices() == []
        assert reconciliation.check_link_symmetry() == []

    def test_unknown_invoice_raises(self, reconciliation):
        with pytest.raises(InvoiceNotFoundError):
            reconciliation.delete_invoice("missing")

    def test_list_invoices_filters_by_status(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-45.00", id="t1")])
        matched = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))
        unmatched = reconciliation.ingest_invoice(receipt("99.00", date(2025, 6, 11)))

        assert [i.id for i in reconciliation.list_invoices("matched")] == [matched.invoice.id]
        assert [i.id for i in reconciliation.list_invoices(InvoiceStatus.UNMATCHED)] == [
            unmatched.invoice.id
        ]


class TestManualStatus:
    def test_toggle_flips_between_pending_and_reconciled(
        self, reconciliation, seed, make_transaction
    ):
        seed(transactions=[make_transaction("-20", id="t1")])

        assert reconciliation.toggle_reconciled("t1").status is ReconciliationStatus.RECONCILED
        assert reconciliation.toggle_reconciled("t1").status is ReconciliationStatus.PENDING

    def test_toggle_clears_a_flag(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-20", id="t1", status="flagged")])

        assert reconciliation.toggle_reconciled("t1").status is ReconciliationStatus.RECONCILED

    def test_linked_transaction_cannot_be_toggled_or_flagged(
        self, reconciliation, seed, make_transaction
    ):
        seed(transactions=[make_transaction("-45.00", id="t1")])
        reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        with pytest.raises(LinkedTransactionError):
            reconciliation.toggle_reconciled("t1")
        with pytest.raises(LinkedTransactionError):
            reconciliation.flag_transaction("t1")
        assert reconciliation.get_transaction("t1").status is ReconciliationStatus.RECONCILED

    def test_flag(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-20", id="t1")])

        assert reconciliation.flag_transaction("t1").status is ReconciliationStatus.FLAGGED

    def test_unknown_transaction_raises(self, reconciliation):
        with pytest.raises(TransactionNotFoundError):
            reconciliation.toggle_reconciled("missing")


class TestBulkOperations:
    def test_delete_releases_linked_receipts(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-45.00", id="t1"), make_transaction("-5", id="t2")])
        outcome = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        assert reconciliation.delete_transactions(["t1", "t2"]) == 2

        invoice = reconciliation.list_invoices()[0]
        assert invoice.id == outcome.invoice.id
        assert invoice.status is InvoiceStatus.UNMATCHED
        assert invoice.matched_transaction_id is None
        assert reconciliation.list_transactions() == []
        assert reconciliation.check_link_symmetry() == []

    def test_delete_is_all_or_nothing(self, reconciliation, seeded_store, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1"), make_transaction("-2", id="t2")])
        writes = seeded_store.write_count

        with pytest.raises(TransactionNotFoundError):
            reconciliation.delete_transactions(["t1", "missing", "t2"])

        assert len(reconciliation.list_transactions()) == 2
        assert seeded_store.write_count == writes

    def test_tag_is_all_or_nothing(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1")])

        with pytest.raises(TransactionNotFoundError):
            reconciliation.apply_tag(["t1", "missing"], "D")

        assert reconciliation.get_transaction("t1").tag is None

    def test_tag_and_clear(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1"), make_transaction("-2", id="t2")])

        tagged = reconciliation.apply_tag(["t1", "t2", "t1"], "J")
        assert [t.id for t in tagged] == ["t1", "t2"]
        assert reconciliation.get_transaction("t2").tag is OwnerTag.J

        reconciliation.apply_tag(["t2"], None)
        assert reconciliation.get_transaction("t2").tag is None

    def test_tag_rejects_unknown_owner(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1")])

        with pytest.raises(ValueError):
            reconciliation.apply_tag(["t1"], "X")


class TestUpdateTransaction:
    def test_recategorize(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1")])

        assert reconciliation.recategorize("t1", "mgmt_201").category is Category.MGMT_201

    def test_recategorize_rejects_unknown_codes(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1")])

        with pytest.raises(InvalidCategoryError):
            reconciliation.recategorize("t1", "BOGUS")

    def test_assign_and_clear_property(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1")])

        assert reconciliation.assign_property("t1", "prop-harbour").property_id == "prop-harbour"
        assert reconciliation.assign_property("t1", "").property_id is None

    def test_assign_unknown_property_raises(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-1", id="t1")])

        with pytest.raises(PropertyNotFoundError):
            reconciliation.assign_property("t1", "prop-nowhere")

    def test_amount_edit_keeps_sign(self, reconciliation, seed, make_transaction):
        seed(transactions=[make_transaction("-10", id="t1")])

        assert reconciliation.update_transaction("t1", amount="-12.34").amount == Decimal(
            "-12.34"
        )
        with pytest.raises(InvalidAmountError):
            reconciliation.update_transaction("t1", amount="12.34")
        assert reconciliation.get_transaction("t1").amount == Decimal("-12.34")

    def test_omitted_fields_are_kept(self, reconciliation, seed, make_transaction):
        seed(
            transactions=[
                make_transaction("-10", id="t1", property_id="prop-acacia", tag="D")
            ]
        )

        txn = reconciliation.update_transaction("t1", description="Boiler service")

        assert txn.description == "Boiler service"
        assert txn.property_id == "prop-acacia"
        assert txn.tag is OwnerTag.D


class TestListTransactions:
    def test_filters_and_orders_newest_first(self, reconciliation, seed, make_transaction):
        seed(
            transactions=[
                make_transaction("-1", txn_date=date(2025, 5, 1), id="a", property_id="prop-acacia"),
                make_transaction("-2", txn_date=date(2025, 7, 1), id="b", property_id="prop-acacia"),
                make_transaction("-3", txn_date=date(2024, 7, 1), id="c"),
                make_transaction(
                    "5", txn_date=date(2025, 6, 1), id="d", category=Category.RENTAL_INC_001
                ),
            ]
        )

        assert [t.id for t in reconciliation.list_transactions()] == ["b", "d", "a", "c"]
        assert [t.id for t in reconciliation.list_transactions(tax_year="2025/26")] == [
            "b",
            "d",
            "a",
        ]
        assert [
            t.id for t in reconciliation.list_transactions(property_id="prop-acacia")
        ] == ["b", "a"]
        assert [
            t.id for t in reconciliation.list_transactions(category="RENTAL_INC_001")
        ] == ["d"]
        assert reconciliation.list_transactions(status="reconciled") == []


class TestProperties:
    def test_add_property_parses_keywords(self, reconciliation):
        prop = reconciliation.add_property(" Mill Cottage ", "1 Mill Lane", "BROWN, mill")

        assert prop.name == "Mill Cottage"
        assert prop.keywords == ["BROWN", "mill"]
        assert prop in reconciliation.list_properties()

    def test_add_property_requires_a_name(self, reconciliation):
        with pytest.raises(ValueError):
            reconciliation.add_property("  ")

    def test_delete_property_unassigns_transactions(self, reconciliation, seed, make_transaction):
        seed(
            transactions=[
                make_transaction("-1", id="t1", property_id="prop-acacia"),
                make_transaction("-1", id="t2", property_id="prop-harbour"),
            ]
        )

        assert reconciliation.delete_property("prop-acacia") == 1

        assert reconciliation.get_transaction("t1").property_id is None
        assert reconciliation.get_transaction("t2").property_id == "prop-harbour"
        assert [p.id for p in reconciliation.list_properties()] == ["prop-harbour"]

    def test_delete_unknown_property_raises(self, reconciliation):
        with pytest.raises(PropertyNotFoundError):
            reconciliation.delete_property("missing")


class TestReceiptChecklist:
    def test_lists_allowable_expenses_in_period(self, reconciliation, seed, make_transaction):
        seed(
            transactions=[
                make_transaction("-45.00", txn_date=date(2025, 6, 10), id="receipted"),
                make_transaction("-30.00", txn_date=date(2025, 6, 1), id="signed", status="reconciled"),
                make_transaction("-25.00", txn_date=date(2025, 5, 1), id="missing"),
                make_transaction("-99.00", id="personal", category=Category.PERSONAL_000),
                make_transaction("-99.00", txn_date=date(2024, 6, 1), id="old"),
                make_transaction("500", id="rent", category=Category.RENTAL_INC_001),
            ]
        )
        reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        checklist = reconciliation.receipt_checklist("2025-2026")

        assert [i.transaction.id for i in checklist.items] == ["receipted", "signed", "missing"]
        assert checklist.items[0].has_receipt
        assert checklist.completed == 2
        assert checklist.total == 3
        assert checklist.progress == pytest.approx(2 / 3)
        assert checklist.missing_amount == Decimal("25.00")

    def test_empty_period(self, reconciliation):
        checklist = reconciliation.receipt_checklist("2023-2024")

        assert checklist.total == 0
        assert checklist.progress == 0.0


class TestLinkHealing:
    def test_dangling_invoice_link_is_cleared(self):
        snapshot = LedgerSnapshot(
            invoices=[
                Invoice(
                    id="i1",
                    date=date(2025, 6, 1),
                    vendor="V",
                    amount="1",
                    status="matched",
                    matched_transaction_id="gone",
                )
            ]
        )

        assert heal_links(snapshot) == 1
        assert snapshot.invoices[0].status is InvoiceStatus.UNMATCHED
        assert check_link_symmetry(snapshot) == []

    def test_one_sided_transaction_link_is_cleared(self, make_transaction):
        txn = make_transaction("-1", matched_invoice_id="i1", status="reconciled")
        snapshot = LedgerSnapshot(
            transactions=[txn],
            invoices=[Invoice(id="i1", date=date(2025, 6, 1), vendor="V", amount="1")],
        )

        assert heal_links(snapshot) == 1
        assert txn.matched_invoice_id is None
        assert txn.status is ReconciliationStatus.PENDING

    def test_reciprocal_pair_is_forced_consistent(self, make_transaction):
        txn = make_transaction("-1", id="t1", matched_invoice_id="i1", status="pending")
        invoice = Invoice(
            id="i1", date=date(2025, 6, 1), vendor="V", amount="1", matched_transaction_id="t1"
        )
        snapshot = LedgerSnapshot(transactions=[txn], invoices=[invoice])

        assert check_link_symmetry(snapshot)
        heal_links(snapshot)

        assert invoice.status is InvoiceStatus.MATCHED
        assert txn.status is ReconciliationStatus.RECONCILED
        assert check_link_symmetry(snapshot) == []

    def test_load_persists_repairs(self, make_transaction):
        store = InMemoryRecordStore(
            LedgerSnapshot(transactions=[make_transaction("-1", id="t1", matched_invoice_id="gone")])
        )

        ReconciliationService(store).load()

        assert store.load_snapshot().transactions[0].matched_invoice_id is None
        assert store.write_count == 1

    def test_symmetry_holds_after_a_sequence_of_edits(
        self, reconciliation, seed, make_transaction
    ):
        seed(
            transactions=[
                make_transaction("-45.00", txn_date=date(2025, 6, 10), id="t1"),
                make_transaction("-60.00", txn_date=date(2025, 6, 12), id="t2"),
                make_transaction("-75.00", txn_date=date(2025, 6, 14), id="t3"),
            ]
        )

        a = reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 11)))
        reconciliation.ingest_invoice(receipt("60.00", date(2025, 6, 12)))
        reconciliation.ingest_invoice(receipt("75.05", date(2025, 6, 13)))
        reconciliation.delete_invoice(a.invoice.id)
        reconciliation.delete_transactions(["t2"])
        reconciliation.toggle_reconciled("t1")
        reconciliation.ingest_invoice(receipt("45.00", date(2025, 6, 10)))

        assert reconciliation.check_link_symmetry() == []
        snapshot = reconciliation.load()
        for invoice in snapshot.invoices:
            invoice.validate()
