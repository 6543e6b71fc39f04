"""
Duplicate Detection and Invoice Matching Tests
"""

import pytest
from datetime import date
from decimal import Decimal
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "python"))

from statement_import.duplicate_detector import DuplicateDetector, ExistingTransaction, is_duplicate
from statement_import.invoice_matcher import OpenInvoice, find_match, suggest_matches
from statement_import.parsers.base import NormalizedTransaction


def txn(amount, day=date(2024, 1, 15), description="", reference=None, counterpart=None):
    return NormalizedTransaction(
        date=day,
        amount=Decimal(amount),
        description=description,
        reference=reference,
        counterpart_name=counterpart,
    )


class TestIsDuplicate:
    """Tests for the duplicate heuristic."""

    def test_same_date_same_amount(self):
        existing = [ExistingTransaction(date(2024, 1, 15), Decimal("45.00"))]
        assert is_duplicate(txn("45.00"), existing) is True

    def test_sign_is_ignored(self):
        existing = [ExistingTransaction(date(2024, 1, 15), Decimal("45.00"))]
        assert is_duplicate(txn("-45.00"), existing) is True

        existing = [ExistingTransaction(date(2024, 1, 15), Decimal("-45.00"))]
        assert is_duplicate(txn("45.00"), existing) is True

    def test_within_tolerance(self):
        existing = [ExistingTransaction(date(2024, 1, 15), Decimal("45.005"))]
        assert is_duplicate(txn("45.00"), existing) is True

    def test_difference_of_one_cent_is_not_duplicate(self):
        existing = [ExistingTransaction(date(2024, 1, 15), Decimal("45.01"))]
        assert is_duplicate(txn("45.00"), existing) is False

        existing = [ExistingTransaction(date(2024, 1, 15), Decimal("44.99"))]
        assert is_duplicate(txn("45.00"), existing) is False

    def test_different_date(self):
        existing = [ExistingTransaction(date(2024, 1, 16), Decimal("45.00"))]
        assert is_duplicate(txn("45.00"), existing) is False

    def test_empty_snapshot(self):
        assert is_duplicate(txn("45.00"), []) is False

    def test_custom_tolerance(self):
        existing = [ExistingTransaction(date(2024, 1, 15), Decimal("45.40"))]
        assert is_duplicate(txn("45.00"), existing, tolerance=Decimal("0.50")) is True


class TestDuplicateDetector:
    """Tests for the indexed detector."""

    def test_flag_batch(self, booked_transactions):
        detector = DuplicateDetector(booked_transactions)
        flags = detector.flag([
            txn("-45.00", date(2024, 1, 15)),
            txn("45.00", date(2024, 1, 14)),
            txn("80.00", date(2024, 2, 3)),
        ])

        assert flags == [True, False, True]
        assert detector.snapshot_size == 2

    def test_existing_from_row(self):
        row = {"date": "2024-01-15T00:00:00", "amount": "12.30"}
        existing = ExistingTransaction.from_row(row)

        assert existing == ExistingTransaction(date(2024, 1, 15), Decimal("12.30"))


class TestFindMatch:
    """Tests for the two-tier invoice matcher."""

    def test_amount_match(self, open_invoices):
        match = find_match(txn("45.00"), open_invoices)
        assert match.id == "inv-1"

    def test_amount_beats_reference(self):
        invoices = [
            OpenInvoice(id="by-amount", invoice_number="RE-1", amount=Decimal("100.00")),
            OpenInvoice(id="by-number", invoice_number="RE-2024-555", amount=Decimal("75.00")),
        ]
        match = find_match(txn("100.00", description="Zahlung RE-2024-555"), invoices)

        assert match.id == "by-amount"

    def test_first_amount_match_wins(self):
        invoices = [
            OpenInvoice(id="first", invoice_number="A", amount=Decimal("50.00")),
            OpenInvoice(id="second", invoice_number="B", amount=Decimal("50.00")),
        ]
        assert find_match(txn("50.00"), invoices).id == "first"

    def test_reference_match_is_case_insensitive(self, open_invoices):
        match = find_match(txn("150.00", description="Kunde Müller rechnung re-2024-042"), open_invoices)
        assert match.invoice_number == "RE-2024-042"

    def test_reference_field_is_searched(self, open_invoices):
        match = find_match(txn("150.00", description="Zahlung", reference="RE-2024-042"), open_invoices)
        assert match.id == "inv-2"

    def test_outgoing_payment_never_matches(self, open_invoices):
        assert find_match(txn("-45.00", description="Invoice 2024-0099"), open_invoices) is None

    def test_no_match(self, open_invoices):
        assert find_match(txn("999.00", description="Unbekannt"), open_invoices) is None

    def test_empty_invoice_number_is_ignored(self):
        invoices = [OpenInvoice(id="blank", invoice_number="", amount=Decimal("1.00"))]
        assert find_match(txn("5.00", description="irgendwas"), invoices) is None


class TestSuggestMatches:
    """Tests for ranked match suggestions."""

    def test_ranking(self, open_invoices):
        transaction = txn(
            "120.00", day=date(2024, 2, 1),
            description="Rechnung RE-2024-007", counterpart="Schmidt KG"
        )
        suggestions = suggest_matches(transaction, open_invoices)

        assert suggestions[0].invoice.id == "inv-3"
        assert "Exakter Betrag" in suggestions[0].reasons
        assert "Referenz stimmt überein" in suggestions[0].reasons
        assert "Kontakt stimmt überein" in suggestions[0].reasons
        assert suggestions[0].confidence == 100

    def test_threshold_and_limit(self):
        invoices = [
            OpenInvoice(id=f"inv-{i}", invoice_number=f"N{i}", amount=Decimal("10.00"))
            for i in range(8)
        ]
        invoices.append(OpenInvoice(id="far", invoice_number="X", amount=Decimal("500.00")))

        suggestions = suggest_matches(txn("10.00"), invoices)

        assert len(suggestions) == 5
        assert all(s.invoice.id != "far" for s in suggestions)
        assert all(s.confidence == 50 for s in suggestions)

    def test_description_words_score_without_counterpart(self):
        invoice = OpenInvoice(
            id="utility", invoice_number="SW-88", amount=Decimal("500.00"),
            contact_name="Stadtwerke Bonn"
        )
        transaction = txn("64.00", description="Abschlag Stadtwerke Bonn")

        suggestions = suggest_matches(transaction, [invoice], min_confidence=1)

        assert len(suggestions) == 1
        assert suggestions[0].confidence == 10
        assert suggestions[0].reasons == ["Beschreibung ähnlich"]
