"""
Import Session Tests

Tests for the review model: duplicate flags, default selection,
match overrides and the upload -> preview -> complete workflow.
"""

import pytest
from datetime import date
from decimal import Decimal
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "python"))

from statement_import.parsers.base import NormalizedTransaction
from statement_import.session import (
    EnhancedTransaction,
    FailureKind,
    ImportSession,
    ImportSessionError,
    ImportStep,
)


@pytest.fixture
def batch() -> list[NormalizedTransaction]:
    return [
        NormalizedTransaction(date=date(2024, 1, 14), amount=Decimal("200.00"), description="Zahlung"),
        NormalizedTransaction(date=date(2024, 1, 15), amount=Decimal("-45.00"), description="Invoice 2024-0099"),
        NormalizedTransaction(date=date(2024, 1, 16), amount=Decimal("-12.00"), description="Gebühr"),
    ]


@pytest.fixture
def session(booked_transactions, open_invoices) -> ImportSession:
    return ImportSession(existing=booked_transactions, open_invoices=open_invoices)


class TestEnhancedTransaction:
    """Tests for the review entry."""

    def test_selected_defaults_to_not_duplicate(self):
        base = NormalizedTransaction(date=date(2024, 1, 1), amount=Decimal("1.00"))

        assert EnhancedTransaction(base, is_duplicate=False).selected is True
        assert EnhancedTransaction(base, is_duplicate=True).selected is False

    def test_ids_are_unique(self):
        base = NormalizedTransaction(date=date(2024, 1, 1), amount=Decimal("1.00"))
        assert EnhancedTransaction(base).id != EnhancedTransaction(base).id


class TestProcessTransactions:
    """Tests for building the review list."""

    def test_moves_to_preview(self, session, batch):
        entries = session.process_transactions(batch, source_filename="a.sta", source_format="mt940")

        assert session.step == ImportStep.PREVIEW
        assert len(entries) == 3
        assert session.source_format == "mt940"

    def test_duplicate_flags_and_selection(self, session, batch):
        entries = session.process_transactions(batch)

        assert [e.is_duplicate for e in entries] == [False, True, False]
        assert [e.selected for e in entries] == [True, False, True]

    def test_invoice_matching(self, session, batch):
        entries = session.process_transactions(batch)

        # 200.00 matches RE-2024-042 by amount; debits never match
        assert entries[0].matching_invoice.id == "inv-2"
        assert entries[1].matching_invoice is None
        assert entries[2].matching_invoice is None

    def test_reparse_is_structurally_equal(self, booked_transactions, open_invoices, batch):
        first = ImportSession(booked_transactions, open_invoices).process_transactions(batch)
        second = ImportSession(booked_transactions, open_invoices).process_transactions(batch)

        assert first == second
        assert [e.id for e in first] != [e.id for e in second]

    def test_requires_upload_step(self, session, batch):
        session.process_transactions(batch)
        with pytest.raises(ImportSessionError):
            session.process_transactions(batch)


class TestSelection:
    """Tests for selection operations."""

    def test_toggle(self, session, batch):
        entries = session.process_transactions(batch)

        session.toggle_selection(entries[1].id)
        assert entries[1].selected is True
        session.toggle_selection(entries[1].id)
        assert entries[1].selected is False

    def test_select_all_keeps_duplicates_out(self, session, batch):
        entries = session.process_transactions(batch)
        session.select_none()
        session.toggle_selection(entries[1].id)

        session.select_all()

        assert [e.selected for e in entries] == [True, False, True]

    def test_select_none(self, session, batch):
        session.process_transactions(batch)
        session.select_none()

        assert session.selected_transactions == []

    def test_unknown_id(self, session, batch):
        session.process_transactions(batch)
        with pytest.raises(KeyError):
            session.toggle_selection("missing")

    def test_override_match(self, session, batch):
        entries = session.process_transactions(batch)

        session.override_match(entries[0].id, "inv-3")
        assert entries[0].matching_invoice.id == "inv-3"

        session.override_match(entries[0].id, None)
        assert entries[0].matching_invoice is None

    def test_override_with_unknown_invoice(self, session, batch):
        entries = session.process_transactions(batch)
        with pytest.raises(KeyError):
            session.override_match(entries[0].id, "inv-404")

    def test_selection_requires_preview(self, session):
        with pytest.raises(ImportSessionError):
            session.select_all()


class TestWorkflow:
    """Tests for the upload -> preview -> complete state machine."""

    def test_back_discards_list(self, session, batch):
        session.process_transactions(batch)
        session.back()

        assert session.step == ImportStep.UPLOAD
        assert session.transactions == []

    def test_back_only_from_preview(self, session):
        with pytest.raises(ImportSessionError):
            session.back()

    def test_failure_keeps_upload_step(self, session):
        failure = session.fail(FailureKind.NO_TRANSACTIONS, "Keine Transaktionen gefunden.")

        assert session.step == ImportStep.UPLOAD
        assert session.failure is failure
        assert failure.to_dict()["kind"] == "no_transactions"

    def test_commit_locks_session(self, session, batch):
        entries = session.process_transactions(batch)
        selected = session.begin_commit()

        assert [e.id for e in selected] == [entries[0].id, entries[2].id]
        with pytest.raises(ImportSessionError):
            session.toggle_selection(entries[0].id)
        with pytest.raises(ImportSessionError):
            session.override_match(entries[0].id, None)
        with pytest.raises(ImportSessionError):
            session.back()
        with pytest.raises(ImportSessionError):
            session.begin_commit()

    def test_complete_is_terminal(self, session, batch):
        session.process_transactions(batch)
        session.begin_commit()
        session.finish_commit(result={"committed": 2})

        assert session.step == ImportStep.COMPLETE
        with pytest.raises(ImportSessionError):
            session.select_all()
        with pytest.raises(ImportSessionError):
            session.process_transactions(batch)

    def test_reset_after_complete(self, session, batch):
        session.process_transactions(batch)
        session.begin_commit()
        session.finish_commit(result=None)

        session.reset()

        assert session.step == ImportStep.UPLOAD
        assert session.transactions == []
        session.process_transactions(batch)
        assert session.step == ImportStep.PREVIEW

    def test_reset_during_commit_refused(self, session, batch):
        session.process_transactions(batch)
        session.begin_commit()
        with pytest.raises(ImportSessionError):
            session.reset()

    def test_finish_without_commit(self, session):
        with pytest.raises(ImportSessionError):
            session.finish_commit(result=None)

    def test_summary(self, session, batch):
        session.process_transactions(batch)
        summary = session.summary()

        assert summary == {
            "total": 3,
            "income": 1,
            "expense": 2,
            "duplicates": 1,
            "selected": 2,
            "matched": 1,
            "selected_net_amount": "188.00",
        }

    def test_idle_after_timeout(self, session):
        assert session.is_idle(60, now=session.last_access + 61) is True
        assert session.is_idle(60, now=session.last_access + 30) is False

    def test_touch_resets_idle_clock(self, session):
        session.last_access -= 120
        session.touch()

        assert session.is_idle(60) is False

    def test_commit_in_progress_is_never_idle(self, session, batch):
        session.process_transactions(batch)
        session.begin_commit()

        assert session.is_idle(60, now=session.last_access + 3600) is False
