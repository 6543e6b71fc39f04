"""
Import Session Module

Holds one statement import under review: the parsed transactions with
their duplicate flags and invoice matches, the user's selection, and the
workflow step (upload -> preview -> complete).
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from .duplicate_detector import DEFAULT_AMOUNT_TOLERANCE, DuplicateDetector, ExistingTransaction
from .invoice_matcher import MatchSuggestion, OpenInvoice, find_match, suggest_matches
from .parsers.base import NormalizedTransaction

logger = logging.getLogger(__name__)


class ImportStep(Enum):
    """Workflow steps of an import session."""
    UPLOAD = "upload"
    PREVIEW = "preview"
    COMPLETE = "complete"


class FailureKind(Enum):
    """Why a file could not be loaded into the session."""
    PARSE_FAILED = "parse_failed"
    NO_TRANSACTIONS = "no_transactions"
    EXTRACTION_FAILED = "extraction_failed"


class ImportSessionError(Exception):
    """Raised when an operation is not allowed in the session's current state."""
    pass


@dataclass
class ImportFailure:
    """User-facing reason the last file was rejected."""

    kind: FailureKind
    message: str
    details: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message, "details": self.details}


@dataclass
class EnhancedTransaction:
    """A parsed transaction under review."""

    transaction: NormalizedTransaction
    is_duplicate: bool = False
    selected: bool | None = None
    matching_invoice: OpenInvoice | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)

    def __post_init__(self):
        if self.selected is None:
            self.selected = not self.is_duplicate

    @property
    def date(self):
        return self.transaction.date

    @property
    def amount(self) -> Decimal:
        return self.transaction.amount

    @property
    def description(self) -> str:
        return self.transaction.description

    def to_dict(self) -> dict:
        data = self.transaction.to_dict()
        data.update({
            "id": self.id,
            "is_duplicate": self.is_duplicate,
            "selected": self.selected,
            "matching_invoice": self.matching_invoice.to_dict() if self.matching_invoice else None,
        })
        return data


class ImportSession:
    """Review state for one statement import.

    Snapshots of booked transactions and open invoices are taken once
    when the session opens and are not refreshed while it lives.
    """

    def __init__(
        self,
        existing: list[ExistingTransaction] | None = None,
        open_invoices: list[OpenInvoice] | None = None,
        bank_account_id: str | None = None,
        duplicate_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE,
        invoice_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE
    ):
        self.id = uuid.uuid4().hex
        self.bank_account_id = bank_account_id
        self.open_invoices = list(open_invoices or [])
        self.invoice_tolerance = invoice_tolerance
        self._detector = DuplicateDetector(existing or [], duplicate_tolerance)

        self.step = ImportStep.UPLOAD
        self.transactions: list[EnhancedTransaction] = []
        self.failure: ImportFailure | None = None
        self.source_filename: str | None = None
        self.source_format: str | None = None
        self.commit_result = None
        self._committing = False
        self.last_access = time.monotonic()

    def touch(self) -> None:
        self.last_access = time.monotonic()

    def is_idle(self, timeout: float, now: float | None = None) -> bool:
        """Check whether the session was untouched for ``timeout`` seconds.

        A session with a commit in progress is never idle.
        """
        if self._committing and self.step != ImportStep.COMPLETE:
            return False
        now = time.monotonic() if now is None else now
        return now - self.last_access > timeout

    # Upload step

    def process_transactions(
        self,
        normalized: list[NormalizedTransaction],
        source_filename: str | None = None,
        source_format: str | None = None
    ) -> list[EnhancedTransaction]:
        """Flag duplicates, match invoices and move to preview.

        Raises:
            ImportSessionError: If the session is not on the upload step
        """
        self._require_step(ImportStep.UPLOAD)

        flags = self._detector.flag(normalized)
        self.transactions = [
            EnhancedTransaction(
                transaction=txn,
                is_duplicate=is_dup,
                matching_invoice=find_match(txn, self.open_invoices, self.invoice_tolerance),
            )
            for txn, is_dup in zip(normalized, flags)
        ]

        self.failure = None
        self.source_filename = source_filename
        self.source_format = source_format
        self.step = ImportStep.PREVIEW

        logger.info(
            f"Session {self.id}: {len(self.transactions)} transactions in preview "
            f"({sum(flags)} duplicates, "
            f"{sum(1 for t in self.transactions if t.matching_invoice)} matched)"
        )
        return self.transactions

    def check_can_load(self) -> None:
        """Raise ImportSessionError unless a file may be loaded now."""
        self._require_step(ImportStep.UPLOAD)

    def fail(self, kind: FailureKind, message: str, details: list[str] | None = None) -> ImportFailure:
        """Record why a file was rejected; the session stays on upload."""
        self._require_step(ImportStep.UPLOAD)
        self.failure = ImportFailure(kind=kind, message=message, details=list(details or []))
        logger.warning(f"Session {self.id}: {kind.value}: {message}")
        return self.failure

    # Review step

    def get(self, transaction_id: str) -> EnhancedTransaction:
        """Look up an entry by id.

        Raises:
            KeyError: If no entry has this id
        """
        for entry in self.transactions:
            if entry.id == transaction_id:
                return entry
        raise KeyError(transaction_id)

    def toggle_selection(self, transaction_id: str) -> EnhancedTransaction:
        self._require_editable()
        entry = self.get(transaction_id)
        entry.selected = not entry.selected
        return entry

    def select_all(self) -> None:
        """Select every entry except likely duplicates."""
        self._require_editable()
        for entry in self.transactions:
            entry.selected = not entry.is_duplicate

    def select_none(self) -> None:
        self._require_editable()
        for entry in self.transactions:
            entry.selected = False

    def override_match(self, transaction_id: str, invoice_id: str | None) -> EnhancedTransaction:
        """Replace or clear the invoice matched to one entry.

        Raises:
            KeyError: If the entry or the invoice is unknown
        """
        self._require_editable()
        entry = self.get(transaction_id)

        if invoice_id is None:
            entry.matching_invoice = None
            return entry

        invoice = next((inv for inv in self.open_invoices if inv.id == invoice_id), None)
        if invoice is None:
            raise KeyError(invoice_id)
        entry.matching_invoice = invoice
        return entry

    def suggestions(self, transaction_id: str, limit: int = 5) -> list[MatchSuggestion]:
        """Ranked invoice candidates for one entry."""
        entry = self.get(transaction_id)
        return suggest_matches(entry.transaction, self.open_invoices, limit=limit)

    def back(self) -> None:
        """Return to upload, discarding the parsed list."""
        self._require_editable()
        self.transactions = []
        self.source_filename = None
        self.source_format = None
        self.step = ImportStep.UPLOAD

    @property
    def selected_transactions(self) -> list[EnhancedTransaction]:
        return [t for t in self.transactions if t.selected]

    # Commit

    def begin_commit(self) -> list[EnhancedTransaction]:
        """Freeze the selection and return the entries to commit.

        Raises:
            ImportSessionError: If not in preview or a commit already started
        """
        self._require_editable()
        self._committing = True
        return self.selected_transactions

    def finish_commit(self, result) -> None:
        if not self._committing:
            raise ImportSessionError("No commit in progress")
        self.commit_result = result
        self.step = ImportStep.COMPLETE

    def reset(self) -> None:
        """Start a fresh import in this session."""
        if self._committing and self.step != ImportStep.COMPLETE:
            raise ImportSessionError("Commit in progress")
        self.step = ImportStep.UPLOAD
        self.transactions = []
        self.failure = None
        self.source_filename = None
        self.source_format = None
        self.commit_result = None
        self._committing = False

    # Reporting

    def summary(self) -> dict:
        income = [t for t in self.transactions if t.amount > 0]
        selected = self.selected_transactions
        return {
            "total": len(self.transactions),
            "income": len(income),
            "expense": len(self.transactions) - len(income),
            "duplicates": sum(1 for t in self.transactions if t.is_duplicate),
            "selected": len(selected),
            "matched": sum(1 for t in self.transactions if t.matching_invoice),
            "selected_net_amount": str(sum((t.amount for t in selected), Decimal("0"))),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "step": self.step.value,
            "bank_account_id": self.bank_account_id,
            "source_filename": self.source_filename,
            "source_format": self.source_format,
            "failure": self.failure.to_dict() if self.failure else None,
            "summary": self.summary(),
            "transactions": [t.to_dict() for t in self.transactions],
        }

    def _require_step(self, step: ImportStep) -> None:
        if self._committing:
            raise ImportSessionError("Session is locked by a commit")
        if self.step != step:
            raise ImportSessionError(
                f"Operation requires step '{step.value}', session is on '{self.step.value}'"
            )

    def _require_editable(self) -> None:
        self._require_step(ImportStep.PREVIEW)
