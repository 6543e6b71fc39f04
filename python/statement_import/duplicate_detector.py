"""
Duplicate Transaction Detector Module

Flags imported statement lines that are already booked in the ledger.
A line counts as a duplicate when a booked transaction has the same date
and an absolute amount within the tolerance (default 0.01).
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .parsers.base import NormalizedTransaction

logger = logging.getLogger(__name__)

DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class ExistingTransaction:
    """Snapshot of an already booked ledger transaction."""

    date: date
    amount: Decimal

    @classmethod
    def from_row(cls, row: dict) -> "ExistingTransaction":
        """Build from a ledger row (``date`` may be a string or a date)."""
        raw_date = row["date"]
        if isinstance(raw_date, str):
            raw_date = date.fromisoformat(raw_date[:10])
        elif hasattr(raw_date, "date") and callable(raw_date.date):
            raw_date = raw_date.date()
        return cls(date=raw_date, amount=Decimal(str(row["amount"])))


def is_duplicate(
    transaction: NormalizedTransaction,
    existing: list[ExistingTransaction],
    tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE
) -> bool:
    """Check a transaction against booked transactions.

    Sign is ignored: booked amounts are stored unsigned with a type column.
    """
    magnitude = abs(transaction.amount)
    return any(
        e.date == transaction.date and abs(abs(e.amount) - magnitude) < tolerance
        for e in existing
    )


class DuplicateDetector:
    """Checks imports against a bounded snapshot of booked transactions."""

    def __init__(
        self,
        existing: list[ExistingTransaction] | None = None,
        amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE
    ):
        """Initialize the duplicate detector.

        Args:
            existing: Recently booked transactions
            amount_tolerance: Absolute amount tolerance
        """
        self.amount_tolerance = Decimal(str(amount_tolerance))
        self._index: dict[date, list[ExistingTransaction]] = {}
        self.load(existing or [])

    def load(self, existing: list[ExistingTransaction]) -> None:
        """Replace the snapshot, indexed by date."""
        self._index.clear()
        for item in existing:
            self._index.setdefault(item.date, []).append(item)

    @property
    def snapshot_size(self) -> int:
        return sum(len(items) for items in self._index.values())

    def check(self, transaction: NormalizedTransaction) -> bool:
        return is_duplicate(
            transaction,
            self._index.get(transaction.date, []),
            self.amount_tolerance
        )

    def flag(self, transactions: list[NormalizedTransaction]) -> list[bool]:
        """Return a duplicate flag per transaction, in order."""
        flags = [self.check(t) for t in transactions]
        duplicates = sum(flags)
        if duplicates:
            logger.info(f"{duplicates} of {len(transactions)} transactions already booked")
        return flags
