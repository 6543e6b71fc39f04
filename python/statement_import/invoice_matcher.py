"""
Invoice Matcher Module

Suggests the open invoice an incoming payment settles. The automatic
match tries the amount first and the invoice number in the payment text
second; ranked suggestions back the manual override during review.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from .parsers.base import NormalizedTransaction

logger = logging.getLogger(__name__)

DEFAULT_AMOUNT_TOLERANCE = Decimal("0.01")
OPEN_STATUSES = ("sent", "draft")


@dataclass(frozen=True)
class OpenInvoice:
    """An unpaid invoice that payments may be matched against."""

    id: str
    invoice_number: str
    amount: Decimal
    status: str = "sent"
    contact_name: str | None = None
    issue_date: date | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "amount": str(self.amount),
            "status": self.status,
            "contact_name": self.contact_name,
        }


@dataclass
class MatchSuggestion:
    """A scored candidate invoice for one transaction."""

    invoice: OpenInvoice
    confidence: int
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "invoice": self.invoice.to_dict(),
            "confidence": self.confidence,
            "reasons": self.reasons,
        }


def _search_text(transaction: NormalizedTransaction) -> str:
    return f"{transaction.description} {transaction.reference or ''}".casefold()


def find_match(
    transaction: NormalizedTransaction,
    open_invoices: list[OpenInvoice],
    tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE
) -> OpenInvoice | None:
    """Find the open invoice an incoming payment most likely settles.

    Only credits are matched. An amount hit wins over an invoice number
    found in the description or reference; within a tier the first
    invoice in list order wins.
    """
    if transaction.amount <= 0:
        return None

    for invoice in open_invoices:
        if abs(invoice.amount - transaction.amount) < tolerance:
            return invoice

    text = _search_text(transaction)
    for invoice in open_invoices:
        number = (invoice.invoice_number or "").strip().casefold()
        if number and number in text:
            return invoice

    return None


def suggest_matches(
    transaction: NormalizedTransaction,
    open_invoices: list[OpenInvoice],
    limit: int = 5,
    min_confidence: int = 30
) -> list[MatchSuggestion]:
    """Rank open invoices for a transaction by a 0-100 confidence score.

    Scoring: exact amount 50, near amount 30, within 5% 15; invoice number
    in the payment text 25; counterpart equals contact 20; shared words in
    the description up to 15; issue date within 3 / 7 days 10 / 5.
    """
    suggestions = []
    magnitude = abs(transaction.amount)
    text = _search_text(transaction)
    words = {w for w in transaction.description.casefold().split() if len(w) > 3}

    for invoice in open_invoices:
        confidence = 0
        reasons = []

        diff = abs(abs(invoice.amount) - magnitude)
        if diff < DEFAULT_AMOUNT_TOLERANCE:
            confidence += 50
            reasons.append("Exakter Betrag")
        elif diff < 1:
            confidence += 30
            reasons.append("Ähnlicher Betrag")
        elif magnitude and diff / magnitude < Decimal("0.05"):
            confidence += 15
            reasons.append("Betrag nah")

        number = (invoice.invoice_number or "").strip().casefold()
        if number and number in text:
            confidence += 25
            reasons.append("Referenz stimmt überein")

        if invoice.contact_name and transaction.counterpart_name:
            contact = invoice.contact_name.casefold()
            counterpart = transaction.counterpart_name.casefold()
            if contact in counterpart or counterpart in contact:
                confidence += 20
                reasons.append("Kontakt stimmt überein")

        invoice_words = f"{invoice.invoice_number or ''} {invoice.contact_name or ''}".casefold()
        common = words & {w for w in invoice_words.split() if len(w) > 3}
        if common:
            confidence += min(len(common) * 5, 15)
            reasons.append("Beschreibung ähnlich")

        if invoice.issue_date:
            days = abs((transaction.date - invoice.issue_date).days)
            if days <= 3:
                confidence += 10
                reasons.append("Datum nah")
            elif days <= 7:
                confidence += 5
                reasons.append("Datum ähnlich")

        if confidence >= min_confidence:
            suggestions.append(MatchSuggestion(invoice, min(confidence, 100), reasons))

    suggestions.sort(key=lambda s: s.confidence, reverse=True)
    return suggestions[:limit]
