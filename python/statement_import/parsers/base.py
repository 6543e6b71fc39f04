"""
Base Statement Parser Module

Normalized transaction model and abstract base class shared by all
bank statement parsers (CSV, MT940, CAMT.053).
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum


class FormatTag(Enum):
    """Statement file formats the importer can parse."""
    GENERAL_CSV = "general_csv"
    MT940 = "mt940"
    CAMT053 = "camt053"


@dataclass
class NormalizedTransaction:
    """A single statement line in the canonical import format.

    Amounts are signed: positive = credit (money in), negative = debit.
    """

    date: date
    amount: Decimal
    description: str = ""
    reference: str | None = None
    counterpart_name: str | None = None
    category: str | None = None
    value_date: date | None = None
    counterpart_iban: str | None = None
    raw_data: dict = field(default_factory=dict)

    @property
    def display_description(self) -> str:
        """Description with the counterpart name as fallback."""
        return self.description or self.counterpart_name or ""

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "value_date": self.value_date.isoformat() if self.value_date else None,
            "amount": str(self.amount),
            "description": self.description,
            "reference": self.reference,
            "counterpart_name": self.counterpart_name,
            "counterpart_iban": self.counterpart_iban,
            "category": self.category,
        }


@dataclass
class ParseResult:
    """Result of parsing a bank statement."""

    format: FormatTag
    bank_format: str | None = None
    account_id: str | None = None
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None
    transactions: list[NormalizedTransaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def parse_date(date_str: str) -> date:
    """Parse a statement date into a calendar date.

    Accepts ISO dates (optionally followed by a time), German
    ``DD.MM.YYYY`` / ``DD.MM.YY`` and ``DD/MM/YYYY``.

    Raises:
        ValueError: If the date cannot be parsed
    """
    value = (date_str or "").strip().strip('"')
    if not value:
        raise ValueError("Empty date")

    # Timestamps like "2024-01-15 10:22:01" or "2024-01-15T10:22:01"
    iso_match = re.match(r'^(\d{4})-(\d{1,2})-(\d{1,2})(?:[ T].*)?$', value)
    if iso_match:
        year, month, day = (int(p) for p in iso_match.groups())
        return date(year, month, day)

    german_match = re.match(r'^(\d{1,2})[./](\d{1,2})[./](\d{2}|\d{4})$', value)
    if german_match:
        day, month, year_str = german_match.groups()
        year = int(year_str)
        if len(year_str) == 2:
            year += 1900 if year > 50 else 2000
        return date(year, int(month), int(day))

    for fmt in ("%Y%m%d", "%d-%m-%Y", "%d-%b-%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    raise ValueError(f"Cannot parse date: {date_str}")


def parse_amount(amount_str: str, decimal_separator: str | None = None) -> Decimal:
    """Parse an amount string to a signed Decimal.

    Args:
        amount_str: Amount text (may include currency symbols, thousands
            separators, a leading or trailing sign, or parentheses)
        decimal_separator: "," or "."; detected from the text when None

    Raises:
        ValueError: If the amount cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount")

    cleaned = str(amount_str).strip().strip('"')
    cleaned = re.sub(r'(EUR|€|\s|\u00a0)', '', cleaned, flags=re.IGNORECASE)

    is_negative = False
    if cleaned.startswith('(') and cleaned.endswith(')'):
        cleaned = cleaned[1:-1]
        is_negative = True
    if cleaned.endswith('-'):
        cleaned = cleaned[:-1]
        is_negative = not is_negative
    elif cleaned.endswith('+'):
        cleaned = cleaned[:-1]
    if cleaned.startswith('-'):
        cleaned = cleaned[1:]
        is_negative = not is_negative
    elif cleaned.startswith('+'):
        cleaned = cleaned[1:]

    separator = decimal_separator or _guess_decimal_separator(cleaned)
    if separator == ",":
        cleaned = cleaned.replace('.', '').replace(',', '.')
    else:
        cleaned = cleaned.replace(',', '')

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Cannot parse amount: {amount_str}")

    return -amount if is_negative else amount


def _guess_decimal_separator(text: str) -> str:
    """Guess the decimal separator of an unsigned amount string."""
    if ',' in text and '.' in text:
        return ',' if text.rfind(',') > text.rfind('.') else '.'
    if ',' in text:
        return ','
    # "3.000" is a German thousands group, "12.50" a decimal point
    if re.fullmatch(r'[1-9]\d{0,2}(\.\d{3})+', text):
        return ','
    return '.'


class BaseStatementParser(ABC):
    """Abstract base class for statement parsers."""

    FORMAT: FormatTag = FormatTag.GENERAL_CSV

    def parse_content(self, content: str) -> ParseResult:
        """Parse statement content.

        Never raises for bad input: unreadable documents are reported in
        ``errors`` and an empty transaction list is returned.
        """
        result = ParseResult(format=self.FORMAT)

        try:
            content = self._preprocess_content(content)
            self._parse(content, result)
        except Exception as e:
            result.errors.append(f"Parse error: {e}")
            result.transactions = []

        return result

    def _preprocess_content(self, content: str) -> str:
        """Preprocess content before parsing.

        Args:
            content: Raw content

        Returns:
            Content without BOM and with normalized line endings
        """
        if content.startswith('\ufeff'):
            content = content[1:]

        return content.replace('\r\n', '\n').replace('\r', '\n')

    @abstractmethod
    def _parse(self, content: str, result: ParseResult) -> None:
        """Fill ``result`` with the transactions found in ``content``."""
        pass
