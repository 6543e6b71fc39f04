"""
CSV Statement Parser

Parses delimited-text bank exports using a bank format profile that
selects which columns carry date, amount, description and reference.
"""

import csv
import logging
import re
from dataclasses import replace
from decimal import Decimal
from io import StringIO

from ..bank_formats import GENERAL_FORMAT, BankFormat, BankFormatRegistry
from .base import (
    BaseStatementParser,
    FormatTag,
    NormalizedTransaction,
    ParseResult,
    parse_amount,
    parse_date,
)

logger = logging.getLogger(__name__)


class CSVStatementParser(BaseStatementParser):
    """Profile-driven parser for delimited bank exports."""

    FORMAT = FormatTag.GENERAL_CSV

    # Amount-looking cells for column inference: sign, digits, 2 decimals
    AMOUNT_PATTERN = re.compile(r'^[+-]?\s*[\d.,\s]*\d[.,]\d{1,2}\s*-?\s*(€|EUR)?$', re.IGNORECASE)

    # Header names recognized when a generic export carries a header row
    HEADER_ALIASES = {
        "date_column": ["datum", "buchungstag", "buchungsdatum", "date", "booking date"],
        "value_date_column": ["valuta", "valutadatum", "wertstellung", "value date"],
        "amount_column": ["betrag", "umsatz", "amount"],
        "description_columns": [
            "verwendungszweck", "beschreibung", "buchungstext", "zweck", "description",
        ],
        "reference_column": ["referenz", "kundenreferenz", "reference"],
        "counterpart_name_column": [
            "name", "empfänger", "auftraggeber", "zahlungsempfänger",
            "begünstigter / auftraggeber", "counterparty",
        ],
        "counterpart_iban_column": ["iban", "kontonummer"],
    }

    def __init__(
        self,
        bank_format: BankFormat | str | None = None,
        registry: BankFormatRegistry | None = None,
        auto_detect: bool = True
    ):
        """Initialize the parser.

        Args:
            bank_format: Profile or profile name (defaults to the generic profile)
            registry: Registry used to resolve names and detect banks
            auto_detect: Let a recognized bank header override the generic profile
        """
        self.registry = registry or BankFormatRegistry()
        if isinstance(bank_format, BankFormat):
            self.bank_format = bank_format
        else:
            self.bank_format = self.registry.get(bank_format)
        self.auto_detect = auto_detect

    def _parse(self, content: str, result: ParseResult) -> None:
        profile = self.bank_format

        if self.auto_detect and profile.name == GENERAL_FORMAT:
            detected = self.registry.detect(content)
            if detected:
                logger.info(f"Auto-detected bank format '{detected.name}'")
                profile = detected

        result.bank_format = profile.name
        delimiter = profile.delimiter or self._sniff_delimiter(content)
        reader = csv.reader(StringIO(content), delimiter=delimiter)

        resolve_header = profile.infer_columns
        for row_num, row in enumerate(reader, start=1):
            cells = [c.strip() for c in row]
            if not any(cells):
                continue

            if resolve_header and not result.transactions:
                from_header = self._profile_from_header(cells, profile)
                if from_header:
                    logger.debug(f"Columns resolved from header row {row_num}")
                    profile = from_header
                    resolve_header = False
                    continue

            try:
                transaction = self._parse_row(cells, profile)
            except ValueError as e:
                result.warnings.append(f"Row {row_num}: {e}")
                continue

            if transaction:
                result.transactions.append(transaction)
            else:
                logger.debug(f"Skipped row {row_num}: no date/amount")

    def _sniff_delimiter(self, content: str) -> str:
        """Pick the most frequent candidate delimiter in the first lines."""
        sample = "\n".join(content.split("\n")[:10])
        counts = {d: sample.count(d) for d in (";", ",", "\t")}
        best = max(counts, key=counts.get)
        return best if counts[best] else ";"

    def _profile_from_header(self, cells: list[str], profile: BankFormat) -> BankFormat | None:
        """Map columns by header name.

        Returns:
            Copy of ``profile`` with fixed columns, or None unless the row
            names both a date and an amount column
        """
        names = [c.strip().strip('"').lower() for c in cells]
        columns: dict = {}
        for field_name, aliases in self.HEADER_ALIASES.items():
            matches = [
                idx for idx, name in enumerate(names)
                if any(name == alias or name.startswith(alias + " ") for alias in aliases)
            ]
            if not matches:
                continue
            columns[field_name] = matches if field_name == "description_columns" else matches[0]

        if "date_column" not in columns or "amount_column" not in columns:
            return None

        return replace(
            profile,
            value_date_column=columns.get("value_date_column"),
            description_columns=columns.get("description_columns", []),
            reference_column=columns.get("reference_column"),
            counterpart_name_column=columns.get("counterpart_name_column"),
            counterpart_iban_column=columns.get("counterpart_iban_column"),
            date_column=columns["date_column"],
            amount_column=columns["amount_column"],
            infer_columns=False,
        )

    def _parse_row(self, cells: list[str], profile: BankFormat) -> NormalizedTransaction | None:
        """Parse a single CSV row.

        Returns:
            NormalizedTransaction, or None when the row has no usable
            date/amount (header, preamble or summary lines)
        """
        txn_date = self._cell_date(cells, profile.date_column)
        amount = self._row_amount(cells, profile)
        description = self._first_cell(cells, profile.description_columns)

        # A guessed layout must not read a numeric purpose as the amount
        if (
            amount is not None
            and profile.infer_columns
            and not self.AMOUNT_PATTERN.match(self._cell(cells, profile.amount_column))
        ):
            amount = None

        if (txn_date is None or amount is None) and profile.infer_columns:
            inferred = self._infer_row(cells)
            if inferred is None:
                return None
            txn_date, amount, description = inferred

        if txn_date is None or amount is None or amount == 0:
            return None

        value_date = self._cell_date(cells, profile.value_date_column) or txn_date

        return NormalizedTransaction(
            date=txn_date,
            value_date=value_date,
            amount=amount,
            description=description,
            reference=self._cell(cells, profile.reference_column) or None,
            counterpart_name=self._cell(cells, profile.counterpart_name_column) or None,
            counterpart_iban=self._cell(cells, profile.counterpart_iban_column) or None,
            category=self._first_cell(cells, profile.category_columns) or None,
            raw_data={"cells": cells, "bank_format": profile.name},
        )

    def _row_amount(self, cells: list[str], profile: BankFormat) -> Decimal | None:
        """Determine the signed amount of a row.

        Separate debit/credit columns win over the amount column; a
        direction column (e.g. S/H) overrides the sign of the amount.
        """
        debit = self._cell_amount(cells, profile.debit_column, profile.decimal_separator)
        if debit:
            return -abs(debit)

        credit = self._cell_amount(cells, profile.credit_column, profile.decimal_separator)
        if credit:
            return abs(credit)

        amount = self._cell_amount(cells, profile.amount_column, profile.decimal_separator)
        if amount is None:
            return None

        direction = self._cell(cells, profile.direction_column).upper()
        if direction:
            return -abs(amount) if direction in profile.debit_markers else abs(amount)

        return amount

    def _infer_row(self, cells: list[str]) -> tuple | None:
        """Locate date, amount and description cells by their content."""
        date_idx = None
        txn_date = None
        for idx, cell in enumerate(cells):
            try:
                txn_date = parse_date(cell)
                date_idx = idx
                break
            except ValueError:
                continue
        if date_idx is None:
            return None

        amount_idx = None
        amount = None
        for idx, cell in enumerate(cells):
            if idx == date_idx or not self.AMOUNT_PATTERN.match(cell):
                continue
            try:
                amount = parse_amount(cell)
                amount_idx = idx
                break
            except ValueError:
                continue
        if amount_idx is None:
            return None

        description = next(
            (c for i, c in enumerate(cells) if i not in (date_idx, amount_idx) and c),
            ""
        )
        return txn_date, amount, description

    def _cell(self, cells: list[str], index: int | None) -> str:
        if index is None or index >= len(cells):
            return ""
        return cells[index].strip().strip('"')

    def _first_cell(self, cells: list[str], indices: list[int]) -> str:
        for index in indices:
            value = self._cell(cells, index)
            if value:
                return value
        return ""

    def _cell_date(self, cells: list[str], index: int | None):
        value = self._cell(cells, index)
        if not value:
            return None
        try:
            return parse_date(value)
        except ValueError:
            return None

    def _cell_amount(
        self,
        cells: list[str],
        index: int | None,
        decimal_separator: str | None
    ) -> Decimal | None:
        value = self._cell(cells, index)
        if not value:
            return None
        try:
            return parse_amount(value, decimal_separator)
        except ValueError:
            return None
