"""
MT940 Statement Parser

Parses SWIFT MT940 account statements. Each :61: statement line opens a
transaction; the following :86: information field supplies description,
reference and counterpart. German banks use the structured ?xx subfield
layout inside :86:, which is decoded when present.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from .base import (
    BaseStatementParser,
    FormatTag,
    NormalizedTransaction,
    ParseResult,
    parse_amount,
)

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r'^:(\d{2}[A-Z]?):(.*)$')

STATEMENT_LINE_PATTERN = re.compile(
    r'^(?P<value_date>\d{6})'
    r'(?P<entry_date>\d{4})?'
    r'(?P<mark>RC|RD|C|D)'
    r'(?P<funds_code>[A-Z])?'
    r'(?P<amount>\d+,\d{0,2})'
    r'(?P<rest>.*)$'
)

BALANCE_PATTERN = re.compile(r'^(?P<mark>C|D)(?P<date>\d{6})(?P<currency>[A-Z]{3})(?P<amount>\d+,\d{0,2})')

SEPA_KEYWORDS = re.compile(r'(EREF|KREF|MREF|CRED|DEBT|SVWZ|ABWA|ABWE|IBAN|BIC)\+')


@dataclass
class _OpenRecord:
    """A :61: line waiting for its :86: information field."""

    statement_line: str
    supplementary: list[str] = field(default_factory=list)
    info_lines: list[str] | None = None


def _swift_date(yymmdd: str) -> date:
    year = int(yymmdd[0:2])
    year += 1900 if year > 50 else 2000
    return date(year, int(yymmdd[2:4]), int(yymmdd[4:6]))


class MT940Parser(BaseStatementParser):
    """Parser for SWIFT MT940 statements."""

    FORMAT = FormatTag.MT940

    def _parse(self, content: str, result: ParseResult) -> None:
        record: _OpenRecord | None = None
        last_tag: str | None = None

        for raw_line in content.split("\n"):
            line = raw_line.rstrip()
            if not line:
                continue

            tag_match = TAG_PATTERN.match(line)

            if not tag_match:
                if line.strip() == "-":
                    # End of message block
                    self._close(record, result)
                    record, last_tag = None, None
                    continue
                # Continuation of the previous field
                if record is not None and last_tag == "86" and record.info_lines is not None:
                    record.info_lines.append(line)
                elif record is not None and last_tag == "61":
                    record.supplementary.append(line.strip())
                continue

            tag, value = tag_match.group(1), tag_match.group(2)
            last_tag = tag

            if tag == "61":
                self._close(record, result)
                record = _OpenRecord(statement_line=value.strip())
            elif tag == "86":
                if record is not None and record.info_lines is None:
                    record.info_lines = [value]
                else:
                    # :86: at statement level, not tied to a :61: line
                    last_tag = None
            elif tag == "25":
                result.account_id = value.strip()
            elif tag in ("60F", "60M"):
                if result.opening_balance is None:
                    result.opening_balance = self._parse_balance(value)
            elif tag in ("62F", "62M"):
                self._close(record, result)
                record = None
                result.closing_balance = self._parse_balance(value)
            else:
                self._close(record, result)
                record = None

        # A trailing record without :86: is incomplete and dropped
        self._close(record, result)

    def _close(self, record: _OpenRecord | None, result: ParseResult) -> None:
        """Emit a completed record; discard incomplete ones."""
        if record is None:
            return

        if record.info_lines is None:
            logger.debug(f"Discarding :61: without :86: ({record.statement_line})")
            return

        try:
            transaction = self._build_transaction(record)
        except ValueError as e:
            result.warnings.append(f"Statement line {record.statement_line!r}: {e}")
            return

        if transaction:
            result.transactions.append(transaction)

    def _build_transaction(self, record: _OpenRecord) -> NormalizedTransaction | None:
        match = STATEMENT_LINE_PATTERN.match(record.statement_line)
        if not match:
            raise ValueError("malformed statement line")

        value_date = _swift_date(match.group("value_date"))
        amount = parse_amount(match.group("amount"), decimal_separator=",")
        if amount == 0:
            return None

        # C = credit, D = debit, RC = reversal of credit (debit entry),
        # RD = reversal of debit (credit entry)
        mark = match.group("mark")
        if mark in ("D", "RC"):
            amount = -amount

        customer_ref = self._customer_reference(match.group("rest"))
        details = self._parse_information(record.info_lines or [])

        reference = details.get("reference") or customer_ref

        return NormalizedTransaction(
            date=value_date,
            value_date=value_date,
            amount=amount,
            description=details.get("description", ""),
            reference=reference,
            counterpart_name=details.get("counterpart_name"),
            counterpart_iban=details.get("counterpart_iban"),
            raw_data={
                "statement_line": record.statement_line,
                "entry_date": match.group("entry_date"),
                "supplementary": record.supplementary,
                "information": "".join(record.info_lines or []),
                "gvc": details.get("gvc"),
            },
        )

    def _customer_reference(self, rest: str) -> str | None:
        """Extract the customer reference from the tail of a :61: line."""
        rest = rest.strip()
        if len(rest) >= 4 and rest[0] in "NFS":
            rest = rest[4:]
        customer_ref = rest.split("//", 1)[0].strip()
        if not customer_ref or customer_ref.upper() == "NONREF":
            return None
        return customer_ref

    def _parse_information(self, lines: list[str]) -> dict:
        """Decode the :86: information field."""
        joined = "".join(lines)

        if not re.match(r'^\d{3}\?', joined):
            text = re.sub(r'\?\d{2}', ' ', " ".join(lines))
            return {"description": " ".join(text.split())}

        details: dict = {"gvc": joined[:3]}
        subfields: dict[str, list[str]] = {}
        for code, value in re.findall(r'\?(\d{2})([^?]*)', joined[3:]):
            subfields.setdefault(code, []).append(value)

        purpose_codes = [f"{n}" for n in range(20, 30)] + ["60", "61", "62", "63"]
        purpose = " ".join(
            v.strip() for code in purpose_codes for v in subfields.get(code, []) if v.strip()
        )
        name = " ".join(
            v.strip() for code in ("32", "33") for v in subfields.get(code, []) if v.strip()
        )
        iban = "".join(subfields.get("31", [])).strip()

        sepa = self._split_sepa_keywords(purpose)
        eref = sepa.get("EREF")
        if eref and eref.upper() != "NOTPROVIDED":
            details["reference"] = eref

        description = sepa.get("SVWZ") or (purpose if not sepa else "")
        if not description:
            description = " ".join(subfields.get("00", [])).strip()

        details["description"] = " ".join(description.split())
        if name:
            details["counterpart_name"] = name
        if iban:
            details["counterpart_iban"] = iban.replace(" ", "").upper()

        return details

    def _split_sepa_keywords(self, purpose: str) -> dict[str, str]:
        """Split SEPA purpose text like 'EREF+123 SVWZ+Rechnung 42'."""
        parts = SEPA_KEYWORDS.split(purpose)
        if len(parts) < 3:
            return {}

        values = {}
        # parts = [prefix, key1, value1, key2, value2, ...]
        for key, value in zip(parts[1::2], parts[2::2]):
            values[key] = value.strip()
        if parts[0].strip() and "SVWZ" not in values:
            values["SVWZ"] = parts[0].strip()
        return values

    def _parse_balance(self, value: str) -> Decimal | None:
        match = BALANCE_PATTERN.match(value.strip())
        if not match:
            return None
        amount = parse_amount(match.group("amount"), decimal_separator=",")
        return -amount if match.group("mark") == "D" else amount
