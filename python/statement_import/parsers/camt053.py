"""
CAMT.053 Statement Parser

Parses ISO 20022 camt.053 bank-to-customer statements. Element lookups
ignore XML namespaces so every camt.053 schema version is accepted.
"""

import logging
import xml.etree.ElementTree as ET

from .base import (
    BaseStatementParser,
    FormatTag,
    NormalizedTransaction,
    ParseResult,
    parse_amount,
    parse_date,
)

logger = logging.getLogger(__name__)


def _local(tag: str) -> str:
    """Strip the namespace from an element tag."""
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element | None, *path: str) -> ET.Element | None:
    """Follow a path of local tag names below ``element``."""
    current = element
    for name in path:
        if current is None:
            return None
        current = next((c for c in current if _local(c.tag) == name), None)
    return current


def _text(element: ET.Element | None, *path: str) -> str | None:
    node = _child(element, *path)
    if node is None or node.text is None:
        return None
    value = node.text.strip()
    return value or None


def _iter_local(element: ET.Element, name: str):
    for node in element.iter():
        if _local(node.tag) == name:
            yield node


class CAMT053Parser(BaseStatementParser):
    """Parser for camt.053 XML statements."""

    FORMAT = FormatTag.CAMT053

    def _parse(self, content: str, result: ParseResult) -> None:
        try:
            root = ET.fromstring(content.strip().encode("utf-8"))
        except ET.ParseError as e:
            result.errors.append(f"Invalid XML: {e}")
            return

        statement = next(_iter_local(root, "Stmt"), None)
        if statement is not None:
            self._read_statement_metadata(statement, result)

        for entry in _iter_local(root, "Ntry"):
            try:
                transaction = self._parse_entry(entry)
            except ValueError as e:
                result.warnings.append(f"Entry skipped: {e}")
                continue
            if transaction:
                result.transactions.append(transaction)

        logger.debug(f"CAMT.053: {len(result.transactions)} entries parsed")

    def _read_statement_metadata(self, statement: ET.Element, result: ParseResult) -> None:
        result.account_id = _text(statement, "Acct", "Id", "IBAN") or _text(
            statement, "Acct", "Id", "Othr", "Id"
        )

        for balance in statement:
            if _local(balance.tag) != "Bal":
                continue
            code = _text(balance, "Tp", "CdOrPrtry", "Cd")
            amount_text = _text(balance, "Amt")
            if not amount_text:
                continue
            amount = parse_amount(amount_text, decimal_separator=".")
            if _text(balance, "CdtDbtInd") == "DBIT":
                amount = -amount
            if code == "OPBD":
                result.opening_balance = amount
            elif code == "CLBD":
                result.closing_balance = amount

    def _parse_entry(self, entry: ET.Element) -> NormalizedTransaction | None:
        amount_text = _text(entry, "Amt")
        if not amount_text:
            return None
        amount = parse_amount(amount_text, decimal_separator=".")
        if amount == 0:
            return None

        is_credit = _text(entry, "CdtDbtInd") == "CRDT"
        if not is_credit:
            amount = -abs(amount)
        else:
            amount = abs(amount)

        booking = _text(entry, "BookgDt", "Dt") or _text(entry, "BookgDt", "DtTm")
        value = _text(entry, "ValDt", "Dt") or _text(entry, "ValDt", "DtTm")
        date_text = booking or value
        if not date_text:
            return None
        txn_date = parse_date(date_text)
        value_date = parse_date(value) if value else txn_date

        details = _child(entry, "NtryDtls", "TxDtls")

        unstructured = []
        if details is not None:
            unstructured = [
                node.text.strip()
                for node in _iter_local(details, "Ustrd")
                if node.text and node.text.strip()
            ]
        description = " ".join(unstructured) or _text(entry, "AddtlNtryInf") or ""

        reference = None
        if details is not None:
            end_to_end = _text(details, "Refs", "EndToEndId")
            if end_to_end and end_to_end.upper() != "NOTPROVIDED":
                reference = end_to_end
        if reference is None:
            reference = _text(entry, "AcctSvcrRef")

        # Counterparty: who paid us on credits, who we paid on debits
        party_role, account_role = ("Dbtr", "DbtrAcct") if is_credit else ("Cdtr", "CdtrAcct")
        parties = _child(details, "RltdPties")
        counterpart_name = _text(parties, party_role, "Nm") or _text(
            parties, party_role, "Pty", "Nm"
        )
        counterpart_iban = _text(parties, account_role, "Id", "IBAN")

        return NormalizedTransaction(
            date=txn_date,
            value_date=value_date,
            amount=amount,
            description=" ".join(description.split()),
            reference=reference,
            counterpart_name=counterpart_name,
            counterpart_iban=counterpart_iban,
            raw_data={
                "status": _text(entry, "Sts") or _text(entry, "Sts", "Cd"),
                "bank_transaction_code": _text(entry, "BkTxCd", "Domn", "Cd"),
            },
        )
