"""
Statement Importer

Runs an uploaded bank statement through the import pipeline
(detect -> parse -> deduplicate -> match) into an ImportSession and
commits the reviewed selection to the ledger.

Usage:
    python -m statement_import.importer kontoauszug.csv --bank-format sparkasse
"""

import argparse
import logging
import sys
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

from .bank_formats import BankFormatRegistry
from .parsers.base import NormalizedTransaction
from .parsers.detector import detect_format, get_parser
from .pdf_extractor import PDFExtractor
from .session import EnhancedTransaction, FailureKind, ImportSession
from .settings import ImportSettings, load_settings
from .store import LedgerStore

logger = logging.getLogger(__name__)

MSG_UNSUPPORTED = "Nicht unterstütztes Dateiformat. Erlaubt sind: {extensions}"
MSG_TOO_LARGE = "Die Datei ist zu groß (maximal {limit} MB)."
MSG_READ_ERROR = "Fehler beim Lesen der Datei. Bitte überprüfen Sie das Format."
MSG_NO_TRANSACTIONS = "Keine Transaktionen gefunden. Bitte überprüfen Sie das Dateiformat."
MSG_PDF_FAILED = (
    "Das PDF konnte nicht analysiert werden. Bitte versuchen Sie es mit einer "
    "CSV-, MT940- oder CAMT.053-Datei."
)

TEXT_ENCODINGS = ("utf-8-sig", "cp1252")


@dataclass
class CommitFailure:
    """One selected entry that could not be booked."""

    transaction_id: str
    error: str

    def to_dict(self) -> dict:
        return {"transaction_id": self.transaction_id, "error": self.error}


@dataclass
class CommitResult:
    """Outcome of committing an import session."""

    committed: list[dict] = field(default_factory=list)
    failed: list[CommitFailure] = field(default_factory=list)
    invoice_update_failures: list[CommitFailure] = field(default_factory=list)
    linked_invoices: list[str] = field(default_factory=list)
    balance: Decimal | None = None
    balance_error: str | None = None

    @property
    def committed_count(self) -> int:
        return len(self.committed)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict:
        return {
            "committed": self.committed_count,
            "skipped": self.failed_count,
            "linked": len(self.linked_invoices),
            "committed_transactions": self.committed,
            "failed": [f.to_dict() for f in self.failed],
            "invoice_update_failures": [f.to_dict() for f in self.invoice_update_failures],
            "balance": str(self.balance) if self.balance is not None else None,
            "balance_error": self.balance_error,
        }


def decode_content(data: bytes) -> str:
    """Decode statement bytes: UTF-8 (BOM allowed), then cp1252, then Latin-1."""
    for encoding in TEXT_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")


class StatementImporter:
    """Coordinates parsing, review sessions and commits."""

    def __init__(
        self,
        store: LedgerStore | None = None,
        settings: ImportSettings | None = None,
        registry: BankFormatRegistry | None = None,
        pdf_extractor: PDFExtractor | None = None,
        config_dir: Path | str | None = None
    ):
        """Initialize the importer.

        Args:
            store: Ledger boundary (required for open_session and commit)
            settings: Pipeline settings (loaded from config_dir when omitted)
            registry: Bank format profiles
            pdf_extractor: Extractor for PDF statements (created on first use)
            config_dir: Path to configuration directory
        """
        self.store = store
        self.settings = settings or load_settings(config_dir)
        self.registry = registry or BankFormatRegistry(config_dir)
        self._pdf_extractor = pdf_extractor

    @property
    def pdf_extractor(self) -> PDFExtractor:
        if self._pdf_extractor is None:
            self._pdf_extractor = PDFExtractor.from_settings(self.settings)
        return self._pdf_extractor

    def open_session(self, bank_account_id: str | None = None) -> ImportSession:
        """Open a review session with fresh ledger snapshots."""
        existing = []
        invoices = []
        if self.store is not None:
            existing = self.store.fetch_recent_transactions(self.settings.duplicate_lookback_limit)
            invoices = self.store.fetch_open_invoices()

        session = ImportSession(
            existing=existing,
            open_invoices=invoices,
            bank_account_id=bank_account_id,
            duplicate_tolerance=self.settings.duplicate_amount_tolerance,
            invoice_tolerance=self.settings.invoice_amount_tolerance,
        )
        logger.info(
            f"Opened import session {session.id} "
            f"({len(existing)} booked transactions, {len(invoices)} open invoices)"
        )
        return session

    def load_file(
        self,
        session: ImportSession,
        filename: str,
        data: bytes,
        bank_format: str | None = None
    ) -> ImportSession:
        """Parse an uploaded file into the session.

        On success the session moves to preview; otherwise it stays on
        upload with ``session.failure`` describing the problem.
        """
        session.check_can_load()
        suffix = Path(filename or "").suffix.lower()

        if suffix not in self.settings.accepted_extensions:
            session.fail(
                FailureKind.PARSE_FAILED,
                MSG_UNSUPPORTED.format(extensions=", ".join(self.settings.accepted_extensions)),
            )
            return session

        if len(data) > self.settings.max_file_size:
            session.fail(
                FailureKind.PARSE_FAILED,
                MSG_TOO_LARGE.format(limit=self.settings.max_file_size // (1024 * 1024)),
            )
            return session

        if suffix == ".pdf":
            extraction = self.pdf_extractor.extract_from_bytes(data, source_name=filename)
            if extraction.errors:
                session.fail(FailureKind.EXTRACTION_FAILED, MSG_PDF_FAILED, extraction.errors)
                return session
            transactions = extraction.transactions
            source_format = "pdf"
        else:
            transactions, source_format, errors = self._parse_text(
                filename, data, bank_format or self.settings.default_bank_format
            )
            if errors:
                session.fail(FailureKind.PARSE_FAILED, MSG_READ_ERROR, errors)
                return session

        if not transactions:
            session.fail(FailureKind.NO_TRANSACTIONS, MSG_NO_TRANSACTIONS)
            return session

        session.process_transactions(
            transactions, source_filename=filename, source_format=source_format
        )
        return session

    def _parse_text(
        self,
        filename: str,
        data: bytes,
        bank_format: str
    ) -> tuple[list[NormalizedTransaction], str, list[str]]:
        content = decode_content(data)
        format_tag = detect_format(content, filename)
        logger.info(f"Detected {format_tag.value} for {filename}")

        try:
            parser = get_parser(format_tag, bank_format=bank_format, registry=self.registry)
        except ValueError as e:
            return [], format_tag.value, [str(e)]

        result = parser.parse_content(content)
        for warning in result.warnings:
            logger.debug(f"{filename}: {warning}")

        source_format = format_tag.value
        if result.bank_format:
            source_format = f"{format_tag.value}:{result.bank_format}"
        return result.transactions, source_format, result.errors

    def build_payload(self, entry: EnhancedTransaction, bank_account_id: str | None) -> dict:
        """Ledger row for one reviewed entry."""
        txn = entry.transaction
        is_income = txn.amount >= 0
        default_category = (
            self.settings.default_income_category
            if is_income else self.settings.default_expense_category
        )
        return {
            "date": txn.date,
            "type": "income" if is_income else "expense",
            "amount": abs(txn.amount),
            "description": txn.display_description or self.settings.default_description,
            "category": txn.category or default_category,
            "bank_account_id": bank_account_id,
        }

    def commit(self, session: ImportSession, bank_account_id: str | None = None) -> CommitResult:
        """Book the selected entries one by one.

        A failed row is recorded and skipped; earlier rows stay booked.
        A failed invoice status update leaves its transaction booked and
        is reported separately.
        """
        if self.store is None:
            raise RuntimeError("No ledger store configured")

        account_id = bank_account_id or session.bank_account_id
        selected = session.begin_commit()
        result = CommitResult()

        for entry in selected:
            payload = self.build_payload(entry, account_id)
            try:
                ledger_id = self.store.insert_transaction(payload)
            except Exception as e:
                logger.error(f"Failed to book transaction {entry.id}: {e}")
                result.failed.append(CommitFailure(entry.id, str(e)))
                continue

            result.committed.append({"transaction_id": entry.id, "ledger_id": ledger_id})

            if entry.matching_invoice is None:
                continue
            invoice_id = entry.matching_invoice.id
            try:
                self.store.mark_invoice_paid(invoice_id)
                result.linked_invoices.append(invoice_id)
            except Exception as e:
                logger.error(f"Failed to mark invoice {invoice_id} paid: {e}")
                result.invoice_update_failures.append(CommitFailure(entry.id, str(e)))

        if account_id:
            try:
                result.balance = self.store.recalculate_balance(account_id)
            except Exception as e:
                logger.error(f"Balance recalculation failed for {account_id}: {e}")
                result.balance_error = str(e)

        session.finish_commit(result)
        logger.info(
            f"Session {session.id} committed: {result.committed_count} booked, "
            f"{result.failed_count} skipped, {len(result.linked_invoices)} invoices paid"
        )
        return result


def main():
    """CLI entry point: parse a statement and print the preview."""
    parser = argparse.ArgumentParser(description="Preview a bank statement import")
    parser.add_argument("file", type=Path, help="Statement file (CSV, MT940, CAMT.053, PDF)")
    parser.add_argument(
        "--bank-format", default=None,
        help="Bank format profile for CSV files (default: auto-detect)"
    )
    parser.add_argument("--config-dir", type=Path, default=None, help="Configuration directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not args.file.exists():
        print(f"File not found: {args.file}")
        sys.exit(1)

    importer = StatementImporter(config_dir=args.config_dir)
    session = importer.open_session()
    importer.load_file(session, args.file.name, args.file.read_bytes(), args.bank_format)

    if session.failure:
        print(f"Import failed ({session.failure.kind.value}): {session.failure.message}")
        for detail in session.failure.details:
            print(f"  - {detail}")
        sys.exit(1)

    print(f"\n{args.file.name} ({session.source_format})")
    print("=" * 80)
    for entry in session.transactions:
        marker = "D" if entry.is_duplicate else " "
        print(
            f"{marker} {entry.date.isoformat()}  {entry.amount:>12}  "
            f"{entry.transaction.display_description[:50]}"
        )
    print("=" * 80)

    summary = session.summary()
    print(
        f"{summary['total']} transactions: {summary['income']} income, "
        f"{summary['expense']} expense, net {summary['selected_net_amount']}"
    )


if __name__ == "__main__":
    main()
