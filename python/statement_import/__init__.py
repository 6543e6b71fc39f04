"""
Statement Import Module

Imports bank statements (CSV, MT940, CAMT.053, PDF), flags duplicates,
matches incoming payments to open invoices and commits reviewed
transactions to the ledger.
"""

from .bank_formats import BankFormat, BankFormatRegistry
from .duplicate_detector import DuplicateDetector, ExistingTransaction, is_duplicate
from .importer import CommitResult, StatementImporter
from .invoice_matcher import OpenInvoice, find_match, suggest_matches
from .parsers import FormatTag, NormalizedTransaction, ParseResult, detect_format
from .pdf_extractor import PDFExtractor
from .session import (
    EnhancedTransaction,
    FailureKind,
    ImportFailure,
    ImportSession,
    ImportSessionError,
    ImportStep,
)
from .settings import ImportSettings, load_settings
from .store import LedgerStore, SqlLedgerStore

__all__ = [
    "BankFormat",
    "BankFormatRegistry",
    "CommitResult",
    "DuplicateDetector",
    "EnhancedTransaction",
    "ExistingTransaction",
    "FailureKind",
    "FormatTag",
    "ImportFailure",
    "ImportSession",
    "ImportSessionError",
    "ImportSettings",
    "ImportStep",
    "LedgerStore",
    "NormalizedTransaction",
    "OpenInvoice",
    "PDFExtractor",
    "ParseResult",
    "SqlLedgerStore",
    "StatementImporter",
    "detect_format",
    "find_match",
    "is_duplicate",
    "load_settings",
    "suggest_matches",
]
