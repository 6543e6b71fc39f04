"""
Statement Parsers Package

Parsers for CSV, MT940 and CAMT.053 bank statements.
"""

from .base import (
    BaseStatementParser,
    FormatTag,
    NormalizedTransaction,
    ParseResult,
    parse_amount,
    parse_date,
)
from .camt053 import CAMT053Parser
from .csv_parser import CSVStatementParser
from .detector import PARSERS, detect_format, get_parser
from .mt940 import MT940Parser

__all__ = [
    "BaseStatementParser",
    "CAMT053Parser",
    "CSVStatementParser",
    "FormatTag",
    "MT940Parser",
    "NormalizedTransaction",
    "PARSERS",
    "ParseResult",
    "detect_format",
    "get_parser",
    "parse_amount",
    "parse_date",
]
