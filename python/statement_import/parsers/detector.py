"""
Statement Format Detector

Decides which parser handles an uploaded statement. MT940 markers are
checked first, then CAMT.053, everything else is treated as CSV.
"""

import logging

from .base import BaseStatementParser, FormatTag
from .camt053 import CAMT053Parser
from .csv_parser import CSVStatementParser
from .mt940 import MT940Parser

logger = logging.getLogger(__name__)

PARSERS: dict[FormatTag, type[BaseStatementParser]] = {
    FormatTag.GENERAL_CSV: CSVStatementParser,
    FormatTag.MT940: MT940Parser,
    FormatTag.CAMT053: CAMT053Parser,
}

MT940_EXTENSIONS = (".sta", ".mt940")
CAMT_ELEMENTS = ("<Document", "<BkToCstmrStmt")


def detect_format(content: str, filename: str = "") -> FormatTag:
    """Detect the statement format from file name and content.

    Args:
        content: Decoded file content
        filename: Original file name

    Returns:
        FormatTag (GENERAL_CSV when nothing more specific is recognized)
    """
    name = (filename or "").lower()
    text = (content or "").lstrip('\ufeff')

    if "mt940" in name or name.endswith(MT940_EXTENSIONS):
        return FormatTag.MT940
    if ":61:" in text and (":20:" in text or ":25:" in text):
        return FormatTag.MT940

    if name.endswith(".xml"):
        return FormatTag.CAMT053
    head = text.lstrip()
    if head.startswith("<?xml") or any(marker in text for marker in CAMT_ELEMENTS):
        return FormatTag.CAMT053

    return FormatTag.GENERAL_CSV


def get_parser(format_tag: FormatTag, **kwargs) -> BaseStatementParser:
    """Instantiate the parser registered for a format.

    Keyword arguments are passed to the CSV parser only (bank format,
    registry); the SWIFT and XML parsers take none.
    """
    parser_class = PARSERS[format_tag]
    if format_tag == FormatTag.GENERAL_CSV:
        return parser_class(**kwargs)
    return parser_class()
