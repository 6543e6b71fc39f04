"""
PDF Extractor Module

Extracts bank statement transactions from PDF files using the Claude API.
The model is asked for a JSON array; incomplete or fenced answers are
recovered where possible, and nothing is invented when the call fails.
"""

import base64
import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import anthropic

from .parsers.base import NormalizedTransaction, parse_amount, parse_date
from .settings import ImportSettings

logger = logging.getLogger(__name__)

DEBIT_MARKERS = {"debit", "expense", "s", "soll", "belastung", "ausgabe", "dbit"}
CREDIT_MARKERS = {"credit", "income", "h", "haben", "gutschrift", "einnahme", "crdt"}


@dataclass
class PDFExtractionResult:
    """Result of PDF extraction."""

    transactions: list[NormalizedTransaction] = field(default_factory=list)
    raw_response: dict | None = None
    errors: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def extract_json_array(text: str) -> list:
    """Pull a JSON array out of a model answer.

    Handles plain JSON, ```json fenced blocks (closed or not) and output
    cut off mid-array, in which case the array is closed after the last
    complete object.
    """
    fence = re.search(r'```(?:json)?\s*([\s\S]*?)(?:```|$)', text)
    candidate = fence.group(1).strip() if fence else text.strip()

    try:
        parsed = json.loads(candidate)
        return parsed if isinstance(parsed, list) else []
    except json.JSONDecodeError:
        pass

    start = candidate.find('[')
    if start == -1:
        return []

    snippet = candidate[start:].rstrip()
    if not snippet.endswith(']'):
        last_brace = snippet.rfind('}')
        if last_brace == -1:
            return []
        snippet = snippet[:last_brace + 1] + ']'

    try:
        parsed = json.loads(snippet)
    except json.JSONDecodeError:
        logger.warning(f"Could not recover JSON array ({len(snippet)} chars)")
        return []
    return parsed if isinstance(parsed, list) else []


class PDFExtractor:
    """Extracts statement transactions from PDFs with Claude."""

    DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
    DEFAULT_MAX_TOKENS = 16384

    EXTRACTION_PROMPT = """Du bist ein Experte für das Auslesen von Bankauszügen und Kontoauszügen im PDF-Format. Analysiere das folgende PDF-Dokument und extrahiere ALLE Transaktionen.

Für jede Transaktion extrahiere:
- date: Buchungsdatum im Format YYYY-MM-DD
- valueDate: Valutadatum im Format YYYY-MM-DD (falls vorhanden, sonst gleich wie date)
- amount: Betrag als Zahl (negativ für Ausgaben/Belastungen, positiv für Einnahmen/Gutschriften)
- direction: "credit" für Gutschriften/Haben, "debit" für Belastungen/Soll
- description: Beschreibung/Verwendungszweck
- reference: Referenznummer falls vorhanden
- counterpartName: Name des Zahlungsempfängers/Auftraggebers
- counterpartIban: IBAN des Gegenkontos falls vorhanden
- category: Kategorie falls erkennbar (z.B. "Miete", "Gehalt", "Einkauf")

WICHTIG:
- Beträge mit Minus-Vorzeichen oder "S" (Soll) sind Ausgaben (negativ)
- Beträge mit Plus-Vorzeichen oder "H" (Haben) sind Einnahmen (positiv)
- Deutsches Zahlenformat beachten: 1.234,56 = 1234.56
- Datumsformat konvertieren: DD.MM.YYYY -> YYYY-MM-DD

Antworte NUR mit einem JSON-Array von Transaktionen. Keine weiteren Erklärungen.
Beispiel: [{"date":"2025-01-15","valueDate":"2025-01-15","amount":-50.00,"direction":"debit","description":"REWE Einkauf","reference":"","counterpartName":"REWE","counterpartIban":"","category":"Einkauf"}]

Falls keine Transaktionen erkannt werden können, antworte mit einem leeren Array: []"""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        client: anthropic.Anthropic | None = None
    ):
        """Initialize the PDF extractor.

        Args:
            api_key: Anthropic API key (uses ANTHROPIC_API_KEY env var if not provided)
            model: Model to use for extraction
            max_tokens: Output token limit for the answer
            client: Preconfigured Anthropic client
        """
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.max_tokens = max_tokens or self.DEFAULT_MAX_TOKENS
        self._client = client

    @classmethod
    def from_settings(cls, settings: ImportSettings, **kwargs) -> "PDFExtractor":
        return cls(model=settings.pdf_model, max_tokens=settings.pdf_max_tokens, **kwargs)

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def extract_from_file(self, file_path: Path | str) -> PDFExtractionResult:
        """Extract transactions from a PDF file."""
        file_path = Path(file_path)

        if not file_path.exists():
            return PDFExtractionResult(errors=[f"File not found: {file_path}"])

        if file_path.suffix.lower() != ".pdf":
            return PDFExtractionResult(errors=[f"Not a PDF file: {file_path}"])

        with open(file_path, "rb") as f:
            pdf_data = f.read()

        return self.extract_from_bytes(pdf_data, source_name=file_path.name)

    def extract_from_bytes(
        self,
        pdf_data: bytes,
        source_name: str = "uploaded.pdf"
    ) -> PDFExtractionResult:
        """Extract transactions from PDF bytes.

        Args:
            pdf_data: PDF file contents as bytes
            source_name: Name of the source file (for logging)

        Returns:
            PDFExtractionResult; on any failure ``errors`` is set and the
            transaction list stays empty
        """
        result = PDFExtractionResult()

        try:
            pdf_base64 = base64.standard_b64encode(pdf_data).decode("utf-8")
            file_hash = hashlib.sha256(pdf_data).hexdigest()[:16]

            logger.info(f"Extracting from PDF: {source_name} (hash: {file_hash})")

            message = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "document",
                                "source": {
                                    "type": "base64",
                                    "media_type": "application/pdf",
                                    "data": pdf_base64
                                }
                            },
                            {
                                "type": "text",
                                "text": self.EXTRACTION_PROMPT
                            }
                        ]
                    }
                ]
            )

            response_text = "".join(
                block.text for block in message.content if getattr(block, "type", "text") == "text"
            )
            result = self._parse_response(response_text)
            result.raw_response = {
                "model": self.model,
                "stop_reason": getattr(message, "stop_reason", None),
                "file_hash": file_hash,
            }

        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            result = PDFExtractionResult(errors=[f"API error: {e}"])
        except Exception as e:
            logger.error(f"Extraction error: {e}")
            result = PDFExtractionResult(errors=[f"Extraction error: {e}"])

        logger.info(f"PDF {source_name}: {len(result.transactions)} transactions extracted")
        return result

    def _parse_response(self, response_text: str) -> PDFExtractionResult:
        """Turn the model answer into normalized transactions."""
        result = PDFExtractionResult()

        entries = extract_json_array(response_text)
        if not entries and response_text.strip() not in ("[]", ""):
            result.notes.append(f"Raw response: {response_text[:500]}")

        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                txn = self._parse_transaction(entry)
            except ValueError as e:
                result.notes.append(f"Failed to parse transaction: {e}")
                continue
            if txn:
                result.transactions.append(txn)

        return result

    def _parse_transaction(self, data: dict) -> NormalizedTransaction | None:
        """Build a transaction from one extracted entry.

        Returns:
            NormalizedTransaction, or None without date or with zero amount
        """
        date_str = str(data.get("date") or "").strip()
        if not date_str:
            return None
        txn_date = parse_date(date_str)

        raw_amount = data.get("amount")
        if raw_amount is None or raw_amount == "":
            return None
        if isinstance(raw_amount, (int, float)):
            amount = parse_amount(str(raw_amount), decimal_separator=".")
        else:
            amount = parse_amount(str(raw_amount))
        if amount == 0:
            return None

        direction = str(data.get("direction") or data.get("type") or "").strip().lower()
        if direction in DEBIT_MARKERS:
            amount = -abs(amount)
        elif direction in CREDIT_MARKERS:
            amount = abs(amount)

        value_date = txn_date
        if data.get("valueDate"):
            try:
                value_date = parse_date(str(data["valueDate"]))
            except ValueError:
                pass

        return NormalizedTransaction(
            date=txn_date,
            value_date=value_date,
            amount=amount,
            description=(data.get("description") or "").strip(),
            reference=data.get("reference") or None,
            counterpart_name=data.get("counterpartName") or None,
            counterpart_iban=data.get("counterpartIban") or None,
            category=data.get("category") or None,
            raw_data=data,
        )
