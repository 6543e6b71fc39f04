"""
Bank Format Profiles

Named column mappings for delimited-text bank exports, loaded from
config/bank_formats.yaml.
"""

import csv
import logging
from dataclasses import dataclass, field
from io import StringIO
from pathlib import Path

import yaml

from .settings import default_config_dir

logger = logging.getLogger(__name__)

GENERAL_FORMAT = "general"


@dataclass
class BankFormat:
    """Column mapping for one bank's CSV export."""

    name: str
    label: str
    date_column: int = 0
    delimiter: str | None = None
    decimal_separator: str | None = None
    value_date_column: int | None = None
    amount_column: int | None = None
    debit_column: int | None = None
    credit_column: int | None = None
    direction_column: int | None = None
    debit_markers: list[str] = field(default_factory=lambda: ["S", "D", "DBIT", "SOLL"])
    description_columns: list[int] = field(default_factory=list)
    reference_column: int | None = None
    counterpart_name_column: int | None = None
    counterpart_iban_column: int | None = None
    category_columns: list[int] = field(default_factory=list)
    header_signature: list[str] = field(default_factory=list)
    infer_columns: bool = False

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "BankFormat":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known.setdefault("label", name)
        if "debit_markers" in known:
            known["debit_markers"] = [str(m).upper() for m in known["debit_markers"]]
        if "header_signature" in known:
            known["header_signature"] = [str(h).lower() for h in known["header_signature"]]
        return cls(name=name, **known)

    def matches_header(self, cells: list[str]) -> bool:
        """Check whether a header row carries this format's signature."""
        if not self.header_signature:
            return False
        normalized = {c.strip().strip('"').lower() for c in cells}
        return all(sig in normalized for sig in self.header_signature)


DEFAULT_FORMATS = {
    GENERAL_FORMAT: BankFormat(
        name=GENERAL_FORMAT,
        label="Allgemein CSV",
        date_column=0,
        amount_column=2,
        description_columns=[1],
        infer_columns=True,
    ),
}


class BankFormatRegistry:
    """Registry of known bank export formats."""

    HEADER_SCAN_LINES = 15

    def __init__(self, config_dir: Path | str | None = None):
        """Initialize the registry.

        Args:
            config_dir: Path to configuration directory
        """
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self._formats: dict[str, BankFormat] = dict(DEFAULT_FORMATS)
        self._load_config()

    def _load_config(self) -> None:
        """Load bank formats from bank_formats.yaml."""
        config_file = self.config_dir / "bank_formats.yaml"
        if not config_file.exists():
            logger.warning(f"Bank format config not found: {config_file}")
            return

        with open(config_file) as f:
            config = yaml.safe_load(f) or {}

        for name, data in (config.get("formats") or {}).items():
            self._formats[name] = BankFormat.from_dict(name, data or {})

    def get(self, name: str | None) -> BankFormat:
        """Get a bank format by name.

        Raises:
            ValueError: If the format is unknown
        """
        key = name or GENERAL_FORMAT
        if key not in self._formats:
            raise ValueError(f"Unknown bank format: {key}")
        return self._formats[key]

    def choices(self) -> list[dict]:
        """Return the formats as value/label pairs, generic format last."""
        items = [
            {"value": fmt.name, "label": fmt.label}
            for fmt in self._formats.values()
            if fmt.name != GENERAL_FORMAT
        ]
        items.append({"value": GENERAL_FORMAT, "label": self._formats[GENERAL_FORMAT].label})
        return items

    def detect(self, content: str) -> BankFormat | None:
        """Detect the bank export format from its header row.

        Args:
            content: CSV content

        Returns:
            Matching BankFormat or None
        """
        lines = content.lstrip('\ufeff').splitlines()[:self.HEADER_SCAN_LINES]

        for line in lines:
            for delimiter in (";", ",", "\t"):
                if delimiter not in line:
                    continue
                cells = next(csv.reader(StringIO(line), delimiter=delimiter), [])
                for fmt in self._formats.values():
                    if fmt.matches_header(cells):
                        logger.debug(f"Detected bank format: {fmt.name}")
                        return fmt

        return None
