"""
Import Settings Module

Loads statement import settings from config/import_settings.yaml.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


def default_config_dir() -> Path:
    """Return the configuration directory.

    STATEMENT_IMPORT_CONFIG_DIR overrides the repository's config/ folder.
    """
    env_dir = os.getenv("STATEMENT_IMPORT_CONFIG_DIR")
    if env_dir:
        return Path(env_dir)
    return Path(__file__).parent.parent.parent / "config"


@dataclass
class ImportSettings:
    """Tunable parameters of the import pipeline."""

    duplicate_lookback_limit: int = 1000
    duplicate_amount_tolerance: Decimal = Decimal("0.01")
    invoice_amount_tolerance: Decimal = Decimal("0.01")
    accepted_extensions: list[str] = field(
        default_factory=lambda: [".csv", ".txt", ".sta", ".mt940", ".xml", ".pdf"]
    )
    max_file_size: int = 20 * 1024 * 1024
    default_bank_format: str = "general"
    default_income_category: str = "Einnahmen"
    default_expense_category: str = "Sonstiges"
    default_description: str = "Importierte Buchung"
    pdf_model: str = "claude-sonnet-4-5-20250929"
    pdf_max_tokens: int = 16384
    session_idle_timeout: int = 3600


def load_settings(config_dir: Path | str | None = None) -> ImportSettings:
    """Load settings from import_settings.yaml, falling back to defaults.

    Args:
        config_dir: Path to configuration directory

    Returns:
        ImportSettings
    """
    config_dir = Path(config_dir) if config_dir else default_config_dir()
    settings = ImportSettings()

    config_file = config_dir / "import_settings.yaml"
    if not config_file.exists():
        logger.debug(f"No import settings at {config_file}, using defaults")
        return settings

    with open(config_file) as f:
        config = yaml.safe_load(f) or {}

    duplicates = config.get("duplicates", {})
    settings.duplicate_lookback_limit = int(
        duplicates.get("lookback_limit", settings.duplicate_lookback_limit)
    )
    settings.duplicate_amount_tolerance = Decimal(
        str(duplicates.get("amount_tolerance", settings.duplicate_amount_tolerance))
    )

    matching = config.get("invoice_matching", {})
    settings.invoice_amount_tolerance = Decimal(
        str(matching.get("amount_tolerance", settings.invoice_amount_tolerance))
    )

    upload = config.get("upload", {})
    settings.accepted_extensions = [
        ext.lower() for ext in upload.get("accepted_extensions", settings.accepted_extensions)
    ]
    settings.max_file_size = int(upload.get("max_file_size", settings.max_file_size))
    settings.default_bank_format = upload.get("default_bank_format", settings.default_bank_format)

    booking = config.get("booking_defaults", {})
    settings.default_income_category = booking.get(
        "income_category", settings.default_income_category
    )
    settings.default_expense_category = booking.get(
        "expense_category", settings.default_expense_category
    )
    settings.default_description = booking.get("description", settings.default_description)

    pdf = config.get("pdf_extraction", {})
    settings.pdf_model = pdf.get("model", settings.pdf_model)
    settings.pdf_max_tokens = int(pdf.get("max_tokens", settings.pdf_max_tokens))

    sessions = config.get("sessions", {})
    settings.session_idle_timeout = int(
        sessions.get("idle_timeout", settings.session_idle_timeout)
    )

    return settings
