"""
Database Connection Module

Provides the SQLAlchemy engine for the ledger database. The engine is
created on first use so importing the API does not need a database.
"""

import logging
import os
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from statement_import.store import SqlLedgerStore

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """Database URL from DATABASE_URL or the POSTGRES_* variables."""
    return os.getenv(
        "DATABASE_URL",
        f"postgresql://{os.getenv('POSTGRES_USER', 'accounting')}:"
        f"{os.getenv('POSTGRES_PASSWORD', 'password')}@"
        f"{os.getenv('POSTGRES_HOST', 'localhost')}:"
        f"{os.getenv('POSTGRES_PORT', '5432')}/"
        f"{os.getenv('POSTGRES_DB', 'bookkeeping')}"
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    url = get_database_url()
    options = {"pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)

    logger.info(f"Creating database engine for {url.split('@')[-1]}")
    return create_engine(url, **options)


def get_ledger_store() -> SqlLedgerStore:
    """Ledger store on the shared engine."""
    return SqlLedgerStore(get_engine())
