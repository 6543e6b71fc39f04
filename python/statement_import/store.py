"""
Ledger Store Module

Boundary to the bookkeeping database: the import reads booked
transactions and open invoices from it and writes the reviewed
transactions back.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.engine import Engine

from .duplicate_detector import ExistingTransaction
from .invoice_matcher import OPEN_STATUSES, OpenInvoice

logger = logging.getLogger(__name__)


class LedgerStore(ABC):
    """Read/write boundary used by the statement importer."""

    @abstractmethod
    def fetch_recent_transactions(self, limit: int) -> list[ExistingTransaction]:
        """Return the ``limit`` most recently booked transactions."""

    @abstractmethod
    def fetch_open_invoices(self) -> list[OpenInvoice]:
        """Return invoices with status sent or draft."""

    @abstractmethod
    def insert_transaction(self, payload: dict) -> str:
        """Book one transaction and return its id."""

    @abstractmethod
    def mark_invoice_paid(self, invoice_id: str) -> None:
        pass

    @abstractmethod
    def recalculate_balance(self, account_id: str) -> Decimal:
        """Set the account balance to income minus expense and return it."""


# Tables the SQL store works on. Created on demand for local/SQLite use;
# production databases are migrated separately.
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS bank_accounts (
        id VARCHAR(64) PRIMARY KEY,
        name VARCHAR(255),
        iban VARCHAR(34),
        balance NUMERIC(14, 2) NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id VARCHAR(64) PRIMARY KEY,
        date DATE NOT NULL,
        type VARCHAR(16) NOT NULL,
        amount NUMERIC(14, 2) NOT NULL,
        description TEXT,
        category VARCHAR(255),
        bank_account_id VARCHAR(64),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invoices (
        id VARCHAR(64) PRIMARY KEY,
        invoice_number VARCHAR(64) NOT NULL,
        amount NUMERIC(14, 2) NOT NULL,
        status VARCHAR(16) NOT NULL,
        contact_name VARCHAR(255),
        issue_date DATE
    )
    """,
]


def _as_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class SqlLedgerStore(LedgerStore):
    """LedgerStore backed by SQLAlchemy Core queries."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self) -> None:
        with self.engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                conn.execute(text(statement))

    def fetch_recent_transactions(self, limit: int) -> list[ExistingTransaction]:
        query = text("""
            SELECT date, amount
            FROM transactions
            ORDER BY date DESC, created_at DESC
            LIMIT :limit
        """)
        with self.engine.connect() as conn:
            rows = conn.execute(query, {"limit": limit}).mappings().all()

        return [
            ExistingTransaction(date=_as_date(row["date"]), amount=Decimal(str(row["amount"])))
            for row in rows
        ]

    def fetch_open_invoices(self) -> list[OpenInvoice]:
        query = text("""
            SELECT id, invoice_number, amount, status, contact_name, issue_date
            FROM invoices
            WHERE status IN (:status_a, :status_b)
            ORDER BY issue_date, invoice_number
        """)
        params = {"status_a": OPEN_STATUSES[0], "status_b": OPEN_STATUSES[1]}
        with self.engine.connect() as conn:
            rows = conn.execute(query, params).mappings().all()

        return [
            OpenInvoice(
                id=str(row["id"]),
                invoice_number=row["invoice_number"],
                amount=Decimal(str(row["amount"])),
                status=row["status"],
                contact_name=row["contact_name"],
                issue_date=_as_date(row["issue_date"]),
            )
            for row in rows
        ]

    def insert_transaction(self, payload: dict) -> str:
        transaction_id = uuid.uuid4().hex
        query = text("""
            INSERT INTO transactions
                (id, date, type, amount, description, category, bank_account_id)
            VALUES
                (:id, :date, :type, :amount, :description, :category, :bank_account_id)
        """)
        params = {
            "id": transaction_id,
            "date": _as_date(payload["date"]).isoformat(),
            "type": payload["type"],
            # Bound as string so SQLite (no Decimal adapter) and PostgreSQL agree
            "amount": str(payload["amount"]),
            "description": payload.get("description"),
            "category": payload.get("category"),
            "bank_account_id": payload.get("bank_account_id"),
        }
        with self.engine.begin() as conn:
            conn.execute(query, params)

        return transaction_id

    def mark_invoice_paid(self, invoice_id: str) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(
                text("UPDATE invoices SET status = 'paid' WHERE id = :id"),
                {"id": invoice_id},
            )
            updated = result.rowcount
        if updated == 0:
            raise LookupError(f"Invoice not found: {invoice_id}")

    def recalculate_balance(self, account_id: str) -> Decimal:
        totals = text("""
            SELECT
                COALESCE(SUM(CASE WHEN type = 'income' THEN amount ELSE 0 END), 0) AS income,
                COALESCE(SUM(CASE WHEN type = 'expense' THEN amount ELSE 0 END), 0) AS expense
            FROM transactions
            WHERE bank_account_id = :account_id
        """)
        with self.engine.begin() as conn:
            row = conn.execute(totals, {"account_id": account_id}).mappings().one()
            balance = Decimal(str(row["income"])) - Decimal(str(row["expense"]))
            balance = balance.quantize(Decimal("0.01"))
            conn.execute(
                text("UPDATE bank_accounts SET balance = :balance WHERE id = :account_id"),
                {"balance": str(balance), "account_id": account_id},
            )

        logger.info(f"Balance of account {account_id} recalculated: {balance}")
        return balance
