"""
Pytest configuration and fixtures for statement import tests.
"""

import os
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

sys.path.insert(0, str(PROJECT_ROOT / "python"))

# The API module builds its default app at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")

from statement_import.duplicate_detector import ExistingTransaction
from statement_import.invoice_matcher import OpenInvoice
from statement_import.store import LedgerStore


class FakeLedgerStore(LedgerStore):
    """In-memory ledger recording every call."""

    def __init__(self, existing=None, invoices=None):
        self.existing = list(existing or [])
        self.invoices = list(invoices or [])
        self.inserted: list[dict] = []
        self.paid: list[str] = []
        self.balances: dict[str, Decimal] = {}
        self.fail_on_descriptions: set[str] = set()
        self.fail_invoice_ids: set[str] = set()
        self.fetch_limit: int | None = None

    def fetch_recent_transactions(self, limit):
        self.fetch_limit = limit
        return self.existing[:limit]

    def fetch_open_invoices(self):
        return [inv for inv in self.invoices if inv.status in ("sent", "draft")]

    def insert_transaction(self, payload):
        if payload["description"] in self.fail_on_descriptions:
            raise RuntimeError(f"insert rejected: {payload['description']}")
        self.inserted.append(payload)
        return f"ledger-{len(self.inserted)}"

    def mark_invoice_paid(self, invoice_id):
        if invoice_id in self.fail_invoice_ids:
            raise RuntimeError(f"invoice update rejected: {invoice_id}")
        self.paid.append(invoice_id)

    def recalculate_balance(self, account_id):
        balance = sum(
            (p["amount"] if p["type"] == "income" else -p["amount"])
            for p in self.inserted
            if p["bank_account_id"] == account_id
        )
        self.balances[account_id] = Decimal(balance)
        return self.balances[account_id]


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def config_dir() -> Path:
    """Return the config directory path."""
    return PROJECT_ROOT / "config"


@pytest.fixture
def open_invoices() -> list[OpenInvoice]:
    """Open invoices used across matching tests."""
    return [
        OpenInvoice(id="inv-1", invoice_number="2024-0099", amount=Decimal("45.00")),
        OpenInvoice(id="inv-2", invoice_number="RE-2024-042", amount=Decimal("200.00")),
        OpenInvoice(
            id="inv-3", invoice_number="RE-2024-007", amount=Decimal("120.00"),
            status="draft", contact_name="Schmidt KG", issue_date=date(2024, 1, 30)
        ),
    ]


@pytest.fixture
def booked_transactions() -> list[ExistingTransaction]:
    """Already booked ledger transactions (unsigned, as stored)."""
    return [
        ExistingTransaction(date=date(2024, 1, 15), amount=Decimal("45.00")),
        ExistingTransaction(date=date(2024, 2, 3), amount=Decimal("80.00")),
    ]


@pytest.fixture
def fake_store(booked_transactions, open_invoices) -> FakeLedgerStore:
    return FakeLedgerStore(existing=booked_transactions, invoices=open_invoices)


@pytest.fixture
def mt940_content() -> str:
    """MT940 statement with one debit and one structured credit."""
    return """:20:STARTUMS
:25:12345678/0001234567
:28C:00001/001
:60F:C240101EUR1000,00
:61:2401150115DR45,00NTRFNONREF
:86:Invoice 2024-0099
:61:2401160116CR250,00NTRFRE-2024-001//BANKREF1
:86:166?00GUTSCHRIFT?20EREF+E2E-4711
?21SVWZ+Rechnung RE-2024-001?32Kunde Mueller GmbH
?31DE89370400440532013000
:62F:C240116EUR1205,00
-
"""


@pytest.fixture
def camt_content() -> str:
    """camt.053 statement with one credit and one debit entry."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<Document xmlns="urn:iso:std:iso:20022:tech:xsd:camt.053.001.02">
  <BkToCstmrStmt>
    <Stmt>
      <Id>STMT-2024-02</Id>
      <Acct><Id><IBAN>DE02120300000000202051</IBAN></Id></Acct>
      <Bal>
        <Tp><CdOrPrtry><Cd>OPBD</Cd></CdOrPrtry></Tp>
        <Amt Ccy="EUR">1000.00</Amt>
        <CdtDbtInd>CRDT</CdtDbtInd>
      </Bal>
      <Bal>
        <Tp><CdOrPrtry><Cd>CLBD</Cd></CdOrPrtry></Tp>
        <Amt Ccy="EUR">1070.50</Amt>
        <CdtDbtInd>CRDT</CdtDbtInd>
      </Bal>
      <Ntry>
        <Amt Ccy="EUR">120.00</Amt>
        <CdtDbtInd>CRDT</CdtDbtInd>
        <BookgDt><Dt>2024-02-01</Dt></BookgDt>
        <ValDt><Dt>2024-02-02</Dt></ValDt>
        <NtryDtls>
          <TxDtls>
            <Refs><EndToEndId>E2E-2024-007</EndToEndId></Refs>
            <RltdPties>
              <Dbtr><Nm>Schmidt KG</Nm></Dbtr>
              <DbtrAcct><Id><IBAN>DE44500105175407324931</IBAN></Id></DbtrAcct>
            </RltdPties>
            <RmtInf><Ustrd>Rechnung RE-2024-007</Ustrd></RmtInf>
          </TxDtls>
        </NtryDtls>
      </Ntry>
      <Ntry>
        <Amt Ccy="EUR">49.50</Amt>
        <CdtDbtInd>DBIT</CdtDbtInd>
        <BookgDt><Dt>2024-02-03</Dt></BookgDt>
        <AddtlNtryInf>Lastschrift Telekom</AddtlNtryInf>
        <NtryDtls>
          <TxDtls>
            <Refs><EndToEndId>NOTPROVIDED</EndToEndId></Refs>
            <RltdPties><Cdtr><Nm>Telekom Deutschland GmbH</Nm></Cdtr></RltdPties>
          </TxDtls>
        </NtryDtls>
      </Ntry>
    </Stmt>
  </BkToCstmrStmt>
</Document>
"""


@pytest.fixture
def outbank_csv() -> str:
    """Outbank export with German amounts and thousands separators."""
    return (
        "#;Konto;Datum;Valuta;Betrag;Währung;Name;Nummer;Bank;Zweck;Hauptkategorie;"
        "Kategorie;Kategoriepfad;Tags;Notiz;Buchungstext\n"
        '1;DE58500240245625741701;04.02.2026;;-9,99;EUR;"Apple";;;;"Familie";'
        '"Cloud/Netz Abos";"Familie / Cloud/Netz Abos";;;"Apple.Com/Bill"\n'
        '2;DE58500240245625741701;03.02.2026;;-300,00;EUR;"Lovable";;;;"Fintutto";'
        '"Fintutto";"Fintutto";;;\n'
        '3;DE58500240245625741701;03.02.2026;;-63,00;EUR;"DB Vertrieb GmbH";'
        '"DE02100100100152517108";"PBNKDEFFXXX";"Abo 992886480 zum 01.02.2026";"Familie";'
        '"Fahrkarten/Monatskarten";"Familie / Kinder / Fahrkarten/Monatskarten";;;\n'
        '9;DE58500240245625741701;02.02.2026;;-3.000,00;EUR;"Coinbase UK";'
        '"DE78202208000027105416";"SXPYDEHHXXX";"Einzahlung";"Anlage";"Coins";'
        '"Anlage / Coins";;;"Coinbase Ireland Limited"\n'
        '10;DE58500240245625741701;01.02.2026;;4.200,00;EUR;"Gehalt";'
        '"DE12345678901234567890";"COBADEFF";"Gehalt Februar 2026";"Einnahmen";"Gehalt";'
        '"Einnahmen / Gehalt";;;\n'
    )


@pytest.fixture
def general_csv() -> str:
    """Header-less export in date;amount;description order."""
    return (
        '"2024-01-15";"150,00";"Kunde Müller Rechnung RE-2024-042"\n'
        '"2024-01-16";"-80,00";"Büromaterial"\n'
    )
