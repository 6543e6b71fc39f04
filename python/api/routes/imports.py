"""
Statement Import API Routes

Provides endpoints for the upload -> preview -> commit workflow of a
bank statement import.
"""

import logging

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from statement_import.importer import StatementImporter
from statement_import.session import ImportSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/imports", tags=["imports"])


class BankFormatOption(BaseModel):
    """Selectable bank format profile."""

    value: str
    label: str


class InvoiceView(BaseModel):
    """Open invoice as shown in the review list."""

    id: str
    invoice_number: str
    amount: str
    status: str
    contact_name: str | None = None


class TransactionView(BaseModel):
    """Transaction under review."""

    id: str
    date: str
    value_date: str | None
    amount: str
    description: str
    reference: str | None
    counterpart_name: str | None
    counterpart_iban: str | None
    category: str | None
    is_duplicate: bool
    selected: bool
    matching_invoice: InvoiceView | None


class FailureView(BaseModel):
    """Reason the last upload was rejected."""

    kind: str
    message: str
    details: list[str]


class SessionView(BaseModel):
    """Import session state."""

    id: str
    step: str
    bank_account_id: str | None
    source_filename: str | None
    source_format: str | None
    failure: FailureView | None
    summary: dict
    transactions: list[TransactionView]


class SuggestionView(BaseModel):
    """Scored invoice candidate."""

    invoice: InvoiceView
    confidence: int
    reasons: list[str]


class CreateSessionRequest(BaseModel):
    """Request to open an import session."""

    bank_account_id: str | None = None


class MatchOverrideRequest(BaseModel):
    """Replace or clear (null) the matched invoice."""

    invoice_id: str | None = None


class CommitRequest(BaseModel):
    """Request to commit the selected transactions."""

    bank_account_id: str | None = None


class CommitResponse(BaseModel):
    """Commit summary."""

    committed: int
    skipped: int
    linked: int
    committed_transactions: list[dict]
    failed: list[dict]
    invoice_update_failures: list[dict]
    balance: str | None
    balance_error: str | None


def _importer(request: Request) -> StatementImporter:
    return request.app.state.importer


def _evict_idle_sessions(request: Request) -> None:
    """Drop sessions untouched for longer than the configured idle timeout."""
    sessions: dict[str, ImportSession] = request.app.state.sessions
    timeout = _importer(request).settings.session_idle_timeout
    for session_id in [sid for sid, s in sessions.items() if s.is_idle(timeout)]:
        del sessions[session_id]
        logger.info(f"Evicted idle import session {session_id}")


def _session(request: Request, session_id: str) -> ImportSession:
    _evict_idle_sessions(request)
    session = request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Import session not found")
    session.touch()
    return session


@router.get("/bank-formats", response_model=list[BankFormatOption])
async def list_bank_formats(request: Request) -> list[BankFormatOption]:
    """List the bank format profiles for CSV uploads."""
    return [BankFormatOption(**choice) for choice in _importer(request).registry.choices()]


@router.post("/sessions", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def create_session(request: Request, body: CreateSessionRequest | None = None) -> dict:
    """Open an import session.

    Booked transactions and open invoices are read once here and used
    for the whole session.
    """
    _evict_idle_sessions(request)
    bank_account_id = body.bank_account_id if body else None
    session = await run_in_threadpool(
        _importer(request).open_session, bank_account_id=bank_account_id
    )
    request.app.state.sessions[session.id] = session
    return session.to_dict()


@router.get("/sessions/{session_id}", response_model=SessionView)
async def get_session(request: Request, session_id: str) -> dict:
    """Get the session state and review list."""
    return _session(request, session_id).to_dict()


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(request: Request, session_id: str) -> None:
    """Discard a session and its review list."""
    _session(request, session_id)
    del request.app.state.sessions[session_id]


@router.post("/sessions/{session_id}/file", response_model=SessionView)
async def upload_file(
    request: Request,
    session_id: str,
    file: UploadFile = File(...),
    bank_format: str | None = Form(None),
) -> dict:
    """Upload a statement file and move to preview.

    Returns 422 with the failure kind and message when the file cannot
    be used; the session stays on the upload step.
    """
    session = _session(request, session_id)
    data = await file.read()

    await run_in_threadpool(
        _importer(request).load_file,
        session, file.filename or "", data, bank_format=bank_format,
    )

    if session.failure:
        raise HTTPException(
            status_code=422,
            detail=session.failure.to_dict(),
        )
    return session.to_dict()


@router.post("/sessions/{session_id}/transactions/{transaction_id}/toggle", response_model=SessionView)
async def toggle_transaction(request: Request, session_id: str, transaction_id: str) -> dict:
    """Flip the selection of one transaction."""
    session = _session(request, session_id)
    try:
        session.toggle_selection(transaction_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return session.to_dict()


@router.post("/sessions/{session_id}/select-all", response_model=SessionView)
async def select_all(request: Request, session_id: str) -> dict:
    """Select every transaction that is not a likely duplicate."""
    session = _session(request, session_id)
    session.select_all()
    return session.to_dict()


@router.post("/sessions/{session_id}/select-none", response_model=SessionView)
async def select_none(request: Request, session_id: str) -> dict:
    """Clear the selection."""
    session = _session(request, session_id)
    session.select_none()
    return session.to_dict()


@router.put("/sessions/{session_id}/transactions/{transaction_id}/match", response_model=SessionView)
async def override_match(
    request: Request,
    session_id: str,
    transaction_id: str,
    body: MatchOverrideRequest,
) -> dict:
    """Set or clear the invoice matched to a transaction."""
    session = _session(request, session_id)
    try:
        session.override_match(transaction_id, body.invoice_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Not found: {e.args[0]}")
    return session.to_dict()


@router.get(
    "/sessions/{session_id}/transactions/{transaction_id}/suggestions",
    response_model=list[SuggestionView],
)
async def match_suggestions(request: Request, session_id: str, transaction_id: str) -> list[dict]:
    """Ranked open invoices for a transaction."""
    session = _session(request, session_id)
    try:
        suggestions = session.suggestions(transaction_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return [s.to_dict() for s in suggestions]


@router.post("/sessions/{session_id}/back", response_model=SessionView)
async def back_to_upload(request: Request, session_id: str) -> dict:
    """Discard the review list and return to the upload step."""
    session = _session(request, session_id)
    session.back()
    return session.to_dict()


@router.post("/sessions/{session_id}/reset", response_model=SessionView)
async def reset_session(request: Request, session_id: str) -> dict:
    """Start a new import in the same session."""
    session = _session(request, session_id)
    session.reset()
    return session.to_dict()


@router.post("/sessions/{session_id}/commit", response_model=CommitResponse)
async def commit_session(
    request: Request,
    session_id: str,
    body: CommitRequest | None = None,
) -> dict:
    """Book the selected transactions and mark matched invoices paid."""
    session = _session(request, session_id)
    bank_account_id = body.bank_account_id if body else None

    result = await run_in_threadpool(
        _importer(request).commit, session, bank_account_id=bank_account_id
    )
    return result.to_dict()
