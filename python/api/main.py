"""
FastAPI Main Application

Entry point for the bank statement import API.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from statement_import.importer import StatementImporter
from statement_import.session import ImportSessionError

from .database import get_ledger_store
from .routes import imports_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Statement Import API...")
    yield
    app.state.sessions.clear()
    logger.info("Shutting down Statement Import API...")


def create_app(importer: StatementImporter | None = None) -> FastAPI:
    """Build the API application.

    Args:
        importer: Importer to serve (defaults to one backed by the SQL ledger)
    """
    app = FastAPI(
        title="Statement Import API",
        description="Bank statement import and reconciliation for the bookkeeping ledger",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.importer = importer or StatementImporter(store=get_ledger_store())
    app.state.sessions = {}

    cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ImportSessionError)
    async def session_state_error(request: Request, exc: ImportSessionError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(imports_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": "Statement Import API",
            "version": "1.0.0",
            "status": "running",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=os.getenv("ENVIRONMENT", "development") == "development",
    )
