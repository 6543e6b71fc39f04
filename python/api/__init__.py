"""
FastAPI Backend for Statement Import

Provides REST API endpoints for uploading, reviewing and committing
bank statement imports.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
