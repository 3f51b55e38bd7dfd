"""Health and root endpoints.

Provides the root ``/`` endpoint (API identity and version) and the
``/health`` endpoint (liveness check that also reports a journal halt).

The version string is read from ``share_ledger.__version__``, resolved at
import time via ``importlib.metadata``; ``pyproject.toml`` is the single
source of truth.
"""

from fastapi import APIRouter

from share_ledger import __version__
from share_ledger.core.orders import OrderService


def router(service: OrderService) -> APIRouter:
    """Build the health router."""
    api = APIRouter(tags=["health"])

    @api.get("/")
    def root():
        """Root endpoint showing API identity and current version."""
        return {"message": "Share Ledger API", "version": __version__}

    @api.get("/health")
    def health_check():
        """Liveness check. ``journal_halted`` is true while appends are stopped."""
        halt = service.journal_halt()
        return {
            "status": "degraded" if halt else "ok",
            "journal_halted": halt is not None,
        }

    return api
