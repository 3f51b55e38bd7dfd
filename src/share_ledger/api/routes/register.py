"""
Route registration entry point for the FastAPI application.

Each router module exposes ``router(service)``; this module wires them all
onto one app.
"""

from fastapi import FastAPI

from share_ledger.api.routes import admin, health, journal, listings, orders, portfolio
from share_ledger.core.orders import OrderService


def register_routes(app: FastAPI, service: OrderService) -> None:
    """Register all API routes with the FastAPI app."""
    app.include_router(health.router(service))
    app.include_router(orders.router(service))
    app.include_router(portfolio.router(service))
    app.include_router(listings.router(service))
    app.include_router(journal.router(service))
    app.include_router(admin.router(service))
