"""
FastAPI backend server for the share ledger.

This module builds the FastAPI application that exposes the order service.
It sets up:
- CORS middleware using the origins from ``config.security``
- The exception handlers that turn engine errors into HTTP responses
- The order service instance shared by every route
- All API route endpoints

``app`` is created at import time for ``uvicorn share_ledger.api.server:app``;
tests build their own instance with :func:`create_app`.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from share_ledger import __version__
from share_ledger.api.errors import register_exception_handlers
from share_ledger.api.routes.register import register_routes
from share_ledger.config import config
from share_ledger.core.orders import OrderService
from share_ledger.core.payments import build_payment_gateway

logger = logging.getLogger(__name__)


def create_app(service: OrderService | None = None) -> FastAPI:
    """
    Build a configured FastAPI application.

    Args:
        service: Order service to expose. When omitted, one is built with the
            payment gateway selected by ``config.payment``.
    """
    docs_enabled = config.docs_should_be_enabled
    app = FastAPI(
        title="Share Ledger",
        version=__version__,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=config.security.cors_allow_credentials,
        allow_methods=config.security.cors_allow_methods,
        allow_headers=config.security.cors_allow_headers,
    )

    register_exception_handlers(app)

    if service is None:
        service = OrderService(build_payment_gateway(config.payment))
    app.state.order_service = service
    register_routes(app, service)
    return app


def start_server(host: str | None = None, port: int | None = None) -> None:
    """Run the API with uvicorn on ``host:port`` (defaults from ``config.server``)."""
    import uvicorn

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    logger.info("Starting share ledger API on %s:%d", bind_host, bind_port)
    uvicorn.run(app, host=bind_host, port=bind_port, log_config=None)


app = create_app()


if __name__ == "__main__":
    start_server()
