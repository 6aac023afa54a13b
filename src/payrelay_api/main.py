"""FastAPI application for the payment relay REST API.

This package provides REST endpoints for:
- Health checks
- Payment session creation and status checks
- The payment gateway webhook
"""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from payrelay import __version__
from payrelay.config import RelaySettings, load_settings
from payrelay.services import DynamoDBService, PaymentNotifier
from payrelay.utils.logging import configure_logging, get_logger

from .exceptions import register_exception_handlers
from .middleware.correlation import CorrelationIdMiddleware
from .routes import health_router, sessions_router, webhooks_router

logger = get_logger(__name__)


def create_app(
    settings: RelaySettings | None = None,
    db: DynamoDBService | None = None,
    notifier: PaymentNotifier | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Relay settings, read from the environment when omitted
        db: Pre-built DynamoDB service; when omitted one is created on
            startup and closed on shutdown
        notifier: Notification hook for finalized payments

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.settings = settings or load_settings()
        app.state.notifier = notifier or PaymentNotifier()
        owned = db is None
        app.state.db = db or DynamoDBService(app.state.settings)
        logger.info(
            "Payment relay started (environment=%s, tables=%s-*)",
            app.state.settings.environment,
            app.state.settings.table_prefix,
        )
        try:
            yield
        finally:
            if owned:
                app.state.db.close()

    app = FastAPI(
        title="Payment Relay API",
        description="Payment sessions, gateway webhook reconciliation and access grants",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router, prefix="/api")
    app.include_router(sessions_router, prefix="/api")
    app.include_router(webhooks_router, prefix="/api")

    @app.get("/api/ping")
    async def ping() -> dict[str, Any]:
        """Liveness check that does not touch storage."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": "payrelay-api",
        }

    return app


configure_logging(os.getenv("LOG_LEVEL", "INFO"))

app = create_app()

# Lambda handler - Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="auto")


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = False) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: False)
    """
    import uvicorn

    if reload:
        # Use string reference for reload mode (uvicorn requirement)
        uvicorn.run("payrelay_api.main:app", host=host, port=port, reload=True)
    else:
        uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
