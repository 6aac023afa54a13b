"""FastAPI dependency providers for relay services.

The DynamoDB client is created once in the application lifespan and kept on
``app.state``; services are thin and built per request around it.

Usage in routes:
    from payrelay_api.dependencies import get_session_manager

    @router.post("/create-payment-session")
    async def create(sessions: SessionManager = Depends(get_session_manager)):
        ...

Service Dependency Graph:
    DynamoDBService (app.state.db)
        ├── CatalogService
        │       └── SessionManager
        │               └── WebhookReconciler
        └── TransactionLedger ─┘
"""

from fastapi import Depends, Request

from payrelay.config import RelaySettings
from payrelay.services import (
    CatalogService,
    DynamoDBService,
    PaymentNotifier,
    SessionManager,
    TransactionLedger,
    WebhookReconciler,
)


def get_settings(request: Request) -> RelaySettings:
    return request.app.state.settings


def get_db(request: Request) -> DynamoDBService:
    return request.app.state.db


def get_notifier(request: Request) -> PaymentNotifier:
    return request.app.state.notifier


def get_catalog(db: DynamoDBService = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


def get_session_manager(
    db: DynamoDBService = Depends(get_db),
    catalog: CatalogService = Depends(get_catalog),
    settings: RelaySettings = Depends(get_settings),
) -> SessionManager:
    return SessionManager(db, catalog, settings)


def get_ledger(db: DynamoDBService = Depends(get_db)) -> TransactionLedger:
    return TransactionLedger(db)


def get_reconciler(
    sessions: SessionManager = Depends(get_session_manager),
    ledger: TransactionLedger = Depends(get_ledger),
    settings: RelaySettings = Depends(get_settings),
    notifier: PaymentNotifier = Depends(get_notifier),
) -> WebhookReconciler:
    return WebhookReconciler(sessions, ledger, settings.matching, notifier=notifier)
