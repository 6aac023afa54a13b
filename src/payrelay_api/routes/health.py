"""Health check endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from payrelay import __version__
from payrelay.config import RelaySettings
from payrelay.services import (
    CatalogService,
    DynamoDBService,
    SessionManager,
    TransactionLedger,
)

from ..dependencies import get_db, get_settings

router = APIRouter(tags=["health"])

CHECKED_TABLES = (
    CatalogService.CATEGORIES_TABLE,
    SessionManager.SESSIONS_TABLE,
    SessionManager.GRANTS_TABLE,
    TransactionLedger.TRANSACTIONS_TABLE,
)


@router.get(
    "/health",
    summary="Service health",
    description="Reports version and whether each DynamoDB table is reachable.",
)
def health(
    db: DynamoDBService = Depends(get_db),
    settings: RelaySettings = Depends(get_settings),
) -> dict[str, Any]:
    tables = {table: db.ping(table) for table in CHECKED_TABLES}
    return {
        "status": "healthy" if all(tables.values()) else "degraded",
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
        "dynamodb": tables,
    }
