"""Maintenance entry points for payment sessions.

Expiry is applied lazily whenever a session is read, so this sweep is not
needed for correctness. It keeps the ``status-expires_at-index`` free of
stale pending rows and makes listings by status accurate.

Usage:
    # Scheduled Lambda (e.g. an EventBridge rule every 15 minutes)
    handler: payrelay.maintenance.expire_sessions_handler

    # One-off from a shell
    payrelay-expire-sessions --env dev
    payrelay-expire-sessions --table-prefix payrelay-staging
"""

import argparse
import sys
from typing import Any

from payrelay.config import RelaySettings, load_settings
from payrelay.services import CatalogService, DynamoDBService, SessionManager
from payrelay.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def expire_sessions(settings: RelaySettings) -> int:
    """Move every pending session past its expiry to expired.

    Returns:
        Number of sessions expired by this run
    """
    db = DynamoDBService(settings)
    try:
        sessions = SessionManager(db, CatalogService(db), settings)
        return sessions.expire_stale_sessions()
    finally:
        db.close()


def expire_sessions_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Lambda handler for the scheduled expiry sweep."""
    settings = load_settings()
    expired = expire_sessions(settings)
    logger.info(
        "Expiry sweep finished: %d sessions expired (tables=%s-*)",
        expired,
        settings.table_prefix,
    )
    return {"expired": expired, "table_prefix": settings.table_prefix}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Expire stale pending payment sessions")
    parser.add_argument("--env", help="Environment name; sets the default table prefix")
    parser.add_argument("--table-prefix", help="Explicit DynamoDB table prefix")
    args = parser.parse_args(argv)

    configure_logging()
    settings = load_settings()
    overrides: dict[str, Any] = {}
    if args.env:
        overrides["environment"] = args.env
        overrides["table_prefix"] = f"payrelay-{args.env}"
    if args.table_prefix:
        overrides["table_prefix"] = args.table_prefix
    if overrides:
        settings = settings.model_copy(update=overrides)

    expired = expire_sessions(settings)
    print(f"Expired {expired} sessions in {settings.table_prefix}-payment-sessions")
    return 0


if __name__ == "__main__":
    sys.exit(main())
