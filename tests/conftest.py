"""Pytest configuration and fixtures for payment relay tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (all relay tables and their indexes)
- A controllable clock for session expiry and matching windows
- Service instances wired to the mocked tables
- Webhook payload and session seeding factories
"""

import datetime as dt
import os
from collections.abc import Callable, Generator
from typing import Any

import boto3
import pytest
from moto import mock_aws

# === Environment Setup ===

# Set before any boto3 client is created
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ.setdefault("DYNAMODB_TABLE_PREFIX", "test-payrelay")

if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from payrelay.config import MatchingConfig, RelaySettings  # noqa: E402
from payrelay.utils.timestamps import to_iso  # noqa: E402
from payrelay.services import (  # noqa: E402
    CatalogService,
    DynamoDBService,
    PaymentNotifier,
    SessionManager,
    TransactionLedger,
    WebhookReconciler,
)

TABLE_PREFIX = "test-payrelay"
REGION = "eu-west-1"

TEST_USER_ID = "user-2026-001"
TEST_EMAIL = "student@example.com"
PAID_CATEGORY_ID = "cat-physics"
PAID_CATEGORY_PRICE = 50000
FREE_CATEGORY_ID = "cat-intro"
FREE_TYPE_CATEGORY_ID = "cat-trial"

FIXED_NOW = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: dt.datetime) -> None:
        self.current = start

    def __call__(self) -> dt.datetime:
        return self.current

    def advance(self, **delta: float) -> dt.datetime:
        self.current = self.current + dt.timedelta(**delta)
        return self.current


def _gsi(name: str, hash_key: str, range_key: str | None = None) -> dict[str, Any]:
    key_schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
    if range_key:
        key_schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
    return {
        "IndexName": name,
        "KeySchema": key_schema,
        "Projection": {"ProjectionType": "ALL"},
    }


def create_relay_tables(client: Any, prefix: str = TABLE_PREFIX) -> None:
    """Create every table the relay uses, with its secondary indexes."""
    tables = [
        {
            "TableName": f"{prefix}-categories",
            "KeySchema": [{"AttributeName": "category_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "category_id", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{prefix}-payment-sessions",
            "KeySchema": [{"AttributeName": "session_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "session_id", "AttributeType": "S"},
                {"AttributeName": "user_email", "AttributeType": "S"},
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "status", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
                {"AttributeName": "expires_at", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                _gsi("user_email-created_at-index", "user_email", "created_at"),
                _gsi("user_id-created_at-index", "user_id", "created_at"),
                _gsi("status-expires_at-index", "status", "expires_at"),
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{prefix}-access-grants",
            "KeySchema": [
                {"AttributeName": "user_id", "KeyType": "HASH"},
                {"AttributeName": "category_id", "KeyType": "RANGE"},
            ],
            "AttributeDefinitions": [
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "category_id", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
        {
            "TableName": f"{prefix}-transactions",
            "KeySchema": [{"AttributeName": "transaction_id", "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": "transaction_id", "AttributeType": "S"},
                {"AttributeName": "user_id", "AttributeType": "S"},
                {"AttributeName": "created_at", "AttributeType": "S"},
                {"AttributeName": "payload_hash", "AttributeType": "S"},
            ],
            "GlobalSecondaryIndexes": [
                _gsi("user_id-created_at-index", "user_id", "created_at"),
                _gsi("payload_hash-index", "payload_hash"),
            ],
            "BillingMode": "PAY_PER_REQUEST",
        },
    ]
    for table_config in tables:
        client.create_table(**table_config)


def seed_categories(prefix: str = TABLE_PREFIX) -> None:
    """Insert one paid and two free categories."""
    table = boto3.resource("dynamodb", region_name=REGION).Table(f"{prefix}-categories")
    table.put_item(
        Item={
            "category_id": PAID_CATEGORY_ID,
            "name": "Physics Mastery",
            "price_amount": PAID_CATEGORY_PRICE,
            "quiz_type": "paid",
        }
    )
    table.put_item(
        Item={
            "category_id": FREE_CATEGORY_ID,
            "name": "Introduction",
            "price_amount": 0,
            "quiz_type": "free",
        }
    )
    table.put_item(
        Item={
            "category_id": FREE_TYPE_CATEGORY_ID,
            "name": "Trial Pack",
            "price_amount": 25000,
            "quiz_type": "free",
        }
    )


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION


@pytest.fixture
def mock_dynamodb_tables(aws_credentials: None) -> Generator[None, None, None]:
    """All relay tables inside a moto context, with categories seeded."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name=REGION)
        create_relay_tables(client)
        seed_categories()
        yield


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(
        environment="test",
        table_prefix=TABLE_PREFIX,
        payment_link_url="https://pay.example.test/checkout",
        session_ttl_minutes=60,
        matching=MatchingConfig(),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(FIXED_NOW)


@pytest.fixture
def db(mock_dynamodb_tables: None, settings: RelaySettings) -> Generator[DynamoDBService, None, None]:
    service = DynamoDBService(settings)
    yield service
    service.close()


@pytest.fixture
def catalog(db: DynamoDBService) -> CatalogService:
    return CatalogService(db)


@pytest.fixture
def session_manager(
    db: DynamoDBService,
    catalog: CatalogService,
    settings: RelaySettings,
    clock: FakeClock,
) -> SessionManager:
    return SessionManager(db, catalog, settings, clock=clock)


@pytest.fixture
def ledger(db: DynamoDBService) -> TransactionLedger:
    return TransactionLedger(db)


@pytest.fixture
def sent_notifications() -> list[Any]:
    return []


@pytest.fixture
def reconciler(
    session_manager: SessionManager,
    ledger: TransactionLedger,
    settings: RelaySettings,
    sent_notifications: list[Any],
) -> WebhookReconciler:
    return WebhookReconciler(
        session_manager,
        ledger,
        settings.matching,
        notifier=PaymentNotifier(sent_notifications.append),
    )


# === Factories ===


@pytest.fixture
def seed_session(
    mock_dynamodb_tables: None,
) -> Callable[..., dict[str, Any]]:
    """Write a payment session item directly, bypassing the service.

    Timestamps are given as minutes relative to FIXED_NOW.
    """
    table = boto3.resource("dynamodb", region_name=REGION).Table(
        f"{TABLE_PREFIX}-payment-sessions"
    )

    def _seed(
        session_id: str,
        *,
        email: str = TEST_EMAIL,
        user_id: str = TEST_USER_ID,
        category_id: str = PAID_CATEGORY_ID,
        expected_amount: int = PAID_CATEGORY_PRICE,
        status: str = "pending",
        created_minutes_ago: float = 5,
        ttl_minutes: float = 60,
        now: dt.datetime = FIXED_NOW,
    ) -> dict[str, Any]:
        created_at = now - dt.timedelta(minutes=created_minutes_ago)
        item = {
            "session_id": session_id,
            "user_id": user_id,
            "category_id": category_id,
            "user_email": email,
            "expected_amount": expected_amount,
            "status": status,
            "created_at": to_iso(created_at),
            "expires_at": to_iso(created_at + dt.timedelta(minutes=ttl_minutes)),
        }
        table.put_item(Item=item)
        return item

    return _seed


@pytest.fixture
def make_webhook() -> Callable[..., dict[str, Any]]:
    """Build a gateway webhook body in the transactionId dialect."""

    def _make(
        *,
        event: str = "payment.received",
        transaction_id: str = "txn-0001",
        status: str | None = "SUCCESS",
        transaction_status: str | None = "paid",
        amount: Any = PAID_CATEGORY_PRICE,
        email: str | None = TEST_EMAIL,
        coupon: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        data: dict[str, Any] = {
            "transactionId": transaction_id,
            "amount": amount,
            "customerName": "Test Student",
        }
        if status is not None:
            data["status"] = status
        if transaction_status is not None:
            data["transactionStatus"] = transaction_status
        if email is not None:
            data["customerEmail"] = email
        if coupon is not None:
            data["couponUsed"] = coupon
        data.update(extra)
        return {"event": event, "data": data}

    return _make


def get_item(table: str, key: dict[str, Any]) -> dict[str, Any] | None:
    """Read an item straight from a mocked table."""
    resource = boto3.resource("dynamodb", region_name=REGION)
    return resource.Table(f"{TABLE_PREFIX}-{table}").get_item(Key=key).get("Item")


@pytest.fixture
def read_item() -> Callable[[str, dict[str, Any]], dict[str, Any] | None]:
    return get_item


@pytest.fixture
def count_items() -> Callable[[str], int]:
    def _count(table: str) -> int:
        resource = boto3.resource("dynamodb", region_name=REGION)
        return len(resource.Table(f"{TABLE_PREFIX}-{table}").scan()["Items"])

    return _count


# === API Fixtures ===


@pytest.fixture
def client(
    mock_dynamodb_tables: None,
    settings: RelaySettings,
    sent_notifications: list[Any],
) -> Generator[Any, None, None]:
    """TestClient running the app lifespan inside the moto context.

    The app uses the real clock; seed sessions with ``now=utcnow()``.
    """
    from fastapi.testclient import TestClient

    from payrelay_api.main import create_app

    app = create_app(
        settings=settings,
        notifier=PaymentNotifier(sent_notifications.append),
    )
    with TestClient(app) as test_client:
        yield test_client


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)
