"""Append-only transaction ledger.

One record per finalized webhook. Records are inserted with a condition on
the transaction ID and are never updated, so a redelivered webhook cannot
produce a second entry.
"""

import datetime as dt
import hashlib
import json
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Key

from payrelay.models import (
    AccessType,
    CanonicalEvent,
    MatchingMethod,
    PaymentScenario,
    PaymentSession,
    TransactionRecord,
)
from payrelay.utils.logging import get_logger
from payrelay.utils.timestamps import parse_iso, to_iso

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)


def compute_payload_hash(payload: dict[str, Any]) -> str:
    """SHA-256 of the payload serialised with sorted keys."""
    return hashlib.sha256(
        json.dumps(payload, sort_keys=True, default=str).encode()
    ).hexdigest()


def compute_discount(expected_amount: int, actual_amount: int) -> tuple[int, float]:
    """Discount in minor units and as a percentage of the expected amount.

    Returns:
        Tuple of (discount, percentage rounded to 2 places); both zero when
        nothing was expected or the payment covered the full amount
    """
    discount = max(expected_amount - actual_amount, 0)
    if expected_amount <= 0:
        return discount, 0.0
    return discount, round(discount * 100 / expected_amount, 2)


class TransactionLedger:
    """Writes and reads transaction records."""

    TRANSACTIONS_TABLE = "transactions"
    USER_INDEX = "user_id-created_at-index"
    PAYLOAD_HASH_INDEX = "payload_hash-index"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def build_record(
        self,
        session: PaymentSession,
        event: CanonicalEvent,
        scenario: PaymentScenario,
        method: MatchingMethod,
        access_type: AccessType,
        created_at: dt.datetime,
    ) -> TransactionRecord:
        """Assemble the audit record for a finalized session."""
        discount, percentage = compute_discount(
            session.expected_amount, scenario.numeric_amount
        )
        return TransactionRecord(
            transaction_id=event.transaction_id or f"{session.session_id}-{method.value}",
            session_id=session.session_id,
            user_id=session.user_id,
            category_id=session.category_id,
            user_email=session.user_email,
            event_type=event.event or "",
            gateway_webhook_id=event.webhook_id,
            amount_paid=max(scenario.numeric_amount, 0),
            expected_amount=session.expected_amount,
            discount_amount=discount,
            discount_percentage=percentage,
            coupon_used=event.coupon_used,
            matching_method=method,
            access_type=access_type,
            customer_name=event.customer_name,
            payload_hash=compute_payload_hash(event.raw),
            raw_payload=event.raw,
            created_at=created_at,
        )

    def append(self, record: TransactionRecord) -> bool:
        """Insert a record unless one with the same ID exists.

        Returns:
            True if inserted, False if the transaction was already recorded

        Raises:
            PersistenceError: If storage fails
        """
        inserted = self.db.put_item(
            self.TRANSACTIONS_TABLE,
            self._record_to_item(record),
            condition_expression="attribute_not_exists(transaction_id)",
        )
        if inserted:
            logger.info(
                "Transaction %s recorded for session %s",
                record.transaction_id,
                record.session_id,
            )
        else:
            logger.warning(
                "Transaction %s already recorded, leaving existing entry",
                record.transaction_id,
            )
        return inserted

    def get(self, transaction_id: str) -> TransactionRecord | None:
        item = self.db.get_item(self.TRANSACTIONS_TABLE, {"transaction_id": transaction_id})
        return self._item_to_record(item) if item else None

    def find_by_payload_hash(self, payload_hash: str) -> TransactionRecord | None:
        """Record written for a byte-identical payload, if any.

        Deliveries without a gateway transaction ID are keyed by session, so
        a redelivery can only be recognised by its content.
        """
        items = self.db.query(
            self.TRANSACTIONS_TABLE,
            Key("payload_hash").eq(payload_hash),
            index_name=self.PAYLOAD_HASH_INDEX,
            limit=1,
        )
        return self._item_to_record(items[0]) if items else None

    def history_for_user(self, user_id: str) -> list[TransactionRecord]:
        """All transactions for a user, newest first."""
        items = self.db.query(
            self.TRANSACTIONS_TABLE,
            Key("user_id").eq(user_id),
            index_name=self.USER_INDEX,
            scan_index_forward=False,
        )
        return [self._item_to_record(item) for item in items]

    # Conversion helpers

    def _record_to_item(self, record: TransactionRecord) -> dict[str, Any]:
        """Convert TransactionRecord to DynamoDB item.

        DynamoDB rejects floats, so the percentage goes in as Decimal and the
        raw payload as a JSON string.
        """
        item: dict[str, Any] = {
            "transaction_id": record.transaction_id,
            "session_id": record.session_id,
            "user_id": record.user_id,
            "category_id": record.category_id,
            "user_email": record.user_email,
            "event_type": record.event_type,
            "amount_paid": record.amount_paid,
            "expected_amount": record.expected_amount,
            "discount_amount": record.discount_amount,
            "discount_percentage": Decimal(str(record.discount_percentage)),
            "matching_method": record.matching_method.value,
            "access_type": record.access_type.value,
            "payload_hash": record.payload_hash,
            "raw_payload": json.dumps(record.raw_payload, sort_keys=True, default=str),
            "created_at": to_iso(record.created_at),
        }
        if record.gateway_webhook_id:
            item["gateway_webhook_id"] = record.gateway_webhook_id
        if record.coupon_used:
            item["coupon_used"] = record.coupon_used
        if record.customer_name:
            item["customer_name"] = record.customer_name
        return item

    def _item_to_record(self, item: dict[str, Any]) -> TransactionRecord:
        return TransactionRecord(
            transaction_id=item["transaction_id"],
            session_id=item["session_id"],
            user_id=item["user_id"],
            category_id=item["category_id"],
            user_email=item["user_email"],
            event_type=item.get("event_type", ""),
            gateway_webhook_id=item.get("gateway_webhook_id"),
            amount_paid=int(item["amount_paid"]),
            expected_amount=int(item["expected_amount"]),
            discount_amount=int(item["discount_amount"]),
            discount_percentage=float(item["discount_percentage"]),
            coupon_used=item.get("coupon_used"),
            matching_method=MatchingMethod(item["matching_method"]),
            access_type=AccessType(item["access_type"]),
            customer_name=item.get("customer_name"),
            payload_hash=item["payload_hash"],
            raw_payload=json.loads(item.get("raw_payload") or "{}"),
            created_at=parse_iso(item["created_at"]),
        )
