"""Unit tests for the transaction ledger.

Tests verify:
- Discount and percentage computation
- Payload hashing is stable across key order
- Records round-trip through DynamoDB with the raw payload intact
- Appends are insert-only
- Per-user history is newest first
"""

import datetime as dt

import pytest

from payrelay.models import (
    AccessType,
    CanonicalEvent,
    MatchingMethod,
    PaymentScenario,
    PaymentSession,
    SessionStatus,
)
from payrelay.services import TransactionLedger, compute_discount, compute_payload_hash

from conftest import FIXED_NOW, PAID_CATEGORY_ID, TEST_EMAIL, TEST_USER_ID


def _session(session_id: str = "sess-1", expected_amount: int = 50000) -> PaymentSession:
    return PaymentSession(
        session_id=session_id,
        user_id=TEST_USER_ID,
        category_id=PAID_CATEGORY_ID,
        user_email=TEST_EMAIL,
        expected_amount=expected_amount,
        status=SessionStatus.PENDING,
        created_at=FIXED_NOW - dt.timedelta(minutes=5),
        expires_at=FIXED_NOW + dt.timedelta(minutes=55),
    )


def _scenario(amount: int) -> PaymentScenario:
    return PaymentScenario(
        accepted_event=True,
        is_successful=True,
        numeric_amount=amount,
        is_zero_amount=amount == 0,
        is_coupon_discount=amount == 0,
        is_test_coupon=False,
        is_normal_payment=amount > 0,
    )


def _event(transaction_id: str | None = "txn-1", **raw_data) -> CanonicalEvent:
    raw = {"event": "payment.received", "data": {"transactionId": transaction_id, **raw_data}}
    return CanonicalEvent(
        event="payment.received",
        transaction_id=transaction_id,
        webhook_id=transaction_id,
        status="SUCCESS",
        customer_email=TEST_EMAIL,
        customer_name="Test Student",
        coupon_used=raw_data.get("couponUsed"),
        raw=raw,
    )


class TestComputeDiscount:
    @pytest.mark.parametrize(
        ("expected", "actual", "discount", "percentage"),
        [
            (50000, 50000, 0, 0.0),
            (50000, 0, 50000, 100.0),
            (50000, 25000, 25000, 50.0),
            (30000, 10000, 20000, 66.67),
            (0, 0, 0, 0.0),
            (10000, 15000, 0, 0.0),
        ],
    )
    def test_discount(
        self, expected: int, actual: int, discount: int, percentage: float
    ) -> None:
        assert compute_discount(expected, actual) == (discount, percentage)


class TestPayloadHash:
    def test_hash_ignores_key_order(self) -> None:
        a = {"event": "payment.received", "data": {"id": "1", "amount": 5}}
        b = {"data": {"amount": 5, "id": "1"}, "event": "payment.received"}

        assert compute_payload_hash(a) == compute_payload_hash(b)
        assert len(compute_payload_hash(a)) == 64

    def test_hash_changes_with_content(self) -> None:
        assert compute_payload_hash({"a": 1}) != compute_payload_hash({"a": 2})


class TestBuildRecord:
    def test_record_fields(self) -> None:
        ledger = TransactionLedger(db=None)  # type: ignore[arg-type]
        event = _event(couponUsed="HALF", amount=25000)

        record = ledger.build_record(
            _session(),
            event,
            _scenario(25000),
            MatchingMethod.RECENT_FALLBACK,
            AccessType.PAID,
            FIXED_NOW,
        )

        assert record.transaction_id == "txn-1"
        assert record.amount_paid == 25000
        assert record.expected_amount == 50000
        assert record.discount_amount == 25000
        assert record.discount_percentage == 50.0
        assert record.coupon_used == "HALF"
        assert record.customer_name == "Test Student"
        assert record.payload_hash == compute_payload_hash(event.raw)
        assert record.raw_payload == event.raw

    def test_missing_transaction_id_falls_back_to_session(self) -> None:
        ledger = TransactionLedger(db=None)  # type: ignore[arg-type]

        record = ledger.build_record(
            _session("sess-9"),
            _event(transaction_id=None),
            _scenario(50000),
            MatchingMethod.EXACT_MATCH,
            AccessType.PAID,
            FIXED_NOW,
        )

        assert record.transaction_id == "sess-9-exact_match"


class TestAppend:
    def test_append_and_read_back(self, ledger: TransactionLedger) -> None:
        event = _event(amount=12.5, nested={"k": [1, 2]})
        record = ledger.build_record(
            _session(), event, _scenario(12), MatchingMethod.RECENT_FALLBACK, AccessType.PAID, FIXED_NOW
        )

        assert ledger.append(record) is True
        stored = ledger.get("txn-1")

        assert stored == record

    def test_append_is_insert_only(self, ledger: TransactionLedger) -> None:
        first = ledger.build_record(
            _session(), _event(), _scenario(50000), MatchingMethod.EXACT_MATCH, AccessType.PAID, FIXED_NOW
        )
        second = ledger.build_record(
            _session("sess-2"),
            _event(),
            _scenario(0),
            MatchingMethod.DISCOUNTED_MATCH,
            AccessType.FREE,
            FIXED_NOW,
        )

        assert ledger.append(first) is True
        assert ledger.append(second) is False
        assert ledger.get("txn-1").session_id == "sess-1"

    def test_get_missing(self, ledger: TransactionLedger) -> None:
        assert ledger.get("txn-nope") is None

    def test_find_by_payload_hash(self, ledger: TransactionLedger) -> None:
        event = _event(transaction_id=None)
        record = ledger.build_record(
            _session(), event, _scenario(50000), MatchingMethod.EXACT_MATCH, AccessType.PAID, FIXED_NOW
        )
        ledger.append(record)

        found = ledger.find_by_payload_hash(compute_payload_hash(event.raw))

        assert found is not None
        assert found.transaction_id == "sess-1-exact_match"
        assert ledger.find_by_payload_hash(compute_payload_hash({"other": 1})) is None

    def test_whole_second_and_fractional_times_keep_order(
        self, ledger: TransactionLedger
    ) -> None:
        whole = FIXED_NOW
        fractional = FIXED_NOW + dt.timedelta(microseconds=500)
        for i, processed_at in enumerate((whole, fractional)):
            ledger.append(
                ledger.build_record(
                    _session(f"sess-{i}"),
                    _event(transaction_id=f"txn-{i}"),
                    _scenario(50000),
                    MatchingMethod.EXACT_MATCH,
                    AccessType.PAID,
                    processed_at,
                )
            )

        history = ledger.history_for_user(TEST_USER_ID)

        assert [r.transaction_id for r in history] == ["txn-1", "txn-0"]

    def test_history_newest_first(self, ledger: TransactionLedger) -> None:
        for i, minutes in enumerate((30, 10, 20)):
            ledger.append(
                ledger.build_record(
                    _session(f"sess-{i}"),
                    _event(transaction_id=f"txn-{i}"),
                    _scenario(50000),
                    MatchingMethod.EXACT_MATCH,
                    AccessType.PAID,
                    FIXED_NOW - dt.timedelta(minutes=minutes),
                )
            )

        history = ledger.history_for_user(TEST_USER_ID)

        assert [r.transaction_id for r in history] == ["txn-1", "txn-2", "txn-0"]
        assert ledger.history_for_user("someone-else") == []
