"""Unit tests for webhook normalization and classification.

Tests verify the reconciler correctly:
- Accepts both gateway payload dialects (transactionId/id, transactionStatus/status)
- Rejects bodies that cannot be a webhook
- Coerces amounts and derives scenario tags
- Decides which events are processed and which are ignored
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from payrelay.config import MatchingConfig
from payrelay.models import ErrorCode, RelayError
from payrelay.services import WebhookReconciler


@pytest.fixture
def offline_reconciler() -> WebhookReconciler:
    """Reconciler whose collaborators are never touched by these stages."""
    return WebhookReconciler(MagicMock(), MagicMock(), MatchingConfig(), strategies=[])


class TestNormalize:
    """Test extraction of the canonical event."""

    def test_transaction_id_dialect(self, offline_reconciler: WebhookReconciler) -> None:
        event = offline_reconciler.normalize(
            {
                "event": "payment.received",
                "data": {
                    "transactionId": "txn-1",
                    "status": "SUCCESS",
                    "transactionStatus": "paid",
                    "amount": 50000,
                    "customerEmail": "a@example.com",
                    "customerName": "Ana",
                    "couponUsed": "SPRING",
                    "productId": "prod-9",
                },
            }
        )
        assert event.event == "payment.received"
        assert event.transaction_id == "txn-1"
        assert event.webhook_id == "txn-1"
        assert event.status == "SUCCESS"
        assert event.transaction_status == "paid"
        assert event.amount == 50000
        assert event.customer_email == "a@example.com"
        assert event.customer_name == "Ana"
        assert event.coupon_used == "SPRING"
        assert event.product_id == "prod-9"

    def test_customer_email_is_lowercased(self, offline_reconciler: WebhookReconciler) -> None:
        event = offline_reconciler.normalize(
            {"event": "payment.received", "data": {"customerEmail": "  Ana@Example.COM "}}
        )
        assert event.customer_email == "ana@example.com"

    def test_bare_id_dialect(self, offline_reconciler: WebhookReconciler) -> None:
        event = offline_reconciler.normalize(
            {"event": "payment.received", "data": {"id": "abc-123", "status": "SUCCESS"}}
        )
        assert event.transaction_id == "abc-123"
        assert event.webhook_id == "abc-123"
        assert event.transaction_status is None

    def test_both_ids_keep_their_roles(self, offline_reconciler: WebhookReconciler) -> None:
        event = offline_reconciler.normalize(
            {"event": "payment.received", "data": {"id": "hook-1", "transactionId": "txn-1"}}
        )
        assert event.transaction_id == "txn-1"
        assert event.webhook_id == "hook-1"

    def test_missing_optionals_default_to_none(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        event = offline_reconciler.normalize({"event": "payment.received", "data": {}})
        assert event.transaction_id is None
        assert event.customer_email is None
        assert event.coupon_used is None
        assert event.amount is None

    def test_event_without_data_is_accepted(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        event = offline_reconciler.normalize({"event": "payment.received"})
        assert event.event == "payment.received"
        assert event.transaction_id is None

    def test_data_without_event_is_accepted(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        event = offline_reconciler.normalize({"data": {"id": "x"}})
        assert event.event is None
        assert event.transaction_id == "x"

    def test_raw_payload_is_kept(self, offline_reconciler: WebhookReconciler) -> None:
        raw = {"event": "payment.received", "data": {"id": "x"}, "extra": [1, 2]}
        assert offline_reconciler.normalize(raw).raw == raw

    def test_empty_coupon_is_treated_as_absent(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        event = offline_reconciler.normalize(
            {"event": "payment.received", "data": {"couponUsed": ""}}
        )
        assert event.coupon_used is None

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"other": 1},
            {"event": None, "data": None},
        ],
    )
    def test_missing_event_and_data_is_invalid(
        self, offline_reconciler: WebhookReconciler, body: dict
    ) -> None:
        with pytest.raises(RelayError) as exc_info:
            offline_reconciler.normalize(body)
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD

    @pytest.mark.parametrize("body", [[], "payment.received", 42, None])
    def test_non_object_body_is_invalid(
        self, offline_reconciler: WebhookReconciler, body: object
    ) -> None:
        with pytest.raises(RelayError) as exc_info:
            offline_reconciler.normalize(body)
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD

    def test_non_object_data_is_invalid(self, offline_reconciler: WebhookReconciler) -> None:
        with pytest.raises(RelayError) as exc_info:
            offline_reconciler.normalize({"event": "payment.received", "data": "oops"})
        assert exc_info.value.code == ErrorCode.INVALID_PAYLOAD


class TestClassify:
    """Test scenario derivation."""

    def _classify(self, reconciler: WebhookReconciler, **data: object):
        return reconciler.classify(
            reconciler.normalize({"event": "payment.received", "data": data})
        )

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [
            (50000, 50000),
            ("50000", 50000),
            (" 1500 ", 1500),
            (49.99, 49),
            (Decimal("12.5"), 12),
            ("abc", 0),
            (None, 0),
            ("", 0),
            (True, 0),
            ("NaN", 0),
            ("Infinity", 0),
            ([1], 0),
        ],
    )
    def test_amount_coercion(
        self, offline_reconciler: WebhookReconciler, amount: object, expected: int
    ) -> None:
        scenario = self._classify(offline_reconciler, amount=amount, status="SUCCESS")
        assert scenario.numeric_amount == expected

    def test_success_by_status(self, offline_reconciler: WebhookReconciler) -> None:
        assert self._classify(offline_reconciler, status="SUCCESS").is_successful

    def test_success_by_transaction_status(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        scenario = self._classify(
            offline_reconciler, status="PENDING", transactionStatus="paid"
        )
        assert scenario.is_successful

    def test_unsuccessful_payment(self, offline_reconciler: WebhookReconciler) -> None:
        scenario = self._classify(
            offline_reconciler, status="FAILED", transactionStatus="failed"
        )
        assert not scenario.is_successful
        assert not scenario.should_process

    def test_unaccepted_event_type_is_not_processed(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        event = offline_reconciler.normalize(
            {"event": "payment.refunded", "data": {"status": "SUCCESS"}}
        )
        scenario = offline_reconciler.classify(event)
        assert scenario.is_successful
        assert not scenario.accepted_event
        assert not scenario.should_process

    def test_normal_payment_tags(self, offline_reconciler: WebhookReconciler) -> None:
        scenario = self._classify(offline_reconciler, amount=50000, status="SUCCESS")
        assert scenario.tags == ["normal_payment"]
        assert scenario.should_process

    def test_zero_amount_without_coupon_is_a_discount(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        scenario = self._classify(offline_reconciler, amount=0, status="SUCCESS")
        assert scenario.is_zero_amount
        assert scenario.is_coupon_discount
        assert not scenario.is_test_coupon
        assert scenario.tags == ["zero_amount", "coupon_discount"]

    def test_zero_amount_with_test_coupon(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        scenario = self._classify(
            offline_reconciler, amount=0, status="SUCCESS", couponUsed="TESFREE"
        )
        assert scenario.is_test_coupon
        assert not scenario.is_coupon_discount
        assert scenario.tags == ["zero_amount", "test_coupon"]

    def test_partial_coupon_is_not_a_normal_payment(
        self, offline_reconciler: WebhookReconciler
    ) -> None:
        scenario = self._classify(
            offline_reconciler, amount=25000, status="SUCCESS", couponUsed="HALF"
        )
        assert not scenario.is_normal_payment
        assert not scenario.is_zero_amount
        assert scenario.tags == []

    def test_coupon_codes_come_from_config(self) -> None:
        reconciler = WebhookReconciler(
            MagicMock(),
            MagicMock(),
            MatchingConfig(test_coupon_codes=frozenset({"QA100"})),
            strategies=[],
        )
        scenario = reconciler.classify(
            reconciler.normalize(
                {"event": "payment.received", "data": {"amount": 0, "couponUsed": "QA100"}}
            )
        )
        assert scenario.is_test_coupon
