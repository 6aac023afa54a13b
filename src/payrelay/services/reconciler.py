"""Webhook reconciler: ties gateway payment events back to payment sessions.

Provides the reconciliation logic separate from HTTP routing concerns, so
the same pipeline can be unit tested without a server and reused behind
any transport.

Each delivery moves through:

    RECEIVED -> VALIDATED -> CLASSIFIED -> MATCHED -> FINALIZED

with two terminal exits: IGNORED (wrong event type or unsuccessful payment)
and UNMATCHED (well formed, but no session could be found). Neither is an
error to the gateway.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from payrelay.config import MatchingConfig
from payrelay.models import (
    AccessType,
    CanonicalEvent,
    ErrorCode,
    FinalizationResult,
    MatchAttempt,
    MatchingMethod,
    MatchResult,
    PaymentScenario,
    PaymentSession,
    PersistenceError,
    RelayError,
    SessionSnapshot,
    WebhookOutcome,
    WebhookResult,
)
from payrelay.utils.logging import get_logger, log_match_attempt, log_webhook_event

from .ledger import TransactionLedger, compute_discount, compute_payload_hash
from .matching import MatchStrategy, build_strategy_chain
from .notifications import PaymentNotifier
from .session_manager import SessionManager, normalize_email

logger = get_logger(__name__)

WEBHOOK_VERSION = "2.0.0"


def _text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _coerce_amount(value: Any) -> int:
    """Coerce a delivered amount to whole minor units; anything unusable is 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return 0
    if not number.is_finite():
        return 0
    return int(number)


class WebhookReconciler:
    """Normalises, classifies, matches and finalises gateway webhooks."""

    def __init__(
        self,
        sessions: SessionManager,
        ledger: TransactionLedger,
        config: MatchingConfig,
        notifier: PaymentNotifier | None = None,
        strategies: list[MatchStrategy] | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            sessions: Session manager; all session and grant writes go through it
            ledger: Transaction ledger for audit records
            config: Matching configuration
            notifier: Optional best-effort notifier
            strategies: Matching chain, built from config when omitted
        """
        self.sessions = sessions
        self.ledger = ledger
        self.config = config
        self.notifier = notifier or PaymentNotifier()
        self.strategies = strategies if strategies is not None else build_strategy_chain(config)

    # =========================================================================
    # Pipeline stages
    # =========================================================================

    def normalize(self, raw_payload: Any) -> CanonicalEvent:
        """Extract the canonical event from a raw webhook body.

        Accepts both the ``transactionId`` and bare ``id`` dialects, and both
        ``transactionStatus`` and ``status``. Missing optional fields are
        left as None; the customer email is trimmed and lowercased.

        Raises:
            RelayError: INVALID_PAYLOAD if the body is not an object, ``data``
                is not an object, or both ``event`` and ``data`` are absent
        """
        if not isinstance(raw_payload, dict):
            raise RelayError(
                ErrorCode.INVALID_PAYLOAD,
                details={"reason": "body is not a JSON object"},
            )

        event_type = raw_payload.get("event")
        data = raw_payload.get("data")
        if event_type is None and data is None:
            raise RelayError(ErrorCode.INVALID_PAYLOAD)
        if data is None:
            data = {}
        elif not isinstance(data, dict):
            raise RelayError(
                ErrorCode.INVALID_PAYLOAD,
                details={"reason": "data is not an object"},
            )

        transaction_id = _text(data.get("transactionId")) or _text(data.get("id"))
        webhook_id = _text(data.get("id")) or _text(data.get("transactionId"))

        return CanonicalEvent(
            event=_text(event_type),
            transaction_id=transaction_id,
            webhook_id=webhook_id,
            status=_text(data.get("status")),
            transaction_status=_text(data.get("transactionStatus")),
            amount=data.get("amount"),
            original_amount=data.get("originalAmount"),
            customer_email=normalize_email(_text(data.get("customerEmail"))) or None,
            customer_name=_text(data.get("customerName")),
            coupon_used=_text(data.get("couponUsed")),
            product_id=_text(data.get("productId")),
            raw=raw_payload,
        )

    def classify(self, event: CanonicalEvent) -> PaymentScenario:
        """Derive the payment scenario for an event."""
        amount = _coerce_amount(event.amount)
        is_zero = amount == 0
        is_test_coupon = (
            event.coupon_used is not None
            and event.coupon_used in self.config.test_coupon_codes
        )
        is_successful = (
            event.status in self.config.success_statuses
            or event.transaction_status == self.config.paid_transaction_status
        )
        return PaymentScenario(
            accepted_event=event.event in self.config.accepted_events,
            is_successful=is_successful,
            numeric_amount=amount,
            is_zero_amount=is_zero,
            is_coupon_discount=is_zero and not is_test_coupon,
            is_test_coupon=is_test_coupon,
            is_normal_payment=amount > 0 and not event.coupon_used,
        )

    def match(self, event: CanonicalEvent, scenario: PaymentScenario) -> MatchResult:
        """Run the strategy chain; the first strategy to find a session wins."""
        attempts: list[MatchAttempt] = []
        for strategy in self.strategies:
            if not strategy.applies(scenario):
                continue

            session, candidates = strategy.attempt(event, scenario, self.sessions)
            attempts.append(
                MatchAttempt(
                    strategy=strategy.method,
                    matched=session is not None,
                    candidates=candidates,
                    session_id=session.session_id if session else None,
                )
            )
            log_match_attempt(
                logger,
                strategy.method.value,
                email=event.customer_email,
                amount=scenario.numeric_amount,
                matched=session is not None,
                session_id=session.session_id if session else None,
                candidates=candidates,
                transaction_id=event.transaction_id,
            )
            if session is not None:
                return MatchResult(session=session, method=strategy.method, attempts=attempts)

        return MatchResult(attempts=attempts)

    def finalize(
        self,
        session: PaymentSession,
        event: CanonicalEvent,
        scenario: PaymentScenario,
        method: MatchingMethod,
    ) -> FinalizationResult:
        """Grant access, complete the session and record the transaction.

        The grant is the only write whose failure fails the request. Session
        completion and the ledger append are logged on failure and otherwise
        ignored, since access has already been granted by then.

        Raises:
            RelayError: ACCESS_GRANT_FAILED if the grant could not be written
        """
        # A priced session stays paid even when a coupon took it to zero.
        access_type = AccessType.PAID if session.expected_amount > 0 else AccessType.FREE
        actual_amount = max(scenario.numeric_amount, 0)

        try:
            newly_granted = self.sessions.grant_access(
                session.user_id, session.category_id, access_type
            )
        except PersistenceError as e:
            log_webhook_event(
                logger,
                event.event,
                event.transaction_id,
                session_id=session.session_id,
                result="error",
                error=str(e),
            )
            raise RelayError(
                ErrorCode.ACCESS_GRANT_FAILED,
                details={"session_id": session.session_id, "operation": e.operation},
            ) from e

        session_updated = False
        already_finalized = False
        try:
            completed = self.sessions.complete_session(
                session,
                transaction_id=event.transaction_id,
                actual_amount=actual_amount,
                matching_method=method,
                coupon_used=event.coupon_used,
            )
            if completed is None:
                already_finalized = True
            else:
                session_updated = True
        except PersistenceError as e:
            logger.error(
                "Failed to complete session %s after granting access: %s",
                session.session_id,
                e,
            )

        processed_at = self.sessions.now()
        ledger_recorded = False
        if not already_finalized:
            try:
                record = self.ledger.build_record(
                    session, event, scenario, method, access_type, processed_at
                )
                ledger_recorded = self.ledger.append(record)
            except PersistenceError as e:
                logger.error(
                    "Failed to record transaction %s for session %s: %s",
                    event.transaction_id,
                    session.session_id,
                    e,
                )

        discount, percentage = compute_discount(session.expected_amount, actual_amount)
        result = FinalizationResult(
            session_id=session.session_id,
            user_id=session.user_id,
            category_id=session.category_id,
            transaction_id=event.transaction_id,
            access_type=access_type,
            matching_method=method,
            expected_amount=session.expected_amount,
            actual_amount=actual_amount,
            discount=discount,
            discount_percentage=percentage,
            coupon_used=event.coupon_used,
            access_newly_granted=newly_granted,
            session_updated=session_updated,
            ledger_recorded=ledger_recorded,
            already_finalized=already_finalized,
            processed_at=processed_at,
        )

        if not already_finalized:
            self.notifier.notify_access_granted(result)
        return result

    # =========================================================================
    # Orchestration
    # =========================================================================

    def process(self, raw_payload: Any) -> WebhookOutcome:
        """Process one webhook delivery end to end.

        Returns:
            WebhookOutcome; IGNORED, UNMATCHED and DUPLICATE are all normal
            outcomes, not errors

        Raises:
            RelayError: INVALID_PAYLOAD for a malformed body,
                ACCESS_GRANT_FAILED if access could not be granted
            PersistenceError: If a storage read fails before matching completes
        """
        event = self.normalize(raw_payload)
        scenario = self.classify(event)
        tags = scenario.tags

        if not scenario.should_process:
            if not scenario.accepted_event:
                message = f"Webhook ignored - not an accepted event ({event.event})"
            else:
                message = "Webhook ignored - payment not successful"
            log_webhook_event(
                logger,
                event.event,
                event.transaction_id,
                result=WebhookResult.IGNORED.value,
                status=event.status,
                transaction_status=event.transaction_status,
            )
            return WebhookOutcome(
                result=WebhookResult.IGNORED,
                processed=False,
                message=message,
                event=event.event,
                transaction_id=event.transaction_id,
                scenario_tags=tags,
            )

        if self._already_recorded(event):
            log_webhook_event(
                logger,
                event.event,
                event.transaction_id,
                result=WebhookResult.DUPLICATE.value,
            )
            return WebhookOutcome(
                result=WebhookResult.DUPLICATE,
                processed=False,
                message="Transaction already processed",
                event=event.event,
                transaction_id=event.transaction_id,
                scenario_tags=tags,
            )

        matched = self.match(event, scenario)
        if not matched.matched:
            recent = self._recent_snapshots(event)
            log_webhook_event(
                logger,
                event.event,
                event.transaction_id,
                result=WebhookResult.UNMATCHED.value,
                email=event.customer_email,
                amount=scenario.numeric_amount,
                recent_count=len(recent),
            )
            return WebhookOutcome(
                result=WebhookResult.UNMATCHED,
                processed=False,
                message="Payment received but no matching session found",
                event=event.event,
                transaction_id=event.transaction_id,
                scenario_tags=tags,
                attempts=matched.attempts,
                recent_sessions=recent,
            )

        finalization = self.finalize(matched.session, event, scenario, matched.method)
        if finalization.already_finalized:
            log_webhook_event(
                logger,
                event.event,
                event.transaction_id,
                session_id=finalization.session_id,
                result=WebhookResult.DUPLICATE.value,
            )
            return WebhookOutcome(
                result=WebhookResult.DUPLICATE,
                processed=False,
                message="Session already finalized by another delivery",
                event=event.event,
                transaction_id=event.transaction_id,
                scenario_tags=tags,
                matching_method=matched.method,
                finalization=finalization,
                attempts=matched.attempts,
            )

        log_webhook_event(
            logger,
            event.event,
            event.transaction_id,
            session_id=finalization.session_id,
            result=WebhookResult.PROCESSED.value,
            matching_method=matched.method.value,
            access_type=finalization.access_type.value,
        )
        return WebhookOutcome(
            result=WebhookResult.PROCESSED,
            processed=True,
            message="Payment processed and access granted",
            event=event.event,
            transaction_id=event.transaction_id,
            scenario_tags=tags,
            matching_method=matched.method,
            finalization=finalization,
            attempts=matched.attempts,
        )

    def _already_recorded(self, event: CanonicalEvent) -> bool:
        """Whether the ledger already holds this delivery.

        Looked up by gateway transaction ID, or by payload hash when the
        delivery carries none.
        """
        if event.transaction_id:
            return self.ledger.get(event.transaction_id) is not None
        payload_hash = compute_payload_hash(event.raw)
        return self.ledger.find_by_payload_hash(payload_hash) is not None

    def _recent_snapshots(self, event: CanonicalEvent) -> list[SessionSnapshot]:
        if not event.customer_email:
            return []
        try:
            recent = self.sessions.recent_sessions_for_email(
                event.customer_email, self.config.debug_snapshot_limit
            )
        except PersistenceError as e:
            logger.warning("Could not load recent sessions for debug snapshot: %s", e)
            return []
        return [
            SessionSnapshot(
                session_id=s.session_id,
                expected_amount=s.expected_amount,
                status=s.status,
                created_at=s.created_at,
            )
            for s in recent
        ]

    def describe(self) -> dict[str, Any]:
        """Static description of what this handler accepts and how it matches."""
        return {
            "status": "success",
            "message": "Payment webhook handler ready",
            "version": WEBHOOK_VERSION,
            "supported_events": sorted(self.config.accepted_events),
            "success_statuses": sorted(self.config.success_statuses),
            "paid_transaction_status": self.config.paid_transaction_status,
            "scenarios": [
                "normal_payment",
                "zero_amount",
                "coupon_discount",
                "test_coupon",
            ],
            "test_coupon_codes": sorted(self.config.test_coupon_codes),
            "strategies": [strategy.describe() for strategy in self.strategies],
        }
