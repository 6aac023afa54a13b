"""Models for inbound gateway webhooks and their reconciliation.

CanonicalEvent is deliberately lenient: the gateway has shipped more than one
payload dialect and any field may be missing. Everything downstream of
normalisation works on the canonical shape only.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import AccessType, MatchingMethod, SessionStatus, WebhookResult
from .session import PaymentSession


class CanonicalEvent(BaseModel):
    """Gateway event normalised across payload dialects."""

    model_config = ConfigDict(frozen=True)

    event: str | None = None
    transaction_id: str | None = Field(
        default=None, description="data.transactionId, falling back to data.id"
    )
    webhook_id: str | None = Field(
        default=None, description="data.id, falling back to data.transactionId"
    )
    status: str | None = None
    transaction_status: str | None = None
    amount: Any = Field(default=None, description="Raw amount as delivered")
    original_amount: Any = None
    customer_email: str | None = None
    customer_name: str | None = None
    coupon_used: str | None = None
    product_id: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class PaymentScenario(BaseModel):
    """Classification of a canonical event.

    The tags steer which matching strategies run; they are diagnostic and
    never decide the match on their own.
    """

    model_config = ConfigDict(frozen=True)

    accepted_event: bool
    is_successful: bool
    numeric_amount: int
    is_zero_amount: bool
    is_coupon_discount: bool
    is_test_coupon: bool
    is_normal_payment: bool

    @property
    def should_process(self) -> bool:
        return self.accepted_event and self.is_successful

    @property
    def tags(self) -> list[str]:
        tags = []
        if self.is_zero_amount:
            tags.append("zero_amount")
        if self.is_coupon_discount:
            tags.append("coupon_discount")
        if self.is_test_coupon:
            tags.append("test_coupon")
        if self.is_normal_payment:
            tags.append("normal_payment")
        return tags


class MatchAttempt(BaseModel):
    """One strategy's attempt at locating a session."""

    strategy: MatchingMethod
    matched: bool
    candidates: int = 0
    session_id: str | None = None


class MatchResult(BaseModel):
    """Result of running the strategy chain."""

    session: PaymentSession | None = None
    method: MatchingMethod | None = None
    attempts: list[MatchAttempt] = Field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.session is not None


class FinalizationResult(BaseModel):
    """What finalize() did for a matched session."""

    session_id: str
    user_id: str
    category_id: str
    transaction_id: str | None
    access_type: AccessType
    matching_method: MatchingMethod
    expected_amount: int
    actual_amount: int
    discount: int
    discount_percentage: float
    coupon_used: str | None = None
    access_newly_granted: bool
    session_updated: bool
    ledger_recorded: bool
    already_finalized: bool = False
    processed_at: datetime


class SessionSnapshot(BaseModel):
    """Minimal view of a session for operator debugging."""

    session_id: str
    expected_amount: int
    status: SessionStatus
    created_at: datetime


class WebhookOutcome(BaseModel):
    """Terminal result of processing one delivery."""

    result: WebhookResult
    processed: bool
    message: str
    event: str | None = None
    transaction_id: str | None = None
    scenario_tags: list[str] = Field(default_factory=list)
    matching_method: MatchingMethod | None = None
    finalization: FinalizationResult | None = None
    attempts: list[MatchAttempt] = Field(default_factory=list)
    recent_sessions: list[SessionSnapshot] = Field(default_factory=list)
