"""API models for the gateway webhook endpoint.

The response envelope is consumed by the payment gateway, which only looks
at the status code and ``processed``; everything else is for operators.
"""

from datetime import datetime

from pydantic import Field

from payrelay.models import (
    AccessType,
    MatchingMethod,
    SessionStatus,
    WebhookOutcome,
    WebhookResult,
)

from .common import CamelModel


class WebhookResultData(CamelModel):
    """What a processed webhook changed."""

    session_id: str
    transaction_id: str | None = None
    user_id: str
    category_id: str
    access_type: AccessType
    expected_amount: int
    actual_amount: int
    discount: int
    discount_percentage: float
    coupon_used: str | None = None
    access_newly_granted: bool
    processed_at: datetime


class MatchAttemptDebug(CamelModel):
    strategy: MatchingMethod
    matched: bool
    candidates: int
    session_id: str | None = None


class RecentSessionDebug(CamelModel):
    session_id: str
    expected_amount: int
    status: SessionStatus
    created_at: datetime


class WebhookDebug(CamelModel):
    """Context for manual reconciliation of unmatched payments."""

    scenario: list[str] = Field(default_factory=list)
    attempts: list[MatchAttemptDebug] = Field(default_factory=list)
    recent_sessions: list[RecentSessionDebug] = Field(default_factory=list)


class WebhookResponse(CamelModel):
    """Envelope returned for every well-formed delivery."""

    success: bool = True
    processed: bool
    result: WebhookResult
    message: str
    matching_method: MatchingMethod | None = None
    data: WebhookResultData | None = None
    debug: WebhookDebug | None = None

    @classmethod
    def from_outcome(cls, outcome: WebhookOutcome) -> "WebhookResponse":
        data = None
        if outcome.finalization is not None:
            data = WebhookResultData.model_validate(outcome.finalization.model_dump())

        debug = None
        if outcome.result == WebhookResult.UNMATCHED:
            debug = WebhookDebug(
                scenario=outcome.scenario_tags,
                attempts=[
                    MatchAttemptDebug.model_validate(a.model_dump())
                    for a in outcome.attempts
                ],
                recent_sessions=[
                    RecentSessionDebug.model_validate(s.model_dump())
                    for s in outcome.recent_sessions
                ],
            )

        return cls(
            processed=outcome.processed,
            result=outcome.result,
            message=outcome.message,
            matching_method=outcome.matching_method,
            data=data,
            debug=debug,
        )
