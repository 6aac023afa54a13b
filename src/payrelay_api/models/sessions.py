"""API models for payment session endpoints.

Client-facing payloads use camelCase keys.
"""

from datetime import datetime

from pydantic import ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from payrelay.models import (
    AccessType,
    MatchingMethod,
    SessionStatus,
    TimingStatus,
)

from .common import CamelModel


class CreatePaymentSessionRequest(CamelModel):
    """Request to start a purchase.

    Fields are optional at the schema level so that a missing value is
    reported as MISSING_PARAMETERS rather than a generic validation error.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "userId": "user-123",
                    "categoryId": "cat-physics",
                    "userEmail": "student@example.com",
                }
            ]
        },
    )

    user_id: str | None = Field(default=None, description="Purchasing user")
    category_id: str | None = Field(default=None, description="Category to buy")
    user_email: EmailStr | None = Field(
        default=None,
        description="Email the payment gateway will report back",
    )


class CreatePaymentSessionResponse(CamelModel):
    """Result of creating a payment session."""

    success: bool = True
    session_id: str
    payment_url: str | None = Field(
        ..., description="Checkout link; null for free categories"
    )
    amount: int
    is_free: bool
    has_access: bool
    expires_at: datetime
    category_name: str
    message: str


class CheckPaymentSessionRequest(CamelModel):
    """Body form of the session status check."""

    session_id: str | None = None
    user_id: str | None = None


class TimingInfoResponse(CamelModel):
    is_expired: bool
    minutes_until_expiry: int
    status: TimingStatus


class SessionInfoResponse(CamelModel):
    category_id: str
    user_email: str
    expected_amount: int
    actual_amount: int
    is_free_item: bool
    coupon_used: str | None = None
    matching_method: MatchingMethod | None = None
    transaction_id: str | None = None
    created_at: datetime


class PaymentSessionStatusResponse(CamelModel):
    """Current state of a payment session."""

    success: bool = True
    session_id: str
    status: SessionStatus
    has_access: bool
    expires_at: datetime
    processed_at: datetime | None = None
    timing_info: TimingInfoResponse
    session_info: SessionInfoResponse


class ActiveSessionSummary(CamelModel):
    session_id: str
    category_id: str
    expected_amount: int
    status: SessionStatus
    created_at: datetime
    expires_at: datetime
    payment_url: str


class ActiveSessionsResponse(CamelModel):
    success: bool = True
    user_id: str
    sessions: list[ActiveSessionSummary] = Field(default_factory=list)


class TransactionSummary(CamelModel):
    transaction_id: str
    session_id: str
    category_id: str
    amount_paid: int
    expected_amount: int
    discount_amount: int
    discount_percentage: float
    coupon_used: str | None = None
    matching_method: MatchingMethod
    access_type: AccessType
    created_at: datetime


class TransactionHistoryResponse(CamelModel):
    success: bool = True
    user_id: str
    transactions: list[TransactionSummary] = Field(default_factory=list)
