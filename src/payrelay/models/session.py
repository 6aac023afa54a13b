"""Payment session, access grant and category models.

Amounts are integers in the currency's minor unit.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .enums import AccessType, MatchingMethod, SessionStatus, TimingStatus


class Category(BaseModel):
    """A purchasable product (quiz category)."""

    model_config = ConfigDict(strict=True)

    category_id: str = Field(..., description="Unique category ID")
    name: str = Field(default="", description="Display name")
    price_amount: int = Field(..., ge=0, description="Price in minor units")
    quiz_type: str = Field(default="paid", description="'free' or 'paid'")
    description: str | None = None

    @property
    def is_free(self) -> bool:
        """Free when priced at zero or explicitly marked free."""
        return self.price_amount == 0 or self.quiz_type == "free"


class PaymentSession(BaseModel):
    """A time-boxed record of purchase intent.

    expires_at and expected_amount are fixed at creation. The completion
    fields are only populated once a webhook (or a free checkout) finalizes
    the session.
    """

    model_config = ConfigDict(strict=True)

    session_id: str = Field(..., description="Opaque unique session ID")
    user_id: str = Field(..., description="Purchaser")
    category_id: str = Field(..., description="Product being purchased")
    user_email: str = Field(..., description="Correlation key for webhooks")
    expected_amount: int = Field(..., ge=0, description="Amount in minor units")
    status: SessionStatus = Field(..., description="Lifecycle status")
    created_at: datetime = Field(..., description="Creation timestamp")
    expires_at: datetime = Field(..., description="End of validity window")

    processed_at: datetime | None = None
    transaction_id: str | None = None
    actual_amount: int | None = None
    matching_method: MatchingMethod | None = None
    coupon_used: str | None = None
    updated_at: datetime | None = None

    def is_past_expiry(self, now: datetime) -> bool:
        return now > self.expires_at

    @property
    def is_free_item(self) -> bool:
        return self.expected_amount == 0


class AccessGrant(BaseModel):
    """Durable entitlement of a user to a category."""

    model_config = ConfigDict(strict=True)

    user_id: str
    category_id: str
    access_type: AccessType
    granted_at: datetime
    expires_at: datetime | None = Field(
        default=None,
        description="Always None under the current perpetual-access policy",
    )


class SessionResult(BaseModel):
    """Outcome of create_session."""

    model_config = ConfigDict(strict=True)

    success: bool = True
    session_id: str
    payment_url: str | None
    category_name: str
    amount: int
    is_free: bool
    has_access: bool
    expires_at: datetime
    message: str


class TimingInfo(BaseModel):
    """Remaining-time information for a session."""

    model_config = ConfigDict(strict=True)

    is_expired: bool
    minutes_until_expiry: int
    status: TimingStatus


class SessionInfo(BaseModel):
    """Observability metadata reported by check_session."""

    model_config = ConfigDict(strict=True)

    category_id: str
    user_email: str
    expected_amount: int
    actual_amount: int
    is_free_item: bool
    coupon_used: str | None = None
    matching_method: MatchingMethod | None = None
    transaction_id: str | None = None
    created_at: datetime


class SessionStatusReport(BaseModel):
    """Outcome of check_session."""

    model_config = ConfigDict(strict=True)

    success: bool = True
    session_id: str
    status: SessionStatus
    has_access: bool
    expires_at: datetime
    processed_at: datetime | None = None
    timing_info: TimingInfo
    session_info: SessionInfo
