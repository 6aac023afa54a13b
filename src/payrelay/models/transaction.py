"""Transaction ledger record for reconciliation auditing."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import AccessType, MatchingMethod


class TransactionRecord(BaseModel):
    """Append-only audit entry written when a webhook finalizes a session.

    Used for:
    - Auditing: what was paid versus what was expected
    - Dispute resolution: the raw gateway payload is kept verbatim
    - Debugging: which matching strategy tied the payment to the session
    """

    model_config = ConfigDict(strict=True)

    transaction_id: str = Field(
        ...,
        description="Gateway transaction ID",
        examples=["5ad53d1e-19e3-4f45-b949-6fd4a4a05584"],
    )
    session_id: str
    user_id: str
    category_id: str
    user_email: str
    event_type: str = Field(..., examples=["payment.received"])
    gateway_webhook_id: str | None = None
    amount_paid: int = Field(..., ge=0, description="Settled amount in minor units")
    expected_amount: int = Field(..., ge=0, description="Session amount at creation")
    discount_amount: int = Field(..., ge=0)
    discount_percentage: float = Field(..., ge=0, le=100)
    coupon_used: str | None = None
    matching_method: MatchingMethod
    access_type: AccessType
    customer_name: str | None = None
    payload_hash: str = Field(..., description="SHA-256 of the canonical raw payload")
    raw_payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
