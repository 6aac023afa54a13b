"""Enumeration types for payment relay data models."""

from enum import Enum


class SessionStatus(str, Enum):
    """Lifecycle status of a payment session."""

    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"


class AccessType(str, Enum):
    """How a user came to hold access to a category."""

    FREE = "free"
    PAID = "paid"


class MatchingMethod(str, Enum):
    """Strategy that tied a webhook (or free checkout) to its session."""

    EXACT_MATCH = "exact_match"
    DISCOUNTED_MATCH = "discounted_match"
    TEST_COUPON_MATCH = "test_coupon_match"
    RECENT_FALLBACK = "recent_fallback"
    FREE_ITEM = "free_item"


class WebhookResult(str, Enum):
    """Terminal outcome of a webhook delivery."""

    PROCESSED = "processed"
    IGNORED = "ignored"
    UNMATCHED = "unmatched"
    DUPLICATE = "duplicate"


class TimingStatus(str, Enum):
    """Coarse remaining-time bucket reported by session checks."""

    EXPIRED = "expired"
    PLENTY_OF_TIME = "plenty_of_time"
    EXPIRING_SOON = "expiring_soon"
    NOT_APPLICABLE = "not_applicable"
