"""Pydantic models for payment relay data entities."""

from .enums import (
    AccessType,
    MatchingMethod,
    SessionStatus,
    TimingStatus,
    WebhookResult,
)
from .errors import (
    ERROR_MESSAGES,
    ERROR_RECOVERY,
    RETRYABLE_ERRORS,
    ErrorCode,
    ErrorResponse,
    PersistenceError,
    RelayError,
)
from .session import (
    AccessGrant,
    Category,
    PaymentSession,
    SessionInfo,
    SessionResult,
    SessionStatusReport,
    TimingInfo,
)
from .transaction import TransactionRecord
from .webhook import (
    CanonicalEvent,
    FinalizationResult,
    MatchAttempt,
    MatchResult,
    PaymentScenario,
    SessionSnapshot,
    WebhookOutcome,
)

__all__ = [
    # Enums
    "AccessType",
    "MatchingMethod",
    "SessionStatus",
    "TimingStatus",
    "WebhookResult",
    # Sessions
    "AccessGrant",
    "Category",
    "PaymentSession",
    "SessionInfo",
    "SessionResult",
    "SessionStatusReport",
    "TimingInfo",
    # Ledger
    "TransactionRecord",
    # Webhooks
    "CanonicalEvent",
    "FinalizationResult",
    "MatchAttempt",
    "MatchResult",
    "PaymentScenario",
    "SessionSnapshot",
    "WebhookOutcome",
    # Errors
    "ERROR_MESSAGES",
    "ERROR_RECOVERY",
    "RETRYABLE_ERRORS",
    "ErrorCode",
    "ErrorResponse",
    "PersistenceError",
    "RelayError",
]
