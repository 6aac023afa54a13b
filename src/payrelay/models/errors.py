"""Standard error codes for the payment relay.

All services raise RelayError with one of these codes; the API layer maps
each code to an HTTP status and serialises it as an ErrorResponse.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Inbound structure errors
    INVALID_PAYLOAD = "ERR_001"
    MISSING_PARAMETERS = "ERR_002"

    # Lookup errors
    CATEGORY_NOT_FOUND = "ERR_003"
    SESSION_NOT_FOUND = "ERR_004"

    # Ownership / state errors
    ACCESS_ALREADY_GRANTED = "ERR_005"
    UNAUTHORIZED = "ERR_006"

    # Storage errors
    PERSISTENCE_FAILURE = "ERR_007"
    ACCESS_GRANT_FAILED = "ERR_008"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_PAYLOAD: "Invalid webhook structure - missing event or data",
    ErrorCode.MISSING_PARAMETERS: "Missing required parameters",
    ErrorCode.CATEGORY_NOT_FOUND: "Category not found",
    ErrorCode.SESSION_NOT_FOUND: "Payment session not found",
    ErrorCode.ACCESS_ALREADY_GRANTED: "User already has access to this category",
    ErrorCode.UNAUTHORIZED: "Unauthorized access to payment session",
    ErrorCode.PERSISTENCE_FAILURE: "Storage operation failed",
    ErrorCode.ACCESS_GRANT_FAILED: "Failed to grant access",
}

# Recovery suggestions for callers
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.INVALID_PAYLOAD: "Send a JSON body with 'event' and 'data' fields",
    ErrorCode.MISSING_PARAMETERS: "Provide userId, categoryId and userEmail",
    ErrorCode.CATEGORY_NOT_FOUND: "Verify the category ID",
    ErrorCode.SESSION_NOT_FOUND: "Verify the session ID or create a new session",
    ErrorCode.ACCESS_ALREADY_GRANTED: "No payment needed; the user already has access",
    ErrorCode.UNAUTHORIZED: "Only the session owner may check this session",
    ErrorCode.PERSISTENCE_FAILURE: "Retry the request",
    ErrorCode.ACCESS_GRANT_FAILED: "Retry the webhook delivery",
}

# Codes that are safe for the caller to retry unchanged
RETRYABLE_ERRORS: set[ErrorCode] = {
    ErrorCode.PERSISTENCE_FAILURE,
    ErrorCode.ACCESS_GRANT_FAILED,
}


class ErrorResponse(BaseModel):
    """Standard error response body."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    retryable: bool = False
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            retryable=code in RETRYABLE_ERRORS,
            details=details,
        )


class RelayError(Exception):
    """Exception raised by session and reconciliation operations."""

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_ERRORS

    def to_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)


class PersistenceError(Exception):
    """Raised when a storage call fails or times out.

    Carries the name of the storage operation so callers can add context
    without re-wrapping.
    """

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation

    def to_relay_error(self) -> RelayError:
        return RelayError(
            ErrorCode.PERSISTENCE_FAILURE,
            details={"operation": self.operation},
        )
