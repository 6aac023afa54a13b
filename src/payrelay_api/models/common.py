"""Shared API request/response models.

Domain models live in payrelay.models. This module holds HTTP concerns only:
the camelCase wire convention and the validation error envelope.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from payrelay.models import ErrorCode, ErrorResponse

__all__ = [
    "CamelModel",
    "ErrorCode",
    "ErrorResponse",
    "ValidationErrorDetail",
    "ValidationErrorResponse",
]


class CamelModel(BaseModel):
    """Base for models serialised with camelCase keys.

    Accepts both camelCase and snake_case on input so domain models can be
    dumped straight into it.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidationErrorDetail(BaseModel):
    """Detail of a single validation error."""

    loc: list[str | int] = Field(
        ...,
        description="Path to the field that failed validation",
        examples=[["body", "userEmail"]],
    )
    msg: str = Field(..., examples=["value is not a valid email address"])
    type: str = Field(..., examples=["value_error"])


class ValidationErrorResponse(BaseModel):
    """Request validation failure wrapped in the standard error structure."""

    success: bool = False
    error_code: str = "ERR_VALIDATION"
    message: str = "Request validation failed"
    recovery: str = "Check the request parameters and try again"
    details: list[ValidationErrorDetail] = Field(default_factory=list)
