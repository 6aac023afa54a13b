"""Payment session endpoints.

Provides REST endpoints for:
- Creating a payment session for a category (free categories are granted
  immediately)
- Checking a session's status, with lazy expiry
- Listing a user's active sessions and transaction history

These endpoints are called by the client-facing application, not by the
payment gateway.
"""

from fastapi import APIRouter, Depends, Query
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from payrelay.models import ErrorResponse
from payrelay.services import SessionManager, TransactionLedger

from ..dependencies import get_ledger, get_session_manager
from ..models.sessions import (
    ActiveSessionsResponse,
    ActiveSessionSummary,
    CheckPaymentSessionRequest,
    CreatePaymentSessionRequest,
    CreatePaymentSessionResponse,
    PaymentSessionStatusResponse,
    TransactionHistoryResponse,
    TransactionSummary,
)

router = APIRouter(tags=["payment-sessions"])

_ERROR_RESPONSES = {
    HTTP_400_BAD_REQUEST: {"description": "Missing or invalid parameters", "model": ErrorResponse},
    HTTP_500_INTERNAL_SERVER_ERROR: {"description": "Storage failure", "model": ErrorResponse},
}


@router.post(
    "/create-payment-session",
    summary="Create payment session",
    description="""
Start a purchase of a category.

- Paid categories: a pending session valid for the configured TTL plus a
  payment link is returned.
- Free categories: access is granted immediately and `paymentUrl` is null.

Fails with 409 if the user already has access to the category; no session
is created in that case.
""",
    response_model=CreatePaymentSessionResponse,
    status_code=HTTP_200_OK,
    responses={
        **_ERROR_RESPONSES,
        HTTP_404_NOT_FOUND: {"description": "Category not found", "model": ErrorResponse},
        HTTP_409_CONFLICT: {"description": "Access already granted", "model": ErrorResponse},
    },
)
def create_payment_session(
    body: CreatePaymentSessionRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> CreatePaymentSessionResponse:
    result = sessions.create_session(
        body.user_id or "",
        body.category_id or "",
        str(body.user_email or ""),
    )
    return CreatePaymentSessionResponse.model_validate(result.model_dump())


def _check(
    sessions: SessionManager, session_id: str | None, user_id: str | None
) -> PaymentSessionStatusResponse:
    report = sessions.check_session(session_id or "", user_id)
    return PaymentSessionStatusResponse.model_validate(report.model_dump())


_CHECK_RESPONSES = {
    **_ERROR_RESPONSES,
    HTTP_403_FORBIDDEN: {"description": "Session belongs to another user", "model": ErrorResponse},
    HTTP_404_NOT_FOUND: {"description": "Session not found", "model": ErrorResponse},
}


@router.get(
    "/check-payment-session",
    summary="Check payment session",
    description="Current status of a session. A pending session past its expiry is reported, and stored, as expired.",
    response_model=PaymentSessionStatusResponse,
    responses=_CHECK_RESPONSES,
)
def check_payment_session(
    session_id: str | None = Query(default=None, alias="sessionId"),
    user_id: str | None = Query(default=None, alias="userId"),
    sessions: SessionManager = Depends(get_session_manager),
) -> PaymentSessionStatusResponse:
    return _check(sessions, session_id, user_id)


@router.post(
    "/check-payment-session",
    summary="Check payment session (body)",
    response_model=PaymentSessionStatusResponse,
    responses=_CHECK_RESPONSES,
)
def check_payment_session_post(
    body: CheckPaymentSessionRequest,
    sessions: SessionManager = Depends(get_session_manager),
) -> PaymentSessionStatusResponse:
    return _check(sessions, body.session_id, body.user_id)


@router.get(
    "/users/{user_id}/payment-sessions",
    summary="List active payment sessions",
    response_model=ActiveSessionsResponse,
    responses={HTTP_500_INTERNAL_SERVER_ERROR: _ERROR_RESPONSES[HTTP_500_INTERNAL_SERVER_ERROR]},
)
def list_active_sessions(
    user_id: str,
    sessions: SessionManager = Depends(get_session_manager),
) -> ActiveSessionsResponse:
    active = sessions.list_active_sessions(user_id)
    return ActiveSessionsResponse(
        user_id=user_id,
        sessions=[
            ActiveSessionSummary(
                session_id=s.session_id,
                category_id=s.category_id,
                expected_amount=s.expected_amount,
                status=s.status,
                created_at=s.created_at,
                expires_at=s.expires_at,
                payment_url=sessions.payment_url(s.session_id),
            )
            for s in active
        ],
    )


@router.get(
    "/users/{user_id}/transactions",
    summary="Payment history",
    response_model=TransactionHistoryResponse,
    responses={HTTP_500_INTERNAL_SERVER_ERROR: _ERROR_RESPONSES[HTTP_500_INTERNAL_SERVER_ERROR]},
)
def transaction_history(
    user_id: str,
    ledger: TransactionLedger = Depends(get_ledger),
) -> TransactionHistoryResponse:
    records = ledger.history_for_user(user_id)
    return TransactionHistoryResponse(
        user_id=user_id,
        transactions=[
            TransactionSummary.model_validate(r.model_dump()) for r in records
        ],
    )
