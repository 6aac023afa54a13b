"""Payment gateway webhook endpoint.

Every well-formed delivery gets a 200, whether it was processed, ignored,
unmatched or a duplicate, so the gateway only retries on 400/500:
- 400: the body is not a webhook (not JSON, no event/data)
- 500: storage failed or access could not be granted; retrying is safe

This endpoint does not authenticate the gateway.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from payrelay.models import ErrorCode, ErrorResponse, RelayError
from payrelay.services import WebhookReconciler
from payrelay.utils.logging import get_logger, log_webhook_event

from ..dependencies import get_reconciler
from ..models.webhooks import WebhookResponse

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhook",
    summary="Receive payment gateway webhooks",
    description="""
Receives `payment.received` events from the payment gateway.

The event is tied back to a payment session by customer email and amount,
access is granted, the session is completed and the transaction recorded.

**Idempotent**: a redelivered transaction returns 200 with result `duplicate`.
""",
    response_model=WebhookResponse,
    response_model_exclude_none=True,
    responses={
        HTTP_200_OK: {"description": "Delivery acknowledged", "model": WebhookResponse},
        HTTP_400_BAD_REQUEST: {"description": "Malformed payload", "model": ErrorResponse},
        HTTP_500_INTERNAL_SERVER_ERROR: {
            "description": "Storage or access grant failure",
            "model": ErrorResponse,
        },
    },
)
async def receive_webhook(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
) -> WebhookResponse:
    body = await request.body()
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        log_webhook_event(logger, None, None, result="rejected", error="invalid JSON")
        raise RelayError(
            ErrorCode.INVALID_PAYLOAD,
            details={"reason": "body is not valid JSON"},
        ) from e

    outcome = await run_in_threadpool(reconciler.process, payload)
    return WebhookResponse.from_outcome(outcome)


@router.get(
    "/webhook",
    summary="Webhook handler status",
    description="Static description of accepted events, scenarios and the matching chain.",
)
async def webhook_info(
    request: Request,
    reconciler: WebhookReconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    info = reconciler.describe()
    info["webhook_url"] = str(request.url)
    return info
