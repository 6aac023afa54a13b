"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for session, webhook and matching logs

Usage:
    from payrelay.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Session created", extra={"session_id": "..."})
"""

import logging
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def generate_correlation_id() -> str:
    """Generate a new UUID-based correlation ID."""
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter that prefixes each line with the correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Install the structured formatter on the root logger.

    Safe to call more than once; existing handlers are reformatted rather
    than duplicated.
    """
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    for handler in root.handlers:
        handler.setFormatter(StructuredFormatter(DEFAULT_FORMAT))


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def _join(head: str, context: dict[str, Any], skip: set[str]) -> str:
    parts = [head]
    for key, value in context.items():
        if key not in skip:
            parts.append(f"{key}={value}")
    return " | ".join(parts)


def log_session_operation(
    logger: logging.Logger,
    operation: str,
    *,
    session_id: str | None = None,
    user_id: str | None = None,
    category_id: str | None = None,
    amount: int | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a session lifecycle operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "create_session", "expire_session")
        session_id: Session ID if available
        user_id: Owning user if relevant
        category_id: Category if relevant
        amount: Amount in minor units if relevant
        status: Session status after the operation
        error: Error message if operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if session_id:
        context["session_id"] = session_id
    if user_id:
        context["user_id"] = user_id
    if category_id:
        context["category_id"] = category_id
    if amount is not None:
        context["amount"] = amount
    if status:
        context["status"] = status
    if error:
        context["error"] = error

    context.update(extra)

    message = _join(f"Session operation: {operation}", context, {"operation"})

    if error:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_webhook_event(
    logger: logging.Logger,
    event_type: str | None,
    transaction_id: str | None,
    *,
    session_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook delivery with structured context.

    Args:
        logger: Logger instance
        event_type: Gateway event type (e.g., "payment.received")
        transaction_id: Gateway transaction ID
        session_id: Matched session ID if available
        result: Processing result (processed, ignored, unmatched, duplicate, error)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "event_type": event_type,
        "transaction_id": transaction_id,
    }

    if session_id:
        context["session_id"] = session_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {event_type} ({transaction_id})"]
    if result:
        msg_parts.append(f"result={result}")
    if session_id:
        msg_parts.append(f"session={session_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "error" or error:
        logger.error(message, extra=context)
    elif result in ("ignored", "unmatched", "duplicate"):
        logger.warning(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_match_attempt(
    logger: logging.Logger,
    strategy: str,
    *,
    email: str | None,
    amount: int,
    matched: bool,
    session_id: str | None = None,
    candidates: int = 0,
    **extra: Any,
) -> None:
    """Log one matching strategy attempt, hit or miss."""
    context: dict[str, Any] = {
        "strategy": strategy,
        "email": email,
        "amount": amount,
        "matched": matched,
        "candidates": candidates,
    }
    if session_id:
        context["session_id"] = session_id
    context.update(extra)

    message = _join(f"Match attempt: {strategy}", context, {"strategy"})
    logger.info(message, extra=context)
