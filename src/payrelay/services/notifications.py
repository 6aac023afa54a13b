"""Best-effort outbound notifications.

Notifications never affect the webhook response: a failing sender is
logged and otherwise ignored.
"""

from collections.abc import Callable

from payrelay.models import FinalizationResult
from payrelay.utils.logging import get_logger

logger = get_logger(__name__)

Sender = Callable[[FinalizationResult], None]


class PaymentNotifier:
    """Dispatches access-granted notifications to a pluggable sender."""

    def __init__(self, sender: Sender | None = None) -> None:
        self._sender = sender

    def notify_access_granted(self, result: FinalizationResult) -> bool:
        """Send a notification for a finalized payment.

        Returns:
            True if a sender ran without raising
        """
        if self._sender is None:
            logger.debug("No notification sender configured, skipping %s", result.session_id)
            return False
        try:
            self._sender(result)
        except Exception as e:
            logger.error(
                "Notification for session %s failed: %s", result.session_id, e
            )
            return False
        logger.info("Notification sent for session %s", result.session_id)
        return True
