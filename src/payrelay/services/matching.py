"""Session matching strategies for inbound payment webhooks.

The gateway does not echo the session ID, so a webhook is tied back to its
session by customer email plus progressively looser criteria. Strategies
run in order and the first hit wins:

1. ExactAmountStrategy     pending, same amount, any age
2. DiscountedAmountStrategy zero amount only; pending/expired within hours,
                           preferring sessions that were actually priced
3. TestCouponStrategy      recognised test coupon only; pending/expired,
                           shorter window, most recent
4. RecentSessionStrategy   pending/expired within minutes, most recent

The looser a strategy, the narrower its time window. Ties between several
candidate sessions are broken by recency; this is a heuristic, not a lock.
"""

import datetime as dt
from typing import TYPE_CHECKING

from payrelay.config import MatchingConfig
from payrelay.models import (
    CanonicalEvent,
    MatchingMethod,
    PaymentScenario,
    PaymentSession,
    SessionStatus,
)

if TYPE_CHECKING:
    from .session_manager import SessionManager

FLEXIBLE_STATUSES = (SessionStatus.PENDING, SessionStatus.EXPIRED)


class MatchStrategy:
    """Base class for one step of the matching chain.

    Subclasses set ``method`` and implement ``select``; ``applies`` gates the
    strategy on the scenario and ``attempt`` runs it against storage.
    """

    method: MatchingMethod
    statuses: tuple[SessionStatus, ...] = FLEXIBLE_STATUSES
    window_minutes: int | None = None

    def applies(self, scenario: PaymentScenario) -> bool:
        return True

    def attempt(
        self,
        event: CanonicalEvent,
        scenario: PaymentScenario,
        sessions: "SessionManager",
    ) -> tuple[PaymentSession | None, int]:
        """Look for the session this event belongs to.

        Returns:
            Tuple of (matched session or None, number of candidates seen)
        """
        if not event.customer_email:
            return None, 0

        since = None
        if self.window_minutes is not None:
            since = sessions.now() - dt.timedelta(minutes=self.window_minutes)

        candidates = sessions.find_sessions_for_email(
            event.customer_email,
            statuses=self.statuses,
            since=since,
        )
        return self.select(candidates, scenario), len(candidates)

    def select(
        self,
        candidates: list[PaymentSession],
        scenario: PaymentScenario,
    ) -> PaymentSession | None:
        """Pick from candidates ordered newest first."""
        return candidates[0] if candidates else None

    def describe(self) -> dict[str, object]:
        return {
            "method": self.method.value,
            "statuses": [s.value for s in self.statuses],
            "window_minutes": self.window_minutes,
        }


class ExactAmountStrategy(MatchStrategy):
    """Pending session whose expected amount equals the paid amount."""

    method = MatchingMethod.EXACT_MATCH
    statuses = (SessionStatus.PENDING,)

    def select(self, candidates, scenario):
        for session in candidates:
            if session.expected_amount == scenario.numeric_amount:
                return session
        return None


class DiscountedAmountStrategy(MatchStrategy):
    """Zero-amount payment against a session that was fully discounted."""

    method = MatchingMethod.DISCOUNTED_MATCH

    def __init__(self, window_minutes: int) -> None:
        self.window_minutes = window_minutes

    def applies(self, scenario: PaymentScenario) -> bool:
        return scenario.is_zero_amount

    def select(self, candidates, scenario):
        # A priced session that was discounted to zero beats one that was
        # free to begin with.
        for session in candidates:
            if session.expected_amount > 0:
                return session
        return candidates[0] if candidates else None


class TestCouponStrategy(MatchStrategy):
    """Payment carrying a recognised test coupon code."""

    __test__ = False  # keep pytest from collecting this class

    method = MatchingMethod.TEST_COUPON_MATCH

    def __init__(self, window_minutes: int) -> None:
        self.window_minutes = window_minutes

    def applies(self, scenario: PaymentScenario) -> bool:
        return scenario.is_test_coupon


class RecentSessionStrategy(MatchStrategy):
    """Most recent open session for the email, within a short window."""

    method = MatchingMethod.RECENT_FALLBACK

    def __init__(self, window_minutes: int) -> None:
        self.window_minutes = window_minutes


def build_strategy_chain(config: MatchingConfig) -> list[MatchStrategy]:
    """Build the ordered strategy chain from configuration."""
    return [
        ExactAmountStrategy(),
        DiscountedAmountStrategy(config.discounted_window_minutes),
        TestCouponStrategy(config.test_coupon_window_minutes),
        RecentSessionStrategy(config.fallback_window_minutes),
    ]
