"""Session manager: payment session lifecycle and access grants.

Owns every write to payment sessions and access grants. The webhook
reconciler reads sessions through this service and asks it to mutate them;
it never writes session state itself.

Lifecycle:
    pending --(webhook finalized)--> completed
    pending --(expires_at passed, observed on read)--> expired
    expired --(flexible match finalized)--> completed

Every transition is a conditional update on the status that was observed,
so two concurrent deliveries cannot both complete the same session.
"""

import datetime as dt
import uuid
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.conditions import Key

from payrelay.config import RelaySettings
from payrelay.models import (
    AccessGrant,
    AccessType,
    ErrorCode,
    MatchingMethod,
    PaymentSession,
    RelayError,
    SessionInfo,
    SessionResult,
    SessionStatus,
    SessionStatusReport,
    TimingInfo,
    TimingStatus,
)
from payrelay.utils.logging import get_logger, log_session_operation
from payrelay.utils.timestamps import parse_iso, to_iso, utcnow

if TYPE_CHECKING:
    from .catalog import CatalogService
    from .dynamodb import DynamoDBService

logger = get_logger(__name__)

EXPIRING_SOON_MINUTES = 15


def normalize_email(value: str | None) -> str:
    """Canonical form used to store and look up customer emails."""
    return (value or "").strip().lower()


class SessionManager:
    """Service for creating, checking, expiring and completing payment sessions."""

    SESSIONS_TABLE = "payment-sessions"
    GRANTS_TABLE = "access-grants"

    EMAIL_INDEX = "user_email-created_at-index"
    USER_INDEX = "user_id-created_at-index"
    STATUS_INDEX = "status-expires_at-index"

    def __init__(
        self,
        db: "DynamoDBService",
        catalog: "CatalogService",
        settings: RelaySettings,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        """Initialize session manager.

        Args:
            db: DynamoDB service instance
            catalog: Category lookup
            settings: Relay settings (session TTL, payment link)
            clock: Optional time source, defaults to UTC now
        """
        self.db = db
        self.catalog = catalog
        self.settings = settings
        self._clock = clock or utcnow

    def now(self) -> dt.datetime:
        return self._clock()

    # =========================================================================
    # Session creation and checks
    # =========================================================================

    def create_session(
        self,
        user_id: str,
        category_id: str,
        user_email: str,
    ) -> SessionResult:
        """Create a payment session for a category.

        Free categories are granted immediately and their session is written
        already completed; paid categories get a pending session and a
        payment link.

        Args:
            user_id: Purchasing user
            category_id: Category being purchased
            user_email: Email the gateway will report on the webhook; stored
                trimmed and lowercased

        Returns:
            SessionResult describing the session and whether access is held

        Raises:
            RelayError: MISSING_PARAMETERS, CATEGORY_NOT_FOUND or
                ACCESS_ALREADY_GRANTED
            PersistenceError: If storage fails
        """
        user_email = normalize_email(user_email)
        missing = [
            name
            for name, value in (
                ("userId", user_id),
                ("categoryId", category_id),
                ("userEmail", user_email),
            )
            if not value
        ]
        if missing:
            raise RelayError(
                ErrorCode.MISSING_PARAMETERS,
                details={"missing": ", ".join(missing)},
            )

        category = self.catalog.get_category(category_id)
        if category is None:
            raise RelayError(
                ErrorCode.CATEGORY_NOT_FOUND,
                details={"category_id": category_id},
            )

        if self.has_access(user_id, category_id):
            log_session_operation(
                logger,
                "create_session",
                user_id=user_id,
                category_id=category_id,
                error="access already granted",
            )
            raise RelayError(
                ErrorCode.ACCESS_ALREADY_GRANTED,
                details={"user_id": user_id, "category_id": category_id},
            )

        now = self.now()
        session_id = str(uuid.uuid4())
        expires_at = now + dt.timedelta(minutes=self.settings.session_ttl_minutes)

        if category.is_free:
            session = PaymentSession(
                session_id=session_id,
                user_id=user_id,
                category_id=category_id,
                user_email=user_email,
                expected_amount=0,
                status=SessionStatus.COMPLETED,
                created_at=now,
                expires_at=expires_at,
                processed_at=now,
                actual_amount=0,
                matching_method=MatchingMethod.FREE_ITEM,
            )
            self._insert_session(session)
            # Grant last: it is the write that signals success.
            self.grant_access(user_id, category_id, AccessType.FREE)
            log_session_operation(
                logger,
                "create_session",
                session_id=session_id,
                user_id=user_id,
                category_id=category_id,
                amount=0,
                status=session.status.value,
                free=True,
            )
            return SessionResult(
                session_id=session_id,
                payment_url=None,
                category_name=category.name,
                amount=0,
                is_free=True,
                has_access=True,
                expires_at=expires_at,
                message="Free access granted immediately",
            )

        session = PaymentSession(
            session_id=session_id,
            user_id=user_id,
            category_id=category_id,
            user_email=user_email,
            expected_amount=category.price_amount,
            status=SessionStatus.PENDING,
            created_at=now,
            expires_at=expires_at,
        )
        self._insert_session(session)
        log_session_operation(
            logger,
            "create_session",
            session_id=session_id,
            user_id=user_id,
            category_id=category_id,
            amount=session.expected_amount,
            status=session.status.value,
            expires_at=to_iso(expires_at),
        )
        return SessionResult(
            session_id=session_id,
            payment_url=self.payment_url(session_id),
            category_name=category.name,
            amount=session.expected_amount,
            is_free=False,
            has_access=False,
            expires_at=expires_at,
            message=f"Session active for {self.settings.session_ttl_minutes} minutes",
        )

    def payment_url(self, session_id: str) -> str:
        return f"{self.settings.payment_link_url}?ref={session_id}"

    def check_session(
        self,
        session_id: str,
        user_id: str | None = None,
    ) -> SessionStatusReport:
        """Report the current state of a session.

        A pending session past its expiry is moved to expired as part of
        this read.

        Args:
            session_id: Session to check
            user_id: Optional owner; must match the session when given

        Returns:
            SessionStatusReport with access flag and timing information

        Raises:
            RelayError: MISSING_PARAMETERS, SESSION_NOT_FOUND or UNAUTHORIZED
            PersistenceError: If storage fails
        """
        if not session_id:
            raise RelayError(
                ErrorCode.MISSING_PARAMETERS,
                details={"missing": "sessionId"},
            )

        session = self.get_session(session_id)
        if session is None:
            raise RelayError(
                ErrorCode.SESSION_NOT_FOUND,
                details={"session_id": session_id},
            )

        if user_id and session.user_id != user_id:
            logger.warning(
                "Unauthorized session access attempt: session=%s user=%s",
                session_id,
                user_id,
            )
            raise RelayError(
                ErrorCode.UNAUTHORIZED,
                details={"session_id": session_id},
            )

        session = self.expire_if_due(session)

        has_access = False
        if session.status == SessionStatus.COMPLETED:
            has_access = self.has_access(session.user_id, session.category_id)

        # Only a pending session has a countdown.
        is_expired = session.status == SessionStatus.EXPIRED
        minutes_left = 0
        if session.status == SessionStatus.PENDING:
            minutes_left = max(
                round((session.expires_at - self.now()).total_seconds() / 60), 0
            )
        if is_expired:
            timing_status = TimingStatus.EXPIRED
        elif session.status != SessionStatus.PENDING:
            timing_status = TimingStatus.NOT_APPLICABLE
        elif minutes_left > EXPIRING_SOON_MINUTES:
            timing_status = TimingStatus.PLENTY_OF_TIME
        else:
            timing_status = TimingStatus.EXPIRING_SOON

        return SessionStatusReport(
            session_id=session.session_id,
            status=session.status,
            has_access=has_access,
            expires_at=session.expires_at,
            processed_at=session.processed_at,
            timing_info=TimingInfo(
                is_expired=is_expired,
                minutes_until_expiry=minutes_left,
                status=timing_status,
            ),
            session_info=SessionInfo(
                category_id=session.category_id,
                user_email=session.user_email,
                expected_amount=session.expected_amount,
                actual_amount=(
                    session.actual_amount
                    if session.actual_amount is not None
                    else session.expected_amount
                ),
                is_free_item=session.is_free_item,
                coupon_used=session.coupon_used,
                matching_method=session.matching_method,
                transaction_id=session.transaction_id,
                created_at=session.created_at,
            ),
        )

    # =========================================================================
    # Access grants
    # =========================================================================

    def grant_access(
        self,
        user_id: str,
        category_id: str,
        access_type: AccessType,
    ) -> bool:
        """Grant a user access to a category.

        Idempotent on (user_id, category_id): an existing grant is left
        untouched and the call still succeeds.

        Returns:
            True if a new grant was written, False if one already existed

        Raises:
            PersistenceError: If storage fails
        """
        grant = AccessGrant(
            user_id=user_id,
            category_id=category_id,
            access_type=access_type,
            granted_at=self.now(),
        )
        created = self.db.put_item(
            self.GRANTS_TABLE,
            {
                "user_id": grant.user_id,
                "category_id": grant.category_id,
                "access_type": grant.access_type.value,
                "granted_at": to_iso(grant.granted_at),
            },
            condition_expression="attribute_not_exists(user_id)",
        )
        log_session_operation(
            logger,
            "grant_access",
            user_id=user_id,
            category_id=category_id,
            access_type=access_type.value,
            new_grant=created,
        )
        return created

    def get_grant(self, user_id: str, category_id: str) -> AccessGrant | None:
        item = self.db.get_item(
            self.GRANTS_TABLE,
            {"user_id": user_id, "category_id": category_id},
        )
        if not item:
            return None
        return AccessGrant(
            user_id=item["user_id"],
            category_id=item["category_id"],
            access_type=AccessType(item["access_type"]),
            granted_at=parse_iso(item["granted_at"]) or self.now(),
            expires_at=parse_iso(item.get("expires_at")),
        )

    def has_access(self, user_id: str, category_id: str) -> bool:
        """Check whether a user holds a grant for a category."""
        if not user_id or not category_id:
            return False
        return self.get_grant(user_id, category_id) is not None

    # =========================================================================
    # Reads used by reconciliation
    # =========================================================================

    def get_session(self, session_id: str) -> PaymentSession | None:
        item = self.db.get_item(self.SESSIONS_TABLE, {"session_id": session_id})
        return self._item_to_session(item) if item else None

    def expire_if_due(self, session: PaymentSession) -> PaymentSession:
        """Move a pending session past its expiry to expired.

        Returns:
            The session as it now stands in storage
        """
        if session.status != SessionStatus.PENDING or not session.is_past_expiry(self.now()):
            return session

        attrs = self.db.update_item(
            self.SESSIONS_TABLE,
            {"session_id": session.session_id},
            "SET #status = :expired, updated_at = :now",
            {
                ":expired": SessionStatus.EXPIRED.value,
                ":pending": SessionStatus.PENDING.value,
                ":now": to_iso(self.now()),
            },
            {"#status": "status"},  # status is a reserved word
            condition_expression="#status = :pending",
        )
        if attrs is None:
            # Another request moved it first; report what it is now.
            current = self.get_session(session.session_id)
            return current or session

        log_session_operation(
            logger,
            "expire_session",
            session_id=session.session_id,
            status=SessionStatus.EXPIRED.value,
        )
        return self._item_to_session(attrs)

    def find_sessions_for_email(
        self,
        email: str,
        *,
        statuses: Iterable[SessionStatus] | None = None,
        since: dt.datetime | None = None,
        limit: int | None = None,
    ) -> list[PaymentSession]:
        """Find sessions for an email, newest first.

        Lazy expiry is applied to every session read before the status
        filter, so a stale pending session is reported as expired.

        Args:
            email: Customer email, compared case-insensitively
            statuses: Statuses to keep (all when None)
            since: Only sessions created at or after this instant
            limit: Max sessions to return after filtering

        Returns:
            Matching sessions ordered by created_at descending
        """
        key_condition = Key("user_email").eq(normalize_email(email))
        if since is not None:
            key_condition = key_condition & Key("created_at").gte(to_iso(since))

        items = self.db.query(
            self.SESSIONS_TABLE,
            key_condition,
            index_name=self.EMAIL_INDEX,
            scan_index_forward=False,
        )

        wanted = set(statuses) if statuses is not None else None
        sessions: list[PaymentSession] = []
        for item in items:
            session = self.expire_if_due(self._item_to_session(item))
            if wanted is None or session.status in wanted:
                sessions.append(session)
            if limit and len(sessions) >= limit:
                break
        return sessions

    def recent_sessions_for_email(self, email: str, limit: int) -> list[PaymentSession]:
        """Most recent sessions for an email, any status."""
        return self.find_sessions_for_email(email, limit=limit)

    # =========================================================================
    # Transitions
    # =========================================================================

    def complete_session(
        self,
        session: PaymentSession,
        *,
        transaction_id: str | None,
        actual_amount: int,
        matching_method: MatchingMethod,
        coupon_used: str | None = None,
    ) -> PaymentSession | None:
        """Mark a session completed if it is still in the observed status.

        Args:
            session: Session as read by the caller
            transaction_id: Gateway transaction ID
            actual_amount: Settled amount in minor units
            matching_method: Strategy that matched the webhook
            coupon_used: Coupon code reported by the gateway

        Returns:
            The completed session, or None if its status changed since it
            was read (another delivery finalized it first)

        Raises:
            PersistenceError: If storage fails
        """
        now = self.now()
        assignments = [
            "#status = :completed",
            "processed_at = :now",
            "updated_at = :now",
            "actual_amount = :actual",
            "matching_method = :method",
        ]
        values: dict[str, Any] = {
            ":completed": SessionStatus.COMPLETED.value,
            ":observed": session.status.value,
            ":now": to_iso(now),
            ":actual": actual_amount,
            ":method": matching_method.value,
        }
        if transaction_id:
            assignments.append("transaction_id = :txn")
            values[":txn"] = transaction_id
        if coupon_used:
            assignments.append("coupon_used = :coupon")
            values[":coupon"] = coupon_used

        attrs = self.db.update_item(
            self.SESSIONS_TABLE,
            {"session_id": session.session_id},
            "SET " + ", ".join(assignments),
            values,
            {"#status": "status"},
            condition_expression="#status = :observed",
        )
        if attrs is None:
            log_session_operation(
                logger,
                "complete_session",
                session_id=session.session_id,
                status="unchanged",
                observed=session.status.value,
            )
            return None

        log_session_operation(
            logger,
            "complete_session",
            session_id=session.session_id,
            user_id=session.user_id,
            category_id=session.category_id,
            amount=actual_amount,
            status=SessionStatus.COMPLETED.value,
            matching_method=matching_method.value,
        )
        return self._item_to_session(attrs)

    def list_active_sessions(self, user_id: str) -> list[PaymentSession]:
        """Pending, unexpired sessions for a user, newest first."""
        items = self.db.query(
            self.SESSIONS_TABLE,
            Key("user_id").eq(user_id),
            index_name=self.USER_INDEX,
            scan_index_forward=False,
        )
        sessions = (self.expire_if_due(self._item_to_session(item)) for item in items)
        return [s for s in sessions if s.status == SessionStatus.PENDING]

    def expire_stale_sessions(self) -> int:
        """Sweep pending sessions whose expiry has passed.

        Returns:
            Number of sessions moved to expired by this call
        """
        now = self.now()
        items = self.db.query(
            self.SESSIONS_TABLE,
            Key("status").eq(SessionStatus.PENDING.value)
            & Key("expires_at").lt(to_iso(now)),
            index_name=self.STATUS_INDEX,
        )
        expired = 0
        for item in items:
            session = self._item_to_session(item)
            if self.expire_if_due(session).status == SessionStatus.EXPIRED:
                expired += 1
        log_session_operation(logger, "expire_stale_sessions", expired=expired)
        return expired

    # Conversion helpers

    def _insert_session(self, session: PaymentSession) -> None:
        self.db.put_item(
            self.SESSIONS_TABLE,
            self._session_to_item(session),
            condition_expression="attribute_not_exists(session_id)",
        )

    def _session_to_item(self, session: PaymentSession) -> dict[str, Any]:
        """Convert PaymentSession model to DynamoDB item."""
        item: dict[str, Any] = {
            "session_id": session.session_id,
            "user_id": session.user_id,
            "category_id": session.category_id,
            "user_email": session.user_email,
            "expected_amount": session.expected_amount,
            "status": session.status.value,
            "created_at": to_iso(session.created_at),
            "expires_at": to_iso(session.expires_at),
        }
        if session.processed_at:
            item["processed_at"] = to_iso(session.processed_at)
        if session.transaction_id:
            item["transaction_id"] = session.transaction_id
        if session.actual_amount is not None:
            item["actual_amount"] = session.actual_amount
        if session.matching_method:
            item["matching_method"] = session.matching_method.value
        if session.coupon_used:
            item["coupon_used"] = session.coupon_used
        return item

    def _item_to_session(self, item: dict[str, Any]) -> PaymentSession:
        """Convert DynamoDB item to PaymentSession model."""
        return PaymentSession(
            session_id=item["session_id"],
            user_id=str(item["user_id"]),
            category_id=str(item["category_id"]),
            user_email=item["user_email"],
            expected_amount=int(item["expected_amount"]),
            status=SessionStatus(item["status"]),
            created_at=parse_iso(item["created_at"]),
            expires_at=parse_iso(item["expires_at"]),
            processed_at=parse_iso(item.get("processed_at")),
            transaction_id=item.get("transaction_id"),
            actual_amount=(
                int(item["actual_amount"])
                if item.get("actual_amount") is not None
                else None
            ),
            matching_method=(
                MatchingMethod(item["matching_method"])
                if item.get("matching_method")
                else None
            ),
            coupon_used=item.get("coupon_used"),
            updated_at=parse_iso(item.get("updated_at")),
        )
