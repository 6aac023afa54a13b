"""Runtime configuration read from environment variables.

The matching chain is configured as data: window sizes, accepted event
types and recognised coupon codes live here rather than in the strategies.
"""

import os

from pydantic import BaseModel, ConfigDict, Field


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_set(name: str, default: set[str]) -> frozenset[str]:
    value = os.getenv(name)
    if not value:
        return frozenset(default)
    return frozenset(part.strip() for part in value.split(",") if part.strip())


class MatchingConfig(BaseModel):
    """Tunables for webhook classification and the matching chain."""

    model_config = ConfigDict(frozen=True)

    accepted_events: frozenset[str] = frozenset({"payment.received"})
    success_statuses: frozenset[str] = frozenset({"SUCCESS", "paid"})
    paid_transaction_status: str = "paid"
    test_coupon_codes: frozenset[str] = frozenset({"TESFREE"})
    discounted_window_minutes: int = Field(default=360, gt=0)
    test_coupon_window_minutes: int = Field(default=120, gt=0)
    fallback_window_minutes: int = Field(default=30, gt=0)
    debug_snapshot_limit: int = Field(default=5, gt=0)

    @classmethod
    def from_env(cls) -> "MatchingConfig":
        return cls(
            accepted_events=_env_set("MATCH_ACCEPTED_EVENTS", {"payment.received"}),
            success_statuses=_env_set("MATCH_SUCCESS_STATUSES", {"SUCCESS", "paid"}),
            paid_transaction_status=os.getenv("MATCH_PAID_TRANSACTION_STATUS", "paid"),
            test_coupon_codes=_env_set("MATCH_TEST_COUPON_CODES", {"TESFREE"}),
            discounted_window_minutes=_env_int("MATCH_DISCOUNTED_WINDOW_MINUTES", 360),
            test_coupon_window_minutes=_env_int("MATCH_TEST_COUPON_WINDOW_MINUTES", 120),
            fallback_window_minutes=_env_int("MATCH_FALLBACK_WINDOW_MINUTES", 30),
            debug_snapshot_limit=_env_int("MATCH_DEBUG_SNAPSHOT_LIMIT", 5),
        )


class RelaySettings(BaseModel):
    """Service-wide settings."""

    model_config = ConfigDict(frozen=True)

    environment: str = "dev"
    table_prefix: str = "payrelay-dev"
    payment_link_url: str = "https://payments.example.com/pl/checkout"
    session_ttl_minutes: int = Field(default=60, gt=0)
    dynamodb_connect_timeout: float = Field(default=2.0, gt=0)
    dynamodb_read_timeout: float = Field(default=5.0, gt=0)
    dynamodb_max_attempts: int = Field(default=3, gt=0)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)


def load_settings() -> RelaySettings:
    """Build settings from the process environment.

    Returns:
        RelaySettings with defaults for anything unset.
    """
    environment = os.getenv("ENVIRONMENT", "dev")
    return RelaySettings(
        environment=environment,
        # Allow override via DYNAMODB_TABLE_PREFIX for testing
        table_prefix=os.getenv("DYNAMODB_TABLE_PREFIX", f"payrelay-{environment}"),
        payment_link_url=os.getenv(
            "PAYMENT_LINK_URL", "https://payments.example.com/pl/checkout"
        ),
        session_ttl_minutes=_env_int("SESSION_TTL_MINUTES", 60),
        dynamodb_connect_timeout=float(os.getenv("DYNAMODB_CONNECT_TIMEOUT", "2")),
        dynamodb_read_timeout=float(os.getenv("DYNAMODB_READ_TIMEOUT", "5")),
        dynamodb_max_attempts=_env_int("DYNAMODB_MAX_ATTEMPTS", 3),
        matching=MatchingConfig.from_env(),
    )
