"""Business logic services for the payment relay."""

from .catalog import CatalogService
from .dynamodb import DynamoDBService
from .ledger import TransactionLedger, compute_discount, compute_payload_hash
from .matching import (
    DiscountedAmountStrategy,
    ExactAmountStrategy,
    MatchStrategy,
    RecentSessionStrategy,
    TestCouponStrategy,
    build_strategy_chain,
)
from .notifications import PaymentNotifier
from .reconciler import WebhookReconciler
from .session_manager import SessionManager

__all__ = [
    "CatalogService",
    "DynamoDBService",
    "DiscountedAmountStrategy",
    "ExactAmountStrategy",
    "MatchStrategy",
    "PaymentNotifier",
    "RecentSessionStrategy",
    "SessionManager",
    "TestCouponStrategy",
    "TransactionLedger",
    "WebhookReconciler",
    "build_strategy_chain",
    "compute_discount",
    "compute_payload_hash",
]
