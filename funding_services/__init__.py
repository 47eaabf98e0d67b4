"""
Application services: order execution, refunds and subscriptions.

Each service takes a session factory and opens its own transactional scopes,
so that gateway calls happen between commits and never under a held lock.
"""

from funding_services.order_executor import OrderExecutor
from funding_services.refund_service import RefundService
from funding_services.subscription_service import SubscriptionCharge, SubscriptionService

__all__ = [
    "OrderExecutor",
    "RefundService",
    "SubscriptionCharge",
    "SubscriptionService",
]
