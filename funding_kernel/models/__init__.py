"""ORM models for the funding kernel."""

from funding_kernel.models.collective import Collective, CollectiveType
from funding_kernel.models.order import Order, OrderInterval, OrderStatus
from funding_kernel.models.payment_method import PaymentMethod, PaymentMethodKind
from funding_kernel.models.subscription import Subscription
from funding_kernel.models.tier import Tier
from funding_kernel.models.transaction import Transaction, TransactionType
from funding_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Collective",
    "CollectiveType",
    "Order",
    "OrderInterval",
    "OrderStatus",
    "PaymentMethod",
    "PaymentMethodKind",
    "SequenceCounter",
    "Subscription",
    "Tier",
    "Transaction",
    "TransactionType",
]
