"""
Module: funding_kernel.models.order
Responsibility: ORM persistence for orders -- a source party's intent to pay a
    destination collective, optionally recurring and optionally for a tier.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - total_amount >= 0 (CHECK constraint).
    - interval is NULL, 'month' or 'year' (CHECK constraint).
    - processed_at is set at most once and never reverted (ORM listener in
      db/immutability.py).
    - status transitions are owned by the Order Executor:
          PAYMENT_PENDING -> PROCESSING -> PROCESSED
                                      \\-> FAILED -> PROCESSING (retry)

Failure modes:
    - ImmutabilityViolationError on an attempt to change or clear processed_at.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from funding_kernel.db.base import TrackedBase, UUIDString


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PAYMENT_PENDING = "PAYMENT_PENDING"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class OrderInterval(str, Enum):
    MONTH = "month"
    YEAR = "year"


class Order(TrackedBase):
    """
    A contribution from ``from_collective_id`` to ``collective_id``.

    Guarantees:
        - payment_required is True iff total_amount > 0.
    """

    __tablename__ = "orders"

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_order_amount_non_negative"),
        CheckConstraint("quantity >= 1", name="ck_order_quantity_positive"),
        CheckConstraint(
            '"interval" IS NULL OR "interval" IN (\'month\', \'year\')',
            name="ck_order_interval",
        ),
        Index("idx_order_tier_status", "tier_id", "status"),
        Index("idx_order_from_collective", "from_collective_id"),
        Index("idx_order_subscription", "subscription_id"),
    )

    from_collective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=False,
    )

    collective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=False,
    )

    total_amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    interval: Mapped[str | None] = mapped_column(String(8), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    tier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("tiers.id"),
        nullable=True,
    )

    payment_method_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payment_methods.id"),
        nullable=True,
    )

    # Matching fund that doubles this order, if any
    matching_payment_method_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payment_methods.id"),
        nullable=True,
    )

    # Set on the derived order created by a matching fund
    matched_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=True,
    )

    # Set on the child orders created by the recurring charge run
    parent_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=True,
    )

    subscription_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("subscriptions.id"),
        nullable=True,
    )

    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.PAYMENT_PENDING,
    )

    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    charge_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    # Gateway references (payment reference, processor charge id, ...)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    @property
    def payment_required(self) -> bool:
        return self.total_amount > 0

    def merge_data(self, **values: Any) -> None:
        """Store gateway references; JSON columns need a new object to be dirty."""
        self.data = {**(self.data or {}), **values}

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.total_amount} {self.currency} status={self.status}>"
