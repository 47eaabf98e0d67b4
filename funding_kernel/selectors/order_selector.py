"""
Module: funding_kernel.selectors.order_selector
Responsibility: Read-only queries over orders and subscriptions: tier
    capacity accounting and the recurring charge run's work list.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Reserved tier capacity counts the quantity of every order for the tier
      that has not FAILED, matching-fund orders and recurring child orders
      excluded.  Callers hold the tier row lock while reading it so that
      two reservations cannot both see the last unit.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from funding_kernel.models.order import Order, OrderStatus
from funding_kernel.models.subscription import Subscription
from funding_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector):
    """Queries over the orders and subscriptions tables."""

    def reserved_quantity(
        self,
        tier_id: UUID,
        from_collective_id: UUID | None = None,
        exclude_order_id: UUID | None = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(Order.quantity), 0)).where(
            Order.tier_id == tier_id,
            Order.status != OrderStatus.FAILED.value,
            Order.matched_order_id.is_(None),
            Order.parent_order_id.is_(None),
        )
        if from_collective_id is not None:
            stmt = stmt.where(Order.from_collective_id == from_collective_id)
        if exclude_order_id is not None:
            stmt = stmt.where(Order.id != exclude_order_id)
        return int(self.session.execute(stmt).scalar_one())

    def subscription_order(self, subscription_id: UUID) -> Order | None:
        """The order that started a subscription (not a child or matched order)."""
        return self.session.execute(
            select(Order).where(
                Order.subscription_id == subscription_id,
                Order.parent_order_id.is_(None),
                Order.matched_order_id.is_(None),
            )
        ).scalar_one_or_none()

    def due_subscriptions(self, now: datetime) -> list[Subscription]:
        return list(
            self.session.execute(
                select(Subscription)
                .where(
                    Subscription.is_active.is_(True),
                    Subscription.next_charge_date <= now,
                )
                .order_by(Subscription.next_charge_date, Subscription.id)
            ).scalars().all()
        )

    def has_pending_child_order(self, subscription_id: UUID) -> bool:
        """Whether a recurring charge of the subscription awaits settlement."""
        return (
            self.session.execute(
                select(Order.id)
                .where(
                    Order.subscription_id == subscription_id,
                    Order.parent_order_id.is_not(None),
                    Order.status == OrderStatus.PROCESSING.value,
                )
                .limit(1)
            ).first()
            is not None
        )
