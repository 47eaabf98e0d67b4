"""
Module: funding_kernel.models.subscription
Responsibility: ORM persistence for recurring-billing state.  The dates are
    computed by domain/subscriptions.py; this model only stores them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - interval is 'month' or 'year' (CHECK constraint).
    - charge_retry_count >= 0 (CHECK constraint).
    - Deactivation is terminal: once deactivated_at is set, is_active can never
      become True again (ORM listener in db/immutability.py).
"""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from funding_kernel.db.base import TrackedBase


class Subscription(TrackedBase):
    """Recurring billing schedule of a recurring order."""

    __tablename__ = "subscriptions"

    __table_args__ = (
        CheckConstraint('"interval" IN (\'month\', \'year\')', name="ck_subscription_interval"),
        CheckConstraint("charge_retry_count >= 0", name="ck_subscription_retry_count"),
        Index("idx_subscription_due", "is_active", "next_charge_date"),
    )

    interval: Mapped[str] = mapped_column(String(8), nullable=False)

    amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    next_charge_date: Mapped[datetime | None] = mapped_column(nullable=True)

    next_period_start: Mapped[datetime | None] = mapped_column(nullable=True)

    charge_retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    deactivated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Subscription {self.id} {self.amount} {self.currency}/{self.interval} "
            f"active={self.is_active}>"
        )
