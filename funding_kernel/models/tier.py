"""
Module: funding_kernel.models.tier
Responsibility: ORM persistence for tiers -- priced participation levels of a
    collective (tickets, membership levels) with an optional capacity limit.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount >= 0 (CHECK constraint).
    - max_quantity, when set, is the total number of units that may be
      reserved across all non-failed orders.  The check runs under a row lock
      on the tier (OrderSelector.reserved_quantity + SELECT ... FOR UPDATE).
"""

from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from funding_kernel.db.base import TrackedBase, UUIDString


class Tier(TrackedBase):
    """Priced participation level with optional capacity."""

    __tablename__ = "tiers"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_tier_amount_non_negative"),
        Index("idx_tier_collective", "collective_id"),
    )

    collective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[int] = mapped_column(nullable=False, default=0)

    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    interval: Mapped[str | None] = mapped_column(String(8), nullable=True)

    # None means unlimited
    max_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    max_quantity_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # When the tier offers preset amounts the contributor picks the amount
    has_presets: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Tier {self.name} amount={self.amount} max={self.max_quantity}>"
