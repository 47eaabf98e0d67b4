"""
Module: funding_kernel.models.collective
Responsibility: ORM persistence for parties that send or receive money:
    individual users, organizations, collectives, and events.  A collective may
    be hosted by another collective (its fiscal host), which is entitled to a
    host fee on contributions the collective receives.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - slug is unique.
    - email, when present, is unique: it is the identity used to find or
      create the source party of an order.

Failure modes:
    - IntegrityError on duplicate slug or email.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from funding_kernel.db.base import TrackedBase, UUIDString


class CollectiveType(str, Enum):
    """Classification of parties."""

    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    COLLECTIVE = "COLLECTIVE"
    EVENT = "EVENT"


class Collective(TrackedBase):
    """
    A party that contributes or receives contributions.

    Guarantees:
        - is_active gates whether the collective can receive new orders.
        - host_fee_percent applies to contributions received by collectives
          this collective hosts.
    """

    __tablename__ = "collectives"

    __table_args__ = (
        UniqueConstraint("slug", name="uq_collective_slug"),
        UniqueConstraint("email", name="uq_collective_email"),
        Index("idx_collective_host", "host_collective_id"),
    )

    slug: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    type: Mapped[CollectiveType] = mapped_column(
        String(20),
        nullable=False,
        default=CollectiveType.COLLECTIVE,
    )

    # Identity used by find-or-create for USER parties
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Fiscal host of this collective (None for hosts and plain users)
    host_collective_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=True,
    )

    # Fee charged by this collective when it acts as a host
    host_fee_percent: Mapped[Decimal | None] = mapped_column(
        Numeric(9, 4),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Collective {self.slug} ({self.type})>"
