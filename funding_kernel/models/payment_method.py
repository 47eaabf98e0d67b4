"""
Module: funding_kernel.models.payment_method
Responsibility: ORM persistence for payment methods.  The ``kind`` column is
    the tag that selects the payment gateway variant; the registry that maps
    kinds to gateways lives in funding_gateways.registry.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Prepaid balances are NEVER stored: the spendable balance of a prepaid
      card or matching fund is initial_balance plus the sum of this payment
      method's transactions on the owner's ledger (LedgerSelector).
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from funding_kernel.db.base import TrackedBase, UUIDString


class PaymentMethodKind(str, Enum):
    """Payment method variants, one gateway implementation each."""

    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    PREPAID = "prepaid"
    CRYPTOCURRENCY = "cryptocurrency"
    MANUAL = "manual"


class PaymentMethod(TrackedBase):
    """A way for a collective to pay."""

    __tablename__ = "payment_methods"

    __table_args__ = (
        Index("idx_payment_method_collective", "collective_id"),
    )

    kind: Mapped[PaymentMethodKind] = mapped_column(String(20), nullable=False)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Owner of the payment method
    collective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=False,
    )

    # Processor-side reference (customer id, source token, wallet address)
    token: Mapped[str | None] = mapped_column(String(255), nullable=True)

    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    # Spendable amount for prepaid cards and matching funds
    initial_balance: Mapped[int | None] = mapped_column(nullable=True)

    # Match multiplier when this payment method is a matching fund
    matching: Mapped[Decimal | None] = mapped_column(Numeric(9, 4), nullable=True)

    # Collectives a matching fund may be used for (None = any)
    limited_to_collective_ids: Mapped[list[str] | None] = mapped_column(
        JSON,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_matching_fund(self) -> bool:
        return self.matching is not None and self.matching > 0

    def can_be_used_for(self, collective_id: UUID) -> bool:
        """Whether this payment method may fund ``collective_id``."""
        if not self.is_active:
            return False
        if not self.limited_to_collective_ids:
            return True
        return str(collective_id) in self.limited_to_collective_ids

    def __repr__(self) -> str:
        return f"<PaymentMethod {self.kind} owner={self.collective_id}>"
