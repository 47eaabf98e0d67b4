"""
Module: funding_kernel.models.transaction
Responsibility: ORM persistence for ledger lines.  Every economic event (a
    charge, an added fund, a refund) is recorded as exactly two rows sharing
    one transaction_group: a CREDIT on the receiving ledger and a DEBIT on the
    paying ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.
    Rows are created ONLY by services/ledger_service.py.

Invariants enforced:
    - type is CREDIT or DEBIT (CHECK constraint).
    - Fee columns are NULL or non-negative (CHECK constraints).
    - seq is unique and strictly increasing in creation order.
    - Append-only: the only permitted update is setting refund_id once
      (ORM listener in db/immutability.py).  Deletion is forbidden.

Sign convention:
    The CREDIT row carries the positive amount and the fees.  The DEBIT row
    carries the negated amount and no fees.  A refund pair is the mirror
    image, recorded on the ledgers of the original parties.
"""

from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from funding_kernel.db.base import TrackedBase, UUIDString


class TransactionType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class Transaction(TrackedBase):
    """
    One line of the double-entry ledger.

    ``collective_id`` is the ledger the row belongs to, ``from_collective_id``
    the counterparty.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_transaction_seq"),
        CheckConstraint("type IN ('CREDIT', 'DEBIT')", name="ck_transaction_type"),
        CheckConstraint(
            "host_fee_in_host_currency IS NULL OR host_fee_in_host_currency >= 0",
            name="ck_transaction_host_fee",
        ),
        CheckConstraint(
            "platform_fee_in_host_currency IS NULL OR platform_fee_in_host_currency >= 0",
            name="ck_transaction_platform_fee",
        ),
        CheckConstraint(
            "payment_processor_fee_in_host_currency IS NULL "
            "OR payment_processor_fee_in_host_currency >= 0",
            name="ck_transaction_processor_fee",
        ),
        Index("idx_transaction_group", "transaction_group"),
        Index("idx_transaction_collective", "collective_id"),
        Index("idx_transaction_payment_method", "payment_method_id"),
        Index("idx_transaction_order", "order_id"),
    )

    type: Mapped[TransactionType] = mapped_column(String(6), nullable=False)

    # Signed amount in `currency`
    amount: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    amount_in_host_currency: Mapped[int] = mapped_column(nullable=False)

    host_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    host_currency_fx_rate: Mapped[Decimal] = mapped_column(nullable=False)

    host_fee_in_host_currency: Mapped[int | None] = mapped_column(nullable=True)

    platform_fee_in_host_currency: Mapped[int | None] = mapped_column(nullable=True)

    payment_processor_fee_in_host_currency: Mapped[int | None] = mapped_column(
        nullable=True,
    )

    # Always recomputed by the ledger from the columns above
    net_amount_in_collective_currency: Mapped[int] = mapped_column(nullable=False)

    collective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=False,
    )

    from_collective_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=False,
    )

    host_collective_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("collectives.id"),
        nullable=True,
    )

    order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=True,
    )

    payment_method_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("payment_methods.id"),
        nullable=True,
    )

    transaction_group: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Set once, when the row is refunded
    refund_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("transactions.id"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    # Processor metadata (charge, balance transaction, refund)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    seq: Mapped[int] = mapped_column(nullable=False)

    @property
    def is_credit(self) -> bool:
        return self.type == TransactionType.CREDIT

    @property
    def is_refunded(self) -> bool:
        return self.refund_id is not None

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.type} {self.amount} {self.currency} "
            f"ledger={self.collective_id} seq={self.seq}>"
        )
