"""
Module: funding_kernel.selectors.ledger_selector
Responsibility: Read-only queries over ledger rows: transaction groups, the
    spendable balance of prepaid payment methods, and collective balances.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Balances are derived from transaction rows on every call.  A prepaid
      balance is initial_balance plus the payment method's rows on the
      paying side of each order (the order's source ledger, whoever owns the
      card): charge DEBITs subtract, refund CREDITs restore.
"""

from uuid import UUID

from sqlalchemy import func, select

from funding_kernel.models.order import Order
from funding_kernel.models.payment_method import PaymentMethod
from funding_kernel.models.transaction import Transaction
from funding_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector):
    """Queries over the transactions table."""

    def get(self, transaction_id: UUID) -> Transaction | None:
        return self.session.get(Transaction, transaction_id)

    def find_group(self, transaction_group: UUID, for_update: bool = False) -> list[Transaction]:
        """All rows of a group ordered by creation sequence."""
        stmt = (
            select(Transaction)
            .where(Transaction.transaction_group == transaction_group)
            .order_by(Transaction.seq)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars().all())

    def for_order(self, order_id: UUID) -> list[Transaction]:
        return list(
            self.session.execute(
                select(Transaction)
                .where(Transaction.order_id == order_id)
                .order_by(Transaction.seq)
            ).scalars().all()
        )

    def credit_for_order(self, order_id: UUID) -> Transaction | None:
        """The first CREDIT row recorded for an order, if any."""
        return self.session.execute(
            select(Transaction)
            .where(Transaction.order_id == order_id, Transaction.type == "CREDIT")
            .order_by(Transaction.seq)
            .limit(1)
        ).scalar_one_or_none()

    def payment_method_balance(self, payment_method: PaymentMethod) -> int:
        """Spendable balance of a prepaid card or matching fund."""
        spent = self.session.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0))
            .select_from(Transaction)
            .join(Order, Order.id == Transaction.order_id)
            .where(
                Transaction.payment_method_id == payment_method.id,
                Transaction.collective_id == Order.from_collective_id,
            )
        ).scalar_one()
        return (payment_method.initial_balance or 0) + int(spent)

    def collective_balance(self, collective_id: UUID) -> int:
        """Sum of net amounts on a collective's ledger."""
        total = self.session.execute(
            select(
                func.coalesce(func.sum(Transaction.net_amount_in_collective_currency), 0)
            ).where(Transaction.collective_id == collective_id)
        ).scalar_one()
        return int(total)
