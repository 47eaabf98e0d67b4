"""
Prepaid payment methods: gift cards and matching funds.

There is no processor.  The spendable balance is derived from the ledger:
the initial balance plus this payment method's rows on the paying side of
each order it funded (charges are negative there, refunds positive), even
when the order's source is not the card's owner.  The balance read and
the charge write happen in one transaction under the payment method row
lock, so two concurrent charges cannot both spend the last of a balance.
"""

from __future__ import annotations

from sqlalchemy import select

from funding_kernel.db.engine import session_scope
from funding_kernel.domain.dtos import ChargeOptions, RefundResult
from funding_kernel.exceptions import GatewayError, NotFound
from funding_kernel.logging_config import get_logger
from funding_kernel.models.order import Order
from funding_kernel.models.payment_method import PaymentMethod, PaymentMethodKind
from funding_kernel.models.transaction import Transaction
from funding_kernel.selectors.ledger_selector import LedgerSelector

from funding_gateways.base import ChargeContext, PaymentGateway

logger = get_logger("gateways.prepaid")


class PrepaidGateway(PaymentGateway):
    kind = PaymentMethodKind.PREPAID.value
    name = "prepaid"

    def process_order(self, order: Order, options: ChargeOptions) -> Transaction:
        if order.payment_method_id is None:
            raise GatewayError(self.name, "order has no payment method", str(order.id))

        with session_scope(self._session_factory) as session:
            payment_method = session.execute(
                select(PaymentMethod)
                .where(PaymentMethod.id == order.payment_method_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if payment_method is None:
                raise NotFound("PaymentMethod", str(order.payment_method_id))

            if payment_method.currency and payment_method.currency != order.currency:
                raise GatewayError(
                    self.name,
                    f"payment method currency {payment_method.currency} "
                    f"does not match order currency {order.currency}",
                    str(order.id),
                )

            balance = LedgerSelector(session).payment_method_balance(payment_method)
            if balance < order.total_amount:
                logger.info(
                    "prepaid_balance_insufficient",
                    extra={
                        "order_id": str(order.id),
                        "payment_method_id": str(payment_method.id),
                        "balance": balance,
                        "amount": order.total_amount,
                    },
                )
                raise GatewayError(
                    self.name,
                    f"insufficient balance: {balance} available, {order.total_amount} required",
                    str(order.id),
                    "insufficient_balance",
                )

            context = self._context_from(session, order)
            spec = self._build_charge_spec(
                order,
                ChargeContext(collective=context.collective, payment_method=payment_method),
                options,
                data={"balance_before": balance},
            )
            return self._write_charge(session, order.id, spec, options)

    def refund_transaction(self, transaction: Transaction) -> RefundResult:
        self._ensure_refundable(transaction)
        return self._record_refund(transaction, 0, {"refund": {"method": "prepaid"}})
