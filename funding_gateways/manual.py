"""
Manually added funds: money the host already holds, recorded locally.

No processor is involved, so there is no processor fee.  The host and
platform fee percents of the charge options apply, which is how a host adds
funds to one of its collectives without taking a fee.
"""

from funding_kernel.domain.dtos import ChargeOptions, RefundResult
from funding_kernel.models.order import Order
from funding_kernel.models.payment_method import PaymentMethodKind
from funding_kernel.models.transaction import Transaction

from funding_gateways.base import PaymentGateway


class ManualGateway(PaymentGateway):
    kind = PaymentMethodKind.MANUAL.value
    name = "manual"

    def process_order(self, order: Order, options: ChargeOptions) -> Transaction:
        context = self._load_context(order)
        spec = self._build_charge_spec(order, context, options)
        return self._record_charge(order, spec, options)

    def refund_transaction(self, transaction: Transaction) -> RefundResult:
        self._ensure_refundable(transaction)
        return self._record_refund(transaction, 0, {"refund": {"method": "manual"}})
