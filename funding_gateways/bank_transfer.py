"""
Bank transfers: the payer wires the amount quoting the payment reference.

The host reports the received funds with settle().  Banks do not refund
their fees, so a refund is recorded with no processor fee refunded and the
host absorbs the original processor fee.
"""

from funding_kernel.domain.dtos import RefundResult
from funding_kernel.logging_config import get_logger
from funding_kernel.models.payment_method import PaymentMethodKind
from funding_kernel.models.transaction import Transaction

from funding_gateways.deferred import DeferredSettlementGateway

logger = get_logger("gateways.bank_transfer")


class BankTransferGateway(DeferredSettlementGateway):
    kind = PaymentMethodKind.BANK_TRANSFER.value
    name = "bank_transfer"
    reference_prefix = "BT"

    def refund_transaction(self, transaction: Transaction) -> RefundResult:
        self._ensure_refundable(transaction)
        logger.info(
            "bank_transfer_refund_recorded",
            extra={"transaction_group": str(transaction.transaction_group)},
        )
        return self._record_refund(transaction, 0, {"refund": {"method": "bank_transfer"}})
