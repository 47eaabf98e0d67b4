"""
Cryptocurrency payments: settled when the transfer is confirmed on chain.

Transfers cannot be reversed by the platform, so refunds are rejected.
"""

from funding_kernel.domain.dtos import RefundResult
from funding_kernel.exceptions import GatewayError
from funding_kernel.models.payment_method import PaymentMethodKind
from funding_kernel.models.transaction import Transaction

from funding_gateways.deferred import DeferredSettlementGateway


class CryptocurrencyGateway(DeferredSettlementGateway):
    kind = PaymentMethodKind.CRYPTOCURRENCY.value
    name = "cryptocurrency"
    reference_prefix = "CRYPTO"

    def refund_transaction(self, transaction: Transaction) -> RefundResult:
        raise GatewayError(
            self.name,
            "cryptocurrency payments cannot be refunded",
            str(transaction.order_id) if transaction.order_id else None,
        )
