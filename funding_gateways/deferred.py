"""
Asynchronous payment kinds: the money moves after the order is placed.

process_order only hands out a payment reference and leaves the order in
PROCESSING.  When the processor (or the host's bank statement) reports the
funds, settle() records the ledger pair through the shared commit step.
"""

from __future__ import annotations

from funding_kernel.db.engine import session_scope
from funding_kernel.domain.dtos import ChargeOptions, SettlementRecord
from funding_kernel.domain.fees import extract_fees
from funding_kernel.exceptions import MalformedSettlement
from funding_kernel.logging_config import get_logger
from funding_kernel.models.order import Order
from funding_kernel.models.transaction import Transaction
from funding_kernel.utils.idempotency import generate_idempotency_key

from funding_gateways.base import PaymentGateway, lock_order

logger = get_logger("gateways.deferred")


class DeferredSettlementGateway(PaymentGateway):
    """Base for kinds whose charge completes out of band."""

    reference_prefix = "REF"

    def payment_reference(self, order: Order) -> str:
        return f"{self.reference_prefix}-{str(order.id).split('-', 1)[0].upper()}-{order.charge_attempts}"

    def process_order(self, order: Order, options: ChargeOptions) -> None:
        reference = self.payment_reference(order)
        with session_scope(self._session_factory) as session:
            locked = lock_order(session, order.id)
            locked.merge_data(
                payment_reference=reference,
                settlement_key=generate_idempotency_key(
                    self.kind, "settlement", order.id, order.charge_attempts
                ),
            )
        logger.info(
            "payment_awaiting_settlement",
            extra={"order_id": str(order.id), "gateway": self.name, "payment_reference": reference},
        )
        return None

    def settle(
        self,
        order: Order,
        settlement: SettlementRecord,
        options: ChargeOptions | None = None,
    ) -> Transaction:
        """
        Record the funds reported for a pending order.

        Raises:
            MalformedSettlement: Missing gross amount, unknown fee kind, or a
                settlement in a currency the host cannot receive.
            AlreadyProcessed: The order was already settled.
        """
        options = options or ChargeOptions()
        if settlement.currency is None:
            raise MalformedSettlement(settlement.settlement_id, "missing currency")

        context = self._load_context(order)
        accepted = {order.currency.upper()}
        if context.payment_method is not None and context.payment_method.currency:
            accepted.add(context.payment_method.currency.upper())
        if settlement.currency.upper() not in accepted:
            raise MalformedSettlement(
                settlement.settlement_id,
                f"settlement currency {settlement.currency} does not match order currency {order.currency}",
            )

        reported = extract_fees(settlement)
        spec = self._build_charge_spec(
            order,
            context,
            options,
            settlement=settlement,
            reported=reported,
            data={**(settlement.data or {}), "settlement_id": settlement.settlement_id},
        )
        credit = self._record_charge(
            order, spec, options, order_data={"settlement_id": settlement.settlement_id}
        )
        logger.info(
            "pending_payment_settled",
            extra={
                "order_id": str(order.id),
                "gateway": self.name,
                "settlement_id": settlement.settlement_id,
            },
        )
        return credit
