"""
Card payments through Stripe.

A charge is created against the stored Stripe customer with an idempotency
key derived from the order id and its attempt number, so a retried request
never charges twice and a deliberate retry after a failure is a new charge.
Fees come from the charge's balance transaction.

A connection error is ambiguous: the charge may exist.  It is reconciled by
searching for a charge carrying the attempt's idempotency key before the
attempt is declared failed.

A confirmed charge id is committed on the order before the ledger write.
If recording then fails, the next attempt retrieves that charge and records
it instead of charging the card again.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import stripe

from funding_kernel.db.engine import session_scope
from funding_kernel.domain.dtos import ChargeOptions, RefundResult
from funding_kernel.domain.fees import extract_fees, settlement_from_balance_transaction
from funding_kernel.exceptions import GatewayError
from funding_kernel.logging_config import get_logger
from funding_kernel.models.order import Order
from funding_kernel.models.payment_method import PaymentMethod, PaymentMethodKind
from funding_kernel.models.transaction import Transaction
from funding_kernel.utils.idempotency import generate_idempotency_key

from funding_gateways.base import PaymentGateway, lock_order

logger = get_logger("gateways.card")


class CardGateway(PaymentGateway):
    kind = PaymentMethodKind.CARD.value
    name = "stripe"

    def __init__(self, session_factory, config, clock=None):
        super().__init__(session_factory, config, clock)
        settings = config.stripe
        stripe.api_key = settings.api_key
        if settings.api_version:
            stripe.api_version = settings.api_version
        stripe.max_network_retries = settings.max_network_retries

    def process_order(self, order: Order, options: ChargeOptions) -> Transaction:
        context = self._load_context(order)
        charge = self._unrecorded_charge(order)
        if charge is None:
            payment_method = context.payment_method
            if payment_method is None or not payment_method.token:
                raise GatewayError(
                    self.name, "card payment method has no customer token", str(order.id)
                )
            idempotency_key = generate_idempotency_key(
                "card", "charge", order.id, order.charge_attempts
            )
            charge = self._create_charge(order, payment_method, idempotency_key)
            self._remember_charge(order.id, charge["id"])

        balance_transaction = self._retrieve_balance_transaction(
            charge["balance_transaction"], str(order.id)
        )

        settlement = settlement_from_balance_transaction(balance_transaction)
        reported = extract_fees(settlement)
        spec = self._build_charge_spec(
            order,
            context,
            options,
            settlement=settlement,
            reported=reported,
            data={**(settlement.data or {}), "charge_id": charge["id"]},
        )
        return self._record_charge(
            order, spec, options, order_data={"stripe_charge_id": charge["id"]}
        )

    def _unrecorded_charge(self, order: Order) -> Any | None:
        """The charge an earlier attempt confirmed but failed to record, if any."""
        charge_id = (order.data or {}).get("stripe_charge_id")
        if not charge_id:
            return None
        try:
            charge = stripe.Charge.retrieve(charge_id)
        except stripe.StripeError as exc:
            raise GatewayError(
                self.name, f"charge {charge_id} unavailable: {exc}", str(order.id)
            ) from exc
        if charge["status"] != "succeeded":
            raise GatewayError(
                self.name, f"charge {charge_id} is {charge['status']}", str(order.id)
            )
        logger.info(
            "stripe_charge_reused",
            extra={"order_id": str(order.id), "charge_id": charge_id},
        )
        return charge

    def _remember_charge(self, order_id: UUID, charge_id: str) -> None:
        with session_scope(self._session_factory) as session:
            lock_order(session, order_id).merge_data(stripe_charge_id=charge_id)

    def _create_charge(
        self,
        order: Order,
        payment_method: PaymentMethod,
        idempotency_key: str,
    ) -> Any:
        try:
            charge = stripe.Charge.create(
                amount=order.total_amount,
                currency=order.currency.lower(),
                customer=payment_method.token,
                description=order.description,
                metadata={"order_id": str(order.id), "idempotency_key": idempotency_key},
                idempotency_key=idempotency_key,
            )
        except stripe.APIConnectionError as exc:
            logger.warning(
                "stripe_charge_ambiguous",
                extra={"order_id": str(order.id), "idempotency_key": idempotency_key},
            )
            charge = self._find_charge(idempotency_key, str(order.id))
            if charge is None:
                raise GatewayError(
                    self.name, f"charge not confirmed: {exc}", str(order.id)
                ) from exc
            logger.info(
                "stripe_charge_reconciled",
                extra={"order_id": str(order.id), "charge_id": charge["id"]},
            )
        except stripe.StripeError as exc:
            logger.info(
                "stripe_charge_declined",
                extra={"order_id": str(order.id), "processor_code": exc.code},
            )
            raise GatewayError(
                self.name, str(exc.user_message or exc), str(order.id), exc.code
            ) from exc

        logger.info(
            "stripe_charge_created",
            extra={"order_id": str(order.id), "charge_id": charge["id"]},
        )
        return charge

    def _find_charge(self, idempotency_key: str, order_id: str) -> Any | None:
        try:
            result = stripe.Charge.search(
                query=f"metadata['idempotency_key']:'{idempotency_key}'"
            )
        except stripe.StripeError as exc:
            raise GatewayError(
                self.name, f"charge reconciliation failed: {exc}", order_id
            ) from exc
        for charge in result["data"]:
            if charge["status"] == "succeeded":
                return charge
        return None

    def _retrieve_balance_transaction(self, balance_transaction_id: str, order_id: str | None) -> Any:
        try:
            return stripe.BalanceTransaction.retrieve(balance_transaction_id)
        except stripe.StripeError as exc:
            raise GatewayError(
                self.name, f"balance transaction unavailable: {exc}", order_id
            ) from exc

    def refund_transaction(self, transaction: Transaction) -> RefundResult:
        self._ensure_refundable(transaction)
        charge_id = (transaction.data or {}).get("charge_id")
        if not charge_id:
            raise GatewayError(self.name, "transaction has no Stripe charge id")

        order_id = str(transaction.order_id) if transaction.order_id else None
        try:
            refund = stripe.Refund.create(
                charge=charge_id,
                idempotency_key=generate_idempotency_key(
                    "card", "refund", transaction.transaction_group
                ),
            )
        except stripe.StripeError as exc:
            raise GatewayError(
                self.name, f"refund failed: {exc}", order_id, exc.code
            ) from exc

        balance_transaction = self._retrieve_balance_transaction(
            refund["balance_transaction"], order_id
        )
        settlement = settlement_from_balance_transaction(balance_transaction)
        refunded_processor_fee = extract_fees(settlement).processor_fee

        logger.info(
            "stripe_refund_created",
            extra={
                "refund_id": refund["id"],
                "charge_id": charge_id,
                "refunded_processor_fee": refunded_processor_fee,
            },
        )
        return self._record_refund(
            transaction,
            refunded_processor_fee,
            {"refund": dict(refund), "balance_transaction": dict(balance_transaction)},
        )
