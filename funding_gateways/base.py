"""
PaymentGateway -- base class for every payment method kind.

Responsibility:
    Moves money through an external processor (or locally) and records the
    outcome in the ledger.  Subclasses implement the processor conversation;
    the base class owns the shared commit step.

Architecture position:
    Gateways -- imperative shell above funding_kernel.  Calls the Fee
    Calculator and LedgerService; never called from inside the kernel.

Invariants enforced:
    - Processor network calls happen while no database lock is held.  The
      order row lock is taken only for the final commit step.
    - _write_charge re-checks processed_at under the order row lock, then
      writes the ledger pair and stamps processed_at in the same transaction.
    - The host fee is never reported by a processor: it is computed from the
      collective's host fee percent (or the charge option, or the default).

Failure modes:
    - AlreadyProcessed: the order was recorded by a concurrent attempt.
    - GatewayError: the processor declined or could not be reached.
    - LedgerWriteFailed / MalformedSettlement: from the kernel, unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from funding_config import FundingConfig
from funding_kernel.db.engine import session_scope
from funding_kernel.domain.clock import Clock, SystemClock
from funding_kernel.domain.dtos import (
    ChargeOptions,
    FeeBreakdown,
    RefundResult,
    SettlementRecord,
    TransactionSpec,
)
from funding_kernel.domain.fees import compute_host_fee, compute_platform_fee
from funding_kernel.exceptions import AlreadyProcessed, AlreadyRefunded, NotFound
from funding_kernel.logging_config import LogContext, get_logger
from funding_kernel.models.collective import Collective
from funding_kernel.models.order import Order, OrderStatus
from funding_kernel.models.payment_method import PaymentMethod
from funding_kernel.models.transaction import Transaction
from funding_kernel.selectors.ledger_selector import LedgerSelector
from funding_kernel.services.ledger_service import LedgerService

logger = get_logger("gateways")


@dataclass(frozen=True)
class ChargeContext:
    """Rows a gateway needs to price a charge, loaded before any network call."""

    collective: Collective
    payment_method: PaymentMethod | None


def lock_order(session: Session, order_id) -> Order:
    """Load an order under a row lock, refreshing any stale identity-map copy."""
    order = session.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise NotFound("Order", str(order_id))
    return order


class PaymentGateway(ABC):
    """
    One payment method kind.

    Contract:
        process_order returns the CREDIT row once the charge is recorded, or
        None when the money has not moved yet (asynchronous kinds).
        refund_transaction returns the recorded refund pair.
    """

    kind: str = ""
    name: str = ""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: FundingConfig,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()

    @abstractmethod
    def process_order(self, order: Order, options: ChargeOptions) -> Transaction | None:
        """Charge ``order`` and record it, or start an asynchronous payment."""

    @abstractmethod
    def refund_transaction(self, transaction: Transaction) -> RefundResult:
        """Refund the group of ``transaction`` at the processor and in the ledger."""

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def _load_context(self, order: Order) -> ChargeContext:
        with session_scope(self._session_factory) as session:
            return self._context_from(session, order)

    def _context_from(self, session: Session, order: Order) -> ChargeContext:
        collective = session.get(Collective, order.collective_id)
        if collective is None:
            raise NotFound("Collective", str(order.collective_id))
        payment_method = None
        if order.payment_method_id is not None:
            payment_method = session.get(PaymentMethod, order.payment_method_id)
            if payment_method is None:
                raise NotFound("PaymentMethod", str(order.payment_method_id))
        return ChargeContext(collective=collective, payment_method=payment_method)

    def _host_fee_percent(self, context: ChargeContext, options: ChargeOptions) -> Decimal:
        if options.host_fee_percent is not None:
            return Decimal(options.host_fee_percent)
        if context.collective.host_fee_percent is not None:
            return Decimal(context.collective.host_fee_percent)
        return self._config.fees.default_host_fee_percent

    def _platform_fee_percent(self, options: ChargeOptions) -> Decimal:
        if options.platform_fee_percent is not None:
            return Decimal(options.platform_fee_percent)
        return self._config.fees.platform_fee_percent

    def _build_charge_spec(
        self,
        order: Order,
        context: ChargeContext,
        options: ChargeOptions,
        settlement: SettlementRecord | None = None,
        reported: FeeBreakdown | None = None,
        data: dict[str, Any] | None = None,
    ) -> TransactionSpec:
        """
        Price a charge.

        ``settlement`` gives the amount actually received in the host
        currency; without one the order amount is used at rate 1.  A platform
        fee reported by the processor wins over the configured percent.
        """
        reported = reported or FeeBreakdown()
        if settlement is not None and settlement.gross_amount is not None:
            host_currency = (settlement.currency or order.currency).upper()
            amount_in_host_currency = settlement.gross_amount
        else:
            host_currency = order.currency
            amount_in_host_currency = order.total_amount

        fx_rate = Decimal("1")
        if host_currency != order.currency.upper() and amount_in_host_currency:
            fx_rate = Decimal(order.total_amount) / Decimal(amount_in_host_currency)

        platform_fee = reported.platform_fee or compute_platform_fee(
            amount_in_host_currency, self._platform_fee_percent(options)
        )
        fees = FeeBreakdown(
            processor_fee=reported.processor_fee,
            platform_fee=platform_fee,
            host_fee=compute_host_fee(
                amount_in_host_currency, self._host_fee_percent(context, options)
            ),
        )
        return TransactionSpec(
            amount=order.total_amount,
            currency=order.currency,
            collective_id=order.collective_id,
            from_collective_id=order.from_collective_id,
            host_currency=host_currency,
            host_currency_fx_rate=fx_rate,
            amount_in_host_currency=amount_in_host_currency,
            fees=fees,
            host_collective_id=context.collective.host_collective_id,
            order_id=order.id,
            payment_method_id=order.payment_method_id,
            created_by_id=order.created_by_id,
            description=order.description,
            data=data,
        )

    # ------------------------------------------------------------------
    # Commit step
    # ------------------------------------------------------------------

    def _record_charge(
        self,
        order: Order,
        spec: TransactionSpec,
        options: ChargeOptions,
        order_data: dict[str, Any] | None = None,
    ) -> Transaction:
        with session_scope(self._session_factory) as session:
            return self._write_charge(session, order.id, spec, options, order_data)

    def _write_charge(
        self,
        session: Session,
        order_id,
        spec: TransactionSpec,
        options: ChargeOptions,
        order_data: dict[str, Any] | None = None,
    ) -> Transaction:
        """
        Write the ledger pair for an order and mark it processed.

        Preconditions:
            - Runs inside the caller's transaction; nothing is committed here.

        Raises:
            AlreadyProcessed: processed_at was set by a concurrent attempt.
        """
        order = lock_order(session, order_id)
        if order.processed_at is not None:
            raise AlreadyProcessed(str(order.id), order.processed_at)

        with LogContext.bind(order_id=order.id, gateway=self.name):
            entry = LedgerService(session, self._clock).create_double_entry(spec)
            order.processed_at = self._clock.now()
            order.status = OrderStatus.PROCESSED
            if order_data:
                order.merge_data(**order_data)
            if options.after_record is not None:
                options.after_record(session, order, entry.credit)
            session.flush()

            logger.info(
                "charge_recorded",
                extra={
                    "transaction_group": str(entry.transaction_group),
                    "amount": spec.amount,
                    "currency": spec.currency,
                    "processor_fee": spec.fees.processor_fee,
                    "platform_fee": spec.fees.platform_fee,
                    "host_fee": spec.fees.host_fee,
                },
            )
        return entry.credit

    def _ensure_refundable(self, transaction: Transaction) -> None:
        """Reject a refund before the processor is called for a refunded group."""
        with session_scope(self._session_factory) as session:
            group = LedgerSelector(session).find_group(transaction.transaction_group)
            if not group:
                raise NotFound("TransactionGroup", str(transaction.transaction_group))
            for row in group:
                if row.refund_id is not None:
                    raise AlreadyRefunded(str(transaction.id), str(row.refund_id))

    def _record_refund(
        self,
        transaction: Transaction,
        refunded_processor_fee: int,
        gateway_metadata: dict[str, Any] | None = None,
    ) -> RefundResult:
        with session_scope(self._session_factory) as session:
            original = session.get(Transaction, transaction.id)
            if original is None:
                raise NotFound("Transaction", str(transaction.id))
            entry = LedgerService(session, self._clock).create_refund(
                original, refunded_processor_fee, gateway_metadata
            )
            return RefundResult(
                credit_id=entry.credit.id,
                debit_id=entry.debit.id,
                transaction_group=entry.transaction_group,
                original_transaction_group=original.transaction_group,
                refunded_processor_fee=refunded_processor_fee,
            )
