"""
LedgerService -- the only writer of transaction rows.

Responsibility:
    Persists every economic event as a CREDIT/DEBIT pair sharing one
    transaction group, and records refunds as the mirror pair cross-linked
    to the original.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes SequenceService and the
    pure Fee Calculator.  Called by the payment gateways only.

Invariants enforced:
    - Both rows of a pair are written inside one SAVEPOINT: both or neither.
    - The CREDIT row carries the positive amount and the fees.  The DEBIT row
      is derived from it: amounts negated, parties swapped, fees NULL.
    - Rows are inserted DEBIT first, then CREDIT, each with the next value of
      the "transaction" sequence.
    - net_amount_in_collective_currency is always computed by
      compute_net_amount, never copied from another row.
    - A group is refunded at most once.  The refund rows and the refund_id
      cross-links of all four rows are written in the same SAVEPOINT.

Failure modes:
    - LedgerWriteFailed: negative fee component, database error, or an
      immutability violation.  Never retried.
    - AlreadyRefunded: the group already carries refund links.
    - NotFound: the transaction group does not exist.

Audit relevance:
    Pairs are logged at INFO with the transaction group and both row ids.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from funding_kernel.domain.clock import Clock, SystemClock
from funding_kernel.domain.dtos import FeeBreakdown, TransactionSpec
from funding_kernel.domain.fees import compute_net_amount
from funding_kernel.exceptions import (
    AlreadyRefunded,
    ImmutabilityViolationError,
    LedgerWriteFailed,
    NotFound,
)
from funding_kernel.logging_config import LogContext, get_logger
from funding_kernel.models.transaction import Transaction, TransactionType
from funding_kernel.selectors.ledger_selector import LedgerSelector
from funding_kernel.services.base import BaseService
from funding_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class DoubleEntry:
    """The CREDIT and DEBIT rows written for one economic event."""

    credit: Transaction
    debit: Transaction

    @property
    def transaction_group(self) -> UUID:
        return self.credit.transaction_group

    @property
    def rows(self) -> tuple[Transaction, Transaction]:
        return (self.debit, self.credit)


class LedgerService(BaseService):
    """
    Append-only writer for the transactions table.

    Non-goals:
        - Does NOT commit: the caller's session scope owns the transaction.
        - Does NOT talk to payment processors.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._selector = LedgerSelector(session)

    def find_group(self, transaction_group: UUID) -> list[Transaction]:
        """Rows of a transaction group ordered by sequence."""
        return self._selector.find_group(transaction_group)

    # ------------------------------------------------------------------
    # Double entry
    # ------------------------------------------------------------------

    def create_double_entry(self, spec: TransactionSpec) -> DoubleEntry:
        """
        Persist the CREDIT/DEBIT pair described by ``spec``.

        Preconditions:
            - ``spec`` is one side's perspective; a negative amount is
              flipped so that the CREDIT row is the positive side.

        Postconditions:
            - Two rows exist sharing ``spec.transaction_group`` (generated
              when absent) with DEBIT.amount == -CREDIT.amount.

        Raises:
            LedgerWriteFailed: On negative fees or any persistence failure.
        """
        credit_spec = spec.credit_perspective()
        transaction_group = spec.transaction_group or uuid4()

        negative = credit_spec.fees.negative_components
        if negative:
            raise LedgerWriteFailed(
                "create_double_entry",
                f"negative fee components: {', '.join(negative)}",
                str(transaction_group),
            )

        now = self._clock.now()
        try:
            with self.session.begin_nested():
                debit = self._build_debit(credit_spec, transaction_group, now)
                debit.seq = self._sequences.next_value(SequenceService.TRANSACTION)
                self.session.add(debit)
                self.session.flush()

                credit = self._build_credit(credit_spec, transaction_group, now)
                credit.seq = self._sequences.next_value(SequenceService.TRANSACTION)
                self.session.add(credit)
                self.session.flush()
        except (SQLAlchemyError, ImmutabilityViolationError) as exc:
            logger.error(
                "ledger_write_failed",
                extra={
                    "operation": "create_double_entry",
                    "transaction_group": str(transaction_group),
                    "error": str(exc),
                },
            )
            raise LedgerWriteFailed(
                "create_double_entry", str(exc), str(transaction_group)
            ) from exc

        with LogContext.bind(transaction_group=transaction_group):
            logger.info(
                "double_entry_created",
                extra={
                    "credit_id": str(credit.id),
                    "debit_id": str(debit.id),
                    "amount": credit.amount,
                    "currency": credit.currency,
                    "collective_id": str(credit.collective_id),
                    "from_collective_id": str(credit.from_collective_id),
                    "order_id": str(credit.order_id) if credit.order_id else None,
                },
            )
        return DoubleEntry(credit=credit, debit=debit)

    def _build_credit(
        self,
        spec: TransactionSpec,
        transaction_group: UUID,
        now: datetime,
    ) -> Transaction:
        amount_in_host_currency = spec.resolved_amount_in_host_currency
        fees = spec.fees
        return Transaction(
            type=TransactionType.CREDIT,
            amount=spec.amount,
            currency=spec.currency,
            amount_in_host_currency=amount_in_host_currency,
            host_currency=spec.resolved_host_currency,
            host_currency_fx_rate=spec.host_currency_fx_rate,
            host_fee_in_host_currency=fees.host_fee,
            platform_fee_in_host_currency=fees.platform_fee,
            payment_processor_fee_in_host_currency=fees.processor_fee,
            net_amount_in_collective_currency=compute_net_amount(
                amount_in_host_currency,
                spec.host_currency_fx_rate,
                platform_fee=fees.platform_fee,
                host_fee=fees.host_fee,
                processor_fee=fees.processor_fee,
            ),
            collective_id=spec.collective_id,
            from_collective_id=spec.from_collective_id,
            host_collective_id=spec.host_collective_id,
            order_id=spec.order_id,
            payment_method_id=spec.payment_method_id,
            created_by_id=spec.created_by_id,
            transaction_group=transaction_group,
            description=spec.description,
            data=spec.data,
            created_at=now,
        )

    def _build_debit(
        self,
        spec: TransactionSpec,
        transaction_group: UUID,
        now: datetime,
    ) -> Transaction:
        amount_in_host_currency = -spec.resolved_amount_in_host_currency
        return Transaction(
            type=TransactionType.DEBIT,
            amount=-spec.amount,
            currency=spec.currency,
            amount_in_host_currency=amount_in_host_currency,
            host_currency=spec.resolved_host_currency,
            host_currency_fx_rate=spec.host_currency_fx_rate,
            host_fee_in_host_currency=None,
            platform_fee_in_host_currency=None,
            payment_processor_fee_in_host_currency=None,
            net_amount_in_collective_currency=compute_net_amount(
                amount_in_host_currency,
                spec.host_currency_fx_rate,
            ),
            collective_id=spec.from_collective_id,
            from_collective_id=spec.collective_id,
            host_collective_id=spec.host_collective_id,
            order_id=spec.order_id,
            payment_method_id=spec.payment_method_id,
            created_by_id=spec.created_by_id,
            transaction_group=transaction_group,
            description=spec.description,
            data=spec.data,
            created_at=now,
        )

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def create_refund(
        self,
        original: Transaction,
        refunded_processor_fee: int,
        gateway_metadata: dict[str, Any] | None = None,
    ) -> DoubleEntry:
        """
        Record the refund of ``original``'s transaction group.

        Fee redistribution: when the processor kept its fee
        (``refunded_processor_fee == 0``), the processor fee is folded into
        the host fee of the refund and zeroed, so the payer still receives
        the full amount.

        Postconditions:
            - The group quartet ordered by sequence (tr1, tr2, tr3, tr4) is
              linked tr1 <-> tr4 and tr2 <-> tr3: rows on the same party's
              ledger point at each other.

        Raises:
            NotFound: The group does not exist.
            AlreadyRefunded: A row of the group already has a refund_id.
            LedgerWriteFailed: Persistence failure; nothing is written.
        """
        group = self._selector.find_group(original.transaction_group, for_update=True)
        if not group:
            raise NotFound("TransactionGroup", str(original.transaction_group))

        refunded = next((row for row in group if row.refund_id is not None), None)
        if refunded is not None:
            raise AlreadyRefunded(str(original.id), str(refunded.refund_id))

        credit = next(row for row in group if row.type == TransactionType.CREDIT)

        fees = FeeBreakdown(
            processor_fee=credit.payment_processor_fee_in_host_currency or 0,
            platform_fee=credit.platform_fee_in_host_currency or 0,
            host_fee=credit.host_fee_in_host_currency or 0,
        )
        if refunded_processor_fee == 0:
            fees = FeeBreakdown(
                processor_fee=0,
                platform_fee=fees.platform_fee,
                host_fee=fees.host_fee + fees.processor_fee,
            )

        spec = TransactionSpec(
            amount=-credit.amount,
            currency=credit.currency,
            collective_id=credit.collective_id,
            from_collective_id=credit.from_collective_id,
            host_currency=credit.host_currency,
            host_currency_fx_rate=credit.host_currency_fx_rate,
            amount_in_host_currency=-credit.amount_in_host_currency,
            fees=fees,
            host_collective_id=credit.host_collective_id,
            order_id=credit.order_id,
            payment_method_id=credit.payment_method_id,
            created_by_id=credit.created_by_id,
            description=f'Refund of "{credit.description or ""}"',
            data=gateway_metadata,
        )

        try:
            with self.session.begin_nested():
                entry = self.create_double_entry(spec)
                refund_by_ledger = {row.collective_id: row for row in entry.rows}
                for row in group:
                    partner = refund_by_ledger[row.collective_id]
                    row.refund_id = partner.id
                    partner.refund_id = row.id
                self.session.flush()
        except (SQLAlchemyError, ImmutabilityViolationError) as exc:
            logger.error(
                "ledger_write_failed",
                extra={
                    "operation": "create_refund",
                    "transaction_group": str(original.transaction_group),
                    "error": str(exc),
                },
            )
            raise LedgerWriteFailed(
                "create_refund", str(exc), str(original.transaction_group)
            ) from exc

        logger.info(
            "refund_recorded",
            extra={
                "original_transaction_group": str(original.transaction_group),
                "transaction_group": str(entry.transaction_group),
                "refunded_processor_fee": refunded_processor_fee,
                "host_fee": fees.host_fee,
                "processor_fee": fees.processor_fee,
            },
        )
        return entry
