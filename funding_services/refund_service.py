"""
funding_services.refund_service -- Refunds of recorded charges.

Responsibility:
    Checks who may refund a transaction, then hands the refund to the
    gateway of the payment method kind that collected it.  The gateway
    refunds at the processor and records the mirror pair in the ledger.

Architecture position:
    Services -- orchestration over gateways + kernel.

Invariants enforced:
    - Only the creator of the transaction, an admin of the receiving
      collective, or an admin of its host may refund it.
    - A transaction group is refunded at most once.

Failure modes:
    - Unauthorized: anonymous caller.
    - Forbidden: caller is neither creator nor admin.
    - NotFound: unknown transaction.
    - AlreadyRefunded: the group already carries refund links.
    - GatewayError: the processor refused (or the kind cannot refund).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from funding_kernel.db.engine import session_scope
from funding_kernel.domain.dtos import CallerContext, RefundResult
from funding_kernel.exceptions import AlreadyRefunded, Forbidden, NotFound, Unauthorized
from funding_kernel.logging_config import LogContext, get_logger
from funding_kernel.models.collective import Collective
from funding_kernel.models.payment_method import PaymentMethod, PaymentMethodKind
from funding_kernel.models.transaction import Transaction, TransactionType
from funding_kernel.selectors.ledger_selector import LedgerSelector

from funding_gateways.registry import GatewayRegistry

logger = get_logger("services.refund")


class RefundService:
    """
    Refunds a transaction group through its gateway.

    Non-goals:
        - Does NOT support partial refunds.
        - Does NOT enforce a refund window.
    """

    def __init__(self, session_factory: sessionmaker[Session], registry: GatewayRegistry):
        self._session_factory = session_factory
        self._registry = registry

    def refund_transaction(self, transaction_id: UUID, caller: CallerContext) -> RefundResult:
        """
        Refund the group of ``transaction_id``.

        Either row of the group may be passed; permissions are checked
        against the receiving (CREDIT) side.
        """
        if not caller.is_authenticated:
            raise Unauthorized("You need to be logged in to refund a transaction")

        with LogContext.bind(actor_id=caller.actor_id):
            with session_scope(self._session_factory) as session:
                transaction = LedgerSelector(session).get(transaction_id)
                if transaction is None:
                    raise NotFound("Transaction", str(transaction_id))
                group = LedgerSelector(session).find_group(transaction.transaction_group)
                credit = next(
                    (row for row in group if row.type == TransactionType.CREDIT), transaction
                )

                self._check_permission(session, credit, caller)

                refunded = next((row for row in group if row.refund_id is not None), None)
                if refunded is not None:
                    raise AlreadyRefunded(str(transaction_id), str(refunded.refund_id))

                kind = PaymentMethodKind.MANUAL.value
                if credit.payment_method_id is not None:
                    payment_method = session.get(PaymentMethod, credit.payment_method_id)
                    if payment_method is None:
                        raise NotFound("PaymentMethod", str(credit.payment_method_id))
                    kind = payment_method.kind

            gateway = self._registry.get(kind)
            with LogContext.bind(transaction_group=credit.transaction_group, gateway=gateway.name):
                result = gateway.refund_transaction(credit)
                logger.info(
                    "transaction_refunded",
                    extra={
                        "transaction_id": str(transaction_id),
                        "refund_transaction_group": str(result.transaction_group),
                        "refunded_processor_fee": result.refunded_processor_fee,
                    },
                )
            return result

    def _check_permission(self, session: Session, credit: Transaction, caller: CallerContext) -> None:
        if credit.created_by_id is not None and credit.created_by_id == caller.actor_id:
            return
        if caller.is_admin_of(credit.collective_id):
            return
        host_id = credit.host_collective_id
        if host_id is None:
            collective = session.get(Collective, credit.collective_id)
            host_id = collective.host_collective_id if collective else None
        if caller.is_admin_of(host_id):
            return
        logger.info(
            "refund_forbidden",
            extra={"transaction_id": str(credit.id), "collective_id": str(credit.collective_id)},
        )
        raise Forbidden("Not an admin of the collective or its host, nor the creator of the transaction")
