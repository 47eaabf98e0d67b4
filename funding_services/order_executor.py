"""
funding_services.order_executor -- Order creation, charging and matching.

Responsibility:
    Turns an OrderRequest into a reserved Order (and Subscription for
    recurring orders), charges it through the gateway for its payment method
    kind, and runs the matching fund charge when one is attached.

Architecture position:
    Services -- stateful orchestration over gateways + kernel.
    Composes PartyService, OrderSelector and LedgerSelector (kernel), the
    pure validation pipeline and subscription calculator, and the
    GatewayRegistry.

Invariants enforced:
    - Validation runs before any write; the first failing step ends it.
    - Tier capacity is checked under the tier row lock in the same
      transaction that inserts the order, so the last unit is sold once.
    - A charge is claimed under the order row lock (status PROCESSING,
      attempt counter incremented) and committed before any gateway call.
    - A subscription is activated only in the transaction that records the
      first charge.
    - A failed charge releases the claim: status FAILED, processed_at NULL.

Failure modes:
    - ValidationFailed / NotFound / Unauthorized / Forbidden from validation.
    - CapacityExceeded: the tier is sold out.
    - AlreadyProcessed / ChargeInProgress: the claim was refused.
    - GatewayError, LedgerWriteFailed: re-raised after the claim is released.

Audit relevance:
    - order_created, order_claimed, order_charge_failed and
      matching_charge_failed are logged with the order id bound.

Usage:
    executor = OrderExecutor(session_factory, registry, config)
    result = executor.create_order(
        OrderRequest(collective_id=collective_id, total_amount=1000,
                     from_email="donor@example.com", payment_method_id=pm_id),
        CallerContext(actor_id=None),
    )
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from funding_config import FundingConfig
from funding_kernel.db.engine import session_scope
from funding_kernel.db.types import is_valid_currency, round_minor_units
from funding_kernel.domain.clock import Clock, SystemClock
from funding_kernel.domain.dtos import (
    CallerContext,
    ChargeOptions,
    OrderRequest,
    OrderResult,
    SettlementRecord,
    ValidationError,
)
from funding_kernel.domain.subscriptions import (
    get_charge_retry_count,
    get_next_charge_and_period_start_dates,
)
from funding_kernel.domain.validation import (
    not_found,
    raise_for_result,
    run_pipeline,
    validate_amount,
    validate_interval,
    validate_not_self,
    validate_privileged_fields,
    validate_quantity,
    validate_recurring_amount,
    validate_source_identity,
)
from funding_kernel.exceptions import (
    AlreadyProcessed,
    CapacityExceeded,
    ChargeInProgress,
    Forbidden,
    FundingError,
    NotFound,
    ValidationFailed,
)
from funding_kernel.logging_config import LogContext, get_logger
from funding_kernel.models.collective import Collective
from funding_kernel.models.order import Order, OrderStatus
from funding_kernel.models.payment_method import PaymentMethod, PaymentMethodKind
from funding_kernel.models.subscription import Subscription
from funding_kernel.models.tier import Tier
from funding_kernel.models.transaction import Transaction
from funding_kernel.selectors.ledger_selector import LedgerSelector
from funding_kernel.selectors.order_selector import OrderSelector
from funding_kernel.services.party_service import PartyService

from funding_gateways.base import PaymentGateway, lock_order
from funding_gateways.deferred import DeferredSettlementGateway
from funding_gateways.registry import GatewayRegistry

logger = get_logger("services.order_executor")

_PAYMENT_METHOD_KINDS = frozenset(kind.value for kind in PaymentMethodKind)


@dataclass
class _Draft:
    """Rows and derived values the validation pipeline settled on."""

    collective: Collective | None = None
    tier: Tier | None = None
    source: Collective | None = None
    payment_method: PaymentMethod | None = None
    matching_fund: PaymentMethod | None = None
    total_amount: int = 0
    currency: str = ""
    interval: str | None = None


def _invalid(code: str, message: str, field: str | None = None, **details: Any) -> list[ValidationError]:
    return [ValidationError(code=code, message=message, field=field, details=details or None)]


def _error_dict(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, FundingError):
        return exc.to_dict()
    return {"code": type(exc).__name__, "message": str(exc)}


def _lock_tier(session: Session, tier_id: UUID) -> Tier:
    tier = session.execute(
        select(Tier)
        .where(Tier.id == tier_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if tier is None:
        raise NotFound("Tier", str(tier_id))
    return tier


def default_description(collective: Collective, interval: str | None, tier: Tier | None) -> str:
    prefix = f"{interval.capitalize()}ly donation" if interval else "Donation"
    suffix = f" ({tier.name})" if tier is not None else ""
    return f"{prefix} to {collective.name}{suffix}"


class OrderExecutor:
    """
    Creates and charges orders.

    Contract:
        create_order validates, reserves and (for paid orders) charges.
        execute_order charges an existing order that is not processed and
        not being charged.  settle_pending_order completes an order whose
        gateway settles asynchronously.

    Non-goals:
        - Does NOT send receipts or notifications.
        - Does NOT retry a failed charge by itself; the caller re-executes.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        registry: GatewayRegistry,
        config: FundingConfig,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._config = config
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_order(self, request: OrderRequest, caller: CallerContext) -> OrderResult:
        """
        Validate, reserve and charge a new order.

        Postconditions:
            - A zero-amount order is PROCESSED with no ledger rows.
            - A paid order is PROCESSED (synchronous kinds) or PROCESSING
              awaiting settlement (asynchronous kinds).

        Raises:
            ValidationFailed, NotFound, Unauthorized, Forbidden: before any
                write.
            CapacityExceeded: the tier has no room for the quantity.
            GatewayError, LedgerWriteFailed: the charge failed; the order is
                left FAILED and may be re-executed.
        """
        with LogContext.bind(actor_id=caller.actor_id):
            with session_scope(self._session_factory) as session:
                draft = self._validate(session, request, caller)
                order = self._reserve(session, request, caller, draft)
                order_id = order.id
                payment_required = order.payment_required
                subscription_id = order.subscription_id

            if not payment_required:
                return OrderResult(
                    order_id=order_id,
                    status=OrderStatus.PROCESSED.value,
                    processed=True,
                    subscription_id=subscription_id,
                )
            return self._execute(order_id, None)

    def _validate(self, session: Session, request: OrderRequest, caller: CallerContext) -> _Draft:
        draft = _Draft(total_amount=request.total_amount, interval=request.interval)
        draft.collective = session.get(Collective, request.collective_id)
        host_collective_id = draft.collective.host_collective_id if draft.collective else None

        def destination() -> list[ValidationError]:
            if draft.collective is None:
                return not_found("Collective", request.collective_id)
            if not draft.collective.is_active:
                return _invalid(
                    "COLLECTIVE_INACTIVE",
                    f"{draft.collective.name} is not active",
                    "collective_id",
                )
            return []

        def tier() -> list[ValidationError]:
            if request.tier_id is None:
                return []
            draft.tier = session.get(Tier, request.tier_id)
            if draft.tier is None or draft.tier.collective_id != request.collective_id:
                return not_found("Tier", request.tier_id)
            if draft.tier.amount and not draft.tier.has_presets:
                draft.total_amount = draft.tier.amount * request.quantity
            if draft.interval is None:
                draft.interval = draft.tier.interval
            limit = draft.tier.max_quantity_per_user
            if limit and request.quantity > limit:
                return _invalid(
                    "TIER_LIMIT_PER_USER",
                    f"You can buy up to {limit} units of {draft.tier.name} per person",
                    "quantity",
                    limit=limit,
                )
            return []

        def currency() -> list[ValidationError]:
            draft.currency = (
                (draft.tier.currency if draft.tier else None)
                or request.currency
                or draft.collective.currency
            ).upper()
            if not is_valid_currency(draft.currency):
                return _invalid("INVALID_CURRENCY", f"Invalid currency: {draft.currency}", "currency")
            return []

        def source() -> list[ValidationError]:
            if request.from_collective_id is not None:
                draft.source = session.get(Collective, request.from_collective_id)
                if draft.source is None:
                    return not_found("Collective", request.from_collective_id)
            else:
                draft.source = PartyService(session).find_by_email(request.from_email)
            if draft.source is not None:
                return validate_not_self(draft.source.id, request.collective_id)
            return []

        def payment_method() -> list[ValidationError]:
            if draft.total_amount == 0:
                return []
            if request.payment_method_id is None:
                if request.new_payment_method is None:
                    return _invalid(
                        "MISSING_PAYMENT_METHOD",
                        "This order requires a payment method",
                        "payment_method_id",
                    )
                new = request.new_payment_method
                if new.kind not in _PAYMENT_METHOD_KINDS or new.kind not in self._registry:
                    return _invalid(
                        "INVALID_PAYMENT_METHOD",
                        f"Unsupported payment method kind: {new.kind}",
                        "new_payment_method",
                    )
                if new.kind == PaymentMethodKind.CARD.value and not new.token:
                    return _invalid(
                        "INVALID_PAYMENT_METHOD",
                        "A card payment method needs a token",
                        "new_payment_method",
                    )
                return []

            draft.payment_method = session.get(PaymentMethod, request.payment_method_id)
            pm = draft.payment_method
            if pm is None:
                return not_found("PaymentMethod", request.payment_method_id)
            if not pm.is_active:
                return _invalid(
                    "PAYMENT_METHOD_INACTIVE",
                    "This payment method is no longer active",
                    "payment_method_id",
                )
            owned = draft.source is not None and pm.collective_id == draft.source.id
            if not owned and not caller.is_admin_of(pm.collective_id):
                return [
                    ValidationError(
                        code="FORBIDDEN",
                        message="You don't have sufficient permissions to use this payment method",
                        field="payment_method_id",
                    )
                ]
            if not pm.can_be_used_for(request.collective_id):
                return _invalid(
                    "PAYMENT_METHOD_RESTRICTED",
                    "This payment method cannot be used for this collective",
                    "payment_method_id",
                )
            return []

        def matching_fund() -> list[ValidationError]:
            if request.matching_payment_method_id is None:
                return []
            draft.matching_fund = session.get(PaymentMethod, request.matching_payment_method_id)
            fund = draft.matching_fund
            if fund is None:
                return not_found("PaymentMethod", request.matching_payment_method_id)
            if not fund.is_matching_fund:
                return _invalid(
                    "NOT_A_MATCHING_FUND",
                    "This payment method is not a matching fund",
                    "matching_payment_method_id",
                )
            if not fund.can_be_used_for(request.collective_id):
                return _invalid(
                    "PAYMENT_METHOD_RESTRICTED",
                    "This matching fund cannot be used for this collective",
                    "matching_payment_method_id",
                )
            required = round_minor_units(Decimal(draft.total_amount) * fund.matching)
            balance = LedgerSelector(session).payment_method_balance(fund)
            if balance < required:
                return _invalid(
                    "MATCHING_FUND_INSUFFICIENT",
                    f"The matching fund has {balance} left, {required} needed",
                    "matching_payment_method_id",
                    balance=balance,
                    required=required,
                )
            return []

        result = run_pipeline(
            [
                ("privileged_fields", lambda: validate_privileged_fields(request, caller, host_collective_id)),
                ("interval", lambda: validate_interval(request.interval)),
                ("quantity", lambda: validate_quantity(request.quantity)),
                ("destination", destination),
                ("tier", tier),
                ("amount", lambda: validate_amount(draft.total_amount, self._config.charges.minimum_charge_amount)),
                ("tier_interval", lambda: validate_interval(draft.interval)),
                ("recurring_amount", lambda: validate_recurring_amount(draft.interval, draft.total_amount)),
                ("currency", currency),
                ("source_identity", lambda: validate_source_identity(request, caller)),
                ("source", source),
                ("payment_method", payment_method),
                ("matching_fund", matching_fund),
            ]
        )
        raise_for_result(result)
        return draft

    def _reserve(
        self,
        session: Session,
        request: OrderRequest,
        caller: CallerContext,
        draft: _Draft,
    ) -> Order:
        source = draft.source or PartyService(session).find_or_create_user(
            request.from_email, request.from_name, draft.currency
        )
        if source.id == request.collective_id:
            raise ValidationFailed("Cannot order from a collective to itself", "from_collective_id")

        if draft.tier is not None:
            tier = _lock_tier(session, draft.tier.id)
            self._check_capacity(session, tier, request.quantity, source.id)

        payment_method_id = request.payment_method_id
        if payment_method_id is None and request.new_payment_method is not None and draft.total_amount:
            new = request.new_payment_method
            payment_method = PaymentMethod(
                kind=new.kind,
                name=new.name,
                token=new.token,
                currency=(new.currency or draft.currency).upper(),
                collective_id=source.id,
                created_by_id=caller.actor_id,
            )
            session.add(payment_method)
            session.flush()
            payment_method_id = payment_method.id

        data: dict[str, Any] = {}
        if request.platform_fee_percent is not None:
            data["platform_fee_percent"] = str(request.platform_fee_percent)
        if request.host_fee_percent is not None:
            data["host_fee_percent"] = str(request.host_fee_percent)

        now = self._clock.now()
        order = Order(
            from_collective_id=source.id,
            collective_id=request.collective_id,
            total_amount=draft.total_amount,
            currency=draft.currency,
            interval=draft.interval,
            quantity=request.quantity,
            tier_id=draft.tier.id if draft.tier else None,
            payment_method_id=payment_method_id if draft.total_amount else None,
            matching_payment_method_id=request.matching_payment_method_id,
            description=request.description
            or default_description(draft.collective, draft.interval, draft.tier),
            status=OrderStatus.PAYMENT_PENDING,
            charge_attempts=0,
            data=data or None,
            created_by_id=caller.actor_id,
        )

        if draft.interval is not None:
            subscription = Subscription(
                interval=draft.interval,
                amount=draft.total_amount,
                currency=draft.currency,
                is_active=False,
                charge_retry_count=0,
                created_by_id=caller.actor_id,
            )
            dates = get_next_charge_and_period_start_dates("new", subscription, now)
            subscription.next_charge_date = dates.next_charge_date
            subscription.next_period_start = dates.next_period_start
            session.add(subscription)
            session.flush()
            order.subscription_id = subscription.id

        if not order.payment_required:
            order.processed_at = now
            order.status = OrderStatus.PROCESSED

        session.add(order)
        session.flush()

        logger.info(
            "order_created",
            extra={
                "order_id": str(order.id),
                "collective_id": str(order.collective_id),
                "from_collective_id": str(order.from_collective_id),
                "total_amount": order.total_amount,
                "currency": order.currency,
                "interval": order.interval,
                "tier_id": str(order.tier_id) if order.tier_id else None,
                "status": getattr(order.status, "value", order.status),
            },
        )
        return order

    def _check_capacity(
        self,
        session: Session,
        tier: Tier,
        quantity: int,
        from_collective_id: UUID | None,
        exclude_order_id: UUID | None = None,
    ) -> None:
        """Raise CapacityExceeded unless the tier has room; caller holds the tier lock."""
        selector = OrderSelector(session)
        if tier.max_quantity is not None:
            available = tier.max_quantity - selector.reserved_quantity(
                tier.id, exclude_order_id=exclude_order_id
            )
            if quantity > available:
                logger.info(
                    "tier_capacity_exceeded",
                    extra={"tier_id": str(tier.id), "requested": quantity, "available": available},
                )
                raise CapacityExceeded(str(tier.id), tier.name, quantity, max(available, 0))
        if tier.max_quantity_per_user and from_collective_id is not None:
            available = tier.max_quantity_per_user - selector.reserved_quantity(
                tier.id, from_collective_id=from_collective_id, exclude_order_id=exclude_order_id
            )
            if quantity > available:
                raise CapacityExceeded(str(tier.id), tier.name, quantity, max(available, 0))

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute_order(
        self,
        order_id: UUID,
        caller: CallerContext | None = None,
        options: ChargeOptions | None = None,
    ) -> OrderResult:
        """
        Charge an existing order.

        ``caller`` None means an internal run (the recurring charge job).
        Otherwise the caller must have created the order or administer its
        source collective.

        Raises:
            Forbidden: The caller may not charge this order.
            AlreadyProcessed: The order is already processed.
            ChargeInProgress: Another attempt holds the order.
            CapacityExceeded: A FAILED order's tier filled up meanwhile.
        """
        if caller is not None:
            with session_scope(self._session_factory) as session:
                order = session.get(Order, order_id)
                if order is None:
                    raise NotFound("Order", str(order_id))
                created_it = order.created_by_id is not None and order.created_by_id == caller.actor_id
                if not created_it and not caller.is_admin_of(order.from_collective_id):
                    raise Forbidden("You don't have sufficient permissions to charge this order")
        with LogContext.bind(actor_id=caller.actor_id if caller else None):
            return self._execute(order_id, options)

    def _execute(self, order_id: UUID, options: ChargeOptions | None) -> OrderResult:
        with LogContext.bind(order_id=order_id):
            order, gateway = self._claim(order_id)
            options = self._charge_options(order, options)
            try:
                credit = gateway.process_order(order, options)
            except Exception as exc:
                self._release(order_id, exc)
                raise

            matching_order_id = None
            matching_error = None
            if credit is not None and order.matching_payment_method_id is not None:
                matching_order_id, matching_error = self._execute_matching(order, options)

            return self._result(order_id, credit, matching_order_id, matching_error)

    def _claim(self, order_id: UUID) -> tuple[Order, PaymentGateway]:
        with session_scope(self._session_factory) as session:
            order = lock_order(session, order_id)
            if order.processed_at is not None:
                raise AlreadyProcessed(str(order.id), order.processed_at)
            if order.status == OrderStatus.PROCESSING:
                raise ChargeInProgress(str(order.id))
            if order.payment_method_id is None:
                raise ValidationFailed("This order has no payment method", "payment_method_id")

            payment_method = session.get(PaymentMethod, order.payment_method_id)
            if payment_method is None:
                raise NotFound("PaymentMethod", str(order.payment_method_id))
            gateway = self._registry.get(payment_method.kind)

            if order.status == OrderStatus.FAILED and order.tier_id and order.matched_order_id is None:
                tier = _lock_tier(session, order.tier_id)
                self._check_capacity(
                    session, tier, order.quantity, order.from_collective_id, exclude_order_id=order.id
                )

            order.status = OrderStatus.PROCESSING
            order.charge_attempts = (order.charge_attempts or 0) + 1
            session.flush()
            logger.info(
                "order_claimed",
                extra={"attempt": order.charge_attempts, "gateway": gateway.name},
            )
            return order, gateway

    def _release(self, order_id: UUID, exc: Exception) -> None:
        with session_scope(self._session_factory) as session:
            order = lock_order(session, order_id)
            if order.processed_at is not None:
                return
            order.status = OrderStatus.FAILED
            error = _error_dict(exc)
            order.merge_data(last_error=error)
        logger.warning(
            "order_charge_failed",
            extra={"error_code": error.get("code"), "error": str(exc)},
        )

    def _charge_options(self, order: Order, options: ChargeOptions | None) -> ChargeOptions:
        """Stored privileged percents apply unless the caller passes options."""
        options = options or ChargeOptions()
        stored = order.data or {}
        if options.platform_fee_percent is None and "platform_fee_percent" in stored:
            options = replace(options, platform_fee_percent=Decimal(stored["platform_fee_percent"]))
        if options.host_fee_percent is None and "host_fee_percent" in stored:
            options = replace(options, host_fee_percent=Decimal(stored["host_fee_percent"]))
        if options.after_record is None and order.subscription_id is not None:
            options = replace(options, after_record=self._advance_subscription)
        return options

    def _advance_subscription(self, session: Session, order: Order, credit: Transaction) -> None:
        """Activate the subscription on its first charge and move its dates."""
        subscription = session.get(Subscription, order.subscription_id)
        if subscription is None:
            raise NotFound("Subscription", str(order.subscription_id))
        now = self._clock.now()
        if order.parent_order_id is None and not subscription.is_active:
            if subscription.deactivated_at is not None:
                return
            subscription.is_active = True
            subscription.activated_at = now
            logger.info(
                "subscription_activated",
                extra={"subscription_id": str(subscription.id)},
            )
        dates = get_next_charge_and_period_start_dates("success", subscription, now)
        subscription.charge_retry_count = get_charge_retry_count("success", subscription)
        subscription.next_charge_date = dates.next_charge_date
        subscription.next_period_start = dates.next_period_start

    def _execute_matching(
        self,
        order: Order,
        options: ChargeOptions,
    ) -> tuple[UUID | None, dict[str, Any] | None]:
        """
        Charge the matching fund attached to ``order``.

        Runs in its own failure domain: an error is logged and returned,
        never raised, and the primary order stays processed.
        """
        matching_order_id = None
        try:
            with session_scope(self._session_factory) as session:
                fund = session.get(PaymentMethod, order.matching_payment_method_id)
                if fund is None:
                    raise NotFound("PaymentMethod", str(order.matching_payment_method_id))
                source = session.get(Collective, order.from_collective_id)
                gateway = self._registry.get(fund.kind)
                matching_order = Order(
                    from_collective_id=fund.collective_id,
                    collective_id=order.collective_id,
                    total_amount=round_minor_units(Decimal(order.total_amount) * fund.matching),
                    currency=order.currency,
                    quantity=order.quantity,
                    tier_id=order.tier_id,
                    payment_method_id=fund.id,
                    matched_order_id=order.id,
                    description=f"Matching {format(fund.matching.normalize(), 'f')}x {source.name}'s donation",
                    status=OrderStatus.PROCESSING,
                    charge_attempts=1,
                    created_by_id=fund.created_by_id,
                )
                session.add(matching_order)
                session.flush()
                matching_order_id = matching_order.id

            with LogContext.bind(order_id=matching_order_id):
                gateway.process_order(
                    matching_order,
                    ChargeOptions(
                        platform_fee_percent=options.platform_fee_percent,
                        host_fee_percent=options.host_fee_percent,
                    ),
                )
        except Exception as exc:
            error = _error_dict(exc)
            logger.warning(
                "matching_charge_failed",
                extra={
                    "matched_order_id": str(order.id),
                    "matching_order_id": str(matching_order_id) if matching_order_id else None,
                    "error_code": error["code"],
                    "error": str(exc),
                },
                exc_info=not isinstance(exc, FundingError),
            )
            if matching_order_id is not None:
                self._release(matching_order_id, exc)
            return matching_order_id, error
        return matching_order_id, None

    def _result(
        self,
        order_id: UUID,
        credit: Transaction | None,
        matching_order_id: UUID | None = None,
        matching_error: dict[str, Any] | None = None,
    ) -> OrderResult:
        with session_scope(self._session_factory) as session:
            order = session.get(Order, order_id)
            return OrderResult(
                order_id=order.id,
                status=str(getattr(order.status, "value", order.status)),
                processed=order.processed_at is not None,
                transaction_id=credit.id if credit is not None else None,
                subscription_id=order.subscription_id,
                matching_order_id=matching_order_id,
                matching_error=matching_error,
            )

    # ------------------------------------------------------------------
    # Asynchronous settlement
    # ------------------------------------------------------------------

    def settle_pending_order(self, order_id: UUID, settlement: SettlementRecord) -> OrderResult:
        """
        Record the funds reported for an order awaiting settlement.

        Raises:
            ValidationFailed: The order is not awaiting settlement.
            MalformedSettlement: The settlement cannot be recorded.
            AlreadyProcessed: The order was already settled.
        """
        with LogContext.bind(order_id=order_id):
            with session_scope(self._session_factory) as session:
                order = session.get(Order, order_id)
                if order is None:
                    raise NotFound("Order", str(order_id))
                if order.processed_at is not None:
                    raise AlreadyProcessed(str(order.id), order.processed_at)
                payment_method = (
                    session.get(PaymentMethod, order.payment_method_id)
                    if order.payment_method_id
                    else None
                )
                gateway = self._registry.get(payment_method.kind) if payment_method else None
                if order.status != OrderStatus.PROCESSING or not isinstance(
                    gateway, DeferredSettlementGateway
                ):
                    raise ValidationFailed("This order is not awaiting settlement", "order_id")

            options = self._charge_options(order, None)
            credit = gateway.settle(order, settlement, options)

            matching_order_id = None
            matching_error = None
            if order.matching_payment_method_id is not None:
                matching_order_id, matching_error = self._execute_matching(order, options)
            return self._result(order_id, credit, matching_order_id, matching_error)
