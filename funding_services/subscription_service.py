"""
funding_services.subscription_service -- Recurring order lifecycle.

Responsibility:
    Cancels subscriptions, swaps their payment method, and runs the
    recurring charge job that creates and charges one child order per due
    subscription.

Architecture position:
    Services -- orchestration over OrderExecutor + kernel.

Invariants enforced:
    - Only an admin of the source collective may cancel or update.
    - Cancellation is terminal.
    - A past-due subscription whose payment method is replaced is
      rescheduled from its period boundary and its retry counter reset.
    - Only cancellation deactivates. A failed charge pushes the next charge
      back and counts the retry; at ``max_retries`` the outcome is flagged
      past due for alerting and charging continues.

Failure modes:
    - Unauthorized / Forbidden: caller checks.
    - NotFound: order without a subscription, unknown payment method.
    - ValidationFailed: subscription already canceled, or canceled before
      an update.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from funding_config import FundingConfig
from funding_kernel.db.engine import session_scope
from funding_kernel.domain.clock import Clock, SystemClock
from funding_kernel.domain.dtos import CallerContext
from funding_kernel.domain.subscriptions import (
    get_charge_retry_count,
    get_next_charge_and_period_start_dates,
)
from funding_kernel.exceptions import (
    Forbidden,
    FundingError,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from funding_kernel.logging_config import LogContext, get_logger
from funding_kernel.models.order import Order, OrderStatus
from funding_kernel.models.payment_method import PaymentMethod
from funding_kernel.models.subscription import Subscription
from funding_kernel.selectors.order_selector import OrderSelector

from funding_services.order_executor import OrderExecutor

logger = get_logger("services.subscription")


@dataclass(frozen=True)
class SubscriptionCharge:
    """Outcome of one subscription in a recurring charge run."""

    subscription_id: UUID
    order_id: UUID | None
    processed: bool
    past_due: bool = False
    error: dict[str, Any] | None = None


def _lock_subscription(session: Session, subscription_id: UUID) -> Subscription:
    subscription = session.execute(
        select(Subscription)
        .where(Subscription.id == subscription_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if subscription is None:
        raise NotFound("Subscription", str(subscription_id))
    return subscription


class SubscriptionService:
    """Cancel, update and charge subscriptions."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        executor: OrderExecutor,
        config: FundingConfig,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._executor = executor
        self._config = config
        self._clock = clock or SystemClock()

    def _subscription_order(self, session: Session, order_id: UUID, caller: CallerContext, action: str) -> Order:
        if not caller.is_authenticated:
            raise Unauthorized(f"You need to be logged in to {action} a subscription")
        order = session.get(Order, order_id)
        if order is None or order.subscription_id is None:
            raise NotFound("Subscription", str(order_id))
        if not caller.is_admin_of(order.from_collective_id):
            raise Forbidden(f"You don't have permission to {action} this subscription")
        return order

    def cancel_subscription(self, order_id: UUID, caller: CallerContext) -> Subscription:
        """
        Deactivate the subscription of ``order_id``.

        Raises:
            ValidationFailed: The subscription is already canceled.
        """
        with LogContext.bind(actor_id=caller.actor_id, order_id=order_id):
            with session_scope(self._session_factory) as session:
                order = self._subscription_order(session, order_id, caller, "cancel")
                subscription = _lock_subscription(session, order.subscription_id)
                if not subscription.is_active:
                    raise ValidationFailed("Subscription already canceled")
                subscription.is_active = False
                subscription.deactivated_at = self._clock.now()
                session.flush()
                logger.info(
                    "subscription_canceled",
                    extra={"subscription_id": str(subscription.id)},
                )
                return subscription

    def update_payment_method(
        self,
        order_id: UUID,
        payment_method_id: UUID,
        caller: CallerContext,
    ) -> Subscription:
        """
        Charge future payments of ``order_id`` to ``payment_method_id``.

        A past-due subscription (``charge_retry_count > 0``) is moved to the
        next period boundary after now and its retries reset.
        """
        with LogContext.bind(actor_id=caller.actor_id, order_id=order_id):
            with session_scope(self._session_factory) as session:
                order = self._subscription_order(session, order_id, caller, "update")
                subscription = _lock_subscription(session, order.subscription_id)
                if not subscription.is_active:
                    raise ValidationFailed("Subscription must be active to be updated")
                payment_method = session.get(PaymentMethod, payment_method_id)
                if payment_method is None:
                    raise NotFound("PaymentMethod", str(payment_method_id))
                if payment_method.collective_id != order.from_collective_id and not caller.is_admin_of(
                    payment_method.collective_id
                ):
                    raise Forbidden("You don't have sufficient permissions to use this payment method")
                if not payment_method.can_be_used_for(order.collective_id):
                    raise ValidationFailed(
                        "This payment method cannot be used for this collective",
                        "payment_method_id",
                    )

                if subscription.charge_retry_count > 0:
                    dates = get_next_charge_and_period_start_dates(
                        "updated", subscription, self._clock.now()
                    )
                    subscription.charge_retry_count = get_charge_retry_count("updated", subscription)
                    subscription.next_charge_date = dates.next_charge_date
                    subscription.next_period_start = dates.next_period_start
                    logger.info(
                        "past_due_subscription_rescheduled",
                        extra={
                            "subscription_id": str(subscription.id),
                            "next_charge_date": dates.next_charge_date.isoformat(),
                        },
                    )

                order.payment_method_id = payment_method.id
                session.flush()
                logger.info(
                    "subscription_payment_method_updated",
                    extra={
                        "subscription_id": str(subscription.id),
                        "payment_method_id": str(payment_method.id),
                    },
                )
                return subscription

    # ------------------------------------------------------------------
    # Recurring charge run
    # ------------------------------------------------------------------

    def charge_due_subscriptions(self, now: datetime | None = None) -> list[SubscriptionCharge]:
        """
        Charge every active subscription whose next charge date has passed.

        Each subscription is its own unit of work: a failure is recorded on
        that subscription and the run moves on.
        """
        now = now or self._clock.now()
        with session_scope(self._session_factory) as session:
            due = [subscription.id for subscription in OrderSelector(session).due_subscriptions(now)]

        logger.info("subscription_charge_run_started", extra={"due": len(due)})
        outcomes = []
        for subscription_id in due:
            outcome = self._charge_subscription(subscription_id, now)
            if outcome is not None:
                outcomes.append(outcome)
        logger.info(
            "subscription_charge_run_completed",
            extra={
                "due": len(due),
                "charged": sum(1 for outcome in outcomes if outcome.processed),
                "failed": sum(1 for outcome in outcomes if outcome.error is not None),
            },
        )
        return outcomes

    def _charge_subscription(self, subscription_id: UUID, now: datetime) -> SubscriptionCharge | None:
        with LogContext.bind(correlation_id=subscription_id):
            child_id = self._create_child_order(subscription_id, now)
            if child_id is None:
                return None
            try:
                result = self._executor.execute_order(child_id)
            except FundingError as exc:
                past_due = self._record_failure(subscription_id, now)
                return SubscriptionCharge(
                    subscription_id=subscription_id,
                    order_id=child_id,
                    processed=False,
                    past_due=past_due,
                    error=exc.to_dict(),
                )
            return SubscriptionCharge(
                subscription_id=subscription_id,
                order_id=child_id,
                processed=result.processed,
            )

    def _create_child_order(self, subscription_id: UUID, now: datetime) -> UUID | None:
        with session_scope(self._session_factory) as session:
            subscription = _lock_subscription(session, subscription_id)
            if not subscription.is_active or subscription.next_charge_date is None or subscription.next_charge_date > now:
                return None
            selector = OrderSelector(session)
            if selector.has_pending_child_order(subscription.id):
                logger.info(
                    "subscription_charge_pending",
                    extra={"subscription_id": str(subscription.id)},
                )
                return None
            parent = selector.subscription_order(subscription.id)
            if parent is None:
                logger.warning(
                    "subscription_without_order",
                    extra={"subscription_id": str(subscription.id)},
                )
                return None

            stored = parent.data or {}
            child = Order(
                from_collective_id=parent.from_collective_id,
                collective_id=parent.collective_id,
                total_amount=subscription.amount,
                currency=subscription.currency,
                interval=subscription.interval,
                quantity=parent.quantity,
                tier_id=parent.tier_id,
                payment_method_id=parent.payment_method_id,
                parent_order_id=parent.id,
                subscription_id=subscription.id,
                description=parent.description,
                status=OrderStatus.PAYMENT_PENDING,
                charge_attempts=0,
                data={
                    key: stored[key]
                    for key in ("platform_fee_percent", "host_fee_percent")
                    if key in stored
                }
                or None,
                created_by_id=parent.created_by_id,
            )
            session.add(child)
            session.flush()
            logger.info(
                "subscription_child_order_created",
                extra={"parent_order_id": str(parent.id), "child_order_id": str(child.id)},
            )
            return child.id

    def _record_failure(self, subscription_id: UUID, now: datetime) -> bool:
        """Push the next charge back. True once the retry count reaches the alert threshold."""
        policy = self._config.subscriptions
        with session_scope(self._session_factory) as session:
            subscription = _lock_subscription(session, subscription_id)
            if not subscription.is_active:
                return False
            dates = get_next_charge_and_period_start_dates(
                "failure", subscription, now, timedelta(days=policy.retry_delay_days)
            )
            subscription.charge_retry_count = get_charge_retry_count("failure", subscription)
            subscription.next_charge_date = dates.next_charge_date
            subscription.next_period_start = dates.next_period_start

            payload = {
                "subscription_id": str(subscription.id),
                "retries": subscription.charge_retry_count,
                "next_charge_date": dates.next_charge_date.isoformat(),
            }
            past_due = subscription.charge_retry_count >= policy.max_retries
            if past_due:
                logger.warning("subscription_past_due", extra=payload)
            else:
                logger.info("subscription_charge_failed", extra=payload)
            return past_due
