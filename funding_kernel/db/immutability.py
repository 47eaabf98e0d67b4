"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Ledger rows are the audit trail of money movement.  A charge that happened is
never edited: it is refunded by a NEW pair of rows that points back at it.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule
--------------|------------------------------------------------------------
Transaction   | Append-only.  refund_id may go NULL -> value exactly once;
              | every other column is frozen.  Never deleted.
Order         | processed_at is set once and never changed or cleared.
Subscription  | Deactivation is terminal: no reactivation once
              | deactivated_at is set.

updated_at is audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from funding_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from funding_kernel.exceptions import ImmutabilityViolationError
from funding_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_ALWAYS_MUTABLE = frozenset({"updated_at"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(entity_type, str(entity_id), reason)


def _changed_columns(mapper, target) -> list[str]:
    state = inspect(target)
    changed = []
    for attr in mapper.column_attrs:
        if attr.key in _ALWAYS_MUTABLE:
            continue
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _check_transaction_immutability(mapper, connection, target):
    """
    Only refund_id may change, and only from NULL to a value.
    """
    changed = _changed_columns(mapper, target)
    frozen = [key for key in changed if key != "refund_id"]
    if frozen:
        raise _blocked(
            "Transaction",
            target.id,
            "UPDATE",
            f"ledger rows are append-only (attempted change to {', '.join(sorted(frozen))})",
        )

    if "refund_id" in changed:
        history = get_history(target, "refund_id")
        previous = [value for value in history.deleted if value is not None]
        if previous or target.refund_id is None:
            raise _blocked(
                "Transaction",
                target.id,
                "UPDATE",
                "refund_id can only be set once",
            )


def _check_transaction_delete(mapper, connection, target):
    raise _blocked("Transaction", target.id, "DELETE", "ledger rows cannot be deleted")


def _check_order_processed_at(mapper, connection, target):
    history = get_history(target, "processed_at")
    if not history.has_changes():
        return
    previous = [value for value in history.deleted if value is not None]
    if previous:
        raise _blocked(
            "Order",
            target.id,
            "UPDATE",
            "processed_at is set once and cannot be changed or cleared",
        )


def _persisted_value(target, key):
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


def _check_subscription_deactivation(mapper, connection, target):
    deactivated_at = _persisted_value(target, "deactivated_at")
    if deactivated_at is None:
        return
    if target.is_active:
        raise _blocked(
            "Subscription",
            target.id,
            "UPDATE",
            "a deactivated subscription cannot be reactivated",
        )
    if target.deactivated_at != deactivated_at:
        raise _blocked(
            "Subscription",
            target.id,
            "UPDATE",
            "deactivated_at cannot be changed once set",
        )


_LISTENERS: list[tuple[str, str, object]] = [
    ("Transaction", "before_update", _check_transaction_immutability),
    ("Transaction", "before_delete", _check_transaction_delete),
    ("Order", "before_update", _check_order_processed_at),
    ("Subscription", "before_update", _check_subscription_deactivation),
]


def _models():
    from funding_kernel.models.order import Order
    from funding_kernel.models.subscription import Subscription
    from funding_kernel.models.transaction import Transaction

    return {"Transaction": Transaction, "Order": Order, "Subscription": Subscription}


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left alone.
    """
    models = _models()
    for model_name, identifier, listener in _LISTENERS:
        model = models[model_name]
        if not event.contains(model, identifier, listener):
            event.listen(model, identifier, listener)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    models = _models()
    for model_name, identifier, listener in _LISTENERS:
        model = models[model_name]
        if event.contains(model, identifier, listener):
            event.remove(model, identifier, listener)
