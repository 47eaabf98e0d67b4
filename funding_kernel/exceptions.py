"""
Typed Exception Hierarchy for the Funding Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Money movement must fail precisely. Callers (the API layer, the recurring
charge run, operators) decide what to do by the TYPE of the failure, never by
parsing message strings:

  - ValidationFailed / NotFound     -> fix the input, nothing was persisted
  - CapacityExceeded                -> the tier is sold out
  - AlreadyProcessed                -> the order was already charged
  - GatewayError                    -> the processor declined or timed out;
                                       the order stays re-attemptable
  - LedgerWriteFailed               -> persistence failed; NEVER auto-retry

Every exception carries:
  1. A class-level ``code`` (machine-readable, API-safe)
  2. Structured attributes (order_id, tier_id, ...)
  3. A human-readable message

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FundingError (base)
    |
    +-- ValidationFailed
    |   +-- InvalidCurrencyError
    |   +-- InvalidIntervalError
    |
    +-- NotFound
    |
    +-- AccessError
    |   +-- Unauthorized
    |   +-- Forbidden
    |
    +-- CapacityExceeded
    |
    +-- OrderStateError
    |   +-- AlreadyProcessed
    |   +-- ChargeInProgress
    |
    +-- RefundError
    |   +-- AlreadyRefunded
    |
    +-- GatewayError
    |   +-- GatewayNotConfigured
    |
    +-- LedgerWriteFailed
    |
    +-- MalformedSettlement
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                   | When Raised
-------------|------------------------|------------------------------------------
Validation   | VALIDATION_FAILED      | Malformed or policy-violating input
             | INVALID_CURRENCY       | Not a valid ISO 4217 code
             | INVALID_INTERVAL       | Interval other than month / year
Lookup       | NOT_FOUND              | Referenced entity absent
Permission   | UNAUTHORIZED           | No authenticated caller
             | FORBIDDEN              | Caller lacks the required capability
Capacity     | CAPACITY_EXCEEDED      | Tier sold out
Order        | ALREADY_PROCESSED      | Re-execution of a settled order
             | CHARGE_IN_PROGRESS     | Another attempt holds the order
Refund       | ALREADY_REFUNDED       | Transaction group already refunded
Gateway      | GATEWAY_ERROR          | Processor rejected or timed out
             | GATEWAY_NOT_CONFIGURED | No gateway registered for a method kind
Ledger       | LEDGER_WRITE_FAILED    | Persistence failure inside the ledger
Settlement   | MALFORMED_SETTLEMENT   | Fee extraction failure
Immutability | IMMUTABILITY_VIOLATION | Modifying an append-only record

===============================================================================
"""

from typing import Any


class FundingError(Exception):
    """
    Base exception for all funding kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "FUNDING_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured error returned to callers: kind plus readable message."""
        return {"code": self.code, "message": str(self)}


# Validation


class ValidationFailed(FundingError):
    """Malformed or policy-violating input. No state was changed."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field is not None:
            result["field"] = self.field
        return result


class InvalidCurrencyError(ValidationFailed):
    """Currency code is not a recognized ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'", "currency")


class InvalidIntervalError(ValidationFailed):
    """Recurrence interval is neither 'month' nor 'year'."""

    code: str = "INVALID_INTERVAL"

    def __init__(self, interval: str):
        self.interval = interval
        super().__init__(
            f"Interval should be null, month or year (got {interval!r})",
            "interval",
        )


# Lookup


class NotFound(FundingError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Permission


class AccessError(FundingError):
    """Base exception for failed permission predicates."""

    code: str = "PERMISSION_ERROR"

    def __init__(self, message: str):
        super().__init__(message)


class Unauthorized(AccessError):
    """No authenticated caller where one is required."""

    code: str = "UNAUTHORIZED"


class Forbidden(AccessError):
    """Caller is authenticated but lacks the required capability."""

    code: str = "FORBIDDEN"


# Capacity


class CapacityExceeded(FundingError):
    """Tier has not enough remaining units for the requested quantity."""

    code: str = "CAPACITY_EXCEEDED"

    def __init__(self, tier_id: str, tier_name: str, requested: int, available: int):
        self.tier_id = tier_id
        self.tier_name = tier_name
        self.requested = requested
        self.available = available
        super().__init__(
            f"No more units left for {tier_name}: "
            f"requested {requested}, available {available}"
        )


# Order state


class OrderStateError(FundingError):
    """Base exception for order lifecycle violations."""

    code: str = "ORDER_STATE_ERROR"


class AlreadyProcessed(OrderStateError):
    """Order was already processed; re-execution would double-charge."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, order_id: str, processed_at: Any):
        self.order_id = order_id
        self.processed_at = processed_at
        super().__init__(
            f"This order ({order_id}) has already been processed at {processed_at}"
        )


class ChargeInProgress(OrderStateError):
    """Another execution attempt currently holds the order."""

    code: str = "CHARGE_IN_PROGRESS"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"A charge for order {order_id} is already in progress")


# Refund


class RefundError(FundingError):
    """Base exception for refund failures."""

    code: str = "REFUND_ERROR"


class AlreadyRefunded(RefundError):
    """Transaction group has already been refunded."""

    code: str = "ALREADY_REFUNDED"

    def __init__(self, transaction_id: str, refund_id: str | None = None):
        self.transaction_id = transaction_id
        self.refund_id = refund_id
        super().__init__(f"Transaction {transaction_id} has already been refunded")


# Gateway


class GatewayError(FundingError):
    """Payment processor rejected the request or did not answer definitively."""

    code: str = "GATEWAY_ERROR"

    def __init__(
        self,
        gateway: str,
        message: str,
        order_id: str | None = None,
        processor_code: str | None = None,
    ):
        self.gateway = gateway
        self.order_id = order_id
        self.processor_code = processor_code
        super().__init__(f"{gateway}: {message}")


class GatewayNotConfigured(GatewayError):
    """No gateway registered for a payment method kind."""

    code: str = "GATEWAY_NOT_CONFIGURED"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__("registry", f"No payment gateway registered for '{kind}'")


# Ledger


class LedgerWriteFailed(FundingError):
    """Persistence failure during a ledger operation. Never retried automatically."""

    code: str = "LEDGER_WRITE_FAILED"

    def __init__(self, operation: str, reason: str, transaction_group: str | None = None):
        self.operation = operation
        self.reason = reason
        self.transaction_group = transaction_group
        super().__init__(f"Ledger {operation} failed: {reason}")


# Settlement


class MalformedSettlement(FundingError):
    """Gateway settlement record cannot be turned into a fee breakdown."""

    code: str = "MALFORMED_SETTLEMENT"

    def __init__(self, settlement_id: str | None, reason: str):
        self.settlement_id = settlement_id
        self.reason = reason
        super().__init__(f"Malformed settlement {settlement_id or '<unknown>'}: {reason}")


# Immutability


class ImmutabilityViolationError(FundingError):
    """
    Attempted to modify or delete an append-only record.

    Transactions are immutable except for a single refund_id assignment;
    an order's processed_at is set once; subscription deactivation is terminal.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
