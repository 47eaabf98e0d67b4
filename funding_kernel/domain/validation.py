"""
Order validation -- ordered steps with pure result types.

Responsibility:
    Pure checks over order input, each returning a list of ValidationError,
    and a pipeline runner that evaluates named steps in order and stops at the
    first failing one.  Steps that need stored data (destination, tier,
    payment method) are closures supplied by the Order Executor over rows it
    has already loaded; nothing here performs I/O.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - First failure short-circuits: later steps never run, nothing is
      persisted.
    - Amount >= minimum charge when payment is required.
    - Interval is NULL, 'month' or 'year'.
"""

from collections.abc import Callable, Sequence
from decimal import Decimal
from uuid import UUID

from funding_kernel.domain.dtos import (
    CallerContext,
    OrderRequest,
    ValidationError,
    ValidationResult,
)
from funding_kernel.domain.subscriptions import VALID_INTERVALS
from funding_kernel.exceptions import (
    Forbidden,
    FundingError,
    InvalidIntervalError,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from funding_kernel.logging_config import get_logger

logger = get_logger("domain.validation")

ValidationStep = Callable[[], list[ValidationError]]


def run_pipeline(steps: Sequence[tuple[str, ValidationStep]]) -> ValidationResult:
    """Run ``steps`` in order; the first step reporting errors ends the run."""
    for name, step in steps:
        errors = step()
        if errors:
            logger.info(
                "validation_failed",
                extra={
                    "step": name,
                    "error_codes": [error.code for error in errors],
                },
            )
            return ValidationResult.failure(*errors)
    return ValidationResult.success()


def to_exception(error: ValidationError) -> FundingError:
    """Map a ValidationError onto the typed exception callers catch."""
    details = error.details or {}
    if error.code == "UNAUTHORIZED":
        return Unauthorized(error.message)
    if error.code == "FORBIDDEN":
        return Forbidden(error.message)
    if error.code == "NOT_FOUND":
        return NotFound(details.get("entity_type", "Entity"), str(details.get("entity_id")))
    if error.code == "INVALID_INTERVAL":
        return InvalidIntervalError(details.get("interval"))
    return ValidationFailed(error.message, error.field)


def raise_for_result(result: ValidationResult) -> None:
    if not result.is_valid:
        raise to_exception(result.errors[0])


def not_found(entity_type: str, entity_id: object) -> list[ValidationError]:
    return [
        ValidationError(
            code="NOT_FOUND",
            message=f"{entity_type} not found: {entity_id}",
            details={"entity_type": entity_type, "entity_id": str(entity_id)},
        )
    ]


def validate_privileged_fields(
    request: OrderRequest,
    caller: CallerContext,
    host_collective_id: UUID | None,
) -> list[ValidationError]:
    """platform_fee_percent needs root; host_fee_percent needs host admin."""
    if request.platform_fee_percent is not None and not caller.is_root:
        return [
            ValidationError(
                code="FORBIDDEN",
                message="Only a root user can set the platform fee",
                field="platform_fee_percent",
            )
        ]
    if request.host_fee_percent is not None and not caller.is_admin_of(host_collective_id):
        return [
            ValidationError(
                code="FORBIDDEN",
                message="Only an admin of the host can set the host fee",
                field="host_fee_percent",
            )
        ]
    for name in ("platform_fee_percent", "host_fee_percent"):
        value = getattr(request, name)
        if value is not None and not (Decimal(0) <= Decimal(value) <= Decimal(100)):
            return [
                ValidationError(
                    code="INVALID_PERCENT",
                    message=f"{name} must be between 0 and 100",
                    field=name,
                )
            ]
    return []


def validate_interval(interval: str | None) -> list[ValidationError]:
    if interval is not None and interval not in VALID_INTERVALS:
        return [
            ValidationError(
                code="INVALID_INTERVAL",
                message="Interval should be null, month or year",
                field="interval",
                details={"interval": interval},
            )
        ]
    return []


def validate_amount(amount: object, minimum_charge: int) -> list[ValidationError]:
    """Integer minor units, non-negative, and at least the minimum when paid."""
    if not isinstance(amount, int) or isinstance(amount, bool):
        return [
            ValidationError(
                code="INVALID_AMOUNT",
                message="total_amount must be an integer in minor units",
                field="total_amount",
            )
        ]
    if amount < 0:
        return [
            ValidationError(
                code="NEGATIVE_AMOUNT",
                message="total_amount cannot be negative",
                field="total_amount",
            )
        ]
    if 0 < amount < minimum_charge:
        return [
            ValidationError(
                code="AMOUNT_TOO_SMALL",
                message=f"total_amount must be at least {minimum_charge}",
                field="total_amount",
                details={"minimum": minimum_charge},
            )
        ]
    return []


def validate_quantity(quantity: object) -> list[ValidationError]:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        return [
            ValidationError(
                code="INVALID_QUANTITY",
                message="quantity must be a positive integer",
                field="quantity",
            )
        ]
    return []


def validate_recurring_amount(interval: str | None, amount: int) -> list[ValidationError]:
    if interval is not None and amount == 0:
        return [
            ValidationError(
                code="INVALID_AMOUNT",
                message="A recurring order needs a non-zero amount",
                field="total_amount",
            )
        ]
    return []


def validate_not_self(from_collective_id: UUID | None, collective_id: UUID) -> list[ValidationError]:
    if from_collective_id is not None and from_collective_id == collective_id:
        return [
            ValidationError(
                code="SELF_ORDER",
                message="Cannot order from a collective to itself",
                field="from_collective_id",
            )
        ]
    return []


def validate_source_identity(request: OrderRequest, caller: CallerContext) -> list[ValidationError]:
    """An existing source must be administered by the caller; a new one needs an email."""
    if request.from_collective_id is not None:
        if not caller.is_authenticated:
            return [ValidationError(code="UNAUTHORIZED", message="You need to be logged in")]
        if not caller.is_admin_of(request.from_collective_id):
            return [
                ValidationError(
                    code="FORBIDDEN",
                    message="You don't have sufficient permissions to order on behalf of this collective",
                    field="from_collective_id",
                )
            ]
        return []
    if not request.from_email:
        return [
            ValidationError(
                code="MISSING_SOURCE",
                message="An order needs a source collective or an email",
                field="from_email",
            )
        ]
    return []
