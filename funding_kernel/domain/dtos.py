"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundaries:
    caller input (OrderRequest, CallerContext), gateway output
    (SettlementRecord, FeeLine), fee computation (FeeBreakdown), ledger input
    (TransactionSpec), and service results (OrderResult, RefundResult).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies, database access, and external services.

Invariants enforced:
    - FeeBreakdown components are integers in minor units; the ledger
      rejects negative components.
    - TransactionSpec.credit_perspective() always returns a spec whose amount
      is non-negative; the ledger writes the CREDIT row from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID

from funding_kernel.db.types import round_minor_units


@dataclass(frozen=True)
class ValidationError:
    """
    A single validation error.

    Carries a machine-readable code, human-readable message and optional
    field path.  Does NOT raise: it IS the error representation.
    """

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - errors is always a tuple (never None)
        - bool(result) == result.is_valid
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    def __bool__(self) -> bool:
        return self.is_valid


# =============================================================================
# Caller boundary
# =============================================================================


@dataclass(frozen=True)
class CallerContext:
    """
    Authenticated caller.

    ``administered`` is the set of collective ids the caller administers
    (their own user collective included).  Root callers may set privileged
    order fields.
    """

    actor_id: UUID | None
    is_root: bool = False
    administered: frozenset[UUID] = frozenset()

    @property
    def is_authenticated(self) -> bool:
        return self.actor_id is not None

    def is_admin_of(self, collective_id: UUID | None) -> bool:
        if collective_id is None:
            return False
        return self.is_root or collective_id in self.administered


@dataclass(frozen=True)
class NewPaymentMethod:
    """A payment method to create for the source party (card token, ...)."""

    kind: str
    token: str | None = None
    name: str | None = None
    currency: str | None = None


@dataclass(frozen=True)
class OrderRequest:
    """
    Input to OrderExecutor.create_order.

    The source party is either an existing collective (``from_collective_id``)
    or identified by ``from_email`` and found or created.  The payment method
    is either stored (``payment_method_id``) or created for the source party
    (``new_payment_method``).
    """

    collective_id: UUID
    total_amount: int
    currency: str | None = None
    from_collective_id: UUID | None = None
    from_email: str | None = None
    from_name: str | None = None
    interval: str | None = None
    quantity: int = 1
    tier_id: UUID | None = None
    payment_method_id: UUID | None = None
    new_payment_method: NewPaymentMethod | None = None
    matching_payment_method_id: UUID | None = None
    description: str | None = None
    platform_fee_percent: Decimal | None = None
    host_fee_percent: Decimal | None = None


@dataclass(frozen=True)
class ChargeOptions:
    """
    Per-charge options honoured by the gateways.

    ``after_record`` runs inside the transaction that writes the ledger pair
    and stamps processed_at, with ``(session, order, credit)``.
    """

    platform_fee_percent: Decimal | None = None
    host_fee_percent: Decimal | None = None
    after_record: Callable[[Any, Any, Any], None] | None = field(
        default=None, compare=False, repr=False
    )


# =============================================================================
# Gateway boundary
# =============================================================================


@dataclass(frozen=True)
class FeeLine:
    """One itemized fee reported by a processor (``stripe_fee``, ...)."""

    kind: str
    amount: int
    currency: str


@dataclass(frozen=True)
class SettlementRecord:
    """
    What a gateway reports after moving money.

    ``settlement_id`` is the processor identifier (balance transaction id,
    bank reference, ...) and doubles as the idempotency key for recording it.
    """

    settlement_id: str | None
    gross_amount: int | None
    currency: str | None
    fee_lines: tuple[FeeLine, ...] = ()
    data: dict[str, Any] | None = None


@dataclass(frozen=True)
class FeeBreakdown:
    """Fee amounts in minor units of the host currency."""

    processor_fee: int = 0
    platform_fee: int = 0
    host_fee: int = 0

    @property
    def negative_components(self) -> list[str]:
        return [
            name
            for name in ("processor_fee", "platform_fee", "host_fee")
            if getattr(self, name) < 0
        ]

    @property
    def total(self) -> int:
        return self.processor_fee + self.platform_fee + self.host_fee


# =============================================================================
# Ledger boundary
# =============================================================================


@dataclass(frozen=True)
class TransactionSpec:
    """
    One side's perspective of an economic event.

    ``collective_id`` is the ledger the amount lands on when ``amount`` is
    positive; ``from_collective_id`` is the counterparty.  Fee amounts are in
    the host currency.  ``host_currency_fx_rate`` converts host currency into
    the order currency (``amount / amount_in_host_currency``).
    """

    amount: int
    currency: str
    collective_id: UUID
    from_collective_id: UUID
    host_currency: str | None = None
    host_currency_fx_rate: Decimal = Decimal("1")
    amount_in_host_currency: int | None = None
    fees: FeeBreakdown = field(default_factory=FeeBreakdown)
    host_collective_id: UUID | None = None
    order_id: UUID | None = None
    payment_method_id: UUID | None = None
    created_by_id: UUID | None = None
    transaction_group: UUID | None = None
    description: str | None = None
    data: dict[str, Any] | None = None

    @property
    def resolved_host_currency(self) -> str:
        return self.host_currency or self.currency

    @property
    def resolved_amount_in_host_currency(self) -> int:
        if self.amount_in_host_currency is not None:
            return self.amount_in_host_currency
        return round_minor_units(Decimal(self.amount) / Decimal(self.host_currency_fx_rate))

    def credit_perspective(self) -> TransactionSpec:
        """
        Return the spec seen from the receiving side.

        A negative spec (a refund) is flipped: the parties swap and the
        amounts change sign, so the CREDIT row always carries the positive
        amount and the fees.
        """
        if self.amount >= 0:
            return self
        return replace(
            self,
            amount=-self.amount,
            amount_in_host_currency=-self.resolved_amount_in_host_currency,
            collective_id=self.from_collective_id,
            from_collective_id=self.collective_id,
        )


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class OrderResult:
    """
    Outcome of creating or executing an order.

    ``matching_error`` carries the structured error of a failed matching
    fund charge; the primary order is still processed when it is set.
    """

    order_id: UUID
    status: str
    processed: bool
    transaction_id: UUID | None = None
    subscription_id: UUID | None = None
    matching_order_id: UUID | None = None
    matching_error: dict[str, Any] | None = None


@dataclass(frozen=True)
class RefundResult:
    """The refund pair recorded for a refunded transaction group."""

    credit_id: UUID
    debit_id: UUID
    transaction_group: UUID
    original_transaction_group: UUID
    refunded_processor_fee: int
