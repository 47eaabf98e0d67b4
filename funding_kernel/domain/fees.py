"""
Fee Calculator -- pure fee extraction and computation.

Responsibility:
    Turns a processor settlement into a FeeBreakdown and computes the host
    fee, platform fee, and net amount of a ledger line.  Every fee number that
    reaches the ledger passes through this module.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Returned fees are non-negative integers in minor units.  Refund
      settlements report negative fee amounts; their magnitudes are returned.
    - Percentages round half up (db.types.round_minor_units).
    - net = round((amount_in_host_currency - platform_fee - host_fee
                   - processor_fee) * host_currency_fx_rate), with missing
      fees counted as zero.

Failure modes:
    - MalformedSettlement: missing gross amount, unknown fee kind, or a fee
      line in a currency other than the settlement currency.
"""

from decimal import Decimal
from typing import Any, Mapping

from funding_kernel.db.types import percent_of, round_minor_units
from funding_kernel.domain.dtos import FeeBreakdown, FeeLine, SettlementRecord
from funding_kernel.exceptions import MalformedSettlement

PROCESSOR_FEE_KINDS = frozenset({"stripe_fee", "processor_fee", "payment_processor_fee"})
PLATFORM_FEE_KINDS = frozenset({"application_fee", "platform_fee"})


def extract_fees(settlement: SettlementRecord) -> FeeBreakdown:
    """
    Sum the itemized fee lines of a settlement by kind.

    Returns:
        FeeBreakdown(processor_fee, platform_fee) in the settlement currency.
        host_fee is always 0: the host fee is a policy of the receiving
        host, not something the processor reports.
    """
    if settlement.gross_amount is None:
        raise MalformedSettlement(settlement.settlement_id, "missing gross amount")

    currency = (settlement.currency or "").upper()
    processor_fee = 0
    platform_fee = 0

    for line in settlement.fee_lines:
        if line.currency.upper() != currency:
            raise MalformedSettlement(
                settlement.settlement_id,
                f"fee line {line.kind!r} is in {line.currency}, settlement is in {currency}",
            )
        if line.kind in PROCESSOR_FEE_KINDS:
            processor_fee += abs(line.amount)
        elif line.kind in PLATFORM_FEE_KINDS:
            platform_fee += abs(line.amount)
        else:
            raise MalformedSettlement(
                settlement.settlement_id,
                f"unknown fee kind {line.kind!r}",
            )

    return FeeBreakdown(processor_fee=processor_fee, platform_fee=platform_fee)


def settlement_from_balance_transaction(raw: Mapping[str, Any]) -> SettlementRecord:
    """
    Build a SettlementRecord from a processor balance-transaction payload.

    Accepts the Stripe shape: ``id``, ``amount``, ``currency`` and
    ``fee_details`` (a list of ``{amount, currency, type}``).  Fee lines
    without a currency inherit the settlement currency.
    """
    currency = raw.get("currency")
    fee_lines = tuple(
        FeeLine(
            kind=detail.get("type") or "",
            amount=int(detail.get("amount") or 0),
            currency=(detail.get("currency") or currency or ""),
        )
        for detail in (raw.get("fee_details") or [])
    )
    amount = raw.get("amount")
    return SettlementRecord(
        settlement_id=raw.get("id"),
        gross_amount=int(amount) if amount is not None else None,
        currency=currency.upper() if currency else None,
        fee_lines=fee_lines,
        data={"balance_transaction": dict(raw)},
    )


def compute_host_fee(amount_in_host_currency: int, host_fee_percent: Decimal | None) -> int:
    """Host fee on a contribution, rounded half up."""
    return abs(percent_of(amount_in_host_currency, host_fee_percent))


def compute_platform_fee(amount: int, platform_fee_percent: Decimal | None) -> int:
    """Platform fee on a contribution, rounded half up."""
    return abs(percent_of(amount, platform_fee_percent))


def compute_net_amount(
    amount_in_host_currency: int,
    host_currency_fx_rate: Decimal,
    platform_fee: int | None = None,
    host_fee: int | None = None,
    processor_fee: int | None = None,
) -> int:
    """Net amount in collective currency; missing fees count as zero."""
    gross_minus_fees = (
        amount_in_host_currency
        - (platform_fee or 0)
        - (host_fee or 0)
        - (processor_fee or 0)
    )
    return round_minor_units(Decimal(gross_minus_fees) * Decimal(host_currency_fx_rate))
