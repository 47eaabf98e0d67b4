"""
Tests for the pure domain DTOs, money helpers and clock.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from funding_kernel.db.types import percent_of, round_minor_units, validate_currency
from funding_kernel.domain.clock import DeterministicClock
from funding_kernel.domain.dtos import (
    CallerContext,
    FeeBreakdown,
    TransactionSpec,
    ValidationResult,
)
from funding_kernel.exceptions import InvalidCurrencyError


class TestTransactionSpec:
    def test_positive_spec_is_its_own_credit(self):
        spec = TransactionSpec(amount=5000, currency="USD", collective_id=uuid4(), from_collective_id=uuid4())
        assert spec.credit_perspective() is spec

    def test_negative_spec_flips_parties(self):
        merchant, donor = uuid4(), uuid4()
        spec = TransactionSpec(
            amount=-5000,
            currency="USD",
            collective_id=donor,
            from_collective_id=merchant,
            fees=FeeBreakdown(processor_fee=175),
        )
        credit = spec.credit_perspective()
        assert credit.amount == 5000
        assert credit.amount_in_host_currency == 5000
        assert credit.collective_id == merchant
        assert credit.from_collective_id == donor
        assert credit.fees.processor_fee == 175

    def test_host_amount_from_fx_rate(self):
        spec = TransactionSpec(
            amount=1100,
            currency="USD",
            collective_id=uuid4(),
            from_collective_id=uuid4(),
            host_currency="EUR",
            host_currency_fx_rate=Decimal("1.1"),
        )
        assert spec.resolved_host_currency == "EUR"
        assert spec.resolved_amount_in_host_currency == 1000

    def test_explicit_host_amount_wins(self):
        spec = TransactionSpec(
            amount=1100,
            currency="USD",
            collective_id=uuid4(),
            from_collective_id=uuid4(),
            host_currency_fx_rate=Decimal("1.1"),
            amount_in_host_currency=999,
        )
        assert spec.resolved_amount_in_host_currency == 999


class TestFeeBreakdown:
    def test_total(self):
        assert FeeBreakdown(processor_fee=175, platform_fee=250, host_fee=500).total == 925

    def test_negative_components(self):
        assert FeeBreakdown(processor_fee=-1, host_fee=-2).negative_components == ["processor_fee", "host_fee"]


class TestCallerContext:
    def test_anonymous(self):
        caller = CallerContext(actor_id=None)
        assert not caller.is_authenticated
        assert not caller.is_admin_of(uuid4())

    def test_root_administers_everything(self):
        assert CallerContext(actor_id=uuid4(), is_root=True).is_admin_of(uuid4())

    def test_none_collective_is_never_administered(self):
        assert not CallerContext(actor_id=uuid4(), is_root=True).is_admin_of(None)


def test_validation_result_truthiness():
    assert ValidationResult.success()
    assert not ValidationResult.failure()


class TestMoney:
    @pytest.mark.parametrize(
        "value, expected",
        [(Decimal("40.5"), 41), (Decimal("-40.5"), -41), (Decimal("40.49"), 40)],
    )
    def test_round_half_up(self, value, expected):
        assert round_minor_units(value) == expected

    def test_percent_of(self):
        assert percent_of(5000, Decimal("5")) == 250
        assert percent_of(5000, None) == 0

    def test_currency(self):
        assert validate_currency("usd") == "USD"
        with pytest.raises(InvalidCurrencyError):
            validate_currency("XXX")


def test_deterministic_clock():
    clock = DeterministicClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
    assert clock.now() == clock.now()
    clock.advance_days(2)
    assert clock.now() == datetime(2026, 1, 3, tzinfo=timezone.utc)
