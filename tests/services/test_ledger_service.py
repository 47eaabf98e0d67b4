"""
Tests for LedgerService.

Covers:
- CREDIT/DEBIT pairs: sign convention, fees on the CREDIT row, sequence order
- Refund pairs with and without a refunded processor fee
- Refund cross-links and the refund-once rule
- Append-only enforcement
- Balances derived from ledger rows
"""

from decimal import Decimal

import pytest

from funding_kernel.domain.dtos import FeeBreakdown, TransactionSpec
from funding_kernel.exceptions import (
    AlreadyRefunded,
    ImmutabilityViolationError,
    LedgerWriteFailed,
)
from funding_kernel.models.order import Order
from funding_kernel.models.payment_method import PaymentMethodKind
from funding_kernel.models.transaction import TransactionType
from funding_kernel.selectors.ledger_selector import LedgerSelector
from funding_kernel.services.ledger_service import LedgerService


@pytest.fixture
def ledger(session, clock):
    return LedgerService(session, clock)


@pytest.fixture
def donation_spec(collective, donor, host):
    def _spec(**overrides) -> TransactionSpec:
        values = dict(
            amount=5000,
            currency="USD",
            collective_id=collective.id,
            from_collective_id=donor.id,
            fees=FeeBreakdown(processor_fee=175, platform_fee=250, host_fee=500),
            host_collective_id=host.id,
            created_by_id=donor.id,
            description="Monthly donation to Webpack",
        )
        values.update(overrides)
        return TransactionSpec(**values)

    return _spec


class TestDoubleEntry:
    def test_pair_rows(self, ledger, donation_spec, collective, donor):
        entry = ledger.create_double_entry(donation_spec())

        credit, debit = entry.credit, entry.debit
        assert credit.type == TransactionType.CREDIT
        assert credit.amount == 5000
        assert credit.collective_id == collective.id
        assert credit.from_collective_id == donor.id
        assert credit.payment_processor_fee_in_host_currency == 175
        assert credit.platform_fee_in_host_currency == 250
        assert credit.host_fee_in_host_currency == 500
        assert credit.net_amount_in_collective_currency == 4075

        assert debit.type == TransactionType.DEBIT
        assert debit.amount == -5000
        assert debit.collective_id == donor.id
        assert debit.from_collective_id == collective.id
        assert debit.host_fee_in_host_currency is None
        assert debit.net_amount_in_collective_currency == -5000

        assert credit.transaction_group == debit.transaction_group
        assert credit.host_collective_id == debit.host_collective_id

    def test_debit_is_written_first(self, ledger, donation_spec):
        entry = ledger.create_double_entry(donation_spec())
        group = ledger.find_group(entry.transaction_group)
        assert [row.type for row in group] == [TransactionType.DEBIT, TransactionType.CREDIT]
        assert group[0].seq < group[1].seq

    def test_sequence_increases_across_groups(self, ledger, donation_spec):
        first = ledger.create_double_entry(donation_spec())
        second = ledger.create_double_entry(donation_spec())
        assert second.debit.seq > first.credit.seq

    def test_fx_rate(self, ledger, donation_spec):
        entry = ledger.create_double_entry(
            donation_spec(
                amount=1100,
                host_currency="EUR",
                host_currency_fx_rate=Decimal("1.1"),
                amount_in_host_currency=1000,
                fees=FeeBreakdown(),
            )
        )
        assert entry.credit.host_currency == "EUR"
        assert entry.credit.amount_in_host_currency == 1000
        assert entry.credit.net_amount_in_collective_currency == 1100
        assert entry.debit.amount_in_host_currency == -1000

    def test_negative_fee_rejected(self, ledger, donation_spec):
        with pytest.raises(LedgerWriteFailed, match="host_fee"):
            ledger.create_double_entry(donation_spec(fees=FeeBreakdown(host_fee=-1)))

    def test_negative_spec_is_written_from_the_credit_side(self, ledger, donation_spec, collective, donor):
        entry = ledger.create_double_entry(donation_spec(amount=-5000, fees=FeeBreakdown()))
        assert entry.credit.amount == 5000
        assert entry.credit.collective_id == donor.id
        assert entry.debit.collective_id == collective.id


class TestRefund:
    def test_processor_fee_refunded(self, ledger, donation_spec, donor):
        original = ledger.create_double_entry(donation_spec())
        refund = ledger.create_refund(original.credit, refunded_processor_fee=175)

        credit = refund.credit
        assert credit.collective_id == donor.id
        assert credit.amount == 5000
        assert credit.platform_fee_in_host_currency == 250
        assert credit.host_fee_in_host_currency == 500
        assert credit.payment_processor_fee_in_host_currency == 175
        assert credit.net_amount_in_collective_currency == 4075
        assert refund.debit.amount == -5000
        assert credit.description == 'Refund of "Monthly donation to Webpack"'

    def test_processor_fee_kept_is_folded_into_host_fee(self, ledger, donation_spec):
        original = ledger.create_double_entry(donation_spec())
        refund = ledger.create_refund(original.credit, refunded_processor_fee=0)

        credit = refund.credit
        assert credit.platform_fee_in_host_currency == 250
        assert credit.host_fee_in_host_currency == 675
        assert credit.payment_processor_fee_in_host_currency == 0
        assert credit.net_amount_in_collective_currency == 4075

    def test_cross_links(self, ledger, donation_spec):
        original = ledger.create_double_entry(donation_spec())
        refund = ledger.create_refund(original.credit, refunded_processor_fee=175)

        tr1, tr2 = ledger.find_group(original.transaction_group)
        tr3, tr4 = ledger.find_group(refund.transaction_group)
        assert tr1.refund_id == tr4.id and tr4.refund_id == tr1.id
        assert tr2.refund_id == tr3.id and tr3.refund_id == tr2.id
        assert tr1.collective_id == tr4.collective_id

    def test_refund_once(self, ledger, donation_spec):
        original = ledger.create_double_entry(donation_spec())
        ledger.create_refund(original.credit, refunded_processor_fee=175)
        with pytest.raises(AlreadyRefunded):
            ledger.create_refund(original.debit, refunded_processor_fee=175)

    def test_refund_is_logged(self, ledger, donation_spec, captured_logs):
        original = ledger.create_double_entry(donation_spec())
        ledger.create_refund(original.credit, refunded_processor_fee=0)
        records = [r for r in captured_logs() if r["message"] == "refund_recorded"]
        assert records[0]["host_fee"] == 675


class TestAppendOnly:
    def test_update_blocked(self, ledger, donation_spec, session):
        entry = ledger.create_double_entry(donation_spec())
        entry.credit.amount = 1
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, ledger, donation_spec, session):
        entry = ledger.create_double_entry(donation_spec())
        session.delete(entry.credit)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_refund_id_set_once(self, ledger, donation_spec, session):
        original = ledger.create_double_entry(donation_spec())
        other = ledger.create_double_entry(donation_spec())
        ledger.create_refund(original.credit, refunded_processor_fee=175)
        original.credit.refund_id = other.credit.id
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestBalances:
    def test_prepaid_balance_follows_the_ledger(
        self, ledger, donation_spec, session, make_payment_method, collective, donor
    ):
        card = make_payment_method(donor, kind=PaymentMethodKind.PREPAID, token=None, initial_balance=10000)
        order = Order(
            from_collective_id=donor.id,
            collective_id=collective.id,
            total_amount=3000,
            currency="USD",
            payment_method_id=card.id,
        )
        session.add(order)
        session.flush()
        selector = LedgerSelector(session)
        assert selector.payment_method_balance(card) == 10000

        entry = ledger.create_double_entry(
            donation_spec(amount=3000, payment_method_id=card.id, order_id=order.id, fees=FeeBreakdown())
        )
        assert selector.payment_method_balance(card) == 7000

        ledger.create_refund(entry.credit, refunded_processor_fee=0)
        assert selector.payment_method_balance(card) == 10000

    def test_collective_balance(self, ledger, donation_spec, session, collective):
        ledger.create_double_entry(donation_spec())
        ledger.create_double_entry(donation_spec())
        assert LedgerSelector(session).collective_balance(collective.id) == 8150
