"""
Tests for the Stripe card gateway.

The Stripe API is replaced by monkeypatched resource methods; the gateway's
error handling still sees the real stripe exception classes.

Covers:
- Fees taken from the balance transaction
- Currency conversion into the host currency
- Idempotency keys per attempt
- Ambiguous connection errors reconciled by search
- Declines
- A confirmed charge reused when recording it failed
- Refunds with the processor fee refunded
"""

from decimal import Decimal
from unittest.mock import MagicMock
from uuid import UUID

import pytest
import stripe

from funding_kernel.db.engine import session_scope
from funding_kernel.domain.dtos import OrderRequest
from funding_kernel.exceptions import GatewayError, LedgerWriteFailed
from funding_kernel.models.order import Order, OrderStatus
from funding_kernel.models.payment_method import PaymentMethodKind
from funding_kernel.models.transaction import Transaction
from funding_kernel.selectors.ledger_selector import LedgerSelector
from funding_kernel.services.ledger_service import LedgerService

CHARGE = {"id": "ch_1", "status": "succeeded", "balance_transaction": "txn_1"}

BALANCE_TRANSACTIONS = {
    "txn_1": {
        "id": "txn_1",
        "amount": 1000,
        "currency": "usd",
        "fee_details": [{"amount": 59, "currency": "usd", "type": "stripe_fee"}],
    },
    "txn_eur": {
        "id": "txn_eur",
        "amount": 1000,
        "currency": "eur",
        "fee_details": [{"amount": 30, "currency": "eur", "type": "stripe_fee"}],
    },
    "txn_refund": {
        "id": "txn_refund",
        "amount": -1000,
        "currency": "usd",
        "fee_details": [{"amount": -59, "currency": "usd", "type": "stripe_fee"}],
    },
}


@pytest.fixture
def stripe_api(monkeypatch):
    api = MagicMock()
    api.create_charge.return_value = CHARGE
    api.search_charges.return_value = {"data": []}
    api.retrieve_charge.side_effect = lambda id: {**CHARGE, "id": id}
    api.retrieve_balance_transaction.side_effect = lambda id: BALANCE_TRANSACTIONS[id]
    api.create_refund.return_value = {"id": "re_1", "balance_transaction": "txn_refund"}
    monkeypatch.setattr(stripe.Charge, "create", api.create_charge)
    monkeypatch.setattr(stripe.Charge, "search", api.search_charges)
    monkeypatch.setattr(stripe.Charge, "retrieve", api.retrieve_charge)
    monkeypatch.setattr(stripe.BalanceTransaction, "retrieve", api.retrieve_balance_transaction)
    monkeypatch.setattr(stripe.Refund, "create", api.create_refund)
    return api


@pytest.fixture
def card(make_payment_method, donor):
    return make_payment_method(donor, kind=PaymentMethodKind.CARD, token="cus_alice")


@pytest.fixture
def card_order(executor, collective, donor, card, caller_for):
    def _order(total_amount: int = 1000):
        return executor.create_order(
            OrderRequest(
                collective_id=collective.id,
                from_collective_id=donor.id,
                total_amount=total_amount,
                payment_method_id=card.id,
            ),
            caller_for(donor),
        )

    return _order


def _credit(session_factory, order_id):
    with session_scope(session_factory) as session:
        return LedgerSelector(session).credit_for_order(order_id)


def _order(session_factory, order_id) -> Order:
    with session_scope(session_factory) as session:
        return session.get(Order, order_id)


class TestCharge:
    def test_fees_from_balance_transaction(self, stripe_api, card_order, session_factory):
        result = card_order()

        assert result.processed
        credit = _credit(session_factory, result.order_id)
        assert credit.payment_processor_fee_in_host_currency == 59
        assert credit.platform_fee_in_host_currency == 50
        assert credit.host_fee_in_host_currency == 100
        assert credit.net_amount_in_collective_currency == 791
        assert credit.data["charge_id"] == "ch_1"
        assert credit.data["balance_transaction"]["id"] == "txn_1"
        assert _order(session_factory, result.order_id).data["stripe_charge_id"] == "ch_1"

        kwargs = stripe_api.create_charge.call_args.kwargs
        assert kwargs["customer"] == "cus_alice"
        assert kwargs["amount"] == 1000
        assert kwargs["currency"] == "usd"
        assert kwargs["idempotency_key"] == f"card:charge:{result.order_id}:1"

    def test_settled_in_another_currency(self, stripe_api, card_order, session_factory):
        stripe_api.create_charge.return_value = {**CHARGE, "balance_transaction": "txn_eur"}

        result = card_order(total_amount=1100)

        credit = _credit(session_factory, result.order_id)
        assert credit.amount == 1100
        assert credit.currency == "USD"
        assert credit.host_currency == "EUR"
        assert credit.amount_in_host_currency == 1000
        assert round(credit.host_currency_fx_rate, 6) == Decimal("1.1")
        assert credit.net_amount_in_collective_currency == 902

    def test_decline_then_retry_uses_a_new_key(self, stripe_api, executor, card_order, session_factory, donor, caller_for):
        stripe_api.create_charge.side_effect = stripe.CardError(
            "Your card was declined.", None, "card_declined"
        )
        with pytest.raises(GatewayError) as exc_info:
            card_order()
        assert exc_info.value.processor_code == "card_declined"
        order_id = UUID(exc_info.value.order_id)
        order = _order(session_factory, order_id)
        assert order.status == OrderStatus.FAILED

        stripe_api.create_charge.side_effect = None
        result = executor.execute_order(order.id, caller_for(donor))

        assert result.processed
        keys = [call.kwargs["idempotency_key"] for call in stripe_api.create_charge.call_args_list]
        assert keys == [f"card:charge:{order_id}:1", f"card:charge:{order_id}:2"]

    def test_connection_error_reconciled(self, stripe_api, card_order, session_factory, captured_logs):
        stripe_api.create_charge.side_effect = stripe.APIConnectionError("connection reset")
        stripe_api.search_charges.return_value = {"data": [CHARGE]}

        result = card_order()

        assert result.processed
        query = stripe_api.search_charges.call_args.kwargs["query"]
        assert f"card:charge:{result.order_id}:1" in query
        messages = [r["message"] for r in captured_logs()]
        assert "stripe_charge_ambiguous" in messages
        assert "stripe_charge_reconciled" in messages

    def test_connection_error_without_charge(self, stripe_api, card_order, session_factory):
        stripe_api.create_charge.side_effect = stripe.APIConnectionError("connection reset")

        with pytest.raises(GatewayError, match="not confirmed"):
            card_order()

        with session_scope(session_factory) as session:
            assert session.query(Order).one().status == OrderStatus.FAILED

    def test_charge_is_not_repeated_when_recording_failed(
        self, stripe_api, executor, card_order, session_factory, donor, caller_for, monkeypatch, captured_logs
    ):
        create_double_entry = LedgerService.create_double_entry
        calls = []

        def fail_first_write(self, spec):
            calls.append(spec.order_id)
            if len(calls) == 1:
                raise LedgerWriteFailed("create_double_entry", "database unavailable")
            return create_double_entry(self, spec)

        monkeypatch.setattr(LedgerService, "create_double_entry", fail_first_write)

        with pytest.raises(LedgerWriteFailed):
            card_order()
        with session_scope(session_factory) as session:
            order = session.query(Order).one()
            assert order.status == OrderStatus.FAILED
            assert order.processed_at is None
            assert order.data["stripe_charge_id"] == "ch_1"

        result = executor.execute_order(order.id, caller_for(donor))

        assert result.processed
        assert stripe_api.create_charge.call_count == 1
        stripe_api.retrieve_charge.assert_called_once_with("ch_1")
        assert _credit(session_factory, order.id).data["charge_id"] == "ch_1"
        assert "stripe_charge_reused" in [r["message"] for r in captured_logs()]

    def test_missing_token(self, executor, make_payment_method, collective, donor, caller_for, stripe_api):
        tokenless = make_payment_method(donor, kind=PaymentMethodKind.CARD, token=None)
        with pytest.raises(GatewayError, match="token"):
            executor.create_order(
                OrderRequest(
                    collective_id=collective.id,
                    from_collective_id=donor.id,
                    total_amount=1000,
                    payment_method_id=tokenless.id,
                ),
                caller_for(donor),
            )
        stripe_api.create_charge.assert_not_called()


class TestRefund:
    def test_refund_returns_the_processor_fee(
        self, stripe_api, card_order, refund_service, session_factory, collective, caller_for
    ):
        charge = card_order()

        result = refund_service.refund_transaction(charge.transaction_id, caller_for(collective))

        assert result.refunded_processor_fee == 59
        assert stripe_api.create_refund.call_args.kwargs["charge"] == "ch_1"
        with session_scope(session_factory) as session:
            refund_credit = session.get(Transaction, result.credit_id)
            assert refund_credit.payment_processor_fee_in_host_currency == 59
            assert refund_credit.data["refund"]["id"] == "re_1"

    def test_refund_declined(self, stripe_api, card_order, refund_service, session_factory, collective, caller_for):
        charge = card_order()
        stripe_api.create_refund.side_effect = stripe.InvalidRequestError(
            "Charge ch_1 has already been refunded.", "charge", "charge_already_refunded"
        )

        with pytest.raises(GatewayError) as exc_info:
            refund_service.refund_transaction(charge.transaction_id, caller_for(collective))
        assert exc_info.value.processor_code == "charge_already_refunded"
        with session_scope(session_factory) as session:
            assert not any(row.is_refunded for row in LedgerSelector(session).for_order(charge.order_id))
