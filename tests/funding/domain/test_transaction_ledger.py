"""Tests for charge and refund transaction pairs."""

import pytest
from protean.exceptions import ValidationError

from funding.order.order import Order
from funding.transaction.transaction import Fees, Transaction, TransactionKind


def _order(**overrides):
    defaults = {
        "from_account_id": "acc-donor",
        "account_id": "acc-collective",
        "total_amount": 10000,
        "currency": "USD",
        "description": "Donation to Webpack",
    }
    defaults.update(overrides)
    return Order.place(**defaults)


class TestFees:
    def test_split(self):
        fees = Fees(host_fee_percent=10, platform_fee_percent=5, payment_processor_fee=320)
        assert fees.split(10000) == (1000, 500, 320)

    def test_no_fees(self):
        assert Fees().split(10000) == (0, 0, 0)

    def test_rounds_to_minor_units(self):
        assert Fees(host_fee_percent=5).split(1010) == (50, 0, 0)


class TestRecordCharge:
    def test_pair_shares_group(self):
        order = _order()
        credit, debit = Transaction.record_charge(order, 10000, Fees(), payment_method_id="pm-001")
        assert credit.group_id == debit.group_id
        assert credit.kind == TransactionKind.CREDIT.value
        assert debit.kind == TransactionKind.DEBIT.value

    def test_credit_goes_to_destination(self):
        order = _order()
        credit, debit = Transaction.record_charge(order, 10000, Fees(host_fee_percent=10, platform_fee_percent=5))
        assert str(credit.account_id) == "acc-collective"
        assert str(credit.from_account_id) == "acc-donor"
        assert credit.amount == 10000
        assert credit.net_amount == 8500
        assert str(debit.account_id) == "acc-donor"
        assert debit.amount == -8500
        assert debit.net_amount == -10000

    def test_matching_payer_overrides_source(self):
        order = _order()
        credit, debit = Transaction.record_charge(order, 20000, Fees(), from_account_id="acc-sponsor")
        assert str(credit.from_account_id) == "acc-sponsor"
        assert str(debit.account_id) == "acc-sponsor"

    def test_description_defaults_to_order(self):
        credit, _ = Transaction.record_charge(_order(), 10000, Fees())
        assert credit.description == "Donation to Webpack"


class TestCompensate:
    def _credit(self):
        credit, _ = Transaction.record_charge(
            _order(),
            10000,
            Fees(host_fee_percent=10, payment_processor_fee=300),
            provider_charge_id="ch_001",
        )
        return credit

    def test_refund_pair_reverses_amounts(self):
        credit = self._credit()
        refund_credit, refund_debit = credit.compensate("re_001")

        assert str(refund_credit.account_id) == "acc-donor"
        assert refund_credit.amount == 10000
        assert str(refund_debit.account_id) == "acc-collective"
        assert refund_debit.amount == -credit.net_amount
        assert refund_debit.host_fee == -1000
        assert refund_debit.payment_processor_fee == -300
        assert refund_credit.group_id == refund_debit.group_id
        assert refund_credit.group_id != credit.group_id

    def test_refund_links_back(self):
        credit = self._credit()
        refund_credit, refund_debit = credit.compensate("re_001")
        assert str(refund_credit.refund_of_transaction_id) == str(credit.id)
        assert str(refund_debit.refund_of_transaction_id) == str(credit.id)
        assert str(credit.refunded_by_transaction_id) == str(refund_credit.id)
        assert refund_credit.provider_charge_id == "re_001"

    def test_original_amounts_untouched(self):
        credit = self._credit()
        credit.compensate()
        assert credit.amount == 10000
        assert credit.net_amount == 8700

    def test_cannot_refund_twice(self):
        credit = self._credit()
        credit.compensate()
        with pytest.raises(ValidationError):
            credit.compensate()

    def test_cannot_refund_a_refund(self):
        refund_credit, _ = self._credit().compensate()
        with pytest.raises(ValidationError):
            refund_credit.compensate()

    def test_cannot_refund_a_debit(self):
        _, debit = Transaction.record_charge(_order(), 10000, Fees())
        with pytest.raises(ValidationError):
            debit.compensate()
