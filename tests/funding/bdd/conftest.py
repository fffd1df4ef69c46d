"""Shared BDD fixtures and step definitions for the Funding domain."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

from funding.order.creation import create_order
from funding.order.events import OrderActivated, OrderCancelled, OrderErrored, OrderPaid, OrderPlaced
from funding.order.order import Order
from funding.order.request import OrderRequest
from funding.payment_method.resolver import PaymentMethodReference
from funding.transaction.transaction import Transaction

_ORDER_EVENT_CLASSES = {
    "OrderPlaced": OrderPlaced,
    "OrderPaid": OrderPaid,
    "OrderActivated": OrderActivated,
    "OrderCancelled": OrderCancelled,
    "OrderErrored": OrderErrored,
}


@pytest.fixture()
def error():
    """Container for captured errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a pending order of {amount:d} cents"), target_fixture="order")
def pending_order(amount):
    order = Order.place(
        from_account_id="acc-donor",
        account_id="acc-collective",
        total_amount=amount,
        currency="USD",
        description="Donation to Webpack",
    )
    order._events.clear()
    return order


@given("an active recurring order", target_fixture="order")
def active_order():
    order = Order.place(
        from_account_id="acc-donor",
        account_id="acc-collective",
        total_amount=1000,
        currency="USD",
        interval="month",
    )
    order.activate("sub-001")
    order._events.clear()
    return order


@given(
    parsers.cfparse('the donor gives {amount:d} cents every {interval}'),
    target_fixture="order",
)
def donor_subscribes(collective, as_donor, amount, interval):
    return create_order(
        OrderRequest(
            account_id=str(collective.id),
            total_amount=amount,
            interval=interval,
            payment_method=PaymentMethodReference(token="tok_visa"),
        ),
        as_donor,
    )


@given(parsers.cfparse("the donor gives {amount:d} cents once"), target_fixture="order")
def donor_gives_once(collective, as_donor, amount):
    return create_order(
        OrderRequest(
            account_id=str(collective.id),
            total_amount=amount,
            payment_method=PaymentMethodReference(token="tok_visa"),
        ),
        as_donor,
    )


@given(parsers.cfparse('the payment provider declines with "{reason}"'))
def provider_declines(gateway, reason):
    gateway.configure(should_succeed=False, failure_reason=reason)


@given("the payment provider accepts charges")
def provider_accepts(gateway):
    gateway.configure(should_succeed=True)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert current_domain.repository_for(Order).get(str(order.id)).status == status


@then(parsers.cfparse('the order is "{status}"'))
def aggregate_status_is(order, status):
    assert order.status == status


@then(parsers.cfparse("a {event_type} order event is raised"))
def order_event_raised(order, event_type):
    event_cls = _ORDER_EVENT_CLASSES[event_type]
    assert any(isinstance(e, event_cls) for e in order._events)


@then(parsers.cfparse("{count:d} transactions are recorded for the order"))
def transactions_recorded(order, count):
    assert len(current_domain.repository_for(Transaction).for_order(str(order.id))) == count


@then("the action fails with a validation error")
def action_fails(error):
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse('the error mentions "{text}"'))
def error_mentions(error, text):
    assert text in str(error["exc"].messages)
