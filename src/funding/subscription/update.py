"""Mid-life subscription changes: payment method and amount.

A payment method swap keeps the subscription and, if the last cycle failed,
schedules a charge right away. An amount change retires the subscription
and its order and starts a new version of both, linked to the old ones.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from funding.account.requester import Requester
from funding.domain import funding
from funding.errors import NotFound, Unauthorized, ValidationFailed
from funding.order.order import Order
from funding.payment_method.resolver import PaymentMethodReference, resolve_payment_method
from funding.subscription.subscription import Subscription

logger = structlog.get_logger(__name__)


@funding.command(part_of="Subscription")
class UpdateSubscription:
    order_id = Identifier(required=True)
    requested_by = Identifier()
    payment_method_id = Identifier()
    amount = Integer()


def _load_for_update(order_id: str, requester: Requester) -> tuple[Order, Subscription]:
    requester.require_login("You need to be logged in to update a subscription")

    order = current_domain.repository_for(Order).get_or_none(order_id)
    if order is None or not order.subscription_id:
        raise NotFound("Subscription not found")
    if not requester.is_admin(str(order.from_account_id)):
        raise Unauthorized("You don't have permission to update this subscription")

    subscription = current_domain.repository_for(Subscription).get(str(order.subscription_id))
    if not subscription.is_active:
        raise ValidationFailed("Subscription must be active to be updated", field="subscription")
    return order, subscription


@funding.command_handler(part_of=Subscription)
class UpdateSubscriptionHandler:
    @handle(UpdateSubscription)
    def update_subscription(self, command):
        requester = Requester.load(command.requested_by)
        order, subscription = _load_for_update(command.order_id, requester)
        orders = current_domain.repository_for(Order)
        subscriptions = current_domain.repository_for(Subscription)

        if command.payment_method_id:
            subscription.change_payment_method(str(order.id), command.payment_method_id)
            order.bind_payment(command.payment_method_id)
            logger.info(
                "Subscription payment method changed",
                order_id=str(order.id),
                subscription_id=str(subscription.id),
                payment_method_id=command.payment_method_id,
            )

        if command.amount is None:
            subscriptions.add(subscription)
            orders.add(order)
            return str(order.id)

        if command.amount == subscription.amount:
            raise ValidationFailed("Same amount", field="amount")
        if command.amount < 100 or command.amount % 100 != 0:
            raise ValidationFailed("Invalid amount", field="amount")

        successor = subscription.supersede(command.amount)
        order.cancel()
        new_order = Order.place(
            created_by_user_id=order.created_by_user_id,
            from_account_id=str(order.from_account_id),
            account_id=str(order.account_id),
            tier_id=order.tier_id,
            quantity=order.quantity,
            total_amount=command.amount,
            currency=order.currency,
            interval=order.interval,
            description=order.description,
            referral_account_id=order.referral_account_id,
            host_fee_percent=order.host_fee_percent,
            platform_fee_percent=order.platform_fee_percent,
            details=order.details,
            subscription_id=str(successor.id),
        )
        new_order.bind_payment(order.payment_method_id, manual=bool(order.manual_payment))

        subscriptions.add(subscription)
        subscriptions.add(successor)
        orders.add(order)
        orders.add(new_order)

        logger.info(
            "Subscription amount changed",
            order_id=str(order.id),
            new_order_id=str(new_order.id),
            subscription_id=str(subscription.id),
            new_subscription_id=str(successor.id),
            previous_amount=subscription.amount,
            new_amount=command.amount,
        )
        return str(new_order.id)


def update_subscription(
    order_id: str,
    requester: Requester,
    payment_method: PaymentMethodReference | None = None,
    amount: int | None = None,
) -> Order:
    """Change the payment method and/or amount of the subscription behind an order.

    Returns the order that now carries the subscription: the same one after a
    payment method change, a new PENDING one after an amount change.
    """
    order, _ = _load_for_update(order_id, requester)

    payment_method_id = None
    if payment_method is not None and payment_method.is_present:
        # A new instrument is stored in its own unit of work before the update runs
        instrument = resolve_payment_method(payment_method, str(order.from_account_id), requester, order.currency)
        if instrument is None:
            raise ValidationFailed("A subscription cannot be switched to a manual payment", field="payment_method")
        payment_method_id = str(instrument.id)

    updated_order_id = current_domain.process(
        UpdateSubscription(
            order_id=order_id,
            requested_by=requester.user_id,
            payment_method_id=payment_method_id,
            amount=amount,
        ),
        asynchronous=False,
    )
    return current_domain.repository_for(Order).get(updated_order_id)
