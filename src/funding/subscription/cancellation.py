"""Subscription cancellation."""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from funding.account.requester import Requester
from funding.activity.activity import Activity, ActivityType
from funding.domain import funding
from funding.errors import NotFound, Unauthorized, ValidationFailed
from funding.order.order import Order, OrderStatus
from funding.subscription.subscription import Subscription

logger = structlog.get_logger(__name__)


@funding.command(part_of="Subscription")
class CancelSubscription:
    order_id = Identifier(required=True)
    requested_by = Identifier()


@funding.command_handler(part_of=Subscription)
class CancelSubscriptionHandler:
    @handle(CancelSubscription)
    def cancel_subscription(self, command):
        requester = Requester.load(command.requested_by)
        requester.require_login("You need to be logged in to cancel a subscription")

        orders = current_domain.repository_for(Order)
        order = orders.get_or_none(command.order_id)
        if order is None or not order.subscription_id:
            raise NotFound("Subscription not found")
        if not requester.is_admin(str(order.from_account_id)):
            raise Unauthorized("You don't have permission to cancel this subscription")

        subscriptions = current_domain.repository_for(Subscription)
        subscription = subscriptions.get(str(order.subscription_id))
        if not subscription.is_active and order.status == OrderStatus.CANCELLED.value:
            raise ValidationFailed("Subscription already canceled", field="subscription")

        subscription.deactivate(reason="Cancelled by the contributor")
        order.cancel()
        subscriptions.add(subscription)
        orders.add(order)
        current_domain.repository_for(Activity).add(
            Activity.record(
                ActivityType.SUBSCRIPTION_CANCELED,
                account_id=str(order.account_id),
                user_id=order.created_by_user_id,
                order_id=str(order.id),
                payload={
                    "subscription_id": str(subscription.id),
                    "amount": subscription.amount,
                    "interval": subscription.interval,
                    "from_account_id": str(order.from_account_id),
                    "cancelled_by": requester.user_id,
                },
            )
        )

        logger.info(
            "Subscription cancelled",
            order_id=str(order.id),
            subscription_id=str(subscription.id),
            user_id=requester.user_id,
        )
        return str(order.id)
