"""Order outcomes that need no charge: pledges and free registrations."""

import structlog
from protean import handle
from protean.exceptions import InvalidStateError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from funding.account.membership import Membership, MembershipRole
from funding.activity.activity import Activity, ActivityType
from funding.domain import funding
from funding.order.order import Order, OrderStatus
from funding.subscription.subscription import Subscription
from funding.tier.tier import Tier

logger = structlog.get_logger(__name__)


@funding.command(part_of="Order")
class StartPledge:
    order_id = Identifier(required=True)


@funding.command(part_of="Order")
class FulfilRegistration:
    order_id = Identifier(required=True)


@funding.command_handler(part_of=Order)
class OrderFulfilmentHandler:
    @handle(StartPledge)
    def start_pledge(self, command):
        """Attach a dormant subscription; the order stays PENDING until the project claims it."""
        orders = current_domain.repository_for(Order)
        order = orders.get(command.order_id)
        if order.subscription_id:
            return str(order.subscription_id)

        subscription = Subscription.pledge(
            amount=order.total_amount,
            currency=order.currency,
            interval=order.interval,
        )
        current_domain.repository_for(Subscription).add(subscription)
        order.attach_subscription(str(subscription.id))
        orders.add(order)

        logger.info("Pledge recorded", order_id=str(order.id), subscription_id=str(subscription.id))
        return str(subscription.id)

    @handle(FulfilRegistration)
    def fulfil_registration(self, command):
        orders = current_domain.repository_for(Order)
        order = orders.get(command.order_id)
        if order.is_processed or order.status != OrderStatus.PENDING.value:
            raise InvalidStateError(f"Order {order.id} has already been processed")

        if order.tier_id:
            tier_repo = current_domain.repository_for(Tier)
            tier = tier_repo.get(order.tier_id)
            tier.record_sale(order.quantity or 1)
            tier_repo.add(tier)

        order.mark_paid()
        current_domain.repository_for(Membership).grant(
            member_account_id=str(order.from_account_id),
            account_id=str(order.account_id),
            role=MembershipRole.ATTENDEE,
            created_by_user_id=order.created_by_user_id,
            tier_id=order.tier_id,
        )
        current_domain.repository_for(Activity).add(
            Activity.record(
                ActivityType.TICKET_CONFIRMED,
                account_id=str(order.account_id),
                user_id=order.created_by_user_id,
                order_id=str(order.id),
                payload={"tier_id": order.tier_id, "quantity": order.quantity},
            )
        )
        orders.add(order)

        logger.info("Registration confirmed", order_id=str(order.id), account_id=str(order.account_id))
        return str(order.id)
