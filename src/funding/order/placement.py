"""Order placement: records a validated order as PENDING.

The order is committed on its own before any payment is attempted, so a
failure later on always has a concrete order to mark as errored.
"""

from protean import handle
from protean.fields import Dict, Identifier, Integer, String
from protean.utils.globals import current_domain

from funding.domain import funding
from funding.order.order import Order


@funding.command(part_of="Order")
class PlaceOrder:
    created_by_user_id = Identifier(required=True)
    from_account_id = Identifier(required=True)
    account_id = Identifier(required=True)
    tier_id = Identifier()
    quantity = Integer(default=1)
    total_amount = Integer(required=True)
    currency = String(required=True, max_length=3)
    interval = String(max_length=10)
    description = String(max_length=500)
    referral_account_id = Identifier()
    matching_payment_method_id = Identifier()
    host_fee_percent = Integer()
    platform_fee_percent = Integer()
    details = Dict()


@funding.command(part_of="Order")
class ReviseOrder:
    """Change the interval and fee overrides of an order that was not processed yet."""

    order_id = Identifier(required=True)
    interval = String(max_length=10)
    host_fee_percent = Integer()
    platform_fee_percent = Integer()


@funding.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        order = Order.place(
            created_by_user_id=command.created_by_user_id,
            from_account_id=command.from_account_id,
            account_id=command.account_id,
            tier_id=command.tier_id,
            quantity=command.quantity or 1,
            total_amount=command.total_amount,
            currency=command.currency,
            interval=command.interval,
            description=command.description,
            referral_account_id=command.referral_account_id,
            matching_payment_method_id=command.matching_payment_method_id,
            host_fee_percent=command.host_fee_percent,
            platform_fee_percent=command.platform_fee_percent,
            details=command.details,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)

    @handle(ReviseOrder)
    def revise_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.change_interval(command.interval)
        if command.host_fee_percent is not None:
            order.host_fee_percent = command.host_fee_percent
        if command.platform_fee_percent is not None:
            order.platform_fee_percent = command.platform_fee_percent
        repo.add(order)
