"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from funding.domain import funding


@funding.event(part_of="Order")
class OrderPlaced:
    """A funding order was recorded, pending payment or fulfilment."""

    __version__ = 1

    order_id = Identifier(required=True)
    from_account_id = Identifier(required=True)
    account_id = Identifier(required=True)
    tier_id = Identifier()
    total_amount = Integer(required=True)
    currency = String(required=True)
    interval = String()
    placed_at = DateTime(required=True)


@funding.event(part_of="Order")
class OrderPaid:
    """A one-off order was charged or fulfilled."""

    __version__ = 1

    order_id = Identifier(required=True)
    total_amount = Integer(required=True)
    currency = String(required=True)
    processed_at = DateTime(required=True)


@funding.event(part_of="Order")
class OrderActivated:
    """A recurring order's first charge succeeded and its subscription started."""

    __version__ = 1

    order_id = Identifier(required=True)
    subscription_id = Identifier(required=True)
    processed_at = DateTime(required=True)


@funding.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    cancelled_at = DateTime(required=True)


@funding.event(part_of="Order")
class OrderErrored:
    """Processing failed after the order was recorded."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(max_length=1000)
    errored_at = DateTime(required=True)
