"""Domain events for the Subscription aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from funding.domain import funding


@funding.event(part_of="Subscription")
class SubscriptionActivated:
    __version__ = 1

    subscription_id = Identifier(required=True)
    amount = Integer(required=True)
    currency = String(required=True)
    interval = String(required=True)
    next_charge_date = DateTime()
    activated_at = DateTime(required=True)


@funding.event(part_of="Subscription")
class SubscriptionCharged:
    """A renewal charge succeeded; retries were reset and the period advanced."""

    __version__ = 1

    subscription_id = Identifier(required=True)
    amount = Integer(required=True)
    next_charge_date = DateTime(required=True)
    charged_at = DateTime(required=True)


@funding.event(part_of="Subscription")
class SubscriptionChargeFailed:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reason = String(max_length=1000)
    charge_retry_count = Integer(required=True)
    next_charge_date = DateTime()
    failed_at = DateTime(required=True)


@funding.event(part_of="Subscription")
class SubscriptionDeactivated:
    __version__ = 1

    subscription_id = Identifier(required=True)
    reason = String(max_length=255)
    deactivated_at = DateTime(required=True)


@funding.event(part_of="Subscription")
class SubscriptionSuperseded:
    """A new subscription version replaced this one after an amount change."""

    __version__ = 1

    subscription_id = Identifier(required=True)
    replaced_by_subscription_id = Identifier(required=True)
    previous_amount = Integer(required=True)
    new_amount = Integer(required=True)
    superseded_at = DateTime(required=True)


@funding.event(part_of="Subscription")
class SubscriptionPaymentMethodChanged:
    __version__ = 1

    subscription_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_method_id = Identifier()
    next_charge_date = DateTime()
    changed_at = DateTime(required=True)
