"""Order aggregate: a single funding intent, one-off or recurring.

State Machine:
    PENDING → PAID        (one-off charge succeeded, or free registration)
    PENDING → ACTIVE      (first charge of a recurring order succeeded)
    PENDING → ERROR       (processing failed after the order was recorded)
    PENDING → CANCELLED   (pledge or superseded order cancelled)
    ACTIVE  → CANCELLED   (subscription cancelled or superseded)
    ACTIVE  → ERROR       (renewal retries exhausted)

``processed_at`` is stamped exactly once, when money moved or a free
registration was fulfilled.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Dict, Identifier, Integer, String

from funding.domain import funding
from funding.order.events import (
    OrderActivated,
    OrderCancelled,
    OrderErrored,
    OrderPaid,
    OrderPlaced,
)


class OrderStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    ERROR = "ERROR"


class Interval(Enum):
    MONTH = "month"
    YEAR = "year"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.PAID,
        OrderStatus.ACTIVE,
        OrderStatus.ERROR,
        OrderStatus.CANCELLED,
    },
    OrderStatus.ACTIVE: {OrderStatus.CANCELLED, OrderStatus.ERROR},
    OrderStatus.PAID: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.ERROR: set(),  # Terminal
}


@funding.aggregate
class Order:
    created_by_user_id = Identifier()
    from_account_id = Identifier(required=True)
    account_id = Identifier(required=True)
    tier_id = Identifier()
    quantity = Integer(default=1, min_value=1)
    total_amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="USD")
    interval = String(choices=Interval)
    description = String(max_length=500)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    processed_at = DateTime()
    subscription_id = Identifier()
    referral_account_id = Identifier()
    matching_payment_method_id = Identifier()
    payment_method_id = Identifier()
    manual_payment = Boolean(default=False)
    host_fee_percent = Integer(min_value=0, max_value=100)
    platform_fee_percent = Integer(min_value=0, max_value=100)
    details = Dict()
    created_at = DateTime()
    updated_at = DateTime()

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _stamp_processed(self, now: datetime) -> None:
        if self.processed_at is not None:
            raise ValidationError({"processed_at": [f"Order {self.id} has already been processed"]})
        self.processed_at = now

    @classmethod
    def place(
        cls,
        from_account_id: str,
        account_id: str,
        total_amount: int,
        currency: str,
        created_by_user_id: str | None = None,
        tier_id: str | None = None,
        quantity: int = 1,
        interval: str | None = None,
        description: str | None = None,
        referral_account_id: str | None = None,
        matching_payment_method_id: str | None = None,
        host_fee_percent: int | None = None,
        platform_fee_percent: int | None = None,
        details: dict | None = None,
        subscription_id: str | None = None,
    ):
        now = datetime.now(UTC)
        order = cls(
            created_by_user_id=created_by_user_id,
            from_account_id=from_account_id,
            account_id=account_id,
            tier_id=tier_id,
            quantity=quantity,
            total_amount=total_amount,
            currency=currency,
            interval=interval,
            description=description,
            referral_account_id=referral_account_id,
            matching_payment_method_id=matching_payment_method_id,
            host_fee_percent=host_fee_percent,
            platform_fee_percent=platform_fee_percent,
            details=details or {},
            subscription_id=subscription_id,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                from_account_id=from_account_id,
                account_id=account_id,
                tier_id=tier_id,
                total_amount=total_amount,
                currency=currency,
                interval=interval,
                placed_at=now,
            )
        )
        return order

    @property
    def is_processed(self) -> bool:
        return self.processed_at is not None

    def bind_payment(self, payment_method_id: str | None, manual: bool = False) -> None:
        self.payment_method_id = payment_method_id
        self.manual_payment = manual
        self.updated_at = datetime.now(UTC)

    def change_interval(self, interval: str | None) -> None:
        if self.is_processed:
            raise ValidationError({"interval": ["Cannot change the interval of a processed order"]})
        self.interval = interval
        self.updated_at = datetime.now(UTC)

    def attach_subscription(self, subscription_id: str) -> None:
        self.subscription_id = subscription_id
        self.updated_at = datetime.now(UTC)

    def mark_paid(self) -> None:
        self._assert_can_transition(OrderStatus.PAID)
        now = datetime.now(UTC)
        self._stamp_processed(now)
        self.status = OrderStatus.PAID.value
        self.updated_at = now
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                total_amount=self.total_amount,
                currency=self.currency,
                processed_at=now,
            )
        )

    def activate(self, subscription_id: str) -> None:
        self._assert_can_transition(OrderStatus.ACTIVE)
        now = datetime.now(UTC)
        self._stamp_processed(now)
        self.status = OrderStatus.ACTIVE.value
        self.subscription_id = subscription_id
        self.updated_at = now
        self.raise_(
            OrderActivated(
                order_id=str(self.id),
                subscription_id=subscription_id,
                processed_at=now,
            )
        )

    def cancel(self) -> None:
        self._assert_can_transition(OrderStatus.CANCELLED)
        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.updated_at = now
        self.raise_(OrderCancelled(order_id=str(self.id), cancelled_at=now))

    def mark_errored(self, reason: str | None = None) -> None:
        self._assert_can_transition(OrderStatus.ERROR)
        now = datetime.now(UTC)
        self.status = OrderStatus.ERROR.value
        self.details = {**(self.details or {}), "error": reason}
        self.updated_at = now
        self.raise_(OrderErrored(order_id=str(self.id), reason=reason, errored_at=now))


@funding.repository(part_of=Order)
class OrderRepository:
    def for_subscription(self, subscription_id: str) -> Order | None:
        found = self._dao.query.filter(subscription_id=subscription_id).all().items
        return found[0] if found else None
