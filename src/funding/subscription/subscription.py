"""Subscription aggregate: the recurring billing schedule behind a recurring order.

State Machine:
    INACTIVE (pledge placeholder) → ACTIVE → ACTIVE (renewed or retried)
    ACTIVE → INACTIVE (cancelled, superseded, or retries exhausted)

An inactive subscription never produces a charge. A renewal claims the
subscription (``charge_in_flight``) in its own unit of work before the
provider is called, and an amount change refuses to supersede a subscription
while a charge is in flight. Amount changes never edit ``amount`` in place:
a new version is created and the two are linked through
``previous_subscription_id`` / ``replaced_by_subscription_id``.
"""

from datetime import UTC, datetime, timedelta

from protean.exceptions import InvalidStateError, ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String

from funding.domain import funding
from funding.subscription.calendar import (
    DEFAULT_RETRY_DELAY_DAYS,
    BillingEvent,
    as_utc,
    next_dates,
    next_retry_count,
)
from funding.subscription.events import (
    SubscriptionActivated,
    SubscriptionCharged,
    SubscriptionChargeFailed,
    SubscriptionDeactivated,
    SubscriptionPaymentMethodChanged,
    SubscriptionSuperseded,
)

DEFAULT_CHARGE_CLAIM_TIMEOUT = timedelta(minutes=30)


@funding.aggregate
class Subscription:
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="USD")
    interval = String(required=True, max_length=10)
    is_active = Boolean(default=False)
    next_charge_date = DateTime()
    next_period_start = DateTime()
    charge_retry_count = Integer(default=0, min_value=0)
    charge_in_flight = Boolean(default=False)
    charge_claimed_at = DateTime()
    activated_at = DateTime()
    deactivated_at = DateTime()
    previous_subscription_id = Identifier()
    replaced_by_subscription_id = Identifier()
    created_at = DateTime()

    @classmethod
    def start(cls, amount: int, currency: str, interval: str, previous_subscription_id: str | None = None):
        """Create an active subscription whose first period was just paid."""
        now = datetime.now(UTC)
        subscription = cls(
            amount=amount,
            currency=currency,
            interval=interval,
            is_active=True,
            activated_at=now,
            previous_subscription_id=previous_subscription_id,
            created_at=now,
        )
        dates = next_dates(BillingEvent.NEW, subscription, now=now)
        subscription.next_charge_date = dates.next_charge_date
        subscription.next_period_start = dates.next_period_start
        subscription.raise_(
            SubscriptionActivated(
                subscription_id=str(subscription.id),
                amount=amount,
                currency=currency,
                interval=interval,
                next_charge_date=subscription.next_charge_date,
                activated_at=now,
            )
        )
        return subscription

    @classmethod
    def pledge(cls, amount: int, currency: str, interval: str):
        """Create a dormant subscription holding a pledge's amount and interval."""
        return cls(
            amount=amount,
            currency=currency,
            interval=interval,
            is_active=False,
            created_at=datetime.now(UTC),
        )

    def is_due(self, as_of: datetime) -> bool:
        charge_date = as_utc(self.next_charge_date)
        return self.is_active and charge_date is not None and charge_date <= as_utc(as_of)

    def claim_is_stale(self, as_of: datetime, timeout: timedelta = DEFAULT_CHARGE_CLAIM_TIMEOUT) -> bool:
        """True when a claim was left behind by a run that never finished."""
        if not self.charge_in_flight:
            return False
        claimed_at = as_utc(self.charge_claimed_at)
        return claimed_at is None or as_utc(as_of) - claimed_at >= timeout

    def begin_charge(
        self,
        as_of: datetime | None = None,
        claim_timeout: timedelta = DEFAULT_CHARGE_CLAIM_TIMEOUT,
    ) -> None:
        """Claim this subscription for a renewal charge.

        A claim older than ``claim_timeout`` is taken over.
        """
        as_of = as_of or datetime.now(UTC)
        if not self.is_active:
            raise ValidationError({"subscription": ["An inactive subscription cannot be charged"]})
        if self.charge_in_flight and not self.claim_is_stale(as_of, claim_timeout):
            raise InvalidStateError(f"A charge is already in progress for subscription {self.id}")
        if not self.is_due(as_of):
            raise ValidationError({"next_charge_date": ["Subscription is not due for a charge"]})
        self.charge_in_flight = True
        self.charge_claimed_at = as_of

    def release_charge(self) -> None:
        """Give up a claim whose charge never reached an outcome."""
        self.charge_in_flight = False
        self.charge_claimed_at = None

    def record_charge_success(self, now: datetime | None = None) -> None:
        now = now or datetime.now(UTC)
        dates = next_dates(BillingEvent.SUCCESS, self, now=now)
        self.charge_retry_count = next_retry_count(BillingEvent.SUCCESS, self)
        self.next_charge_date = dates.next_charge_date
        self.next_period_start = dates.next_period_start
        self.charge_in_flight = False
        self.charge_claimed_at = None
        self.raise_(
            SubscriptionCharged(
                subscription_id=str(self.id),
                amount=self.amount,
                next_charge_date=self.next_charge_date,
                charged_at=now,
            )
        )

    def record_charge_failure(
        self,
        reason: str,
        max_retries: int,
        retry_delay_days: int = DEFAULT_RETRY_DELAY_DAYS,
        now: datetime | None = None,
    ) -> bool:
        """Count a failed renewal. Returns True when retries are exhausted."""
        now = now or datetime.now(UTC)
        dates = next_dates(BillingEvent.FAILURE, self, now=now, retry_delay_days=retry_delay_days)
        self.charge_retry_count = next_retry_count(BillingEvent.FAILURE, self)
        self.next_charge_date = dates.next_charge_date
        self.charge_in_flight = False
        self.charge_claimed_at = None
        self.raise_(
            SubscriptionChargeFailed(
                subscription_id=str(self.id),
                reason=reason,
                charge_retry_count=self.charge_retry_count,
                next_charge_date=self.next_charge_date,
                failed_at=now,
            )
        )

        exhausted = self.charge_retry_count >= max_retries
        if exhausted:
            self.deactivate(reason="Charge retries exhausted")
        return exhausted

    def deactivate(self, reason: str) -> None:
        if not self.is_active:
            return
        now = datetime.now(UTC)
        self.is_active = False
        self.deactivated_at = now
        self.raise_(
            SubscriptionDeactivated(
                subscription_id=str(self.id),
                reason=reason,
                deactivated_at=now,
            )
        )

    def change_payment_method(self, order_id: str, payment_method_id: str | None) -> None:
        """Reschedule after a payment method swap if the last cycle failed."""
        now = datetime.now(UTC)
        if (self.charge_retry_count or 0) > 0:
            dates = next_dates(BillingEvent.UPDATED, self, now=now)
            self.next_charge_date = dates.next_charge_date
            self.charge_retry_count = next_retry_count(BillingEvent.UPDATED, self)
        self.raise_(
            SubscriptionPaymentMethodChanged(
                subscription_id=str(self.id),
                order_id=order_id,
                payment_method_id=payment_method_id,
                next_charge_date=self.next_charge_date,
                changed_at=now,
            )
        )

    def supersede(self, amount: int) -> "Subscription":
        """Retire this version and return a new one billing ``amount``."""
        if not self.is_active:
            raise ValidationError({"subscription": ["Subscription must be active to be updated"]})
        if self.charge_in_flight:
            raise InvalidStateError(f"A charge is in progress for subscription {self.id}; try again later")

        now = datetime.now(UTC)
        successor = Subscription(
            amount=amount,
            currency=self.currency,
            interval=self.interval,
            is_active=True,
            next_charge_date=self.next_charge_date,
            next_period_start=self.next_period_start,
            charge_retry_count=self.charge_retry_count,
            activated_at=now,
            previous_subscription_id=str(self.id),
            created_at=now,
        )
        self.replaced_by_subscription_id = str(successor.id)
        self.deactivate(reason="Superseded by an amount change")
        self.raise_(
            SubscriptionSuperseded(
                subscription_id=str(self.id),
                replaced_by_subscription_id=str(successor.id),
                previous_amount=self.amount,
                new_amount=amount,
                superseded_at=now,
            )
        )
        return successor


@funding.repository(part_of=Subscription)
class SubscriptionRepository:
    def active(self) -> list[Subscription]:
        return self._dao.query.filter(is_active=True).all().items
