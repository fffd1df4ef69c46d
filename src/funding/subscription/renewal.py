"""Subscription renewal: charges active subscriptions that are due.

A renewal is two units of work. ``BeginSubscriptionCharge`` claims the
subscription (``charge_in_flight``) and commits, so a concurrent amount
change sees the claim and refuses. ``ChargeSubscription`` then charges the
payment method through the same path as a first charge and records the
outcome: on success the retry count resets and the dates advance; on
failure the count goes up and the next attempt moves ``retry_delay_days``
out, until ``max_charge_retries`` deactivates the subscription and errors
its order. A failed charge is an outcome, not an error, so its state is
committed.

The charge step re-reads the subscription: one cancelled or released
since the claim is skipped without touching the provider. A claim older
than ``charge_claim_timeout_minutes`` is treated as abandoned and can be
taken over by the next run.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from funding.domain import funding
from funding.errors import ChargeFailed, NotFound
from funding.order.charge import collect_payment, order_fees, record_transactions
from funding.order.order import Order, OrderStatus
from funding.payment_method.payment_method import PaymentMethod
from funding.subscription.calendar import DEFAULT_RETRY_DELAY_DAYS, as_utc
from funding.subscription.subscription import Subscription

logger = structlog.get_logger(__name__)


@funding.command(part_of="Subscription")
class BeginSubscriptionCharge:
    subscription_id = Identifier(required=True)
    as_of = DateTime()


@funding.command(part_of="Subscription")
class ChargeSubscription:
    subscription_id = Identifier(required=True)
    as_of = DateTime()
    claimed_at = DateTime()


@funding.command(part_of="Subscription")
class ReleaseSubscriptionCharge:
    subscription_id = Identifier(required=True)


@dataclass(frozen=True)
class RenewalOutcome:
    subscription_id: str
    charged: bool
    failure_reason: str | None = None
    exhausted: bool = False
    skipped: bool = False


@dataclass
class RenewalReport:
    charged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    deactivated: list[str] = field(default_factory=list)
    errored: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.charged) + len(self.failed) + len(self.errored)


def _renewal_settings() -> tuple[int, int]:
    custom = current_domain.config["custom"]
    return (
        custom.get("max_charge_retries", 6),
        custom.get("retry_delay_days", DEFAULT_RETRY_DELAY_DAYS),
    )


def _claim_timeout() -> timedelta:
    minutes = current_domain.config["custom"].get("charge_claim_timeout_minutes", 30)
    return timedelta(minutes=minutes)


@funding.command_handler(part_of=Subscription)
class RenewalHandler:
    @handle(BeginSubscriptionCharge)
    def begin_charge(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        subscription.begin_charge(command.as_of or datetime.now(UTC), claim_timeout=_claim_timeout())
        repo.add(subscription)
        return subscription.charge_claimed_at

    @handle(ReleaseSubscriptionCharge)
    def release_charge(self, command):
        repo = current_domain.repository_for(Subscription)
        subscription = repo.get(command.subscription_id)
        subscription.release_charge()
        repo.add(subscription)

    @handle(ChargeSubscription)
    def charge_subscription(self, command):
        now = command.as_of or datetime.now(UTC)
        subscriptions = current_domain.repository_for(Subscription)
        orders = current_domain.repository_for(Order)
        subscription = subscriptions.get(command.subscription_id)
        skipped = self._skip_unclaimed(subscription, command.claimed_at)
        if skipped:
            return skipped

        order = orders.for_subscription(str(subscription.id))
        if order is None:
            raise NotFound(f"No order found for subscription {subscription.id}")

        cycle = as_utc(subscription.next_charge_date)
        idempotency_key = f"{subscription.id}:{cycle.isoformat() if cycle else 'initial'}"
        max_retries, retry_delay_days = _renewal_settings()

        try:
            if not order.payment_method_id:
                raise ChargeFailed("Subscription has no payment method to charge")
            payment_method = current_domain.repository_for(PaymentMethod).get(str(order.payment_method_id))
            collected = collect_payment(
                payment_method,
                amount=subscription.amount,
                currency=subscription.currency,
                idempotency_key=idempotency_key,
                description=order.description,
            )
        except (ChargeFailed, ValidationError) as exc:
            reason = getattr(exc, "reason", None) or getattr(exc, "message", None) or str(exc)
            exhausted = subscription.record_charge_failure(
                reason,
                max_retries=max_retries,
                retry_delay_days=retry_delay_days,
                now=now,
            )
            if exhausted:
                order.mark_errored(f"Charge retries exhausted: {reason}")
                orders.add(order)
            subscriptions.add(subscription)
            logger.warning(
                "Subscription charge failed",
                subscription_id=str(subscription.id),
                order_id=str(order.id),
                reason=reason,
                charge_retry_count=subscription.charge_retry_count,
                exhausted=exhausted,
            )
            return RenewalOutcome(str(subscription.id), charged=False, failure_reason=reason, exhausted=exhausted)

        record_transactions(
            order,
            amount=subscription.amount,
            fees=order_fees(order, collected.processor_fee),
            payment_method_id=str(payment_method.id),
            provider_charge_id=collected.provider_charge_id,
        )
        subscription.record_charge_success(now)
        if order.status == OrderStatus.PENDING.value:
            order.activate(str(subscription.id))
            orders.add(order)
        subscriptions.add(subscription)

        logger.info(
            "Subscription charged",
            subscription_id=str(subscription.id),
            order_id=str(order.id),
            amount=subscription.amount,
            next_charge_date=subscription.next_charge_date.isoformat(),
        )
        return RenewalOutcome(str(subscription.id), charged=True)

    def _skip_unclaimed(self, subscription, claimed_at):
        """Skip a subscription this charge no longer owns."""
        if claimed_at is not None and subscription.charge_in_flight:
            if as_utc(subscription.charge_claimed_at) != as_utc(claimed_at):
                logger.info("Subscription claimed by another run, charge skipped", subscription_id=str(subscription.id))
                return RenewalOutcome(str(subscription.id), charged=False, skipped=True)
        if subscription.is_active and subscription.charge_in_flight:
            return None

        subscription.release_charge()
        current_domain.repository_for(Subscription).add(subscription)
        logger.info(
            "Subscription no longer chargeable, charge skipped",
            subscription_id=str(subscription.id),
            is_active=subscription.is_active,
        )
        return RenewalOutcome(str(subscription.id), charged=False, skipped=True)


def charge_subscription(subscription_id: str, now: datetime | None = None) -> RenewalOutcome:
    """Claim one due subscription and charge it."""
    now = now or datetime.now(UTC)
    claimed_at = current_domain.process(
        BeginSubscriptionCharge(subscription_id=subscription_id, as_of=now),
        asynchronous=False,
    )
    try:
        return current_domain.process(
            ChargeSubscription(subscription_id=subscription_id, as_of=now, claimed_at=claimed_at),
            asynchronous=False,
        )
    except Exception:
        current_domain.process(ReleaseSubscriptionCharge(subscription_id=subscription_id), asynchronous=False)
        raise


def due_subscriptions(as_of: datetime) -> list[Subscription]:
    """Due subscriptions that are unclaimed or whose claim was abandoned."""
    timeout = _claim_timeout()
    return [
        subscription
        for subscription in current_domain.repository_for(Subscription).active()
        if subscription.is_due(as_of)
        and (not subscription.charge_in_flight or subscription.claim_is_stale(as_of, timeout))
    ]


def charge_due_subscriptions(as_of: datetime | None = None) -> RenewalReport:
    """Renew every subscription due at ``as_of``. One failure never stops the run."""
    as_of = as_of or datetime.now(UTC)
    report = RenewalReport()
    for subscription in due_subscriptions(as_of):
        subscription_id = str(subscription.id)
        try:
            outcome = charge_subscription(subscription_id, now=as_of)
        except Exception as exc:
            logger.error(
                "Subscription renewal errored",
                subscription_id=subscription_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            report.errored.append(subscription_id)
            continue

        if outcome.skipped:
            report.skipped.append(subscription_id)
        elif outcome.charged:
            report.charged.append(subscription_id)
        else:
            report.failed.append(subscription_id)
            if outcome.exhausted:
                report.deactivated.append(subscription_id)

    logger.info(
        "Subscription renewal run finished",
        as_of=as_of.isoformat(),
        charged=len(report.charged),
        failed=len(report.failed),
        deactivated=len(report.deactivated),
        errored=len(report.errored),
        skipped=len(report.skipped),
    )
    return report
