"""Order charge execution: the one place money moves for an order.

``ChargeOrder`` runs in a single unit of work: it refuses an order that was
already processed, re-checks tier capacity and prepaid balances, calls the
payment provider (keyed by the order id), records the transaction pair,
moves the order to PAID or ACTIVE, starts the subscription of a recurring
order and grants the source account its BACKER role. If anything raises,
none of it is committed.

A manual payment reference only flags the order (``AwaitManualPayment``);
it stays PENDING until a host admin marks it paid, which charges it with
``manual=True`` and skips the provider. Prepaid methods are debited locally.
Provider declines and timeouts both surface as ``ChargeFailed``.
"""

from dataclasses import dataclass

import structlog
from protean import handle
from protean.exceptions import InvalidStateError
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from funding.account.membership import Membership, MembershipRole
from funding.activity.activity import Activity, ActivityType
from funding.domain import funding
from funding.errors import ChargeFailed, PaymentMethodRequired
from funding.gateway import get_gateway
from funding.order.order import Order, OrderStatus
from funding.payment_method.payment_method import PaymentMethod
from funding.subscription.subscription import Subscription
from funding.tier.tier import Tier
from funding.transaction.transaction import Fees, Transaction

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CollectedPayment:
    provider_charge_id: str | None = None
    processor_fee: int = 0


def collect_payment(
    payment_method: PaymentMethod | None,
    amount: int,
    currency: str,
    idempotency_key: str,
    description: str | None = None,
) -> CollectedPayment:
    """Take ``amount`` from the payment method. ``None`` means a manual payment."""
    if payment_method is None:
        return CollectedPayment()

    if payment_method.is_prepaid:
        payment_method.debit(amount)
        current_domain.repository_for(PaymentMethod).add(payment_method)
        return CollectedPayment()

    try:
        result = get_gateway().create_charge(
            amount=amount,
            currency=currency,
            token=payment_method.token,
            idempotency_key=idempotency_key,
            description=description,
        )
    except TimeoutError as exc:
        logger.error("Payment provider timed out", idempotency_key=idempotency_key, amount=amount)
        raise ChargeFailed("Payment provider did not respond in time") from exc

    if not result.success:
        logger.warning(
            "Payment provider declined charge",
            idempotency_key=idempotency_key,
            reason=result.failure_reason,
        )
        raise ChargeFailed(result.failure_reason or "Payment declined")
    return CollectedPayment(provider_charge_id=result.provider_charge_id, processor_fee=result.processor_fee)


def order_fees(order: Order, processor_fee: int = 0) -> Fees:
    platform_fee_percent = order.platform_fee_percent
    if platform_fee_percent is None:
        platform_fee_percent = current_domain.config["custom"].get("default_platform_fee_percent", 0)
    return Fees(
        host_fee_percent=order.host_fee_percent or 0,
        platform_fee_percent=platform_fee_percent,
        payment_processor_fee=processor_fee,
    )


def record_transactions(
    order: Order,
    amount: int,
    fees: Fees,
    payment_method_id: str | None,
    provider_charge_id: str | None = None,
    from_account_id: str | None = None,
    description: str | None = None,
) -> Transaction:
    credit, debit = Transaction.record_charge(
        order,
        amount=amount,
        fees=fees,
        payment_method_id=payment_method_id,
        provider_charge_id=provider_charge_id,
        from_account_id=from_account_id,
        description=description,
    )
    repo = current_domain.repository_for(Transaction)
    repo.add(credit)
    repo.add(debit)
    return credit


@funding.command(part_of="Order")
class ChargeOrder:
    order_id = Identifier(required=True)
    payment_method_id = Identifier()
    manual = Boolean(default=False)


@funding.command(part_of="Order")
class AwaitManualPayment:
    order_id = Identifier(required=True)


@funding.command(part_of="Order")
class MarkOrderErrored:
    order_id = Identifier(required=True)
    reason = String(max_length=1000)


@funding.command_handler(part_of=Order)
class OrderChargeHandler:
    @handle(ChargeOrder)
    def charge_order(self, command):
        orders = current_domain.repository_for(Order)
        order = orders.get(command.order_id)
        if order.is_processed or order.status != OrderStatus.PENDING.value:
            raise InvalidStateError(f"Order {order.id} has already been processed")

        payment_method = None
        if not command.manual:
            if not command.payment_method_id:
                raise PaymentMethodRequired()
            payment_method = current_domain.repository_for(PaymentMethod).get(command.payment_method_id)
        order.bind_payment(str(payment_method.id) if payment_method else None, manual=bool(command.manual))

        if order.tier_id:
            tier_repo = current_domain.repository_for(Tier)
            tier = tier_repo.get(order.tier_id)
            tier.record_sale(order.quantity or 1)
            tier_repo.add(tier)

        matching_fund, matched_amount = self._reserve_matching_fund(order)

        collected = collect_payment(
            payment_method,
            amount=order.total_amount,
            currency=order.currency,
            idempotency_key=str(order.id),
            description=order.description,
        )
        credit = record_transactions(
            order,
            amount=order.total_amount,
            fees=order_fees(order, collected.processor_fee),
            payment_method_id=order.payment_method_id,
            provider_charge_id=collected.provider_charge_id,
        )
        if matching_fund:
            record_transactions(
                order,
                amount=matched_amount,
                fees=order_fees(order),
                payment_method_id=str(matching_fund.id),
                from_account_id=str(matching_fund.account_id),
                description=f"Matching fund for {order.description}",
            )

        if order.interval:
            subscription = Subscription.start(
                amount=order.total_amount,
                currency=order.currency,
                interval=order.interval,
            )
            current_domain.repository_for(Subscription).add(subscription)
            order.activate(str(subscription.id))
        else:
            order.mark_paid()

        current_domain.repository_for(Membership).grant(
            member_account_id=str(order.from_account_id),
            account_id=str(order.account_id),
            role=MembershipRole.BACKER,
            created_by_user_id=order.created_by_user_id,
            tier_id=order.tier_id,
        )
        current_domain.repository_for(Activity).add(
            Activity.record(
                ActivityType.ORDER_PROCESSED,
                account_id=str(order.account_id),
                user_id=order.created_by_user_id,
                order_id=str(order.id),
                payload={
                    "total_amount": order.total_amount,
                    "currency": order.currency,
                    "interval": order.interval,
                    "transaction_id": str(credit.id),
                },
            )
        )
        orders.add(order)

        logger.info(
            "Order charged",
            order_id=str(order.id),
            amount=order.total_amount,
            currency=order.currency,
            manual=bool(command.manual),
            status=order.status,
        )
        return str(order.id)

    def _reserve_matching_fund(self, order: Order) -> tuple[PaymentMethod | None, int]:
        if not order.matching_payment_method_id:
            return None, 0
        repo = current_domain.repository_for(PaymentMethod)
        fund = repo.get(order.matching_payment_method_id)
        if not fund.can_match(order.total_amount, order.currency, str(order.account_id)):
            logger.info(
                "Matching fund no longer usable, charging without it",
                order_id=str(order.id),
                matching_fund_id=str(fund.id),
            )
            return None, 0
        matched_amount = order.total_amount * fund.matching
        fund.debit(matched_amount)
        repo.add(fund)
        return fund, matched_amount

    @handle(AwaitManualPayment)
    def await_manual_payment(self, command):
        orders = current_domain.repository_for(Order)
        order = orders.get(command.order_id)
        if order.is_processed or order.status != OrderStatus.PENDING.value:
            raise InvalidStateError(f"Order {order.id} has already been processed")
        order.bind_payment(None, manual=True)
        orders.add(order)
        logger.info("Order awaiting manual payment", order_id=str(order.id), amount=order.total_amount)

    @handle(MarkOrderErrored)
    def mark_order_errored(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.is_processed or order.status != OrderStatus.PENDING.value:
            logger.info(
                "Order already processed, not marking as errored",
                order_id=str(order.id),
                status=order.status,
            )
            return
        order.mark_errored(command.reason)
        repo.add(order)
