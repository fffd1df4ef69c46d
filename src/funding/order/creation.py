"""Order operations exposed to callers: create, update and mark as paid.

Each step runs as its own command so that the PENDING order is committed
before any money moves. When a later step fails the order is marked ERROR
(unless it was processed after all) and the original error propagates.
"""

import structlog
from protean.utils.globals import current_domain

from funding.account.account import Account, AccountType
from funding.account.membership import GrantRole, MembershipRole
from funding.account.requester import Requester
from funding.errors import NotFound, PaymentMethodRequired, Unauthorized, ValidationFailed
from funding.limits.limiter import check_order_limits
from funding.order.charge import AwaitManualPayment, ChargeOrder, MarkOrderErrored
from funding.order.fulfilment import FulfilRegistration, StartPledge
from funding.order.order import Order, OrderStatus
from funding.order.placement import PlaceOrder, ReviseOrder
from funding.order.request import OrderRequest, OrderUpdate, RequestContext
from funding.order.validation import OrderValidator, ValidatedOrder
from funding.payment_method.resolver import PaymentMethodReference, resolve_payment_method
from funding.verification.checks import check_challenge

logger = structlog.get_logger(__name__)


def create_order(request: OrderRequest, requester: Requester, context: RequestContext | None = None) -> Order:
    context = context or RequestContext()
    check_order_limits(request, requester, context)
    challenge_response = check_challenge(request.recaptcha_token, requester, context.ip)
    validated = OrderValidator(requester, context, challenge_response).validate(request)
    return execute_order(validated, requester)


def execute_order(validated: ValidatedOrder, requester: Requester) -> Order:
    order_id = current_domain.process(
        PlaceOrder(
            created_by_user_id=str(validated.user.id),
            from_account_id=str(validated.source.id),
            account_id=str(validated.destination.id),
            tier_id=str(validated.tier.id) if validated.tier else None,
            quantity=validated.quantity,
            total_amount=validated.total_amount,
            currency=validated.currency,
            interval=validated.interval,
            description=validated.description,
            referral_account_id=validated.referral_account_id,
            matching_payment_method_id=str(validated.matching_fund.id) if validated.matching_fund else None,
            host_fee_percent=validated.host_fee_percent,
            platform_fee_percent=validated.platform_fee_percent,
            details=validated.details,
        ),
        asynchronous=False,
    )
    logger.info(
        "Order placed",
        order_id=order_id,
        account_id=str(validated.destination.id),
        from_account_id=str(validated.source.id),
        total_amount=validated.total_amount,
        currency=validated.currency,
        interval=validated.interval,
    )

    destination = validated.destination
    try:
        if validated.payment_required:
            _charge(order_id, validated.payment_method, str(validated.source.id), requester, validated.currency)
        elif validated.interval and destination.account_type == AccountType.COLLECTIVE.value:
            current_domain.process(StartPledge(order_id=order_id), asynchronous=False)
        elif destination.account_type == AccountType.EVENT.value:
            current_domain.process(FulfilRegistration(order_id=order_id), asynchronous=False)
    except Exception as exc:
        logger.error("Order processing failed", order_id=order_id, error=str(exc), error_type=type(exc).__name__)
        current_domain.process(MarkOrderErrored(order_id=order_id, reason=str(exc)), asynchronous=False)
        raise

    order = current_domain.repository_for(Order).get(order_id)
    _grant_fundraiser(order, validated)
    return order


def _charge(
    order_id: str,
    reference: PaymentMethodReference,
    owner_account_id: str,
    requester: Requester,
    currency: str,
) -> None:
    payment_method = resolve_payment_method(reference, owner_account_id, requester, currency)
    if payment_method is None:
        current_domain.process(AwaitManualPayment(order_id=order_id), asynchronous=False)
        return
    current_domain.process(
        ChargeOrder(order_id=order_id, payment_method_id=str(payment_method.id)),
        asynchronous=False,
    )


def _grant_fundraiser(order: Order, validated: ValidatedOrder) -> None:
    referral = order.referral_account_id
    if not referral or str(referral) == str(validated.user.account_id):
        return
    try:
        current_domain.process(
            GrantRole(
                member_account_id=str(referral),
                account_id=str(order.account_id),
                role=MembershipRole.FUNDRAISER.value,
                created_by_user_id=str(validated.user.id),
            ),
            asynchronous=False,
        )
    except Exception as exc:
        logger.warning(
            "Could not grant fundraiser role",
            order_id=str(order.id),
            referral_account_id=str(referral),
            error=str(exc),
        )


def update_order(order_id: str, update: OrderUpdate, requester: Requester) -> Order:
    """Retry payment of an order that was not processed yet."""
    requester.require_login("You need to be logged in to update an order")

    orders = current_domain.repository_for(Order)
    order = orders.get_or_none(order_id)
    if order is None:
        raise NotFound("Existing order not found")
    destination = current_domain.repository_for(Account).get(str(order.account_id))

    if update.platform_fee_percent is not None and not requester.is_root:
        raise Unauthorized("Only a root can change the platform fee")
    if update.host_fee_percent is not None and not requester.is_admin(destination.host_account_id):
        raise Unauthorized("Only an admin of the host can change the host fee")

    payment_required = (order.total_amount or 0) > 0 and destination.is_active
    if not payment_required:
        return order
    if not update.payment_method.is_present:
        raise PaymentMethodRequired()

    current_domain.process(
        ReviseOrder(
            order_id=order_id,
            interval=update.interval,
            host_fee_percent=update.host_fee_percent,
            platform_fee_percent=update.platform_fee_percent,
        ),
        asynchronous=False,
    )
    _charge(order_id, update.payment_method, str(order.from_account_id), requester, order.currency)
    return orders.get(order_id)


def mark_order_as_paid(order_id: str, requester: Requester) -> Order:
    """Record an offline payment, reconciled by an admin of the destination's host."""
    requester.require_login()

    orders = current_domain.repository_for(Order)
    order = orders.get_or_none(order_id)
    if order is None:
        raise NotFound("Order not found")
    if order.status != OrderStatus.PENDING.value:
        raise ValidationFailed("The order's status must be PENDING", field="status")

    destination = current_domain.repository_for(Account).get(str(order.account_id))
    if not requester.is_admin(destination.host_account_id):
        raise Unauthorized("You must be logged in as an admin of the host of the collective")

    current_domain.process(ChargeOrder(order_id=order_id, manual=True), asynchronous=False)
    logger.info("Order marked as paid", order_id=order_id, user_id=requester.user_id)
    return orders.get(order_id)
