"""FastAPI endpoints for the Funding domain.

The acting user is supplied upstream in the ``X-User-Id`` header; requests
without it are anonymous.
"""

import os

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from protean.utils.globals import current_domain

from funding.account.funds import AddFundsToAccount
from funding.account.requester import Requester
from funding.api.schemas import (
    AddFundsRequest,
    ChargeDueSubscriptionsRequest,
    ConfigureGatewayRequest,
    CreateOrderRequest,
    GatewayConfigResponse,
    OrderResponse,
    PaymentMethodIdResponse,
    RenewalReportResponse,
    TransactionIdResponse,
    UpdateOrderRequest,
    UpdateSubscriptionRequest,
)
from funding.gateway import get_gateway
from funding.gateway.fake_adapter import FakeGateway
from funding.order.creation import create_order, mark_order_as_paid, update_order
from funding.order.order import Order
from funding.order.request import RequestContext
from funding.subscription.cancellation import CancelSubscription
from funding.subscription.renewal import charge_due_subscriptions
from funding.subscription.update import update_subscription
from funding.transaction.refund import RefundTransaction
from funding.utils.logging import add_context


async def current_requester(x_user_id: str | None = Header(default=None)) -> Requester:
    requester = Requester.load(x_user_id)
    if requester.is_authenticated:
        add_context(user_id=requester.user_id)
    return requester


async def request_context(request: Request) -> RequestContext:
    # Forwarded headers are resolved by the server (uvicorn --proxy-headers)
    # for trusted proxies only, so client.host is the address to limit on.
    return RequestContext(ip=request.client.host if request.client else None)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order_endpoint(
    body: CreateOrderRequest,
    requester: Requester = Depends(current_requester),
    context: RequestContext = Depends(request_context),
) -> OrderResponse:
    order = create_order(body.to_request(), requester, context)
    return OrderResponse.from_order(order)


@order_router.put("/{order_id}", response_model=OrderResponse)
async def update_order_endpoint(
    order_id: str,
    body: UpdateOrderRequest,
    requester: Requester = Depends(current_requester),
) -> OrderResponse:
    order = update_order(order_id, body.to_update(), requester)
    return OrderResponse.from_order(order)


@order_router.post("/{order_id}/mark-paid", response_model=OrderResponse)
async def mark_order_as_paid_endpoint(
    order_id: str,
    requester: Requester = Depends(current_requester),
) -> OrderResponse:
    order = mark_order_as_paid(order_id, requester)
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# Subscription Router
# ---------------------------------------------------------------------------
subscription_router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@subscription_router.post("/charge-due", response_model=RenewalReportResponse)
async def charge_due_subscriptions_endpoint(body: ChargeDueSubscriptionsRequest) -> RenewalReportResponse:
    """Maintenance hook for the external renewal scheduler."""
    report = charge_due_subscriptions(body.as_of)
    return RenewalReportResponse(
        attempted=report.attempted,
        charged=report.charged,
        failed=report.failed,
        deactivated=report.deactivated,
        errored=report.errored,
        skipped=report.skipped,
    )


@subscription_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_subscription_endpoint(
    order_id: str,
    requester: Requester = Depends(current_requester),
) -> OrderResponse:
    current_domain.process(
        CancelSubscription(order_id=order_id, requested_by=requester.user_id),
        asynchronous=False,
    )
    return OrderResponse.from_order(current_domain.repository_for(Order).get(order_id))


@subscription_router.put("/{order_id}", response_model=OrderResponse)
async def update_subscription_endpoint(
    order_id: str,
    body: UpdateSubscriptionRequest,
    requester: Requester = Depends(current_requester),
) -> OrderResponse:
    payment_method = body.payment_method.to_reference() if body.payment_method else None
    order = update_subscription(order_id, requester, payment_method=payment_method, amount=body.amount)
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# Transaction Router
# ---------------------------------------------------------------------------
transaction_router = APIRouter(prefix="/transactions", tags=["transactions"])


@transaction_router.post("/{transaction_id}/refund", response_model=TransactionIdResponse)
async def refund_transaction_endpoint(
    transaction_id: str,
    requester: Requester = Depends(current_requester),
) -> TransactionIdResponse:
    refund_id = current_domain.process(
        RefundTransaction(transaction_id=transaction_id, requested_by=requester.user_id),
        asynchronous=False,
    )
    return TransactionIdResponse(transaction_id=refund_id)


# ---------------------------------------------------------------------------
# Account Router
# ---------------------------------------------------------------------------
account_router = APIRouter(prefix="/accounts", tags=["accounts"])


@account_router.post("/{account_id}/funds", status_code=201, response_model=PaymentMethodIdResponse)
async def add_funds_endpoint(
    account_id: str,
    body: AddFundsRequest,
    requester: Requester = Depends(current_requester),
) -> PaymentMethodIdResponse:
    payment_method_id = current_domain.process(
        AddFundsToAccount(
            account_id=account_id,
            host_account_id=body.host_account_id,
            total_amount=body.total_amount,
            description=body.description,
            requested_by=requester.user_id,
        ),
        asynchronous=False,
    )
    return PaymentMethodIdResponse(payment_method_id=payment_method_id)


# ---------------------------------------------------------------------------
# Gateway Router (non-production)
# ---------------------------------------------------------------------------
gateway_router = APIRouter(prefix="/gateway", tags=["gateway"])


@gateway_router.post("/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        timeout=body.timeout,
        processor_fee_percent=body.processor_fee_percent,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        timeout=gateway.timeout,
    )
