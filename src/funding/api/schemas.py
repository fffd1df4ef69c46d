"""Pydantic request/response schemas for the Funding API.

These are external contracts, kept separate from the request dataclasses and
Protean commands the operations consume.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from funding.order.order import Order
from funding.order.request import OrderRequest, OrderUpdate
from funding.payment_method.resolver import PaymentMethodReference


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class PaymentMethodInput(BaseModel):
    """A stored instrument id, a fresh provider token, or the manual marker."""

    id: str | None = None
    token: str | None = None
    name: str | None = Field(None, max_length=255)
    manual: bool = False

    def to_reference(self) -> PaymentMethodReference:
        return PaymentMethodReference(id=self.id, token=self.token, name=self.name, manual=self.manual)


def _reference(payment_method: PaymentMethodInput | None) -> PaymentMethodReference:
    return payment_method.to_reference() if payment_method else PaymentMethodReference()


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    account_id: str | None = None
    website: str | None = Field(None, max_length=255)
    github_handle: str | None = Field(None, max_length=255)
    name: str | None = Field(None, max_length=255)

    tier_id: str | None = None
    quantity: int = Field(1, ge=1)
    total_amount: int = Field(0, ge=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    interval: str | None = None
    description: str | None = Field(None, max_length=500)
    payment_method: PaymentMethodInput | None = None

    from_account_id: str | None = None
    from_account_name: str | None = Field(None, max_length=255)
    from_account_website: str | None = Field(None, max_length=255)

    user_email: str | None = Field(None, max_length=254)
    user_name: str | None = Field(None, max_length=255)

    matching_fund: str | None = None
    referral_account_id: str | None = None
    host_fee_percent: int | None = Field(None, ge=0, le=100)
    platform_fee_percent: int | None = Field(None, ge=0, le=100)
    recaptcha_token: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "account_id": "0b8a3f0e-5c1d-4d0c-9a57-6a1b2c3d4e5f",
                    "total_amount": 1000,
                    "currency": "USD",
                    "interval": "month",
                    "payment_method": {"token": "tok_visa", "name": "4242"},
                }
            ]
        }
    }

    def to_request(self) -> OrderRequest:
        return OrderRequest(
            **self.model_dump(exclude={"payment_method"}),
            payment_method=_reference(self.payment_method),
        )


class UpdateOrderRequest(BaseModel):
    interval: str | None = None
    payment_method: PaymentMethodInput | None = None
    host_fee_percent: int | None = Field(None, ge=0, le=100)
    platform_fee_percent: int | None = Field(None, ge=0, le=100)

    def to_update(self) -> OrderUpdate:
        return OrderUpdate(
            interval=self.interval,
            payment_method=_reference(self.payment_method),
            host_fee_percent=self.host_fee_percent,
            platform_fee_percent=self.platform_fee_percent,
        )


# ---------------------------------------------------------------------------
# Subscription / Transaction / Account Request Schemas
# ---------------------------------------------------------------------------
class UpdateSubscriptionRequest(BaseModel):
    payment_method: PaymentMethodInput | None = None
    amount: int | None = None


class ChargeDueSubscriptionsRequest(BaseModel):
    as_of: datetime | None = None


class AddFundsRequest(BaseModel):
    host_account_id: str
    total_amount: int = Field(gt=0)
    description: str | None = Field(None, max_length=255)


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Card declined"
    timeout: bool = False
    processor_fee_percent: int = Field(0, ge=0, le=100)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderResponse(BaseModel):
    order_id: str
    status: str
    total_amount: int
    currency: str
    interval: str | None = None
    description: str | None = None
    subscription_id: str | None = None
    processed_at: datetime | None = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            order_id=str(order.id),
            status=order.status,
            total_amount=order.total_amount,
            currency=order.currency,
            interval=order.interval,
            description=order.description,
            subscription_id=str(order.subscription_id) if order.subscription_id else None,
            processed_at=order.processed_at,
        )


class TransactionIdResponse(BaseModel):
    transaction_id: str


class PaymentMethodIdResponse(BaseModel):
    payment_method_id: str


class RenewalReportResponse(BaseModel):
    attempted: int
    charged: list[str]
    failed: list[str]
    deactivated: list[str]
    errored: list[str]
    skipped: list[str]


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    timeout: bool
