"""Funding domain API package."""

from funding.api.routes import (
    account_router,
    gateway_router,
    order_router,
    subscription_router,
    transaction_router,
)

__all__ = ["order_router", "subscription_router", "transaction_router", "account_router", "gateway_router"]
