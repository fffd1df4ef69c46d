import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from funding.api import account_router, gateway_router, order_router, subscription_router, transaction_router
from funding.api.errors import register_funding_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(order_router)
    app.include_router(subscription_router)
    app.include_router(transaction_router)
    app.include_router(account_router)
    app.include_router(gateway_router)
    register_funding_exception_handlers(app)
    return TestClient(app)
