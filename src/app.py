"""Funding FastAPI application.

Processes commands synchronously via HTTP inside the funding domain context.

Usage:
    uvicorn app:app --host 0.0.0.0 --port 8000 --reload

Behind a reverse proxy, let uvicorn resolve the client address from the
proxy headers of trusted hops only:
    uvicorn app:app --proxy-headers --forwarded-allow-ips 10.0.0.1
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay ("test", "production").
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from funding.api.errors import register_funding_exception_handlers
from funding.domain import funding
from funding.utils.logging import add_context, clear_context

funding.init()

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Funding API",
    description="Donation orders, recurring subscriptions, payments and refunds",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the funding domain context and bind request details to the logs."""
    clear_context()
    add_context(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
    with funding.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------
register_funding_exception_handlers(app)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from funding.api import (  # noqa: E402
    account_router,
    gateway_router,
    order_router,
    subscription_router,
    transaction_router,
)

app.include_router(order_router)
app.include_router(subscription_router)
app.include_router(transaction_router)
app.include_router(account_router)
app.include_router(gateway_router)

logger.info("Funding API ready", domain=funding.name, routes=len(app.routes))


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": funding.name})
