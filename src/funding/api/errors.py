"""HTTP error mapping for the Funding API.

Protean's handlers cover validation (400), not found (404), invalid state
(409) and invalid operation (422). Funding adds its own statuses on top;
``Unauthorized`` is matched before its ``InvalidOperationError`` base.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from funding.errors import ChargeFailed, LimitExceeded, Unauthorized, is_development, support_message

logger = structlog.get_logger(__name__)


def register_funding_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)

    @app.exception_handler(Unauthorized)
    async def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
        return JSONResponse(status_code=403, content={"error": str(exc)})

    @app.exception_handler(LimitExceeded)
    async def limit_exceeded_handler(request: Request, exc: LimitExceeded) -> JSONResponse:
        return JSONResponse(status_code=429, content={"error": str(exc)})

    @app.exception_handler(ChargeFailed)
    async def charge_failed_handler(request: Request, exc: ChargeFailed) -> JSONResponse:
        return JSONResponse(status_code=402, content={"error": exc.reason})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path, error_type=type(exc).__name__)
        detail = str(exc) if is_development() else None
        return JSONResponse(status_code=500, content={"error": support_message(detail)})
