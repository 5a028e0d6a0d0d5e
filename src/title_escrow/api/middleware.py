"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — handles browser-based clients
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from title_escrow.domain.exceptions import (
    AlreadyListedError,
    AssetAlreadyRegisteredError,
    AssetInEscrowError,
    AssetNotFoundError,
    ConditionsNotMetError,
    DuplicateOperationError,
    EscrowLedgerError,
    EscrowNotFoundError,
    InsufficientValueError,
    InvalidListingError,
    InvalidStateTransitionError,
    LockTimeoutError,
    NotAuthorizedError,
    NotOwnerError,
    PaymentError,
    TransferFailedError,
    UnauthorizedError,
)
from title_escrow.logging_config import bind_request

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Checked in order; the first matching class wins.
STATUS_BY_ERROR: tuple[tuple[type[EscrowLedgerError], int], ...] = (
    (EscrowNotFoundError, 404),
    (AssetNotFoundError, 404),
    (NotOwnerError, 403),
    (UnauthorizedError, 403),
    (NotAuthorizedError, 403),
    (AlreadyListedError, 409),
    (AssetAlreadyRegisteredError, 409),
    (AssetInEscrowError, 409),
    (ConditionsNotMetError, 409),
    (InvalidStateTransitionError, 409),
    (DuplicateOperationError, 409),
    (InvalidListingError, 422),
    (InsufficientValueError, 400),
    (PaymentError, 400),
    (TransferFailedError, 502),
    (LockTimeoutError, 503),
)


def status_for(exc: EscrowLedgerError) -> int:
    for error_cls, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 400


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request(request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except ConditionsNotMetError as exc:
            logger.info("escrow.conditions_not_met", unmet=exc.unmet)
            return JSONResponse(
                status_code=409,
                content={"error": exc.code, "message": exc.message, "unmet": exc.unmet},
            )
        except TransferFailedError as exc:
            logger.error("escrow.transfer_failed", error=exc.message)
            return JSONResponse(
                status_code=502,
                content={"error": exc.code, "message": exc.message},
            )
        except EscrowLedgerError as exc:
            status_code = status_for(exc)
            logger.warning("domain.error", error=exc.message, code=exc.code, status=status_code)
            return JSONResponse(
                status_code=status_code,
                content={"error": exc.code, "message": exc.message},
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
