"""Error taxonomy and normalized JSON handlers."""

import logging
from typing import Optional
from uuid import uuid4

from starlette.exceptions import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from aichef.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    """Bad or missing caller input."""
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class AuthenticityError(AppError):
    """Webhook signature missing or not verifiable against the signing secret."""
    code = "authenticity_error"
    status_code = 400


class CorrelationError(AppError):
    """Event lacks the identity linkage needed to apply it."""
    code = "correlation_error"
    status_code = 400


class IncompleteEventError(AppError):
    """Event is missing required billing identifiers."""
    code = "incomplete_event"
    status_code = 400


class ProviderError(AppError):
    """Billing provider call failed."""
    code = "provider_error"
    status_code = 500


class StoreError(AppError):
    """Document store unreachable or a write failed to commit."""
    code = "store_error"
    status_code = 500


class VerificationError(AppError):
    """Entitlement could not be recomputed from the subscription index."""
    code = "verification_failed"
    status_code = 503


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def error_payload(code: str, message: str, request_id: Optional[str]) -> dict:
    return {"error": message, "code": code, "request_id": request_id}


def error_response(status_code: int, code: str, message: str, request_id: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=error_payload(code, message, request_id))
    response.headers["x-request-id"] = request_id
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("aichef")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return error_response(exc.status_code, exc.code, exc.message, rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    if exc.status_code == 404:
        code = "not_found"
    elif exc.status_code == 405:
        code = "method_not_allowed"
    else:
        code = "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    logger = logging.getLogger("aichef")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = error_response(exc.status_code, code, message, rid)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def request_validation_handler(request: Request, exc: Exception):
    """Malformed JSON bodies and wrong field types map to a plain 400."""
    rid = _extract_request_id(request)
    logger = logging.getLogger("aichef")
    logger.warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400})
    return error_response(400, "validation_error", "Invalid request body", rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("aichef")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    return error_response(500, "internal_error", "Unexpected error", rid)
