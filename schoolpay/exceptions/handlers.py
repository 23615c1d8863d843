"""
Exception handlers.

Balance routes and everything else answer errors as
{"error", "message", "status_code", "correlation_id", "details"}.
Bank gateway failures keep the bank routes' {result, content, error}
envelope.
"""
import logging
import traceback
from typing import Any, Dict, Optional

from asgi_correlation_id import correlation_id
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from schoolpay.config.settings import settings
from .exceptions import BankGatewayException, MainException

logger = logging.getLogger("schoolpay.exceptions")


def error_body(error_type: str, message: str, status_code: int, details: Optional[Dict[str, Any]] = None) -> dict:
    body = {"error": error_type, "message": message, "status_code": status_code}
    request_id = correlation_id.get()
    if request_id:
        body["correlation_id"] = request_id
    if details:
        body["details"] = details
    return body


def _where(request: Request) -> Dict[str, str]:
    return {"path": request.url.path, "method": request.method}


def main_exception_handler(request: Request, exc: MainException) -> JSONResponse:
    """
    Typed application errors. 5xx (ledger rollback) logs at ERROR,
    rejected requests (unknown representative, insufficient balance) at WARNING.
    """
    error_type = exc.__class__.__name__
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{error_type}: {exc.message}", extra={**_where(request), "status_code": exc.status_code})

    return JSONResponse(status_code=exc.status_code, content=error_body(error_type, exc.message, exc.status_code))


def bank_exception_handler(request: Request, exc: BankGatewayException) -> JSONResponse:
    """Bank logon, transport or decoding failure on a single-call bank route."""
    logger.error(
        f"Bank gateway error: {exc.__class__.__name__} - {exc.message}",
        extra={**_where(request), "status_code": exc.status_code},
    )

    content = {"result": False, "content": None, "error": [exc.message]}
    request_id = correlation_id.get()
    if request_id:
        content["correlation_id"] = request_id
    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
    logger.warning(f"Validation error on {request.method} {request.url.path}", extra={"errors": errors})

    return JSONResponse(
        status_code=422,
        content=error_body("ValidationError", "Request validation failed", 422, {"errors": errors}),
    )


def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything unhandled. Internals are only shown outside production."""
    logger.error(f"Unhandled exception: {exc.__class__.__name__} - {exc}", exc_info=True, extra=_where(request))

    if settings.is_production:
        message, details = "An unexpected error occurred. Please try again later.", None
    else:
        message = str(exc)
        details = {
            "exception_type": exc.__class__.__name__,
            "traceback": traceback.format_exception(type(exc), exc, exc.__traceback__)[-3:],
        }

    return JSONResponse(status_code=500, content=error_body("InternalServerError", message, 500, details))
