"""
Rate limiting and response security headers.
"""
import logging
from typing import Callable

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger("schoolpay.middleware.security")

BANK_ROUTE_PREFIX = "/api/v1/bank"
RETRY_AFTER_SECONDS = 60


def get_client_ip(request: Request) -> str:
    """Client address, honouring the first hop of X-Forwarded-For behind a proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["200/minute"],
    storage_uri="memory://",
    strategy="fixed-window",
)

# The bank API is shared and throttled on its side, so anything that reaches it is tighter
RATE_LIMITS = {
    "bank_validation": "20/minute",
    "bank_diagnostics": "10/minute",
    "bank_payment": "20/minute",
    "ledger_write": "60/minute",
}


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    429 in the shape the route family uses: the `{result, content, error}`
    envelope on bank routes, the regular error body elsewhere.
    """
    message = f"Rate limit exceeded: {exc.detail}"
    logger.warning(
        message,
        extra={"client_ip": get_client_ip(request), "path": request.url.path, "method": request.method},
    )

    if request.url.path.startswith(BANK_ROUTE_PREFIX):
        content = {"result": False, "content": None, "error": [message]}
    else:
        content = {"error": "RateLimitExceeded", "message": message, "status_code": 429}

    return JSONResponse(status_code=429, content=content, headers={"Retry-After": str(RETRY_AFTER_SECONDS)})


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers on every response; HSTS only when served over HTTPS."""

    SECURITY_HEADERS = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "no-referrer",
        # Balances and bank confirmations must never be cached
        "Cache-Control": "no-store",
        "Pragma": "no-cache",
    }

    HSTS_HEADER = "max-age=31536000; includeSubDomains"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update(self.SECURITY_HEADERS)

        forwarded_proto = request.headers.get("X-Forwarded-Proto")
        if request.url.scheme == "https" or forwarded_proto == "https":
            response.headers["Strict-Transport-Security"] = self.HSTS_HEADER

        return response
