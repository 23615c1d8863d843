import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from schoolpay.customLogging.logger import get_logger, log_response

logger = get_logger("schoolpay.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        logger.info(
            f"REQUEST: {request.method} {request.url.path} "
            f"Query={dict(request.query_params)}"
        )

        response: Response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        log_response(logger, request.method, request.url.path, response.status_code, duration_ms)

        return response
