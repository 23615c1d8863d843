"""
School payments API.

Validates claimed bank payments against the bank, rejects payments that are
already on the ledger and keeps representatives' running balances.

Run locally with `python -m schoolpay.main`.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

# Logging is configured before the application modules create their loggers
from schoolpay.customLogging import setup_logging
setup_logging()

from schoolpay.auth.config import validate_auth_config
from schoolpay.bank.config import get_bank_gateway
from schoolpay.config.settings import settings
from schoolpay.controller import balance, bank
from schoolpay.customLogging.RequestLogger import RequestLoggingMiddleware
from schoolpay.database.db_configs import Base, dispose_engine, engine
from schoolpay.exceptions.exceptions import BankGatewayException, MainException
from schoolpay.exceptions.handlers import (
    bank_exception_handler,
    global_exception_handler,
    main_exception_handler,
    validation_exception_handler,
)
from schoolpay.middleware.security import SecurityHeadersMiddleware, limiter, rate_limit_exceeded_handler
from schoolpay.sqlModels import representativeEntities, transactionEntities  # noqa: F401

logger = logging.getLogger("schoolpay")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting {settings.APP_NAME} v{settings.APP_VERSION}",
        extra={
            "environment": settings.ENVIRONMENT,
            "bank_transport": settings.BANK_TRANSPORT,
            "bank_response_encoding": settings.BANK_RESPONSE_ENCODING,
        },
    )
    validate_auth_config()
    Base.metadata.create_all(engine)
    logger.info("Database schema ready")

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")
    get_bank_gateway().transport.close()
    dispose_engine()


def _register_middleware(app: FastAPI) -> None:
    # Starlette runs middleware in reverse order of registration
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
        expose_headers=["X-Correlation-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware, header_name="X-Correlation-ID", update_request_header=True)


def _register_exception_handlers(app: FastAPI) -> None:
    # Starlette picks the closest class in the MRO, so bank errors never reach main_exception_handler
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(BankGatewayException, bank_exception_handler)
    app.add_exception_handler(MainException, main_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)


_docs_enabled = not settings.is_production

app = FastAPI(
    title=settings.APP_NAME,
    description="Bank payment validation, duplicate detection and representative balances",
    version=settings.APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if _docs_enabled else None,
    redoc_url="/redoc" if _docs_enabled else None,
    openapi_url="/openapi.json" if _docs_enabled else None,
)
app.state.limiter = limiter

_register_middleware(app)
_register_exception_handlers(app)

app.include_router(bank.router)
app.include_router(balance.router)


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "version": settings.APP_VERSION, "environment": settings.ENVIRONMENT}


if __name__ == "__main__":
    uvicorn.run(
        "schoolpay.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.effective_log_level.lower(),
    )
