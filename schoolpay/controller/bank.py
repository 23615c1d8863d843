"""
Bank controller.

Proxy endpoints over the bank gateway: diagnostics, logon, the cascaded
validation and each single lookup. Responses use the
`{result, content, error}` envelope. Gateway failures on single lookups
surface as 502 through the application exception handler.
"""
from datetime import datetime
from typing import Any, Callable

from fastapi import APIRouter, Depends, Request

from schoolpay.auth.dependencies import get_current_caller
from schoolpay.bank.cascade import CascadeOrchestrator
from schoolpay.bank.config import get_bank_gateway, get_cascade_orchestrator
from schoolpay.bank.gateway import BankGatewayClient
from schoolpay.config.settings import settings
from schoolpay.customLogging.logger import get_logger
from schoolpay.exceptions.exceptions import BankGatewayException
from schoolpay.middleware.security import RATE_LIMITS, limiter
from schoolpay.pydanticModels.bankModels import (
    PaymentClaim,
    ProxyResponse,
    ValidateExistenceRequest,
    ValidateP2PRequest,
    ValidateReferenceRequest,
)

logger = get_logger("schoolpay.controller.bank")

router = APIRouter(prefix="/api/v1/bank", tags=["Bank"])


@router.get("/welcome", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_diagnostics"])
def bank_welcome(
    request: Request,
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    return ProxyResponse(result=True, content=gateway.welcome())


@router.get("/test-connection", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_diagnostics"])
def bank_test_connection(
    request: Request,
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    return ProxyResponse(result=True, content=gateway.test_connection())


@router.get("/health", response_model=ProxyResponse)
def bank_health(
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    """Local view of the bank integration; makes no bank call."""
    return ProxyResponse(
        result=True,
        content={
            "service": "BNC API Integration",
            "environment": settings.ENVIRONMENT,
            "transport": settings.BANK_TRANSPORT,
            "response_encoding": settings.BANK_RESPONSE_ENCODING,
            "authenticated": gateway.is_authenticated,
            "timestamp": datetime.now().isoformat(),
        },
    )


def _status_part(label: str, call: Callable[[], Any]) -> Any:
    try:
        return call()
    except BankGatewayException as e:
        logger.warning(f"Bank full status: {label} failed", extra={"error": e.message})
        return {"error": e.message}


@router.get("/full-status", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_diagnostics"])
def bank_full_status(
    request: Request,
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    """
    Welcome page, connection test and a fresh logon in one answer.

    Each part fails on its own; a failed part carries `{"error": ...}` and the
    route still answers 200.
    """
    logon = _status_part("logon", gateway.authenticate)
    return ProxyResponse(
        result=True,
        content={
            "welcome": _status_part("welcome", gateway.welcome),
            "health": _status_part("test-connection", gateway.test_connection),
            "auth": {"authenticated": isinstance(logon, str)},
            "timestamp": datetime.now().isoformat(),
            "environment": settings.ENVIRONMENT,
        },
    )


@router.post("/logon", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_diagnostics"])
def bank_logon(
    request: Request,
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    """Force a fresh bank session. The working key itself is never returned."""
    gateway.invalidate_session()
    gateway.authenticate()
    logger.info("Bank session refreshed on request", extra={"caller_id": caller_id})
    return ProxyResponse(result=True, content={"authenticated": True})


@router.post("/cascaded-validation", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_validation"])
def cascaded_validation(
    request: Request,
    claim: PaymentClaim,
    orchestrator: CascadeOrchestrator = Depends(get_cascade_orchestrator),
    caller_id: str = Depends(get_current_caller),
):
    """
    Run P2P, Reference and Existence lookups in order until one finds the movement.

    Always answers 200; the verdict is in `content.overall_result`.
    """
    result = orchestrator.run(claim)
    logger.info(
        f"Cascaded validation finished: {result.overall_result.value}",
        extra={"caller_id": caller_id, "confirmed_by": result.confirmed_by},
    )
    return ProxyResponse(result=True, content=result.model_dump(mode="json"))


@router.post("/validate-p2p", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_validation"])
def validate_p2p(
    request: Request,
    body: ValidateP2PRequest,
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    response = gateway.validate_p2p(body)
    return ProxyResponse(result=True, content=response.model_dump(mode="json", by_alias=True))


@router.post("/validate-reference", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_validation"])
def validate_reference(
    request: Request,
    body: ValidateReferenceRequest,
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    response = gateway.validate_reference(body)
    return ProxyResponse(result=True, content=response.model_dump(mode="json", by_alias=True))


@router.post("/validate-existence", response_model=ProxyResponse)
@limiter.limit(RATE_LIMITS["bank_validation"])
def validate_existence(
    request: Request,
    body: ValidateExistenceRequest,
    gateway: BankGatewayClient = Depends(get_bank_gateway),
    caller_id: str = Depends(get_current_caller),
):
    response = gateway.validate_existence(body)
    return ProxyResponse(result=True, content=response.model_dump(mode="json", by_alias=True))
