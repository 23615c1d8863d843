"""
Cascaded payment validation.

Runs the bank lookups in a fixed order (P2P, Reference, Existence) and stops
at the first one that finds the movement. A failing strategy never aborts the
cascade: its error is recorded and the next strategy runs. The verdict is:

    success        some strategy found the movement
    manual_review  at least one strategy ran but none found it
    error          no strategy could run at all
"""
from dataclasses import dataclass
from typing import Callable, List, Optional

from pydantic import ValidationError

from schoolpay.bank.gateway import BankGatewayClient
from schoolpay.customLogging.logger import get_logger, log_exception
from schoolpay.exceptions.exceptions import AuthenticationError, MainException
from schoolpay.pydanticModels.bankModels import (
    BankValidationRequest,
    CascadedValidationResult,
    CascadeDetails,
    MethodOutcome,
    OverallResult,
    PaymentClaim,
    ValidationResponse,
)
from schoolpay.sqlModels.transactionEntities import ValidationMethod

logger = get_logger("schoolpay.bank.cascade")

SUCCESS_MESSAGES = {
    ValidationMethod.P2P: "Payment validated with P2P lookup",
    ValidationMethod.REFERENCE: "Payment validated by reference",
    ValidationMethod.EXISTENCE: "Payment validated by movement existence",
}
MANUAL_REVIEW_MESSAGE = "Payment could not be confirmed automatically and requires manual review"
NOT_EXECUTED_MESSAGE = "No validation method could be executed"
UNEXPECTED_ERROR_MESSAGE = "Unexpected error during cascaded validation"


@dataclass(frozen=True)
class ValidationStrategy:
    """One lookup in the cascade: how to build its request and which gateway call runs it."""
    method: ValidationMethod
    slot: str
    build_request: Callable[[PaymentClaim], BankValidationRequest]
    lookup: Callable[[BankGatewayClient, BankValidationRequest], ValidationResponse]


CASCADE_STRATEGIES: List[ValidationStrategy] = [
    ValidationStrategy(
        ValidationMethod.P2P, "validate_p2p",
        PaymentClaim.to_p2p_request, BankGatewayClient.validate_p2p,
    ),
    ValidationStrategy(
        ValidationMethod.REFERENCE, "validate_reference",
        PaymentClaim.to_reference_request, BankGatewayClient.validate_reference,
    ),
    ValidationStrategy(
        ValidationMethod.EXISTENCE, "validate_existence",
        PaymentClaim.to_existence_request, BankGatewayClient.validate_existence,
    ),
]


def _error_text(exc: Exception) -> str:
    if isinstance(exc, MainException):
        return exc.message
    return str(exc) or exc.__class__.__name__


class CascadeOrchestrator:
    """Runs the validation strategies against one gateway client."""

    def __init__(self, gateway: BankGatewayClient, strategies: Optional[List[ValidationStrategy]] = None):
        self.gateway = gateway
        self.strategies = CASCADE_STRATEGIES if strategies is None else strategies

    def run(self, claim: PaymentClaim) -> CascadedValidationResult:
        """
        Validate a payment claim against the bank.

        Never raises: every failure is folded into the returned verdict.
        """
        logger.info(
            "Starting cascaded validation",
            extra={"reference": claim.reference, "bank_code": claim.bank_code_text, "amount": str(claim.amount)},
        )
        try:
            return self._run(claim)
        except Exception as e:
            log_exception(logger, "Cascaded validation aborted", e, reference=claim.reference)
            return CascadedValidationResult(
                overall_result=OverallResult.ERROR,
                message=UNEXPECTED_ERROR_MESSAGE,
            )

    def _run(self, claim: PaymentClaim) -> CascadedValidationResult:
        details = CascadeDetails()

        for step, strategy in enumerate(self.strategies, start=1):
            outcome = self._attempt(strategy, claim)
            setattr(details, strategy.slot, outcome)

            if outcome.movement_exists:
                logger.info(f"Step {step} ({strategy.method.value}) confirmed the movement")
                return CascadedValidationResult(
                    overall_result=OverallResult.SUCCESS,
                    message=SUCCESS_MESSAGES[strategy.method],
                    confirmed_by=strategy.method.value,
                    details=details,
                )
            logger.info(
                f"Step {step} ({strategy.method.value}) did not confirm the movement",
                extra={"executed": outcome.executed, "error": outcome.error},
            )

        if any(outcome.executed for outcome in details.outcomes()):
            logger.warning("Cascaded validation ended without confirmation", extra={"reference": claim.reference})
            return CascadedValidationResult(
                overall_result=OverallResult.MANUAL_REVIEW,
                message=MANUAL_REVIEW_MESSAGE,
                details=details,
            )

        logger.error("No validation method could be executed", extra={"reference": claim.reference})
        return CascadedValidationResult(
            overall_result=OverallResult.ERROR,
            message=NOT_EXECUTED_MESSAGE,
            details=details,
        )

    def _attempt(self, strategy: ValidationStrategy, claim: PaymentClaim) -> MethodOutcome:
        # Failures before the lookup is issued leave the method unexecuted
        try:
            request = strategy.build_request(claim)
        except ValidationError as e:
            logger.warning(f"Could not build {strategy.method.value} request: {e.error_count()} invalid field(s)")
            return MethodOutcome(executed=False, error=f"Invalid request: {e.error_count()} invalid field(s)")

        try:
            response = strategy.lookup(self.gateway, request)
        except AuthenticationError as e:
            logger.warning(f"{strategy.method.value} lookup skipped, no bank session: {e.message}")
            return MethodOutcome(executed=False, error=e.message)
        except Exception as e:
            logger.warning(f"{strategy.method.value} lookup failed: {_error_text(e)}")
            return MethodOutcome(executed=True, success=False, error=_error_text(e))

        return MethodOutcome(
            executed=True,
            success=True,
            movement_exists=response.movement_exists,
            data=response,
        )
