"""
Bank payment registration.

Chains the three stages of accepting a claimed bank payment:
cascaded bank validation, duplicate detection, then the ledger write.
Only a payment the bank confirmed and the ledger has not seen is credited.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from schoolpay.bank.cascade import CascadeOrchestrator
from schoolpay.customLogging.logger import get_logger, log_operation
from schoolpay.exceptions.exceptions import NotFoundError
from schoolpay.pydanticModels.bankModels import CascadedValidationResult, OverallResult, PaymentClaim
from schoolpay.services.duplicate_detector import DuplicateCheckResult, DuplicateDetector
from schoolpay.services.ledger import LedgerResult, LedgerService
from schoolpay.sqlModels.representativeEntities import Representative
from schoolpay.sqlModels.transactionEntities import PaymentMethod, TransactionType

logger = get_logger("schoolpay.services.payments")


class PaymentOutcome(Enum):
    REGISTERED = "registered"
    DUPLICATE = "duplicate"
    NOT_CONFIRMED = "not_confirmed"


@dataclass
class BankPaymentResult:
    outcome: PaymentOutcome
    message: str
    validation: CascadedValidationResult
    duplicate: Optional[DuplicateCheckResult] = None
    ledger: Optional[LedgerResult] = None

    @property
    def registered(self) -> bool:
        return self.outcome == PaymentOutcome.REGISTERED


def _duplicate_message(db: Session, duplicate: DuplicateCheckResult) -> str:
    existing = duplicate.existing_transaction
    owner = db.get(Representative, existing.representative_id) if existing.representative_id else None
    owner_name = owner.full_name if owner is not None else "unknown"
    registered_on = existing.created_at.strftime("%Y-%m-%d") if existing.created_at else "an earlier date"
    return f"This transaction was already registered by {owner_name} on {registered_on}"


def register_bank_payment(
    db: Session,
    orchestrator: CascadeOrchestrator,
    representative_id: int,
    claim: PaymentClaim,
    created_by: Optional[str] = None,
    detector: Optional[DuplicateDetector] = None,
) -> BankPaymentResult:
    """
    Validate a claimed bank payment and credit it to a representative.

    Raises:
        NotFoundError: The representative does not exist. Checked before any
            bank call is made.
    """
    if db.get(Representative, representative_id) is None:
        raise NotFoundError(f"Representative {representative_id} not found")

    validation = orchestrator.run(claim)
    if validation.overall_result != OverallResult.SUCCESS:
        logger.info(
            "Bank payment not confirmed",
            extra={"representative_id": representative_id, "overall_result": validation.overall_result.value},
        )
        return BankPaymentResult(
            outcome=PaymentOutcome.NOT_CONFIRMED,
            message=validation.message,
            validation=validation,
        )

    detector = detector or DuplicateDetector(db)
    duplicate = detector.check(
        reference=claim.reference,
        bank_code=claim.bank_code_text,
        account_number=claim.account_number,
        amount=claim.amount,
        phone_number=claim.phone_number,
    )
    if duplicate.is_duplicate:
        return BankPaymentResult(
            outcome=PaymentOutcome.DUPLICATE,
            message=_duplicate_message(db, duplicate),
            validation=validation,
            duplicate=duplicate,
        )

    confirmed = validation.confirmed_data
    ledger_result = LedgerService(db).apply(
        representative_id,
        claim.amount,
        payment_method=PaymentMethod.MOBILE_PAYMENT.value,
        transaction_type=TransactionType.DEPOSIT.value,
        description=f"Validated bank payment - {claim.bank_code_text}",
        reference=claim.reference,
        external_reference=confirmed.control_number if confirmed is not None else claim.reference,
        bank_code=claim.bank_code_text,
        account_number=claim.account_number,
        phone_number=claim.phone_number,
        client_id=claim.client_id,
        validation_method=validation.confirmed_by,
        metadata={
            "bank_validation": confirmed.model_dump(mode="json", by_alias=True) if confirmed is not None else None,
            "validated_at": validation.timestamp.isoformat(),
        },
        created_by=created_by,
    )

    log_operation(
        logger,
        "bank_payment",
        representative_id=representative_id,
        reference=claim.reference,
        confirmed_by=validation.confirmed_by,
        new_balance=str(ledger_result.new_balance),
    )
    return BankPaymentResult(
        outcome=PaymentOutcome.REGISTERED,
        message="Bank payment registered",
        validation=validation,
        ledger=ledger_result,
    )
