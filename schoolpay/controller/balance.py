"""
Balance controller.

Representative balances, transaction history, manual ledger entries and
bank payment registration.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from schoolpay.auth.dependencies import get_current_caller
from schoolpay.bank.cascade import CascadeOrchestrator
from schoolpay.bank.config import get_cascade_orchestrator
from schoolpay.database.db_configs import get_database
from schoolpay.middleware.security import RATE_LIMITS, limiter
from schoolpay.pydanticModels.bankModels import PaymentClaim, format_bank_code
from schoolpay.pydanticModels.balanceModels import (
    BalanceStatusEnum,
    BankPaymentResponse,
    DepositRequest,
    LedgerEntryResponse,
    SortByEnum,
    SortOrderEnum,
    TransactionResponse,
    WithdrawalRequest,
)
from schoolpay.services import balance_queries
from schoolpay.services.ledger import LedgerResult, LedgerService
from schoolpay.services.payment_service import PaymentOutcome, register_bank_payment
from schoolpay.sqlModels.transactionEntities import TransactionStatus, TransactionType

router = APIRouter(prefix="/api/v1/balance", tags=["Balance"])


def _ledger_response(result: LedgerResult, message: str) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        transaction=TransactionResponse.model_validate(result.transaction),
        previous_balance=result.previous_balance,
        new_balance=result.new_balance,
        message=message,
    )


# =============================================================================
# Representatives
# =============================================================================

@router.get("/representatives")
def list_representatives(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Search by name, identity card or phone"),
    full_name: Optional[str] = Query(None),
    identity_card: Optional[str] = Query(None),
    relationship_type: Optional[str] = Query(None),
    balance_status: Optional[BalanceStatusEnum] = Query(None),
    min_balance: Optional[float] = Query(None),
    max_balance: Optional[float] = Query(None),
    has_debt: Optional[bool] = Query(None),
    has_credit: Optional[bool] = Query(None),
    has_students: Optional[bool] = Query(None),
    sort_by: SortByEnum = Query(SortByEnum.FULL_NAME),
    sort_order: SortOrderEnum = Query(SortOrderEnum.ASC),
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.list_representatives(
        db,
        page=page,
        limit=limit,
        search=search,
        full_name=full_name,
        identity_card=identity_card,
        relationship_type=relationship_type,
        balance_status=balance_status.value if balance_status else None,
        min_balance=min_balance,
        max_balance=max_balance,
        has_debt=has_debt,
        has_credit=has_credit,
        has_students=has_students,
        sort_by=sort_by.value,
        sort_order=sort_order.value,
    )


@router.get("/representatives/top-debtors")
def get_top_debtors(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.top_debtors(db, limit=limit)


@router.get("/representatives/top-creditors")
def get_top_creditors(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.top_creditors(db, limit=limit)


@router.get("/statistics")
def get_financial_statistics(
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.financial_statistics(db)


@router.get("/representatives/{representative_id}")
def get_balance(
    representative_id: int,
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.get_balance(db, representative_id)


@router.get("/representatives/{representative_id}/transactions")
def get_transaction_history(
    representative_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    transaction_type: Optional[TransactionType] = Query(None),
    status: Optional[TransactionStatus] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.get_transaction_history(
        db,
        representative_id,
        page=page,
        limit=limit,
        transaction_type=transaction_type.value if transaction_type else None,
        status=status.value if status else None,
        start_date=start_date,
        end_date=end_date,
    )


# =============================================================================
# Ledger writes
# =============================================================================

@router.post("/representatives/{representative_id}/deposit", response_model=LedgerEntryResponse)
@limiter.limit(RATE_LIMITS["ledger_write"])
def manual_deposit(
    request: Request,
    representative_id: int,
    body: DepositRequest,
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    result = LedgerService(db).deposit(
        representative_id,
        body.amount,
        payment_method=body.payment_method.value,
        description=body.description or f"Manual deposit ({body.payment_method.value})",
        reference=body.reference,
        created_by=caller_id,
    )
    return _ledger_response(result, "Deposit registered")


@router.post("/representatives/{representative_id}/withdrawal", response_model=LedgerEntryResponse)
@limiter.limit(RATE_LIMITS["ledger_write"])
def manual_withdrawal(
    request: Request,
    representative_id: int,
    body: WithdrawalRequest,
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    result = LedgerService(db).withdraw(
        representative_id,
        body.amount,
        payment_method=body.payment_method.value,
        description=body.description or f"Manual withdrawal ({body.payment_method.value})",
        reference=body.reference,
        created_by=caller_id,
    )
    return _ledger_response(result, "Withdrawal registered")


@router.post("/representatives/{representative_id}/bank-payment", response_model=BankPaymentResponse)
@limiter.limit(RATE_LIMITS["bank_payment"])
def bank_payment(
    request: Request,
    representative_id: int,
    claim: PaymentClaim,
    db: Session = Depends(get_database),
    orchestrator: CascadeOrchestrator = Depends(get_cascade_orchestrator),
    caller_id: str = Depends(get_current_caller),
):
    """
    Validate a claimed bank payment and credit it.

    200 with `registered=true` when credited, 200 with `registered=false` when
    the bank did not confirm it (manual review or error), 409 when it is
    already registered.
    """
    result = register_bank_payment(db, orchestrator, representative_id, claim, created_by=caller_id)

    response = BankPaymentResponse(
        registered=result.registered,
        outcome=result.outcome.value,
        message=result.message,
        validation=result.validation.model_dump(mode="json"),
        ledger=_ledger_response(result.ledger, result.message) if result.ledger else None,
        existing_transaction=(
            TransactionResponse.model_validate(result.duplicate.existing_transaction)
            if result.duplicate and result.duplicate.existing_transaction is not None
            else None
        ),
    )

    if result.outcome == PaymentOutcome.DUPLICATE:
        return JSONResponse(status_code=409, content=response.model_dump(mode="json"))
    return response


# =============================================================================
# Transaction lookups
# =============================================================================

@router.get("/transactions/status")
def get_transaction_status(
    reference: str = Query(..., min_length=1),
    bank_code: int = Query(..., ge=1, description="Numeric bank code as submitted on the claim"),
    account_number: Optional[str] = Query(None),
    amount: Optional[Decimal] = Query(None, gt=0),
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.transaction_status(
        db, reference, format_bank_code(bank_code), account_number=account_number, amount=amount
    )


@router.get("/transactions/exists")
def check_payment_exists(
    reference: str = Query(..., min_length=1),
    representative_id: int = Query(...),
    db: Session = Depends(get_database),
    caller_id: str = Depends(get_current_caller),
):
    return balance_queries.payment_exists(db, reference, representative_id)
