"""
Pydantic models for the bank gateway boundary.

Wire field names follow the bank API (PascalCase) through aliases; Python code
uses snake_case attributes. Requests are built with `model_dump(by_alias=True)`.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

BANK_CODE_WIDTH = 4


def format_bank_code(bank_code: int) -> str:
    """Render a numeric bank code the way it is stored on transactions (e.g. 102 -> '0102')."""
    return str(bank_code).zfill(BANK_CODE_WIDTH)


class OverallResult(str, Enum):
    SUCCESS = "success"
    MANUAL_REVIEW = "manual_review"
    ERROR = "error"


class BankModel(BaseModel):
    model_config = {"populate_by_name": True}


# =============================================================================
# Envelopes
# =============================================================================

class BankEnvelope(BankModel):
    """Status/message envelope returned by every bank validation endpoint."""
    status: Literal["OK", "KO"]
    message: str = ""
    value: Optional[str] = None
    validation: Optional[str] = None


class LogOnRequest(BankModel):
    client_guid: str = Field(..., alias="ClientGUID", min_length=1)


class LogOnResponse(BankModel):
    working_key: str = Field(..., alias="WorkingKey", min_length=1)


# =============================================================================
# Validation requests
# =============================================================================

class BankValidationRequest(BankModel):
    amount: Decimal = Field(..., alias="Amount")
    child_client_id: Optional[str] = Field(None, alias="ChildClientID")
    branch_id: Optional[str] = Field(None, alias="BranchID")

    @field_serializer("amount")
    def _amount_as_number(self, amount: Decimal) -> float:
        return float(amount)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ValidateP2PRequest(BankValidationRequest):
    account_number: str = Field(..., alias="AccountNumber", min_length=1)
    bank_code: int = Field(..., alias="BankCode", ge=1)
    phone_number: str = Field(..., alias="PhoneNumber", min_length=1)
    client_id: str = Field(..., alias="ClientID", min_length=1)
    reference: str = Field(..., alias="Reference", min_length=1)
    request_date: str = Field(..., alias="RequestDate", min_length=1)


class ValidateReferenceRequest(BankValidationRequest):
    client_id: str = Field(..., alias="ClientID", min_length=1)
    account_number: str = Field(..., alias="AccountNumber", min_length=1)
    reference: str = Field(..., alias="Reference", min_length=1)
    date_movement: str = Field(..., alias="DateMovement", min_length=1)


class ValidateExistenceRequest(BankValidationRequest):
    account_number: str = Field(..., alias="AccountNumber", min_length=1)
    bank_code: int = Field(..., alias="BankCode", ge=1)
    phone_number: str = Field(..., alias="PhoneNumber", min_length=1)
    client_id: str = Field(..., alias="ClientID", min_length=1)
    request_date: str = Field(..., alias="RequestDate", min_length=1)


# =============================================================================
# Validation response
# =============================================================================

class ValidationResponse(BankModel):
    """
    Decoded movement lookup result.

    When `movement_exists` is true the movement must be identifiable: date,
    control number and amount are required. A not-found answer may leave
    every other field empty.
    """
    movement_exists: bool = Field(..., alias="MovementExists")
    date: Optional[str] = Field(None, alias="Date")
    control_number: Optional[str] = Field(None, alias="ControlNumber")
    amount: Optional[Decimal] = Field(None, alias="Amount")
    bank_code: Optional[str] = Field(None, alias="BankCode")
    code: Optional[str] = Field(None, alias="Code")
    debtor_instrument: Optional[Any] = Field(None, alias="DebtorInstrument")
    concept: Optional[str] = Field(None, alias="Concept")
    debit_account: Optional[str] = Field(None, alias="DebitAccount")
    type: Optional[str] = Field(None, alias="Type")
    balance_delta: Optional[str] = Field(None, alias="BalanceDelta")
    reference_a: Optional[str] = Field(None, alias="ReferenceA")
    reference_b: Optional[str] = Field(None, alias="ReferenceB")
    reference_c: Optional[str] = Field(None, alias="ReferenceC")
    reference_d: Optional[str] = Field(None, alias="ReferenceD")
    debtor_id: Optional[str] = Field(None, alias="DebtorID")
    debtor_type: Optional[str] = Field(None, alias="DebtorType")

    @model_validator(mode="after")
    def _found_movement_is_identified(self):
        if self.movement_exists:
            missing = [
                name for name in ("date", "control_number", "amount")
                if getattr(self, name) in (None, "")
            ]
            if missing:
                raise ValueError(f"Movement reported without {', '.join(missing)}")
        return self

    @field_serializer("amount")
    def _amount_as_number(self, amount: Optional[Decimal]) -> Optional[float]:
        return float(amount) if amount is not None else None


# =============================================================================
# Payment claim and cascade result
# =============================================================================

class PaymentClaim(BankModel):
    """A payer's claim that a bank payment was made; input of the cascade."""
    account_number: str = Field(..., alias="AccountNumber", min_length=1)
    bank_code: int = Field(..., alias="BankCode", ge=1)
    phone_number: str = Field(..., alias="PhoneNumber", min_length=1)
    client_id: str = Field(..., alias="ClientID", min_length=1)
    reference: str = Field(..., alias="Reference", min_length=1)
    request_date: str = Field(..., alias="RequestDate", min_length=1)
    amount: Decimal = Field(..., alias="Amount", gt=0, decimal_places=2)
    child_client_id: Optional[str] = Field(None, alias="ChildClientID")
    branch_id: Optional[str] = Field(None, alias="BranchID")

    @property
    def bank_code_text(self) -> str:
        return format_bank_code(self.bank_code)

    def to_p2p_request(self) -> ValidateP2PRequest:
        return ValidateP2PRequest(
            account_number=self.account_number,
            bank_code=self.bank_code,
            phone_number=self.phone_number,
            client_id=self.client_id,
            reference=self.reference,
            request_date=self.request_date,
            amount=self.amount,
            child_client_id=self.child_client_id,
            branch_id=self.branch_id,
        )

    def to_reference_request(self) -> ValidateReferenceRequest:
        return ValidateReferenceRequest(
            client_id=self.client_id,
            account_number=self.account_number,
            reference=self.reference,
            amount=self.amount,
            date_movement=self.request_date,
            child_client_id=self.child_client_id,
            branch_id=self.branch_id,
        )

    def to_existence_request(self) -> ValidateExistenceRequest:
        # Reference is left out on purpose: payers mistype or omit it
        return ValidateExistenceRequest(
            account_number=self.account_number,
            bank_code=self.bank_code,
            phone_number=self.phone_number,
            client_id=self.client_id,
            request_date=self.request_date,
            amount=self.amount,
            child_client_id=self.child_client_id,
            branch_id=self.branch_id,
        )


class MethodOutcome(BaseModel):
    """What happened when one lookup strategy ran."""
    executed: bool = False
    success: bool = False
    movement_exists: bool = False
    data: Optional[ValidationResponse] = None
    error: Optional[str] = None


class CascadeDetails(BaseModel):
    validate_p2p: MethodOutcome = Field(default_factory=MethodOutcome)
    validate_reference: MethodOutcome = Field(default_factory=MethodOutcome)
    validate_existence: MethodOutcome = Field(default_factory=MethodOutcome)

    def outcomes(self) -> List[MethodOutcome]:
        return [self.validate_p2p, self.validate_reference, self.validate_existence]


class CascadedValidationResult(BaseModel):
    overall_result: OverallResult = OverallResult.ERROR
    message: str = ""
    confirmed_by: Optional[str] = None
    details: CascadeDetails = Field(default_factory=CascadeDetails)
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def movement_exists(self) -> bool:
        return any(outcome.movement_exists for outcome in self.details.outcomes())

    @property
    def confirmed_data(self) -> Optional[ValidationResponse]:
        for outcome in self.details.outcomes():
            if outcome.movement_exists:
                return outcome.data
        return None


class ProxyResponse(BaseModel):
    """Response envelope used by the bank proxy endpoints."""
    result: bool
    content: Any = None
    error: List[str] = Field(default_factory=list)
