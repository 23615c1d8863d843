"""
Pydantic models for the balance endpoints.
"""
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from schoolpay.sqlModels.transactionEntities import PaymentMethod


class SortByEnum(str, Enum):
    BALANCE = "balance"
    FULL_NAME = "full_name"
    CREATED_AT = "created_at"
    DEBT_AMOUNT = "debt_amount"


class SortOrderEnum(str, Enum):
    ASC = "asc"
    DESC = "desc"


class BalanceStatusEnum(str, Enum):
    DEBT = "debt"
    ZERO = "zero"
    CREDIT = "credit"


PaymentMethodEnum = Enum("PaymentMethodEnum", {m.name: m.value for m in PaymentMethod}, type=str)


# --- Ledger Request Models ---

class LedgerEntryRequest(BaseModel):
    """Manual deposit or withdrawal."""
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: Optional[str] = Field(None, max_length=500)
    payment_method: PaymentMethodEnum = PaymentMethodEnum.CASH
    reference: Optional[str] = Field(None, max_length=100)

    @field_validator("reference")
    @classmethod
    def reference_stripped(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class DepositRequest(LedgerEntryRequest):
    pass


class WithdrawalRequest(LedgerEntryRequest):
    pass


# --- Response Models ---

class TransactionResponse(BaseModel):
    id: int
    representative_id: int
    transaction_type: str
    amount: Decimal
    description: Optional[str] = None
    payment_method: str
    status: str
    reference: Optional[str] = None
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    phone_number: Optional[str] = None
    validation_method: Optional[str] = None
    created_by: Optional[str] = None

    class Config:
        from_attributes = True


class LedgerEntryResponse(BaseModel):
    """Result of a ledger write, with the balance before and after."""
    transaction: TransactionResponse
    previous_balance: Decimal
    new_balance: Decimal
    message: str


class BankPaymentResponse(BaseModel):
    """Outcome of a bank payment registration."""
    registered: bool
    outcome: str
    message: str
    validation: Any
    ledger: Optional[LedgerEntryResponse] = None
    existing_transaction: Optional[TransactionResponse] = None
