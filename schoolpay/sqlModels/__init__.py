"""SQLAlchemy models for database entities."""
from schoolpay.sqlModels.representativeEntities import (
    Representative,
    Student,
    BalanceStatus,
    StudentStatus,
    BILLABLE_STUDENT_STATUSES,
)
from schoolpay.sqlModels.transactionEntities import (
    Transaction,
    TransactionType,
    PaymentMethod,
    TransactionStatus,
    ValidationMethod,
    ImmutableTransactionError,
)

__all__ = [
    # Representative models
    "Representative",
    "Student",
    "BalanceStatus",
    "StudentStatus",
    "BILLABLE_STUDENT_STATUSES",
    # Transaction models
    "Transaction",
    "TransactionType",
    "PaymentMethod",
    "TransactionStatus",
    "ValidationMethod",
    "ImmutableTransactionError",
]
