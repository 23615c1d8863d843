from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index, JSON, event, inspect
from sqlalchemy.orm import relationship

from schoolpay.database.db_configs import Base
from schoolpay.customLogging.logger import get_logger

logger = get_logger("schoolpay.sqlModels.transactions")


class TransactionType(PyEnum):
    """
    Type of ledger entry.

    DEPOSIT credits the representative (positive amount), WITHDRAWAL debits it
    (negative amount). PAYMENT, FEE and ADJUSTMENT carry whatever sign the
    caller supplies.
    """
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    PAYMENT = "payment"
    FEE = "fee"
    ADJUSTMENT = "adjustment"


class PaymentMethod(PyEnum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    MOBILE_PAYMENT = "mobile_payment"
    CHECK = "check"


class TransactionStatus(PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    REVERSED = "reversed"


class ValidationMethod(PyEnum):
    """Bank lookup strategy that confirmed a payment."""
    P2P = "p2p"
    REFERENCE = "reference"
    EXISTENCE = "existence"


class Transaction(Base):
    """
    Ledger entry owned by a representative.

    Amounts are signed: the representative's balance equals the sum of the
    amounts of its completed transactions. Bank-confirmed payments also carry
    the bank code, account number, payer phone and the lookup method that
    confirmed them; these columns back the duplicate checks.

    `created_at` is written in server local time so that same-day lookups
    agree with the local calendar day.
    """
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    representative_id = Column(Integer, ForeignKey("representatives.id"), nullable=False, index=True)

    transaction_type = Column(String(20), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(500), nullable=True)
    payment_method = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=TransactionStatus.COMPLETED.value, index=True)

    # Bank identification
    reference = Column(String(100), nullable=True)
    external_reference = Column(String(100), nullable=True)
    bank_code = Column(String(20), nullable=True)
    account_number = Column(String(50), nullable=True)
    phone_number = Column(String(20), nullable=True)
    client_id = Column(String(50), nullable=True)
    validation_method = Column(String(20), nullable=True)

    # Raw bank validation payload and other audit data
    metadata_json = Column("metadata", JSON, nullable=True)

    # Audit fields
    created_by = Column(String(100), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)

    representative = relationship("Representative", back_populates="transactions")

    __table_args__ = (
        Index('ix_txn_reference_bank_account', 'reference', 'bank_code', 'account_number'),
        Index('ix_txn_bank_amount_created', 'bank_code', 'amount', 'created_at'),
        Index('ix_txn_phone_amount_created', 'phone_number', 'amount', 'created_at'),
        Index('ix_txn_representative_created', 'representative_id', 'created_at'),
    )

    def __repr__(self):
        return (
            f"<Transaction(id={self.id}, representative_id={self.representative_id}, "
            f"type='{self.transaction_type}', amount={self.amount}, reference='{self.reference}')>"
        )

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED.value


# Fields that may not change once a transaction has been completed
IMMUTABLE_COMPLETED_FIELDS = ("amount", "representative_id")


class ImmutableTransactionError(Exception):
    """Raised when a completed transaction's amount or owner is modified."""


@event.listens_for(Transaction, "before_update")
def _check_completed_transaction_immutability(mapper, connection, target):
    """
    Block changes to amount or owner of a completed transaction.

    Status changes (e.g. completed -> reversed) remain allowed; the status
    that counts is the one stored before this update.
    """
    insp = inspect(target)
    status_history = insp.attrs.status.history
    previous_status = status_history.deleted[0] if status_history.deleted else target.status
    if previous_status != TransactionStatus.COMPLETED.value:
        return

    for field in IMMUTABLE_COMPLETED_FIELDS:
        if insp.attrs[field].history.has_changes():
            logger.error(
                "Blocked modification of completed transaction",
                extra={"transaction_id": target.id, "field": field},
            )
            raise ImmutableTransactionError(
                f"Field '{field}' of completed transaction {target.id} cannot be modified"
            )
