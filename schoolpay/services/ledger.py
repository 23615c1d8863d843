"""
Representative ledger.

The only code path that changes a representative's balance. Each call writes
one completed transaction and moves the balance by its signed amount inside a
single database unit: either both land or neither does.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from schoolpay.customLogging.logger import get_logger, log_exception, log_operation
from schoolpay.exceptions.exceptions import (
    InsufficientBalanceError,
    LedgerOperationException,
    MainException,
    NotFoundError,
)
from schoolpay.sqlModels.representativeEntities import Representative
from schoolpay.sqlModels.transactionEntities import (
    PaymentMethod,
    Transaction,
    TransactionStatus,
    TransactionType,
)

logger = get_logger("schoolpay.ledger")

CENTS = Decimal("0.01")


@dataclass
class LedgerResult:
    transaction: Transaction
    previous_balance: Decimal
    new_balance: Decimal


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS)


class LedgerService:
    """Applies signed amounts to representative balances."""

    def __init__(self, db: Session):
        self.db = db

    def apply(
        self,
        representative_id: int,
        amount: Decimal,
        payment_method: str = PaymentMethod.CASH.value,
        transaction_type: Optional[str] = None,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        external_reference: Optional[str] = None,
        bank_code: Optional[str] = None,
        account_number: Optional[str] = None,
        phone_number: Optional[str] = None,
        client_id: Optional[str] = None,
        validation_method: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None,
    ) -> LedgerResult:
        """
        Record a completed transaction and update the owner's balance.

        Args:
            representative_id: Owner of the transaction.
            amount: Signed amount. Positive credits the representative,
                negative debits it.
            transaction_type: Defaults to deposit for positive amounts and
                withdrawal otherwise.

        Raises:
            NotFoundError: The representative does not exist.
            InsufficientBalanceError: A withdrawal exceeds the current balance.
            LedgerOperationException: The write failed and was rolled back.
        """
        amount = to_money(amount)
        if transaction_type is None:
            transaction_type = (
                TransactionType.DEPOSIT.value if amount > 0 else TransactionType.WITHDRAWAL.value
            )

        try:
            representative = self._lock_representative(representative_id)
            previous_balance = representative.current_balance

            if transaction_type == TransactionType.WITHDRAWAL.value and previous_balance < abs(amount):
                raise InsufficientBalanceError(
                    f"Insufficient balance: available {previous_balance}, requested {abs(amount)}"
                )

            now = datetime.now()
            transaction = Transaction(
                representative_id=representative.id,
                transaction_type=transaction_type,
                amount=amount,
                description=description,
                payment_method=payment_method,
                status=TransactionStatus.COMPLETED.value,
                reference=reference,
                external_reference=external_reference,
                bank_code=bank_code,
                account_number=account_number,
                phone_number=phone_number,
                client_id=client_id,
                validation_method=validation_method,
                metadata_json=metadata,
                created_by=created_by,
                processed_at=now,
                created_at=now,
            )
            new_balance = previous_balance + amount
            representative.balance = new_balance

            self.db.add(transaction)
            self.db.commit()
            self.db.refresh(transaction)
        except MainException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            log_exception(logger, "Ledger write rolled back", e, representative_id=representative_id)
            raise LedgerOperationException(f"Failed to record transaction: {e.__class__.__name__}")
        except Exception:
            self.db.rollback()
            raise

        log_operation(
            logger,
            f"ledger_{transaction_type}",
            representative_id=representative_id,
            transaction_id=transaction.id,
            amount=str(amount),
            previous_balance=str(previous_balance),
            new_balance=str(new_balance),
        )
        return LedgerResult(transaction=transaction, previous_balance=previous_balance, new_balance=new_balance)

    def deposit(self, representative_id: int, amount: Decimal, **kwargs) -> LedgerResult:
        return self.apply(
            representative_id,
            abs(to_money(amount)),
            transaction_type=TransactionType.DEPOSIT.value,
            **kwargs,
        )

    def withdraw(self, representative_id: int, amount: Decimal, **kwargs) -> LedgerResult:
        return self.apply(
            representative_id,
            -abs(to_money(amount)),
            transaction_type=TransactionType.WITHDRAWAL.value,
            **kwargs,
        )

    def _lock_representative(self, representative_id: int) -> Representative:
        stmt = (
            select(Representative)
            .where(Representative.id == representative_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        representative = self.db.execute(stmt).scalar_one_or_none()
        if representative is None:
            raise NotFoundError(f"Representative {representative_id} not found")
        return representative
