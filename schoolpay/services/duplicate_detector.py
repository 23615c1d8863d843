"""
Duplicate bank payment detection.

Decides whether a bank-confirmed payment is already in the ledger. Three
checks run in order and the first hit wins:

1. Exact match on (reference, bank code, account number).
2. Same local day, same bank code and amount, and the same last four
   reference characters (payers often retype only the tail of a reference).
3. Same local day, same amount and same payer phone, when a phone is given.

The detector never raises. An internal failure is logged and reported as
"not a duplicate" so that a broken check does not block legitimate payments;
callers accept the risk of a double credit in that case.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import and_, desc, select
from sqlalchemy.orm import Session

from schoolpay.customLogging.logger import get_logger, log_exception
from schoolpay.sqlModels.transactionEntities import Transaction

logger = get_logger("schoolpay.services.duplicates")

REFERENCE_TAIL_LENGTH = 4

REASON_EXACT = "Transaction with the same reference, bank and account is already registered"
REASON_SIMILAR_TODAY = "A similar transaction was already registered today"
REASON_PHONE_TODAY = "A transaction with the same phone and amount was already registered today"


@dataclass
class DuplicateCheckResult:
    is_duplicate: bool
    reason: Optional[str] = None
    existing_transaction: Optional[Transaction] = None

    @classmethod
    def clean(cls) -> "DuplicateCheckResult":
        return cls(is_duplicate=False)


def reference_tail(reference: Optional[str]) -> str:
    return (reference or "")[-REFERENCE_TAIL_LENGTH:]


def day_bounds(moment: datetime):
    """Local midnight of `moment` and the following midnight."""
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


class DuplicateDetector:
    """Runs the duplicate checks against the transactions table."""

    def __init__(self, db: Session, now: Callable[[], datetime] = datetime.now):
        self.db = db
        self.now = now

    def check(
        self,
        reference: str,
        bank_code: str,
        account_number: str,
        amount: Decimal,
        phone_number: Optional[str] = None,
    ) -> DuplicateCheckResult:
        try:
            return self._check(reference, bank_code, account_number, Decimal(amount), phone_number)
        except Exception as e:
            log_exception(
                logger,
                "Duplicate check failed, treating payment as new",
                e,
                reference=reference,
                bank_code=bank_code,
            )
            return DuplicateCheckResult.clean()

    def _check(
        self,
        reference: str,
        bank_code: str,
        account_number: str,
        amount: Decimal,
        phone_number: Optional[str],
    ) -> DuplicateCheckResult:
        existing = self._find_exact(reference, bank_code, account_number)
        if existing is not None:
            return self._duplicate(REASON_EXACT, existing, check="exact")

        day_start, day_end = day_bounds(self.now())

        existing = self._find_similar_today(reference, bank_code, amount, day_start, day_end)
        if existing is not None:
            return self._duplicate(REASON_SIMILAR_TODAY, existing, check="similar_today")

        if phone_number:
            existing = self._find_phone_today(phone_number, amount, day_start, day_end)
            if existing is not None:
                return self._duplicate(REASON_PHONE_TODAY, existing, check="phone_today")

        return DuplicateCheckResult.clean()

    def _duplicate(self, reason: str, existing: Transaction, check: str) -> DuplicateCheckResult:
        logger.warning(
            f"Duplicate payment detected ({check})",
            extra={"existing_transaction_id": existing.id, "existing_reference": existing.reference},
        )
        return DuplicateCheckResult(is_duplicate=True, reason=reason, existing_transaction=existing)

    def _find_exact(self, reference: str, bank_code: str, account_number: str) -> Optional[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                and_(
                    Transaction.reference == reference,
                    Transaction.bank_code == bank_code,
                    Transaction.account_number == account_number,
                )
            )
            .order_by(desc(Transaction.created_at))
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def _find_similar_today(
        self,
        reference: str,
        bank_code: str,
        amount: Decimal,
        day_start: datetime,
        day_end: datetime,
    ) -> Optional[Transaction]:
        tail = reference_tail(reference)
        if not tail:
            return None

        stmt = (
            select(Transaction)
            .where(
                and_(
                    Transaction.bank_code == bank_code,
                    Transaction.amount == amount,
                    Transaction.created_at >= day_start,
                    Transaction.created_at < day_end,
                )
            )
            .order_by(desc(Transaction.created_at))
        )
        for candidate in self.db.execute(stmt).scalars():
            if reference_tail(candidate.reference) == tail:
                return candidate
        return None

    def _find_phone_today(
        self,
        phone_number: str,
        amount: Decimal,
        day_start: datetime,
        day_end: datetime,
    ) -> Optional[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                and_(
                    Transaction.phone_number == phone_number,
                    Transaction.amount == amount,
                    Transaction.created_at >= day_start,
                    Transaction.created_at < day_end,
                )
            )
            .order_by(desc(Transaction.created_at))
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()
