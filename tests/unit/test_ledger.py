"""
Ledger writes: balance invariant, guards, rollback and immutability.
"""
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from schoolpay.exceptions.exceptions import InsufficientBalanceError, LedgerOperationException, NotFoundError
from schoolpay.services.ledger import LedgerService
from schoolpay.sqlModels.representativeEntities import Representative
from schoolpay.sqlModels.transactionEntities import (
    ImmutableTransactionError,
    Transaction,
    TransactionStatus,
    TransactionType,
)


def completed_sum(session, representative_id):
    return session.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.representative_id == representative_id,
            Transaction.status == TransactionStatus.COMPLETED.value,
        )
    ).scalar()


def transaction_count(session, representative_id):
    return session.execute(
        select(func.count(Transaction.id)).where(Transaction.representative_id == representative_id)
    ).scalar()


class TestDeposit:

    def test_deposit_credits_balance(self, session, make_representative):
        representative = make_representative(balance="-30.00")

        result = LedgerService(session).deposit(
            representative.id, Decimal("25.00"), reference="DEP-1", created_by="staff-1",
        )

        assert result.previous_balance == Decimal("-30.00")
        assert result.new_balance == Decimal("-5.00")
        txn = result.transaction
        assert txn.id is not None
        assert txn.transaction_type == TransactionType.DEPOSIT.value
        assert txn.amount == Decimal("25.00")
        assert txn.status == TransactionStatus.COMPLETED.value
        assert txn.processed_at is not None
        assert txn.created_by == "staff-1"

        session.expire_all()
        assert session.get(Representative, representative.id).balance == Decimal("-5.00")

    def test_type_follows_sign_when_not_given(self, session, make_representative):
        representative = make_representative(balance="50.00")

        credit = LedgerService(session).apply(representative.id, Decimal("10.00"))
        debit = LedgerService(session).apply(representative.id, Decimal("-20.00"))

        assert credit.transaction.transaction_type == TransactionType.DEPOSIT.value
        assert debit.transaction.transaction_type == TransactionType.WITHDRAWAL.value
        assert debit.new_balance == Decimal("40.00")


class TestWithdrawal:

    def test_withdrawal_is_stored_negative(self, session, make_representative):
        representative = make_representative(balance="100.00")

        result = LedgerService(session).withdraw(representative.id, Decimal("40.00"))

        assert result.transaction.amount == Decimal("-40.00")
        assert result.new_balance == Decimal("60.00")

    def test_insufficient_balance_is_rejected(self, session, make_representative):
        representative = make_representative(balance="10.00")

        with pytest.raises(InsufficientBalanceError):
            LedgerService(session).withdraw(representative.id, Decimal("10.01"))

        session.expire_all()
        assert session.get(Representative, representative.id).balance == Decimal("10.00")
        assert transaction_count(session, representative.id) == 0

    def test_full_balance_can_be_withdrawn(self, session, make_representative):
        representative = make_representative(balance="10.00")

        result = LedgerService(session).withdraw(representative.id, Decimal("10.00"))

        assert result.new_balance == Decimal("0.00")


class TestInvariant:

    def test_balance_equals_sum_of_completed_transactions(self, session, make_representative):
        representative = make_representative()
        ledger = LedgerService(session)

        ledger.deposit(representative.id, Decimal("100.00"))
        ledger.withdraw(representative.id, Decimal("35.50"))
        ledger.deposit(representative.id, Decimal("0.75"))
        ledger.apply(representative.id, Decimal("-30.00"), transaction_type=TransactionType.FEE.value)

        session.expire_all()
        balance = session.get(Representative, representative.id).balance
        assert balance == Decimal("35.25")
        assert Decimal(completed_sum(session, representative.id)).quantize(Decimal("0.01")) == balance
        assert transaction_count(session, representative.id) == 4

    def test_lock_reads_the_committed_balance_not_the_cached_one(self, session, make_representative):
        representative = make_representative(balance="0.00")
        session.execute(
            update(Representative)
            .where(Representative.id == representative.id)
            .values(balance=Decimal("100.00"))
            .execution_options(synchronize_session=False)
        )
        assert representative.balance == Decimal("0.00")

        result = LedgerService(session).deposit(representative.id, Decimal("10.00"))

        assert result.previous_balance == Decimal("100.00")
        assert result.new_balance == Decimal("110.00")


class TestFailures:

    def test_unknown_representative(self, session):
        with pytest.raises(NotFoundError):
            LedgerService(session).deposit(9999, Decimal("10.00"))

    def test_commit_failure_rolls_back(self, session, make_representative, monkeypatch):
        representative = make_representative(balance="5.00")

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "commit", failing_commit)

        with pytest.raises(LedgerOperationException):
            LedgerService(session).deposit(representative.id, Decimal("10.00"))

        monkeypatch.undo()
        session.expire_all()
        assert session.get(Representative, representative.id).balance == Decimal("5.00")
        assert transaction_count(session, representative.id) == 0


class TestImmutability:

    def test_completed_amount_cannot_change(self, session, make_representative):
        representative = make_representative()
        txn = LedgerService(session).deposit(representative.id, Decimal("25.00")).transaction

        txn.amount = Decimal("2500.00")
        with pytest.raises(ImmutableTransactionError):
            session.commit()
        session.rollback()

    def test_completed_owner_cannot_change(self, session, make_representative):
        first = make_representative()
        second = make_representative()
        txn = LedgerService(session).deposit(first.id, Decimal("25.00")).transaction

        txn.representative_id = second.id
        with pytest.raises(ImmutableTransactionError):
            session.commit()
        session.rollback()

    def test_status_change_is_allowed(self, session, make_representative):
        representative = make_representative()
        txn = LedgerService(session).deposit(representative.id, Decimal("25.00")).transaction

        txn.status = TransactionStatus.REVERSED.value
        session.commit()

        session.refresh(txn)
        assert txn.status == TransactionStatus.REVERSED.value
