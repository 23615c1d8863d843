"""
Representative and Student Database Models.

A representative is the guardian/payer of one or more students and owns a
running balance: positive is credit, negative is debt.
"""
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from schoolpay.database.db_configs import Base


class BalanceStatus(PyEnum):
    DEBT = "debt"
    ZERO = "zero"
    CREDIT = "credit"


class StudentStatus(PyEnum):
    ACTIVE = "active"
    REGULAR = "regular"
    INACTIVE = "inactive"
    GRADUATED = "graduated"
    WITHDRAWN = "withdrawn"


# Students in these states are billed every month
BILLABLE_STUDENT_STATUSES = (StudentStatus.ACTIVE.value, StudentStatus.REGULAR.value)


class Representative(Base):
    """
    Guardian/payer account.

    `balance` is the authoritative running total of completed transactions and
    is only changed through the ledger service.
    """
    __tablename__ = "representatives"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(100), nullable=False)
    identity_card = Column(String(20), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(200), nullable=True)
    relationship_type = Column(String(50), nullable=True)
    balance = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=True)

    students = relationship("Student", back_populates="representative")
    transactions = relationship(
        "Transaction", back_populates="representative", order_by="Transaction.created_at.desc()"
    )

    __table_args__ = (
        Index('ix_representative_balance', 'balance'),
    )

    def __repr__(self):
        return f"<Representative(id={self.id}, full_name='{self.full_name}', balance={self.balance})>"

    @property
    def current_balance(self) -> Decimal:
        return Decimal(self.balance if self.balance is not None else 0)

    @property
    def debt_amount(self) -> Decimal:
        balance = self.current_balance
        return abs(balance) if balance < 0 else Decimal("0.00")

    @property
    def balance_status(self) -> str:
        balance = self.current_balance
        if balance < 0:
            return BalanceStatus.DEBT.value
        if balance == 0:
            return BalanceStatus.ZERO.value
        return BalanceStatus.CREDIT.value

    @property
    def billable_students(self) -> list:
        return [s for s in self.students if s.status in BILLABLE_STUDENT_STATUSES]


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default=StudentStatus.ACTIVE.value, index=True)
    representative_id = Column(Integer, ForeignKey("representatives.id"), nullable=False, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    representative = relationship("Representative", back_populates="students")

    def __repr__(self):
        return f"<Student(id={self.id}, full_name='{self.full_name}', status='{self.status}')>"
