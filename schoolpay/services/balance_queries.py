"""
Read-side balance queries.

Listing, lookups and statistics over representatives and their
transactions. Nothing here writes; balances change only through the ledger.
"""
import math
from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, asc, case, desc, func, or_, select
from sqlalchemy.orm import Session, selectinload

from schoolpay.config.settings import settings
from schoolpay.exceptions.exceptions import NotFoundError
from schoolpay.sqlModels.representativeEntities import (
    BILLABLE_STUDENT_STATUSES,
    BalanceStatus,
    Representative,
    Student,
)
from schoolpay.sqlModels.transactionEntities import Transaction, TransactionStatus, TransactionType

RECENT_TRANSACTIONS_LIMIT = 10
HIGH_DEBT_THRESHOLD = Decimal("-100")
STALE_DEBT_DAYS = 30
STATISTICS_MONTHS = 6

SORT_FIELDS = ("balance", "full_name", "created_at", "debt_amount")


def _money(value) -> float:
    return float(value) if value is not None else 0.0


def next_payment_due(today: date) -> date:
    """First day of the month after `today`."""
    if today.month == 12:
        return date(today.year + 1, 1, 1)
    return date(today.year, today.month + 1, 1)


def financial_summary(representative: Representative, today: Optional[date] = None) -> dict:
    today = today or date.today()
    balance = representative.current_balance
    active_students = len(representative.billable_students)
    return {
        "current_balance": _money(balance),
        "debt_amount": _money(representative.debt_amount),
        "available_credit": _money(balance) if balance > 0 else 0.0,
        "active_students": active_students,
        "monthly_fee": active_students * settings.MONTHLY_FEE_PER_STUDENT,
        "next_payment_due": next_payment_due(today).isoformat(),
        "can_enroll_new_student": balance >= 0,
    }


def student_to_dict(student: Student) -> dict:
    return {"id": student.id, "full_name": student.full_name, "status": student.status}


def representative_to_dict(representative: Representative) -> dict:
    return {
        "id": representative.id,
        "full_name": representative.full_name,
        "identity_card": representative.identity_card,
        "phone": representative.phone,
        "address": representative.address,
        "relationship_type": representative.relationship_type,
        "balance": _money(representative.balance),
        "debt_amount": _money(representative.debt_amount),
        "balance_status": representative.balance_status,
        "created_at": representative.created_at.isoformat() if representative.created_at else None,
        "students": [student_to_dict(s) for s in representative.students],
    }


def transaction_to_dict(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "representative_id": txn.representative_id,
        "transaction_type": txn.transaction_type,
        "amount": _money(txn.amount),
        "description": txn.description,
        "payment_method": txn.payment_method,
        "status": txn.status,
        "reference": txn.reference,
        "external_reference": txn.external_reference,
        "bank_code": txn.bank_code,
        "account_number": txn.account_number,
        "phone_number": txn.phone_number,
        "validation_method": txn.validation_method,
        "created_by": txn.created_by,
        "processed_at": txn.processed_at.isoformat() if txn.processed_at else None,
        "created_at": txn.created_at.isoformat() if txn.created_at else None,
    }


def _pagination(page: int, limit: int, total_count: int) -> dict:
    total_pages = (total_count + limit - 1) // limit if total_count > 0 else 1
    return {
        "page": page,
        "limit": limit,
        "total_count": total_count,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_previous": page > 1,
    }


def get_representative(db: Session, representative_id: int) -> Representative:
    representative = db.get(Representative, representative_id)
    if representative is None:
        raise NotFoundError(f"Representative {representative_id} not found")
    return representative


# =============================================================================
# Single representative
# =============================================================================

def get_balance(db: Session, representative_id: int) -> dict:
    """Representative with students, financial summary and latest transactions."""
    representative = get_representative(db, representative_id)

    recent = db.execute(
        select(Transaction)
        .where(Transaction.representative_id == representative_id)
        .order_by(desc(Transaction.created_at), desc(Transaction.id))
        .limit(RECENT_TRANSACTIONS_LIMIT)
    ).scalars().all()

    return {
        **representative_to_dict(representative),
        "financial_summary": financial_summary(representative),
        "recent_transactions": [transaction_to_dict(t) for t in recent],
    }


def get_transaction_history(
    db: Session,
    representative_id: int,
    page: int = 1,
    limit: int = 20,
    transaction_type: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> dict:
    get_representative(db, representative_id)

    conditions = [Transaction.representative_id == representative_id]
    if transaction_type:
        conditions.append(Transaction.transaction_type == transaction_type)
    if status:
        conditions.append(Transaction.status == status)
    if start_date:
        conditions.append(Transaction.created_at >= start_date)
    if end_date:
        conditions.append(Transaction.created_at <= end_date)

    total_count = db.execute(
        select(func.count()).select_from(Transaction).where(and_(*conditions))
    ).scalar()

    transactions = db.execute(
        select(Transaction)
        .where(and_(*conditions))
        .order_by(desc(Transaction.created_at), desc(Transaction.id))
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return {
        "transactions": [transaction_to_dict(t) for t in transactions],
        "pagination": _pagination(page, limit, total_count),
    }


# =============================================================================
# Listing
# =============================================================================

def _balance_conditions(
    balance_status: Optional[str],
    min_balance: Optional[float],
    max_balance: Optional[float],
    has_debt: Optional[bool],
    has_credit: Optional[bool],
) -> list:
    conditions = []
    if balance_status == BalanceStatus.DEBT.value or has_debt:
        conditions.append(Representative.balance < 0)
    elif balance_status == BalanceStatus.CREDIT.value or has_credit:
        conditions.append(Representative.balance > 0)
    elif balance_status == BalanceStatus.ZERO.value:
        conditions.append(Representative.balance == 0)

    if min_balance is not None:
        conditions.append(Representative.balance >= min_balance)
    if max_balance is not None:
        conditions.append(Representative.balance <= max_balance)
    return conditions


def _sort_clause(sort_by: str, sort_order: str):
    direction = desc if sort_order == "desc" else asc
    if sort_by == "balance":
        return direction(Representative.balance)
    if sort_by == "created_at":
        return direction(Representative.created_at)
    if sort_by == "debt_amount":
        # Largest debt first regardless of sort_order
        return desc(case((Representative.balance < 0, -Representative.balance), else_=0))
    return direction(Representative.full_name)


def balance_summary(db: Session) -> dict:
    """Aggregate balance figures over every representative."""
    row = db.execute(
        select(
            func.count(Representative.id),
            func.coalesce(func.sum(case((Representative.balance < 0, Representative.balance), else_=0)), 0),
            func.coalesce(func.sum(case((Representative.balance > 0, Representative.balance), else_=0)), 0),
            func.avg(Representative.balance),
            func.count(case((Representative.balance < 0, 1))),
            func.count(case((Representative.balance > 0, 1))),
        )
    ).one()
    total, total_debt, total_credit, average, with_debt, with_credit = row

    return {
        "total_representatives": total,
        "total_balance": _money(total_debt) + _money(total_credit),
        "total_debt": abs(_money(total_debt)),
        "total_credit": _money(total_credit),
        "average_balance": _money(average),
        "representatives_with_debt": with_debt,
        "representatives_with_credit": with_credit,
        "representatives_with_zero_balance": total - with_debt - with_credit,
    }


def list_representatives(
    db: Session,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    full_name: Optional[str] = None,
    identity_card: Optional[str] = None,
    relationship_type: Optional[str] = None,
    balance_status: Optional[str] = None,
    min_balance: Optional[float] = None,
    max_balance: Optional[float] = None,
    has_debt: Optional[bool] = None,
    has_credit: Optional[bool] = None,
    has_students: Optional[bool] = None,
    sort_by: str = "full_name",
    sort_order: str = "asc",
) -> dict:
    """
    Filtered, sorted and paginated representatives.

    `search` matches name, identity card or phone. The summary block always
    covers every representative, independent of the filters.
    """
    conditions = []

    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(
                Representative.full_name.ilike(pattern),
                Representative.identity_card.ilike(pattern),
                Representative.phone.ilike(pattern),
            )
        )
    if full_name:
        conditions.append(Representative.full_name.ilike(f"%{full_name}%"))
    if identity_card:
        conditions.append(Representative.identity_card.ilike(f"%{identity_card}%"))
    if relationship_type:
        conditions.append(Representative.relationship_type == relationship_type)

    conditions.extend(_balance_conditions(balance_status, min_balance, max_balance, has_debt, has_credit))

    if has_students is True:
        conditions.append(Representative.students.any())
    elif has_students is False:
        conditions.append(~Representative.students.any())

    count_query = select(func.count()).select_from(Representative)
    base_query = select(Representative).options(selectinload(Representative.students))
    if conditions:
        count_query = count_query.where(and_(*conditions))
        base_query = base_query.where(and_(*conditions))

    total_count = db.execute(count_query).scalar()
    representatives = db.execute(
        base_query
        .order_by(_sort_clause(sort_by, sort_order), asc(Representative.id))
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    today = date.today()
    return {
        "representatives": [
            {**representative_to_dict(r), "financial_summary": financial_summary(r, today)}
            for r in representatives
        ],
        "pagination": _pagination(page, limit, total_count),
        "summary": balance_summary(db),
        "filters": {
            "search": search,
            "balance_status": balance_status,
            "has_debt": has_debt,
            "has_credit": has_credit,
            "has_students": has_students,
            "sort_by": sort_by,
            "sort_order": sort_order,
        },
    }


def _monthly_fee(representative: Representative) -> float:
    return len(representative.billable_students) * settings.MONTHLY_FEE_PER_STUDENT


def top_debtors(db: Session, limit: int = 10) -> dict:
    debtors = db.execute(
        select(Representative)
        .options(selectinload(Representative.students))
        .where(Representative.balance < 0)
        .order_by(asc(Representative.balance), asc(Representative.id))
        .limit(limit)
    ).scalars().all()

    total_debt = abs(_money(db.execute(
        select(func.coalesce(func.sum(Representative.balance), 0)).where(Representative.balance < 0)
    ).scalar()))

    formatted = []
    for representative in debtors:
        monthly_fee = _monthly_fee(representative)
        debt = _money(representative.debt_amount)
        formatted.append({
            **representative_to_dict(representative),
            "active_students": len(representative.billable_students),
            "monthly_fee": monthly_fee,
            "months_in_debt": math.ceil(debt / (monthly_fee or 1)),
        })

    return {
        "debtors": formatted,
        "summary": {
            "total_debtors": len(formatted),
            "total_debt_amount": total_debt,
            "average_debt": total_debt / (len(formatted) or 1),
            "highest_debt": formatted[0]["debt_amount"] if formatted else 0.0,
            "lowest_debt": formatted[-1]["debt_amount"] if formatted else 0.0,
        },
    }


def top_creditors(db: Session, limit: int = 10) -> dict:
    creditors = db.execute(
        select(Representative)
        .options(selectinload(Representative.students))
        .where(Representative.balance > 0)
        .order_by(desc(Representative.balance), asc(Representative.id))
        .limit(limit)
    ).scalars().all()

    total_credit = _money(db.execute(
        select(func.coalesce(func.sum(Representative.balance), 0)).where(Representative.balance > 0)
    ).scalar())

    formatted = []
    for representative in creditors:
        credit = _money(representative.balance)
        formatted.append({
            **representative_to_dict(representative),
            "credit_amount": credit,
            "active_students": len(representative.billable_students),
            "months_paid_ahead": math.floor(credit / (_monthly_fee(representative) or 1)),
        })

    return {
        "creditors": formatted,
        "summary": {
            "total_creditors": len(formatted),
            "total_credit_amount": total_credit,
            "average_credit": total_credit / (len(formatted) or 1),
            "highest_credit": formatted[0]["credit_amount"] if formatted else 0.0,
            "lowest_credit": formatted[-1]["credit_amount"] if formatted else 0.0,
        },
    }


# =============================================================================
# Statistics
# =============================================================================

BALANCE_RANGES = OrderedDict([
    ("below -500", lambda b: b < -500),
    ("-500 to -100", lambda b: -500 <= b < -100),
    ("-100 to 0", lambda b: -100 <= b < 0),
    ("0", lambda b: b == 0),
    ("0 to 100", lambda b: 0 < b <= 100),
    ("100 to 500", lambda b: 100 < b <= 500),
    ("above 500", lambda b: b > 500),
])


def _balance_distribution(db: Session) -> list:
    buckets = OrderedDict((label, {"range": label, "count": 0, "total": 0.0}) for label in BALANCE_RANGES)
    for (balance,) in db.execute(select(Representative.balance)):
        value = Decimal(balance if balance is not None else 0)
        for label, matches in BALANCE_RANGES.items():
            if matches(value):
                buckets[label]["count"] += 1
                buckets[label]["total"] += _money(value)
                break
    return [bucket for bucket in buckets.values() if bucket["count"]]


def _monthly_transactions(db: Session, since: datetime) -> list:
    months = OrderedDict()
    rows = db.execute(
        select(Transaction.created_at, Transaction.transaction_type, Transaction.amount)
        .where(
            and_(
                Transaction.status == TransactionStatus.COMPLETED.value,
                Transaction.created_at >= since,
            )
        )
        .order_by(desc(Transaction.created_at))
    )
    for created_at, transaction_type, amount in rows:
        key = created_at.strftime("%Y-%m")
        month = months.setdefault(
            key, {"month": key, "transaction_count": 0, "total_deposits": 0.0, "total_withdrawals": 0.0}
        )
        month["transaction_count"] += 1
        if transaction_type == TransactionType.DEPOSIT.value:
            month["total_deposits"] += _money(amount)
        elif transaction_type == TransactionType.WITHDRAWAL.value:
            month["total_withdrawals"] += abs(_money(amount))
    return list(months.values())


def financial_statistics(db: Session, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now()

    active_students = db.execute(
        select(func.count(Student.id)).where(Student.status.in_(BILLABLE_STUDENT_STATUSES))
    ).scalar()
    representatives_with_active = db.execute(
        select(func.count(func.distinct(Student.representative_id)))
        .where(Student.status.in_(BILLABLE_STUDENT_STATUSES))
    ).scalar()

    high_debt = db.execute(
        select(func.count(Representative.id)).where(Representative.balance < HIGH_DEBT_THRESHOLD)
    ).scalar()
    stale_debt = db.execute(
        select(func.count(Representative.id)).where(
            and_(
                Representative.balance < 0,
                Representative.updated_at < now - timedelta(days=STALE_DEBT_DAYS),
            )
        )
    ).scalar()

    return {
        "general": balance_summary(db),
        "balance_distribution": _balance_distribution(db),
        "monthly_transactions": _monthly_transactions(db, now - timedelta(days=30 * STATISTICS_MONTHS)),
        "student_statistics": {
            "total_active_students": active_students,
            "representatives_with_active_students": representatives_with_active,
            "projected_monthly_revenue": active_students * settings.MONTHLY_FEE_PER_STUDENT,
            "average_students_per_representative": (
                round(active_students / representatives_with_active, 2) if representatives_with_active else 0
            ),
        },
        "alerts": {
            "high_debt": high_debt,
            "upcoming_payments": stale_debt,
        },
        "calculated_at": now.isoformat(),
    }


# =============================================================================
# Transaction lookups
# =============================================================================

def transaction_status(
    db: Session,
    reference: str,
    bank_code: str,
    account_number: Optional[str] = None,
    amount: Optional[Decimal] = None,
) -> dict:
    """Latest transaction for a bank reference, with its owner."""
    conditions = [Transaction.reference == reference, Transaction.bank_code == bank_code]
    if account_number:
        conditions.append(Transaction.account_number == account_number)
    if amount is not None:
        conditions.append(Transaction.amount == amount)

    txn = db.execute(
        select(Transaction)
        .where(and_(*conditions))
        .order_by(desc(Transaction.created_at), desc(Transaction.id))
        .limit(1)
    ).scalars().first()

    if txn is None:
        return {"exists": False, "message": "Transaction not registered"}

    owner = txn.representative
    return {
        "exists": True,
        "transaction": transaction_to_dict(txn),
        "representative": {
            "id": owner.id,
            "full_name": owner.full_name,
            "identity_card": owner.identity_card,
        } if owner is not None else None,
    }


def payment_exists(db: Session, reference: str, representative_id: int) -> dict:
    txn = db.execute(
        select(Transaction)
        .where(
            and_(
                Transaction.reference == reference,
                Transaction.representative_id == representative_id,
                Transaction.transaction_type == TransactionType.DEPOSIT.value,
            )
        )
        .limit(1)
    ).scalars().first()

    return {
        "exists": txn is not None,
        "transaction": {
            "id": txn.id,
            "amount": _money(txn.amount),
            "status": txn.status,
            "created_at": txn.created_at.isoformat() if txn.created_at else None,
        } if txn is not None else None,
    }
