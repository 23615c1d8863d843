"""
Pytest fixtures for the school payments test suite.

Provides:
- An isolated in-memory SQLite database per test
- Representative/student/transaction factories
- An offline bank transport with a gateway and cascade built on it
- A FastAPI TestClient wired to all of the above

No test touches the network: the bank is always the offline transport.
"""
import os

# Settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["BANK_TRANSPORT"] = "offline"
os.environ["BANK_RESPONSE_ENCODING"] = "plain"
os.environ["BANK_CLIENT_GUID"] = "test-client-guid"
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_FILE_ENABLED"] = "false"

from datetime import datetime
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from schoolpay.auth.security import create_access_token
from schoolpay.bank.cascade import CascadeOrchestrator
from schoolpay.bank.config import get_bank_gateway, get_cascade_orchestrator
from schoolpay.bank.decoder import decode_plain_envelope
from schoolpay.bank.gateway import BankGatewayClient
from schoolpay.bank.transport import OfflineBankTransport, TransportResponse, envelope_for
from schoolpay.database.db_configs import Base, build_engine, get_database
from schoolpay.main import app
from schoolpay.middleware.security import limiter
from schoolpay.pydanticModels.bankModels import PaymentClaim
from schoolpay.sqlModels.representativeEntities import Representative, Student
from schoolpay.sqlModels.transactionEntities import PaymentMethod, Transaction, TransactionStatus, TransactionType

CALLER_ID = "staff-42"


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    factory = sessionmaker(autoflush=False, autocommit=False, bind=engine)
    db = factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_representative(session):
    """Factory for representatives; `students` is a list of student statuses."""
    counter = {"n": 0}

    def _make(balance="0.00", students=(), full_name=None, identity_card=None, phone=None):
        counter["n"] += 1
        representative = Representative(
            full_name=full_name or f"Representative {counter['n']}",
            identity_card=identity_card or f"V-{10000000 + counter['n']}",
            phone=phone,
            balance=Decimal(balance),
        )
        session.add(representative)
        session.flush()
        for i, status in enumerate(students, start=1):
            session.add(Student(
                full_name=f"Student {counter['n']}.{i}",
                status=status,
                representative_id=representative.id,
            ))
        session.commit()
        session.refresh(representative)
        return representative

    return _make


@pytest.fixture
def make_transaction(session):
    """Insert a completed bank transaction directly, bypassing the ledger."""
    def _make(representative, amount="25.00", reference="000123456789", bank_code="0191",
              account_number="01910000000000000001", phone_number="04141234567",
              created_at=None, transaction_type=TransactionType.DEPOSIT.value):
        txn = Transaction(
            representative_id=representative.id,
            transaction_type=transaction_type,
            amount=Decimal(amount),
            payment_method=PaymentMethod.MOBILE_PAYMENT.value,
            status=TransactionStatus.COMPLETED.value,
            reference=reference,
            bank_code=bank_code,
            account_number=account_number,
            phone_number=phone_number,
            created_at=created_at or datetime.now(),
        )
        session.add(txn)
        session.commit()
        session.refresh(txn)
        return txn

    return _make


# =============================================================================
# Bank
# =============================================================================

@pytest.fixture
def transport() -> OfflineBankTransport:
    return OfflineBankTransport()


@pytest.fixture
def gateway(transport) -> BankGatewayClient:
    return BankGatewayClient(transport, client_guid="test-client-guid", decoder=decode_plain_envelope)


@pytest.fixture
def orchestrator(gateway) -> CascadeOrchestrator:
    return CascadeOrchestrator(gateway)


@pytest.fixture
def claim() -> PaymentClaim:
    return PaymentClaim(
        account_number="01910000000000000001",
        bank_code=191,
        phone_number="04141234567",
        client_id="V12345678",
        reference="000123456789",
        request_date="2026-10-19",
        amount=Decimal("25.00"),
    )


def found_movement(amount="25.00", control_number="CN-0001", date="2026-10-19", **extra) -> TransportResponse:
    """Bank answer reporting the movement as found."""
    validation = {
        "MovementExists": True,
        "Date": date,
        "ControlNumber": control_number,
        "Amount": float(Decimal(amount)),
        "BankCode": "0191",
        **extra,
    }
    return TransportResponse.from_json(envelope_for(validation))


def not_found_movement() -> TransportResponse:
    return TransportResponse.from_json(envelope_for({"MovementExists": False}))


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def auth_headers() -> dict:
    token = create_access_token(CALLER_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(session, gateway, orchestrator) -> Generator[TestClient, None, None]:
    def _get_database():
        yield session

    app.dependency_overrides[get_database] = _get_database
    app.dependency_overrides[get_bank_gateway] = lambda: gateway
    app.dependency_overrides[get_cascade_orchestrator] = lambda: orchestrator
    limiter.enabled = False
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True
