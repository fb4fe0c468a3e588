"""Pytest fixtures for testing"""

import asyncio
import pytest
from datetime import datetime, timedelta
from typing import Callable, Generator, List, Optional, Tuple
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from paybill_reconciler.api.main import create_app
from paybill_reconciler.api.dependencies import get_sms_client
from paybill_reconciler.domain.exceptions import NotificationSendError
from paybill_reconciler.domain.models import debt_status
from paybill_reconciler.infrastructure.database.models import Base, Debt, PayerAccount
from paybill_reconciler.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeSmsClient:
    """Stands in for SmsClient; records every send"""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.sent: List[Tuple[str, str]] = []

    async def send(self, phone: str, text: str) -> Optional[str]:
        self.sent.append((phone, text))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise NotificationSendError("SMS gateway error: 503")
        return f"msg-{len(self.sent)}"


def mpesa_sms(
    reference: Optional[str] = "GT87HJ890",
    amount: str = "500.00",
    account: Optional[str] = "12345",
    phone: str = "254712345678",
    name: str = "JOHN DOE",
    when: str = "on 12/3/24 at 10:15 AM",
) -> str:
    """Build a paybill confirmation in the format M-Pesa sends"""
    parts = []
    if reference:
        parts.append(f"{reference} Confirmed.")
    parts.append(f"{when} Ksh{amount} received from {name} {phone}.")
    if account:
        parts.append(f"Account Number {account}")
    parts.append("New Utility balance is Ksh10,500.00. Transaction cost, Ksh0.00.")
    return " ".join(parts)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sms_client() -> FakeSmsClient:
    return FakeSmsClient()


@pytest.fixture
def client(db: Session, sms_client: FakeSmsClient) -> TestClient:
    """Create FastAPI test client with test database and fake SMS gateway"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sms_client] = lambda: sms_client
    return TestClient(app)


@pytest.fixture
def make_debt(db: Session) -> Callable[..., Debt]:
    """Insert a debt with consistent balances"""
    base_time = datetime(2024, 1, 1, 9, 0)

    def _make(
        code: str,
        principal_cents: int,
        paid_cents: int = 0,
        payer_phone: Optional[str] = "+254700000001",
        age_days: int = 0,
    ) -> Debt:
        remaining = max(0, principal_cents - paid_cents)
        debt = Debt(
            code=code,
            principal_cents=principal_cents,
            paid_cents=paid_cents,
            remaining_cents=remaining,
            status=debt_status(paid_cents, remaining),
            payer_phone=payer_phone,
            created_at=base_time - timedelta(days=age_days),
        )
        db.add(debt)
        db.commit()
        return debt

    return _make


@pytest.fixture
def make_payer(db: Session) -> Callable[..., PayerAccount]:
    """Insert a payer account keyed by normalized phone"""

    def _make(phone: str, debt_codes: List[str], name: str = "JOHN DOE") -> PayerAccount:
        payer = PayerAccount(phone=phone, name=name, debt_codes=debt_codes)
        db.add(payer)
        db.commit()
        return payer

    return _make
