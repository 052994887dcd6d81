from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, get_db
from core import config as core_config
from services import email as email_service
from models.enums import OrderStatus, PaymentStatus, UserRole
from models.order import Order
from models.payment import Payment
from models.user import User
from security.password import hash_password
from security import jwt as jwt_utils

from tests.helpers import WEBHOOK_SECRET


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.MONNIFY_SECRET_KEY = WEBHOOK_SECRET
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.REFRESH_SECRET = "test-refresh"
    core_config.settings.PAYMENT_AMOUNT_TOLERANCE = Decimal("0.01")
    core_config.settings.TESTING = True
    yield


@pytest.fixture()
def db():
    """Fresh in-memory database per test, shared with the app through get_db."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()

    def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db
    try:
        yield session
    finally:
        session.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def customer(db):
    user = User(
        first_name="Ada",
        last_name="Obi",
        email="ada@example.com",
        password_hash=hash_password("customerpass"),
        role=UserRole.CUSTOMER.value,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def staff_user(db):
    user = User(
        first_name="Sam",
        last_name="Staff",
        email="staff@example.com",
        password_hash=hash_password("staffpass123"),
        role=UserRole.STAFF.value,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def staff_headers(staff_user):
    return {"Authorization": f"Bearer {jwt_utils.create_access_token(str(staff_user.id))}"}


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {jwt_utils.create_access_token(str(customer.id))}"}


@pytest.fixture
def make_order(db):
    """Factory for an order with a pending Monnify payment attached."""
    counter = {"n": 0}

    def _make(
        total="15000.00",
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        reference=None,
        user=None,
        email="buyer@example.com",
    ):
        counter["n"] += 1
        n = counter["n"]
        order = Order(
            order_number=f"ORD-{n}",
            user_id=user.id if user else None,
            email=email,
            first_name="Buyer",
            last_name=str(n),
            total=Decimal(total),
            status=status,
            payment_status=payment_status,
        )
        db.add(order)
        db.flush()
        payment = Payment(
            order_id=order.id,
            reference=reference or f"ref-{n}",
            amount=Decimal(total),
            currency="NGN",
            status=PaymentStatus.PENDING.value,
        )
        db.add(payment)
        db.commit()
        return order, payment

    return _make
