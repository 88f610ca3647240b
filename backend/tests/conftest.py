"""
Centralized Test Configuration.
"""

import itertools
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.redis_client import get_redis
from backend.app.core.jwt import create_access_token
from backend.app.domain.payments.gateway import (
    GatewayResult, get_payment_gateway, translate_status, build_envelope
)
from backend.app.domain.payments.ledger import derive_status, compute_total
from backend.app.models.customer import Customer
from backend.app.models.invoice import Invoice
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.enums import UserRole
from backend.app.models.payment_enums import (
    TransactionStatus, PaymentChannel, PaymentMethod, MobileMoneyProvider
)

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CUSTOMER_USER_ID = 501
OTHER_CUSTOMER_USER_ID = 502
STAFF_USER_ID = 9

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def ping(self):
        return True

    async def incr(self, key):
        self.store[key] = int(self.store.get(key, 0)) + 1
        return self.store[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def flushdb(self):
        self.store = {}
        self.ttls = {}


def paystack_result(literal: str, message: str = None, **data) -> GatewayResult:
    """Build a translated gateway result the way the Paystack adapter would."""
    payload = {"status": literal, **data}
    if message:
        payload["gateway_response"] = message
    return GatewayResult(
        status=translate_status(literal),
        gateway_status=literal,
        message=message,
        data=payload,
        envelope=build_envelope({"status": True, "message": "ok", "data": payload}),
    )


class FakeGateway:
    """
    Stand-in for PaystackClient.

    Each queue holds GatewayResult objects or exceptions; the last entry is
    reused once the queue is down to one item.
    """

    def __init__(self):
        self.secret_key = "sk_test_fake"
        self.charge_responses = [paystack_result("send_otp", display_text="Approve on your phone")]
        self.verify_responses = [paystack_result("success", message="Approved")]
        self.checkout_responses = [paystack_result(
            "pending", authorization_url="https://checkout.paystack.com/abc123", access_code="abc123"
        )]
        self.charges = []
        self.verifications = []
        self.checkouts = []

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    async def charge(self, request):
        self.charges.append(request)
        return self._next(self.charge_responses)

    async def verify(self, reference):
        self.verifications.append(reference)
        return self._next(self.verify_responses)

    async def initialize_checkout(self, request):
        self.checkouts.append(request)
        return self._next(self.checkout_responses)

    @staticmethod
    def _next(queue):
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
def fake_gateway():
    """Fake payment gateway wired into the API."""
    gateway = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_payment_gateway, None)

@pytest.fixture
def gateway_result():
    """Factory for translated gateway results, e.g. gateway_result("pay_offline", ussd_code="*170#")."""
    return paystack_result

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
def auth_headers():
    """Bearer headers for a user id and role."""
    def _headers(user_id: int = CUSTOMER_USER_ID, role: UserRole = UserRole.CUSTOMER) -> dict:
        token = create_access_token({"sub": f"user{user_id}", "user_id": user_id, "role": role.value})
        return {"Authorization": f"Bearer {token}"}
    return _headers

@pytest.fixture
def make_invoice(db_session):
    """Create an invoice (and its customer on first use) with a consistent status."""
    numbers = itertools.count(1)

    async def _make(total="1000.00", amount_paid="0.00", user_id: int = CUSTOMER_USER_ID,
                    tax="0.00", discount="0.00") -> Invoice:
        result = await db_session.execute(select(Customer).where(Customer.user_id == user_id))
        customer = result.scalar_one_or_none()
        if customer is None:
            customer = Customer(user_id=user_id, name=f"Customer {user_id}", email=f"c{user_id}@example.com")
            db_session.add(customer)
            await db_session.flush()

        subtotal = Decimal(total) - Decimal(tax) + Decimal(discount)
        invoice = Invoice(
            invoice_number=f"INV-{user_id}-{next(numbers):04d}",
            customer_id=customer.id,
            subtotal=subtotal,
            tax=Decimal(tax),
            discount=Decimal(discount),
            total=compute_total(subtotal, tax, discount),
            amount_paid=Decimal(amount_paid),
            payment_status=derive_status(Decimal(amount_paid), Decimal(total)),
        )
        db_session.add(invoice)
        await db_session.commit()
        return invoice

    return _make

@pytest.fixture
def make_transaction(db_session):
    """Create a mobile money transaction against an invoice, as the initiator would."""
    references = itertools.count(1)

    async def _make(invoice: Invoice, amount="1000.00",
                    status: TransactionStatus = TransactionStatus.AWAITING_OTP) -> PaymentTransaction:
        transaction = PaymentTransaction(
            reference=f"MM-{invoice.invoice_number}-{next(references)}",
            amount=Decimal(amount),
            currency="GHS",
            channel=PaymentChannel.MOBILE_MONEY,
            payment_method=PaymentMethod.MOBILE_MONEY_MTN,
            mobile_money_number="233241018947",
            provider=MobileMoneyProvider.MTN,
            status=status,
            gateway_status="send_otp",
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
        )
        db_session.add(transaction)
        await db_session.commit()
        return transaction

    return _make
