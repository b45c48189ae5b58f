"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool
from decimal import Decimal

from backend.app.models.account import Customer, Vendor
from backend.app.models.ledger_enums import PaymentTransactionType, TransactionType
from backend.app.models.ledger_transaction import CustomerTransaction, VendorTransaction
from backend.app.models.payment import CreditNote, DebitNote, Payment
from backend.app.models.shipment import Invoice, Shipment

from backend.app.main import app
from backend.app.core.config import settings
from backend.app.db.session import get_db, Base
from backend.app.core.redis_client import get_redis
from backend.app.services.account_locking import EXTEND_SCRIPT, RELEASE_SCRIPT
import backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.evals = []
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if self._closed:
            return False
        if nx and key in self.store:
            return None
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def eval(self, script, numkeys, *keys_and_args):
        """Runs the lock scripts in one step, as Redis does."""
        if self._closed:
            return 0
        key, token = keys_and_args[0], keys_and_args[1]
        current = self.store.get(key)
        if isinstance(current, bytes):
            current = current.decode()
        if script == RELEASE_SCRIPT:
            self.evals.append("release")
            if current != token:
                return 0
            del self.store[key]
            return 1
        if script == EXTEND_SCRIPT:
            self.evals.append("extend")
            if current != token:
                return 0
            self.ttls[key] = int(keys_and_args[2])
            return 1
        raise NotImplementedError(script)

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.ttls = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Fresh in-memory database per test
@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine.sync_engine, "connect", set_sqlite_pragma)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def redis_client():
    return MockRedis()


@pytest.fixture
def apply_overrides(session_factory, redis_client, monkeypatch):
    """Point the app at the test database and the in-memory Redis."""
    # Patch the global redis client used by the health check
    monkeypatch.setattr(redis_client_module, "redis_client", redis_client)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client(apply_overrides):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def no_lock_wait(monkeypatch):
    """Fail fast on a busy account lock."""
    monkeypatch.setattr(settings, "ledger_lock_wait_seconds", 0)
    monkeypatch.setattr(settings, "ledger_lock_poll_interval_seconds", 0)


class LedgerSeeder:
    """Builds accounts and ledger rows directly in the test database."""

    def __init__(self, db):
        self.db = db
        self._tracking = 0

    async def vendor(self, company_name="Swift Haulage", current_balance="0"):
        vendor = Vendor(company_name=company_name, current_balance=Decimal(current_balance), credit_limit=Decimal("0"))
        self.db.add(vendor)
        await self.db.flush()
        return vendor

    async def customer(self, company_name="Northwind Retail", current_balance="0"):
        customer = Customer(company_name=company_name, current_balance=Decimal(current_balance), credit_limit=Decimal("0"))
        self.db.add(customer)
        await self.db.flush()
        return customer

    async def transaction(self, account, type_, amount, created_at, reference=None, invoice=None,
                          previous_balance="0", new_balance="0"):
        values = dict(
            type=TransactionType(type_),
            amount=Decimal(amount),
            description=f"{type_} {amount}",
            reference=reference,
            invoice=invoice,
            created_at=created_at,
            previous_balance=Decimal(previous_balance),
            new_balance=Decimal(new_balance),
        )
        if isinstance(account, Vendor):
            row = VendorTransaction(vendor_id=account.id, **values)
        else:
            row = CustomerTransaction(customer_id=account.id, **values)
        self.db.add(row)
        await self.db.flush()
        return row

    async def invoice(self, number, shipment_date=None):
        shipment_id = None
        if shipment_date is not None:
            self._tracking += 1
            shipment = Shipment(tracking_id=f"TRK-{self._tracking:05d}", shipment_date=shipment_date)
            self.db.add(shipment)
            await self.db.flush()
            shipment_id = shipment.id
        invoice = Invoice(invoice_number=number, shipment_id=shipment_id)
        self.db.add(invoice)
        await self.db.flush()
        return invoice

    async def payment(self, invoice, date, amount="0", vendor=None, customer=None):
        payment = Payment(
            invoice=invoice,
            to_vendor_id=vendor.id if vendor is not None else None,
            from_customer_id=customer.id if customer is not None else None,
            transaction_type=PaymentTransactionType.EXPENSE if vendor is not None else PaymentTransactionType.INCOME,
            amount=Decimal(amount),
            date=date,
        )
        self.db.add(payment)
        await self.db.flush()
        return payment

    async def debit_note(self, number, date):
        note = DebitNote(debit_note_number=number, date=date)
        self.db.add(note)
        await self.db.flush()
        return note

    async def credit_note(self, number, date):
        note = CreditNote(credit_note_number=number, date=date)
        self.db.add(note)
        await self.db.flush()
        return note


@pytest.fixture
def seed(db_session):
    """Test data builder bound to the shared session (caller commits)."""
    return LedgerSeeder(db_session)
