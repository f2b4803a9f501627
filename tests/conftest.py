"""Pytest bootstrap configuration.

Mandatory environment variables are set before any application module is
imported, because settings are read at import time.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")

from typing import Any, Optional

import pytest
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dtos.donations import CaptureResult, CheckoutResult, CreateCheckout, WebhookEvent
from domain.donation.entity import PaymentMethod
from infrastructure.models import Base, DonationModel, NotificationModel, UserModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


DONOR_ID = "donor-1"
RECIPIENT_ID = "recipient-1"


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN on its own; take control so SAVEPOINTs behave
    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def uow_factory(session_factory):
    def _factory(**kwargs):
        return SQLAlchemyUnitOfWork(session_factory=session_factory, **kwargs)
    return _factory


async def add_user(session_factory, user_id: str, **fields) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add(UserModel(id=user_id, **fields))


@pytest.fixture
async def users(session_factory):
    """A donor and a recipient who accepts both processors (Stripe preferred)."""
    await add_user(session_factory, DONOR_ID, username="alice", name="Alice")
    await add_user(
        session_factory,
        RECIPIENT_ID,
        username="bob",
        name="Bob",
        donation_method="STRIPE",
        stripe_account_id="acct_123",
        paypal_link="bob@example.com",
        donations_enabled=True,
    )
    return DONOR_ID, RECIPIENT_ID


@pytest.fixture
def fetch_donations(session_factory):
    async def _fetch() -> list[DonationModel]:
        async with session_factory() as session:
            result = await session.execute(select(DonationModel))
            return list(result.scalars().all())
    return _fetch


@pytest.fixture
def fetch_notifications(session_factory):
    async def _fetch() -> list[NotificationModel]:
        async with session_factory() as session:
            result = await session.execute(select(NotificationModel))
            return list(result.scalars().all())
    return _fetch


class FakeGateway:
    """In-memory PaymentGateway: records calls, returns or raises what it is told."""

    def __init__(
        self,
        processor: PaymentMethod,
        *,
        identifier: str = "ext_1",
        artifact: str = "artifact_1",
        error: Optional[Exception] = None,
        event: Optional[WebhookEvent] = None,
        capture_status: str = "succeeded",
        capture_error: Optional[Exception] = None,
    ):
        self.processor = processor
        self.identifier = identifier
        self.artifact = artifact
        self.error = error
        self.event = event
        self.capture_status = capture_status
        self.capture_error = capture_error
        self.calls: list[CreateCheckout] = []
        self.captures: list[tuple[str, Optional[str]]] = []
        self.closed = False

    async def create_checkout(self, req: CreateCheckout) -> CheckoutResult:
        self.calls.append(req)
        if self.error is not None:
            raise self.error
        return CheckoutResult(
            processor=self.processor,
            identifier=self.identifier,
            client_artifact=self.artifact,
        )

    async def capture_checkout(self, identifier: str, *, idempotency_key: Optional[str] = None) -> CaptureResult:
        self.captures.append((identifier, idempotency_key))
        if self.capture_error is not None:
            raise self.capture_error
        return CaptureResult(processor=self.processor, identifier=identifier, status=self.capture_status, capture_id="CAPTURE-1")

    async def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:
        if self.error is not None:
            raise self.error
        return self.event

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def stripe_gateway():
    return FakeGateway(PaymentMethod.STRIPE, identifier="pi_123", artifact="pi_123_secret_abc")


@pytest.fixture
def paypal_gateway():
    return FakeGateway(
        PaymentMethod.PAYPAL,
        identifier="ORDER-1",
        artifact="https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1",
    )


@pytest.fixture
def gateways(stripe_gateway, paypal_gateway):
    return {PaymentMethod.STRIPE: stripe_gateway, PaymentMethod.PAYPAL: paypal_gateway}


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def make_user(session_factory):
    async def _make(user_id: str, **fields) -> None:
        await add_user(session_factory, user_id, **fields)
    return _make
