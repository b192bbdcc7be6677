"""Shared pytest fixtures for unit and integration tests."""

import hashlib
import hmac
import json
import os
from decimal import Decimal

# Settings are read at import time; point them at test values first
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("DEBUG", "false")

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.main import app
from app.config import settings
from app.database import Base, get_db
from app.core.security import create_access_token
from app.models.enums import BusinessCategory, PartnerStatus, UserRole
from app.models.partner import Partner
from app.models.user import User
from app.services.payment_gateway import PaymentGateway, get_payment_gateway

KEY_ID = "rzp_test_key"
KEY_SECRET = "rzp_test_secret"
WEBHOOK_SECRET = "whsec_test"
GATEWAY_BASE = "https://api.razorpay.test/v1"


def sign_payment(gateway_order_id: str, payment_id: str, secret: str = KEY_SECRET) -> str:
    """Checkout signature the gateway would hand to the client."""
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_webhook(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "roles": user.roles})
    return {"Authorization": f"Bearer {token}"}


class FakeRazorpay:
    """
    In-memory stand-in for the gateway's REST API, served through
    httpx.MockTransport.

    Set ``fail_with`` to "timeout", "network" or an HTTP status code to make
    every call fail that way.
    """

    def __init__(self):
        self.orders = {}
        self.payments = {}
        self.requests = []
        self.fail_with = None

    def add_payment(self, gateway_order_id: str, status: str = "captured", method: str = "upi", **extra) -> dict:
        payment_id = f"pay_{len(self.payments) + 1:014d}"
        payment = {
            "id": payment_id,
            "entity": "payment",
            "order_id": gateway_order_id,
            "amount": self.orders.get(gateway_order_id, {}).get("amount", 0),
            "currency": "INR",
            "status": status,
            "method": method,
            "error_description": extra.pop("error_description", None),
            **extra,
        }
        self.payments[payment_id] = payment
        return payment

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.fail_with == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if self.fail_with == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if isinstance(self.fail_with, int):
            return httpx.Response(
                self.fail_with,
                json={"error": {"code": "BAD_REQUEST_ERROR", "description": "simulated failure"}},
            )

        path = request.url.path.removeprefix("/v1")
        parts = [p for p in path.split("/") if p]

        if request.method == "POST" and parts == ["orders"]:
            body = json.loads(request.content)
            order_id = f"order_{len(self.orders) + 1:014d}"
            order = {
                "id": order_id,
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body.get("receipt"),
                "status": "created",
                # the real API returns [] for empty notes
                "notes": body.get("notes") or [],
            }
            self.orders[order_id] = order
            return httpx.Response(200, json=order)

        if request.method == "GET" and parts == ["orders"]:
            skip = int(request.url.params.get("skip", 0))
            count = int(request.url.params.get("count", 10))
            items = list(self.orders.values())[skip:skip + count]
            return httpx.Response(200, json={"entity": "collection", "count": len(items), "items": items})

        if request.method == "GET" and len(parts) == 3 and parts[0] == "orders" and parts[2] == "payments":
            items = [p for p in self.payments.values() if p["order_id"] == parts[1]]
            return httpx.Response(200, json={"entity": "collection", "count": len(items), "items": items})

        if request.method == "GET" and len(parts) == 2 and parts[0] == "payments":
            payment = self.payments.get(parts[1])
            if payment is None:
                return httpx.Response(
                    400,
                    json={"error": {"code": "BAD_REQUEST_ERROR", "description": "The id provided does not exist"}},
                )
            return httpx.Response(200, json=payment)

        return httpx.Response(404, json={"error": {"description": "not found"}})


# Database

@pytest.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# Domain objects

@pytest.fixture
async def user(db) -> User:
    user = User(email="payer@example.com", name="Asha Payer", roles=[UserRole.USER.value])
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def other_user(db) -> User:
    user = User(email="someone.else@example.com", name="Ravi Other", roles=[UserRole.USER.value])
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def partner_user(db) -> User:
    user = User(
        email="owner@chaipoint.example.com",
        name="Meera Owner",
        roles=[UserRole.USER.value, UserRole.PARTNER.value],
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def partner(db, partner_user) -> Partner:
    partner = Partner(
        user_id=partner_user.id,
        business_name="Chai Point",
        category=BusinessCategory.CAFE,
        discount_rate=Decimal("6"),
        status=PartnerStatus.ACTIVE,
        is_verified=True,
        payout_enabled=True,
    )
    db.add(partner)
    await db.commit()
    await db.refresh(partner)
    return partner


# Gateway

@pytest.fixture
def razorpay() -> FakeRazorpay:
    return FakeRazorpay()


@pytest.fixture
def gateway(razorpay) -> PaymentGateway:
    return PaymentGateway(
        key_id=KEY_ID,
        key_secret=KEY_SECRET,
        webhook_secret=WEBHOOK_SECRET,
        base_url=GATEWAY_BASE,
        timeout=1.0,
        transport=httpx.MockTransport(razorpay.handler),
    )


# HTTP

@pytest.fixture
def api_base() -> str:
    """Base URL for API requests."""
    return f"http://test{settings.API_V1_PREFIX}"


@pytest.fixture
async def async_client(session_factory, gateway, api_base: str):
    """App client wired to the per-test database and the fake gateway."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=api_base, timeout=30.0) as client:
        yield client

    app.dependency_overrides.clear()

