import os
from collections.abc import Generator
from datetime import datetime
from types import SimpleNamespace
from typing import Any, Callable
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from beanie import PydanticObjectId
from fastapi.testclient import TestClient

# Test settings before app modules are imported
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "agritech_test")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")
os.environ.setdefault("PAYPACK_CLIENT_ID", "test-client-id")
os.environ.setdefault("PAYPACK_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("PAYPACK_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("PAYPACK_CALLBACK_URL", "https://shop.test/agritech/v1/payment/paypack/notify")
os.environ.setdefault("STORAGE_LOCAL_PATH", "/tmp/agritech-test-uploads")

from app.models.order import OrderLine, OrderStatus, PaymentChannel, PaymentStatus, ShippingAddress  # noqa: E402
from app.models.user import UserRole  # noqa: E402

API = "/agritech/v1"
PAYPACK_BASE = "https://paypack.test/api"
WEBHOOK_SECRET = "test-webhook-secret"


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class PaypackStub:
    """httpx.MockTransport handler recording calls to fake PayPack endpoints."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.auth_responses: list[httpx.Response] = []
        self.cashin_responses: list[httpx.Response] = []
        self.transaction_responses: list[httpx.Response] = []
        self.token_counter = 0
        self.on_cashin: Callable[[httpx.Request], None] | None = None

    def calls(self, path_suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(path_suffix)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/auth/token"):
            if self.auth_responses:
                return self.auth_responses.pop(0)
            self.token_counter += 1
            return httpx.Response(200, json={"access_token": f"tok-{self.token_counter}", "expires_in": 3600})
        if path.endswith("/collection/request"):
            if self.on_cashin:
                self.on_cashin(request)
            if self.cashin_responses:
                return self.cashin_responses.pop(0)
            return httpx.Response(200, json={"ref": "pp-ref-1", "status": "pending", "amount": 5000})
        if "/transactions/" in path:
            if self.transaction_responses:
                return self.transaction_responses.pop(0)
            return httpx.Response(200, json={"ref": path.rsplit("/", 1)[-1], "status": "pending"})
        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def paypack_stub() -> PaypackStub:
    return PaypackStub()


@pytest.fixture
def paypack_http(paypack_stub: PaypackStub) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(paypack_stub), base_url=PAYPACK_BASE)


@pytest.fixture
def payment_settings() -> SimpleNamespace:
    return SimpleNamespace(
        paypack_callback_url="https://shop.test/agritech/v1/payment/paypack/notify",
        paypack_webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def payment_service(paypack_http, clock, payment_settings):
    from app.services.payments import PaymentService
    from app.services.paypack import PaypackClient, TokenCache

    cache = TokenCache(paypack_http, "test-client-id", "test-client-secret", clock=clock)
    return PaymentService(PaypackClient(paypack_http, cache), payment_settings, clock=clock)


def make_user(role: UserRole = UserRole.BUYER, phone_number: str = "250788123456", **kwargs: Any) -> SimpleNamespace:
    fields = {
        "id": PydanticObjectId(),
        "username": "kalisa",
        "email": "kalisa@example.com",
        "password_hash": "",
        "address": "Kigali",
        "phone_number": phone_number,
        "role": role,
        "created_at": datetime(2025, 1, 1),
    }
    fields.update(kwargs)
    return SimpleNamespace(**fields)


def make_order(
    order_id: str = "ORD-1",
    total_amount: float = 5000,
    buyer: SimpleNamespace | None = None,
    seller: SimpleNamespace | None = None,
    **kwargs: Any,
) -> SimpleNamespace:
    """Order stand-in with the fields the services touch; save() is an AsyncMock."""
    fields = {
        "id": PydanticObjectId(),
        "order_id": order_id,
        "buyer": buyer or make_user(),
        "seller": seller or make_user(UserRole.SELLER, phone_number="250791111111"),
        "product": OrderLine(product_id=PydanticObjectId(), name="Maize 50kg", quantity=1, price=total_amount),
        "total_amount": total_amount,
        "currency": "RWF",
        "order_status": OrderStatus.PENDING,
        "shipping_address": ShippingAddress(
            full_name="Kalisa Jean",
            phone_number="0788123456",
            street_address="KG 11 Ave",
            city="Kigali",
        ),
        "payment_status": PaymentStatus.PENDING,
        "payment_method": "PayPack",
        "payment_channel": PaymentChannel.MOMO,
        "payment_verified": False,
        "payment_metadata": {},
        "transaction_id": None,
        "provider_reference": None,
        "previous_transaction_ids": [],
        "payment_timestamp": None,
        "order_date": datetime(2025, 1, 2),
        "delivery_date": None,
        "save": AsyncMock(),
    }
    fields.update(kwargs)
    return SimpleNamespace(**fields)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """App client with the database bootstrap stubbed out."""
    with patch("app.main.init_db", new=AsyncMock()):
        from app.main import app
        with TestClient(app) as c:
            yield c
        app.dependency_overrides.clear()
