"""Pytest configuration and fixtures"""
import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import pytest

# Set test environment variables
os.environ.setdefault("STOREFRONT_API_URL", "https://shop.test")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")

from storefront.cart import (  # noqa: E402
    CartStore,
    CartSyncCoordinator,
    InMemorySnapshotStore,
    ProductSnapshot,
    StaticSessionProvider,
)


class FakeClock:
    """Controllable aware clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeCartApi:
    """Stand-in for CartApiClient recording every round trip."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.merge_response: dict = {"success": True, "finalCart": []}
        self.push_response: dict = {"success": True}
        self.pull_response: dict = {"success": True, "items": []}
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.coupon = None
        self.coupon_error: Optional[Exception] = None
        self.closed = False

    async def post_sync(self, items, direction):
        self.calls.append((direction, [(item.product_id, item.quantity) for item in items]))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.merge_response if direction == "merge" else self.push_response

    async def fetch_cart(self):
        self.calls.append(("pull", []))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.pull_response

    async def validate_coupon(self, code, cart_total):
        self.calls.append(("coupon", code, cart_total))
        if self.coupon_error is not None:
            raise self.coupon_error
        return self.coupon

    async def close(self):
        self.closed = True


def make_product(product_id: str = "P1", price: str = "10.00", name: Optional[str] = None) -> ProductSnapshot:
    return ProductSnapshot(
        id=product_id,
        name=name or f"Product {product_id}",
        slug=product_id.lower(),
        price=Decimal(price),
        stock_quantity=100,
    )


def server_row(row_id, product_id: str, quantity: int, price: str = "10.00", color=None, size=None) -> dict:
    """Cart row as the sync endpoint returns it (camelCase)."""
    row = {
        "id": row_id,
        "productId": product_id,
        "quantity": quantity,
        "product": {
            "id": product_id,
            "name": f"Product {product_id}",
            "slug": product_id.lower(),
            "price": price,
            "stockQuantity": 25,
        },
    }
    if color is not None:
        row["selectedColor"] = color
    if size is not None:
        row["selectedSize"] = size
    return row


@pytest.fixture
def snapshot_store():
    return InMemorySnapshotStore()


@pytest.fixture
def store(snapshot_store):
    return CartStore(snapshot_store)


@pytest.fixture
def product():
    return make_product()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def api():
    return FakeCartApi()


@pytest.fixture
def session():
    return StaticSessionProvider("user-123")


@pytest.fixture
def coordinator(store, api, session, clock):
    return CartSyncCoordinator(store, api, session, clock=clock)


@pytest.fixture(name="make_product")
def make_product_fixture():
    return make_product


@pytest.fixture(name="server_row")
def server_row_fixture():
    return server_row
