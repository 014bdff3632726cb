"""
Tests for the storefront API client
"""

import json
from decimal import Decimal

import httpx
import pytest

from storefront.cart import CartApiClient, DiscountType, HttpSessionProvider
from storefront.cart.models import CartLineItem
from storefront.errors import CartSyncError, CouponValidationError


def _client(handler):
    """API client whose transport is a plain function."""
    return CartApiClient(
        base_url="https://shop.test/",
        headers={"Cookie": "session=abc"},
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class Recorder:
    """MockTransport handler remembering the last request."""

    def __init__(self, response=None, status_code=200):
        self.response = response if response is not None else {"success": True}
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.response)

    @property
    def body(self):
        return json.loads(self.requests[-1].content)


class TestCartSync:
    """Cart sync endpoint."""

    @pytest.mark.asyncio
    async def test_request_shape(self, make_product):
        recorder = Recorder({"success": True, "finalCart": []})
        client = _client(recorder)
        items = [
            CartLineItem(id="cart-1", product_id="P1", quantity=2, product=make_product("P1"), selected_color="red"),
            CartLineItem(id="cart-2", product_id="P2", quantity=1, product=make_product("P2")),
        ]

        await client.post_sync(items, "merge")

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://shop.test/api/cart/sync"
        assert request.headers["Cookie"] == "session=abc"
        assert recorder.body == {
            "localCartItems": [
                {"productId": "P1", "quantity": 2, "selectedColor": "red"},
                {"productId": "P2", "quantity": 1},
            ],
            "syncDirection": "merge",
        }

    @pytest.mark.asyncio
    async def test_push_direction(self):
        recorder = Recorder()
        client = _client(recorder)

        await client.post_sync([], "local_to_db")

        assert recorder.body == {"localCartItems": [], "syncDirection": "local_to_db"}

    @pytest.mark.asyncio
    async def test_data_envelope_unwrapped(self, server_row):
        row = server_row("1", "P1", 2)
        client = _client(Recorder({"success": True, "data": {"finalCart": [row], "conflicts": []}}))

        data = await client.post_sync([], "merge")

        assert data["finalCart"] == [row]
        assert data["success"] is True

    @pytest.mark.asyncio
    async def test_root_keys_win_over_envelope(self, server_row):
        root, nested = server_row("1", "P1", 2), server_row("2", "P2", 3)
        client = _client(Recorder({"success": True, "finalCart": [root], "data": {"finalCart": [nested]}}))

        data = await client.post_sync([], "merge")

        assert data["finalCart"] == [root]

    @pytest.mark.asyncio
    async def test_success_false_raises(self):
        client = _client(Recorder({"success": False, "error": "cart is locked"}))

        with pytest.raises(CartSyncError, match="cart is locked"):
            await client.post_sync([], "merge")

    @pytest.mark.asyncio
    async def test_http_error_carries_status(self):
        client = _client(Recorder({"error": "boom"}, status_code=500))

        with pytest.raises(CartSyncError) as exc_info:
            await client.post_sync([], "merge")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)

        with pytest.raises(CartSyncError, match="Failed to connect"):
            await client.post_sync([], "merge")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = _client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(CartSyncError, match="Invalid JSON"):
            await client.fetch_cart()

    @pytest.mark.asyncio
    async def test_fetch_cart_is_get(self):
        recorder = Recorder({"success": True, "items": []})
        client = _client(recorder)

        data = await client.fetch_cart()

        assert recorder.requests[0].method == "GET"
        assert data == {"success": True, "items": []}

    @pytest.mark.asyncio
    async def test_close(self):
        client = _client(Recorder())

        await client.close()
        await client.close()

        assert client._http_client is None


class TestCouponValidation:
    """Coupon endpoint."""

    @pytest.mark.asyncio
    async def test_valid_coupon(self):
        recorder = Recorder({
            "success": True,
            "data": {"code": "SAVE10", "discountType": "PERCENTAGE", "discountValue": 10, "description": "10% off"},
        })
        client = _client(recorder)

        coupon = await client.validate_coupon(" save10 ", Decimal("100.00"))

        assert recorder.requests[0].url.path == "/api/coupons/validate"
        assert recorder.body == {"code": "SAVE10", "cartTotal": 100.0}
        assert coupon.code == "SAVE10"
        assert coupon.discount_type == DiscountType.PERCENTAGE
        assert coupon.discount_value == Decimal("10")

    @pytest.mark.asyncio
    async def test_refused_coupon(self):
        client = _client(Recorder({"success": False, "error": "Coupon expired"}))

        with pytest.raises(CouponValidationError, match="Coupon expired"):
            await client.validate_coupon("OLD", Decimal("10"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [400, 404, 422])
    async def test_client_error_means_refused(self, status_code):
        client = _client(Recorder({"error": "nope"}, status_code=status_code))

        with pytest.raises(CouponValidationError):
            await client.validate_coupon("NOPE", Decimal("10"))

    @pytest.mark.asyncio
    async def test_server_error_is_outage(self):
        client = _client(Recorder({"error": "down"}, status_code=503))

        with pytest.raises(CartSyncError) as exc_info:
            await client.validate_coupon("SAVE10", Decimal("10"))

        assert not isinstance(exc_info.value, CouponValidationError)

    @pytest.mark.asyncio
    async def test_unknown_discount_type(self):
        client = _client(Recorder({
            "success": True,
            "data": {"code": "X", "discountType": "BOGO", "discountValue": 1},
        }))

        with pytest.raises(CouponValidationError):
            await client.validate_coupon("X", Decimal("10"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["", "   "])
    async def test_empty_code_never_sent(self, code):
        recorder = Recorder()
        client = _client(recorder)

        with pytest.raises(CouponValidationError, match="required"):
            await client.validate_coupon(code, Decimal("10"))

        assert recorder.requests == []


class TestHttpSessionProvider:
    """Session lookup over HTTP."""

    @pytest.mark.asyncio
    async def test_signed_in(self):
        recorder = Recorder({"user": {"id": "user-123", "email": "a@b.test"}})
        provider = HttpSessionProvider(_client(recorder))

        assert await provider.current_user() == "user-123"
        assert recorder.requests[0].url.path == "/api/auth/session"

    @pytest.mark.asyncio
    async def test_email_fallback(self):
        provider = HttpSessionProvider(_client(Recorder({"user": {"email": "a@b.test"}})))

        assert await provider.current_user() == "a@b.test"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"user": None}, {"user": {}}])
    async def test_anonymous(self, body):
        provider = HttpSessionProvider(_client(Recorder(body)))

        assert await provider.current_user() is None

    @pytest.mark.asyncio
    async def test_failure_is_anonymous(self):
        provider = HttpSessionProvider(_client(Recorder({"error": "unauthorized"}, status_code=401)))

        assert await provider.current_user() is None
