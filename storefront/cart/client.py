"""
Storefront API Client

HTTP client for the server-held cart: the cart-sync endpoint, coupon
validation and the session lookup. Authentication is carried out-of-band
(session cookie/headers handed in by the application shell).
"""

import os
from decimal import Decimal
from typing import Any, Iterable, Optional

import httpx
from pydantic import ValidationError

from storefront.errors import (
    CartSyncError,
    CouponValidationError,
    ERROR_COUPON_CODE_REQUIRED,
    ERROR_COUPON_INVALID,
    ERROR_SYNC_REJECTED,
)
from storefront.logging import get_logger, sanitize_string_for_logging
from storefront.services.money import to_float
from .models import AppliedCoupon, CartLineItem
from .schemas import (
    CouponValidationRequest,
    CouponValidationResponse,
    SyncDirection,
    SyncItemPayload,
    SyncRequest,
)

logger = get_logger(__name__)

STOREFRONT_API_URL = os.environ.get("STOREFRONT_API_URL", "http://localhost:3000")
STOREFRONT_API_TIMEOUT = float(os.environ.get("STOREFRONT_API_TIMEOUT", "10"))

CART_SYNC_PATH = "/api/cart/sync"
COUPON_VALIDATE_PATH = "/api/coupons/validate"
SESSION_PATH = "/api/auth/session"


def _unwrap(body: Any) -> dict:
    """
    Flatten the server's `{success, data: {...}}` envelope.

    Root keys win over nested ones, so a root-level `finalCart` is used
    when both are present.
    """
    if not isinstance(body, dict):
        raise CartSyncError(f"Unexpected response body: {type(body).__name__}")
    nested = body.get("data")
    if isinstance(nested, dict):
        root = {key: value for key, value in body.items() if key != "data"}
        return {**nested, **root}
    return body


class CartApiClient:
    """
    Client for the storefront cart endpoints.

    Raises CartSyncError for transport failures and HTTP errors; callers
    (the sync coordinator) decide how to degrade.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize API client.

        Args:
            base_url: Storefront origin; defaults to STOREFRONT_API_URL
            headers: Extra headers (session cookie, CSRF token) for every request
            http_client: Pre-built client, mainly for tests (httpx.MockTransport)
        """
        self.base_url = (base_url or STOREFRONT_API_URL).rstrip("/")
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        self._http_client = http_client  # Lazy init

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of shared httpx client with timeouts."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(STOREFRONT_API_TIMEOUT, connect=5.0),
                limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        unwrap: bool = True,
    ) -> dict:
        """Make an HTTP request and return the (optionally unwrapped) JSON body."""
        url = f"{self.base_url}{path}"
        client = await self._get_http_client()

        try:
            response = await client.request(method, url, headers=self.headers, json=body)
        except httpx.RequestError as e:
            logger.error(f"Storefront network error on {method} {path}: {e}")
            raise CartSyncError(f"Failed to connect to storefront API: {e!s}") from e

        if response.status_code >= 400:
            logger.error(
                f"Request failed: {response.status_code} - "
                f"{sanitize_string_for_logging(response.text, 200)}"
            )
            raise CartSyncError(f"{method} {path} returned {response.status_code}", response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise CartSyncError(f"Invalid JSON from {path}: {e}") from e

        if not unwrap:
            if not isinstance(payload, dict):
                raise CartSyncError(f"Unexpected response body: {type(payload).__name__}")
            return payload
        return _unwrap(payload)

    # ==================== Cart sync ====================

    async def post_sync(self, items: Iterable[CartLineItem], direction: SyncDirection) -> dict:
        """Send local lines to the sync endpoint (merge or push)."""
        request = SyncRequest(
            local_cart_items=[SyncItemPayload.from_line(item) for item in items],
            sync_direction=direction,
        )
        data = await self._request("POST", CART_SYNC_PATH, request.to_body())
        if data.get("success") is False:
            raise CartSyncError(data.get("error") or ERROR_SYNC_REJECTED)
        return data

    async def fetch_cart(self) -> dict:
        """GET the server cart (pull)."""
        return await self._request("GET", CART_SYNC_PATH)

    # ==================== Coupons ====================

    async def validate_coupon(self, code: str, cart_total: Decimal) -> AppliedCoupon:
        """
        Ask the server whether a coupon applies to the given cart total.

        Raises:
            CouponValidationError: code refused or response unusable
            CartSyncError: transport or server failure
        """
        if not code or not code.strip():
            raise CouponValidationError(ERROR_COUPON_CODE_REQUIRED)

        request = CouponValidationRequest(code=code.strip().upper(), cart_total=to_float(cart_total))
        try:
            data = await self._request(
                "POST", COUPON_VALIDATE_PATH, request.model_dump(by_alias=True), unwrap=False
            )
        except CartSyncError as e:
            # 400/404 are "coupon refused", not outages
            if e.status_code in (400, 404, 409, 422):
                raise CouponValidationError(ERROR_COUPON_INVALID) from e
            raise

        try:
            parsed = CouponValidationResponse.model_validate(data)
        except ValidationError as e:
            raise CouponValidationError(f"{ERROR_COUPON_INVALID}: {e.error_count()} bad fields") from e

        if not parsed.success or parsed.data is None:
            raise CouponValidationError(parsed.error or ERROR_COUPON_INVALID)
        return parsed.data.to_coupon()

    # ==================== Session ====================

    async def get_session(self) -> dict:
        """Current session as reported by the storefront."""
        return await self._request("GET", SESSION_PATH)
