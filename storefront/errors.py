"""
Common Error Constants

Centralized error messages and the small exception hierarchy used at the
network boundary. Cart mutations never raise; only the API client does,
and the sync coordinator catches it.
"""

# Sync errors
ERROR_SYNC_FAILED = "Cart sync failed"
ERROR_SYNC_REJECTED = "Server rejected cart sync"

# Coupon errors
ERROR_COUPON_INVALID = "Invalid coupon code"
ERROR_COUPON_CODE_REQUIRED = "Coupon code is required"

# Session errors
ERROR_SESSION_CHECK_FAILED = "Session check failed"

# Storage errors
ERROR_REDIS_NOT_CONFIGURED = "UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set"


class StorefrontError(Exception):
    """Base error for the storefront cart core."""


class CartSyncError(StorefrontError):
    """Raised by the API client when a cart round trip fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CouponValidationError(StorefrontError):
    """Raised when the coupon endpoint refuses a code."""
