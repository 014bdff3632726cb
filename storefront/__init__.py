"""
Storefront Cart Core

This package contains the client-resident cart state machine:
- cart: line items, quantity guard, pricing, snapshot storage
- cart.sync: debounced, single-flight reconciliation with the server cart
- db: Upstash Redis client for cart snapshots
- logging: centralized logger configuration

Note: Imports are lazy so that importing the package never touches Redis
or the network.
"""

__all__ = [
    "CartStore",
    "CartSyncCoordinator",
    "get_redis_sync",
]


def __getattr__(name):
    """Lazy attribute access for clean module loading."""
    if name == "CartStore":
        from storefront.cart import CartStore
        return CartStore
    elif name == "CartSyncCoordinator":
        from storefront.cart import CartSyncCoordinator
        return CartSyncCoordinator
    elif name == "get_redis_sync":
        from storefront.db import get_redis_sync
        return get_redis_sync
    raise AttributeError(f"module 'storefront' has no attribute '{name}'")
