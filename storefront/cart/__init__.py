"""Cart package: models, guard, pricing, storage, state container and sync."""
from .models import AppliedCoupon, CartLineItem, CartState, DiscountType, ProductSnapshot
from .service import CartStore
from .storage import InMemorySnapshotStore, JsonFileSnapshotStore, RedisSnapshotStore, SnapshotStore
from .client import CartApiClient
from .session import HttpSessionProvider, SessionProvider, StaticSessionProvider
from .sync import CartSyncCoordinator
from .auth_sync import AuthTransition, CartAuthSync

__all__ = [
    "AppliedCoupon",
    "CartLineItem",
    "CartState",
    "DiscountType",
    "ProductSnapshot",
    "CartStore",
    "SnapshotStore",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "RedisSnapshotStore",
    "CartApiClient",
    "SessionProvider",
    "StaticSessionProvider",
    "HttpSessionProvider",
    "CartSyncCoordinator",
    "AuthTransition",
    "CartAuthSync",
]
