"""
Cart snapshot storage.

The store hydrates from a snapshot once and writes one after every
mutation. Backends only move raw JSON-able dicts; turning a possibly
corrupted dict back into a CartState lives in `hydrate_state` so every
backend gets the same recovery.
"""
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from storefront.db import RedisKeys, TTL, get_redis_sync
from storefront.logging import get_logger, log_event
from .guard import collapse_duplicates, sanitize_stored
from .models import AppliedCoupon, CartLineItem, CartState, as_utc

logger = get_logger(__name__)


def _parse_timestamp(value) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return as_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


def hydrate_state(raw) -> CartState:
    """
    Rebuild CartState from a persisted snapshot, never failing.

    - items missing or not a list -> []
    - unparseable rows are dropped
    - stored quantities pass the stored-value guard, duplicates collapse
    - coupon missing or unparseable -> None
    - is_locked that is not a boolean -> False; loading/syncing always False
    """
    if not isinstance(raw, dict):
        return CartState()

    raw_items = raw.get("items")
    if not isinstance(raw_items, list):
        raw_items = []

    items = []
    for row in raw_items:
        try:
            items.append(CartLineItem.from_dict(row))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log_event(logger, logging.WARNING, "snapshot_row_dropped", error=str(e))

    items, _ = sanitize_stored(items)
    items = collapse_duplicates(items)

    coupon = None
    raw_coupon = raw.get("applied_coupon")
    if raw_coupon:
        try:
            coupon = AppliedCoupon.from_dict(raw_coupon)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log_event(logger, logging.WARNING, "snapshot_coupon_dropped", error=str(e))

    def _flag(name: str) -> bool:
        value = raw.get(name)
        return value if isinstance(value, bool) else False

    state = CartState(
        items=items,
        applied_coupon=coupon,
        # In-flight flags never survive a reload
        is_loading=False,
        is_syncing=False,
        is_locked=_flag("is_locked"),
        last_sync_at=_parse_timestamp(raw.get("last_sync_at")),
    )
    log_event(logger, logging.DEBUG, "cart_rehydrated", items=len(state.items))
    return state


class SnapshotStore(ABC):
    """Durable key-value home of the cart snapshot."""

    @abstractmethod
    def read(self) -> Optional[dict]:
        """Return the raw snapshot, or None when nothing is stored."""

    @abstractmethod
    def write(self, snapshot: dict) -> None:
        """Persist the raw snapshot."""

    def load(self) -> Optional[CartState]:
        try:
            raw = self.read()
        except Exception as e:
            logger.warning(f"Failed to read cart snapshot: {e}")
            return None
        if raw is None:
            return None
        return hydrate_state(raw)

    def save(self, state: CartState) -> None:
        # Last writer wins; in-memory state stays authoritative if this fails
        try:
            self.write(state.to_snapshot())
        except Exception as e:
            logger.error(f"Failed to save cart snapshot: {e}")


class InMemorySnapshotStore(SnapshotStore):
    """Keeps the snapshot in a dict. Default for tests and headless use."""

    def __init__(self, initial: Optional[dict] = None):
        self.snapshot: Optional[dict] = initial
        self.writes = 0

    def read(self) -> Optional[dict]:
        return self.snapshot

    def write(self, snapshot: dict) -> None:
        # Round-trip through JSON so nothing shares references with live state
        self.snapshot = json.loads(json.dumps(snapshot))
        self.writes += 1


class JsonFileSnapshotStore(SnapshotStore):
    """Snapshot in a local JSON file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def read(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupted cart snapshot at {self.path}: {e}")
            return None

    def write(self, snapshot: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(snapshot), encoding="utf-8")
        tmp.replace(self.path)


class RedisSnapshotStore(SnapshotStore):
    """Snapshot in Upstash Redis with a 24-hour TTL for abandoned carts."""

    def __init__(self, owner: Optional[str] = None, redis_client=None):
        self.key = RedisKeys.cart_key(owner)
        self._redis = redis_client  # Lazy initialization

    @property
    def redis(self):
        if self._redis is None:
            self._redis = get_redis_sync()
        return self._redis

    def read(self) -> Optional[dict]:
        data = self.redis.get(self.key)
        if not data:
            return None
        try:
            return json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            # Corrupted data - clear it so the next save starts clean
            logger.warning(f"Corrupted cart snapshot under {self.key}: {e}")
            self.redis.delete(self.key)
            return None

    def write(self, snapshot: dict) -> None:
        self.redis.set(self.key, json.dumps(snapshot), ex=TTL.CART)

    def clear(self) -> None:
        self.redis.delete(self.key)
