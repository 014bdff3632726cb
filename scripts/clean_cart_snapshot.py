#!/usr/bin/env python3
"""
Clean suspicious quantities out of a persisted cart snapshot.

Runs the cart health sweep (quantities > 100 -> 1, 11..100 -> 10, broken
rows dropped, duplicate lines collapsed) and writes the result back.

Usage:
    python scripts/clean_cart_snapshot.py --redis                 # storefront-cart key
    python scripts/clean_cart_snapshot.py --redis --owner user-1  # cart:user-1
    python scripts/clean_cart_snapshot.py --file cart.json --dry-run
"""

import argparse
import sys

from storefront.cart import (
    CartStore,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    RedisSnapshotStore,
    SnapshotStore,
)


def _build_store(args) -> SnapshotStore:
    if args.file:
        return JsonFileSnapshotStore(args.file)
    return RedisSnapshotStore(owner=args.owner)


def main() -> int:
    parser = argparse.ArgumentParser(description="Clean suspicious cart snapshot quantities")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--redis", action="store_true", help="Read the snapshot from Upstash Redis")
    source.add_argument("--file", help="Read the snapshot from a JSON file")
    parser.add_argument("--owner", default=None, help="Per-user snapshot owner (Redis only)")
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    args = parser.parse_args()

    backend = _build_store(args)
    raw = backend.read()
    if raw is None:
        print("No cart snapshot found - nothing to clean")
        return 0

    raw_items = raw.get("items") if isinstance(raw, dict) else None
    before = len(raw_items) if isinstance(raw_items, list) else 0

    # Rehydration already applies the stored-value guard; run the sweep on top
    store = CartStore(InMemorySnapshotStore(raw) if args.dry_run else backend)
    store.validate_and_clean_cart()
    after = len(store.items)

    print(f"Cart snapshot: {before} raw rows -> {after} clean lines")
    for item in store.items:
        print(f"   - {item.product.name}: {item.quantity}")

    if args.dry_run:
        print("Dry run - snapshot left untouched")
        return 0

    # Persist even when the sweep found nothing, so rehydration fixes stick
    backend.save(store.state)
    print("Cart snapshot cleaned")
    return 0


if __name__ == "__main__":
    sys.exit(main())
