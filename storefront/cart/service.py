"""Cart state container: every item/coupon mutation goes through here."""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from storefront.logging import get_logger, log_event, sanitize_id_for_logging
from . import pricing
from .guard import (
    check_accumulation,
    check_requested,
    collapse_duplicates,
    sanitize_stored,
    HIGH_QUANTITY_WARNING,
    SAFE_QUANTITY,
)
from .models import (
    AppliedCoupon,
    CartLineItem,
    CartState,
    ProductSnapshot,
    identity_key,
    new_line_id,
)
from .storage import InMemorySnapshotStore, SnapshotStore

logger = get_logger(__name__)


class CartStore:
    """
    Client-resident cart state.

    Features:
    - Identity-key merging of duplicate lines (product + color + size)
    - Quantity guard on every add/update/replace
    - Payment lock; only clear_cart_after_payment() bypasses it
    - Write-through snapshot after every successful mutation

    Rejected mutations never raise. They log a diagnostic event and leave
    the state untouched.
    """

    def __init__(self, snapshot_store: Optional[SnapshotStore] = None):
        self.snapshot_store = snapshot_store or InMemorySnapshotStore()
        self.state = self.snapshot_store.load() or CartState()

    # ==================== Read access ====================

    @property
    def items(self) -> List[CartLineItem]:
        return list(self.state.items)

    @property
    def applied_coupon(self) -> Optional[AppliedCoupon]:
        return self.state.applied_coupon

    @property
    def is_locked(self) -> bool:
        return self.state.is_locked

    @property
    def is_syncing(self) -> bool:
        return self.state.is_syncing

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    @property
    def last_sync_at(self) -> Optional[datetime]:
        return self.state.last_sync_at

    def get_line(self, line_id: str) -> Optional[CartLineItem]:
        return next((item for item in self.state.items if item.id == line_id), None)

    def find_line(
        self,
        product_id: str,
        selected_color: Optional[str] = None,
        selected_size: Optional[str] = None,
    ) -> Optional[CartLineItem]:
        key = identity_key(product_id, selected_color, selected_size)
        return next((item for item in self.state.items if item.key == key), None)

    # ==================== Pricing (derived on every read) ====================

    @property
    def total_items(self) -> int:
        return pricing.total_item_count(self.state.items)

    @property
    def subtotal(self) -> Decimal:
        return pricing.subtotal(self.state.items)

    @property
    def discount_amount(self) -> Decimal:
        return pricing.discount_amount(self.state.items, self.state.applied_coupon)

    @property
    def final_total(self) -> Decimal:
        return pricing.final_total(self.state.items, self.state.applied_coupon)

    def get_item_count(self, product_id: str) -> int:
        return pricing.item_count(self.state.items, product_id)

    def summary(self) -> dict:
        return pricing.summarize(self.state.items, self.state.applied_coupon)

    # ==================== Internals ====================

    def _persist(self) -> None:
        self.snapshot_store.save(self.state)

    def _set_items(self, items: List[CartLineItem]) -> None:
        self.state.items = items
        self._persist()

    def _locked(self, action: str) -> bool:
        if self.state.is_locked:
            log_event(logger, logging.WARNING, "cart_locked_rejected", action=action)
            return True
        return False

    # ==================== Item mutations ====================

    def add_item(
        self,
        product_id: str,
        quantity: int,
        product: ProductSnapshot,
        selected_color: Optional[str] = None,
        selected_size: Optional[str] = None,
    ) -> Optional[CartLineItem]:
        """
        Add units of a product variant.

        An existing line with the same identity key absorbs the quantity
        (accumulation policy); otherwise a new line is appended.

        Returns:
            The resulting line, or None if the add was rejected
        """
        if self._locked("add_item"):
            return None

        context = {"product_id": sanitize_id_for_logging(product_id)}
        existing = self.find_line(product_id, selected_color, selected_size)

        if existing is not None:
            decision = check_accumulation(existing.quantity, quantity, line_id=existing.id, **context)
            if not decision.accepted:
                return None
            updated = existing.with_quantity(decision.quantity)
            self._set_items([updated if item.id == existing.id else item for item in self.state.items])
            return updated

        decision = check_requested(quantity, **context)
        if not decision.accepted:
            return None

        line = CartLineItem(
            id=new_line_id(),
            product_id=product_id,
            quantity=decision.quantity,
            product=product,
            selected_color=selected_color,
            selected_size=selected_size,
        )
        log_event(logger, logging.INFO, "line_added", line_id=line.id, quantity=line.quantity, **context)
        self._set_items([*self.state.items, line])
        return line

    def update_quantity(self, line_id: str, quantity: int) -> Optional[CartLineItem]:
        """Set a line's quantity directly; <= 0 removes the line."""
        if self._locked("update_quantity"):
            return None

        if isinstance(quantity, int) and not isinstance(quantity, bool) and quantity <= 0:
            self.remove_item(line_id)
            return None

        line = self.get_line(line_id)
        if line is None:
            log_event(logger, logging.WARNING, "line_not_found", action="update_quantity", line_id=line_id)
            return None

        decision = check_requested(quantity, line_id=line_id, product_id=sanitize_id_for_logging(line.product_id))
        if not decision.accepted:
            return None

        updated = line.with_quantity(decision.quantity)
        self._set_items([updated if item.id == line_id else item for item in self.state.items])
        return updated

    def remove_item(self, line_id: str) -> bool:
        if self._locked("remove_item"):
            return False

        remaining = [item for item in self.state.items if item.id != line_id]
        if len(remaining) == len(self.state.items):
            log_event(logger, logging.DEBUG, "line_not_found", action="remove_item", line_id=line_id)
            return False

        self._set_items(remaining)
        return True

    def clear_cart(self) -> bool:
        if self._locked("clear_cart"):
            return False

        self.state.applied_coupon = None
        self._set_items([])
        return True

    def clear_cart_after_payment(self) -> None:
        """
        Empty the cart and force-unlock it.

        This is the authoritative "transaction finished" signal, so it is the
        one mutation that ignores the payment lock.
        """
        log_event(logger, logging.INFO, "cart_cleared_after_payment", was_locked=self.state.is_locked)
        self.state.applied_coupon = None
        self.state.is_locked = False
        self._set_items([])

    # ==================== Coupon ====================

    def apply_coupon(self, coupon: AppliedCoupon) -> bool:
        """
        Replace the active coupon.

        Eligibility is the caller's job (see CartApiClient.validate_coupon).
        """
        if self._locked("apply_coupon"):
            return False

        self.state.applied_coupon = coupon
        log_event(logger, logging.INFO, "coupon_applied", code=coupon.code, discount_type=coupon.discount_type.value)
        self._persist()
        return True

    def remove_coupon(self) -> bool:
        if self._locked("remove_coupon"):
            return False

        self.state.applied_coupon = None
        self._persist()
        return True

    # ==================== Lock & flags ====================

    def lock_cart(self) -> None:
        logger.info("Cart locked for payment processing")
        self.state.is_locked = True

    def unlock_cart(self) -> None:
        logger.info("Cart unlocked after payment processing")
        self.state.is_locked = False

    def set_loading(self, loading: bool) -> None:
        self.state.is_loading = bool(loading)

    # ==================== Health & replacement ====================

    def validate_and_clean_cart(self) -> bool:
        """
        Health sweep with the stored-value policy.

        Returns:
            True if any line was corrected or dropped
        """
        if self._locked("validate_and_clean_cart"):
            return False

        cleaned, changed = sanitize_stored(self.state.items)
        deduplicated = collapse_duplicates(cleaned)
        changed = changed or len(deduplicated) != len(cleaned)

        if changed:
            log_event(logger, logging.INFO, "cart_cleaned", items=len(deduplicated))
            self._set_items(deduplicated)
        else:
            logger.debug("Cart is healthy - no changes needed")
        return changed

    def reset_suspicious_quantities(self) -> bool:
        """Manual recovery: every line above 10 goes back to 1."""
        if self._locked("reset_suspicious_quantities"):
            return False

        changed = False
        items = []
        for item in self.state.items:
            if item.quantity > HIGH_QUANTITY_WARNING:
                log_event(logger, logging.WARNING, "quantity_reset", line_id=item.id, attempted=item.quantity, quantity=SAFE_QUANTITY)
                items.append(item.with_quantity(SAFE_QUANTITY))
                changed = True
            else:
                items.append(item)

        if changed:
            self._set_items(items)
        return changed

    def sync_with_server(self, server_items: Iterable[CartLineItem]) -> bool:
        """Legacy wholesale replacement with already-converted server lines."""
        if self._locked("sync_with_server"):
            return False

        cleaned, _ = sanitize_stored(server_items)
        self._set_items(collapse_duplicates(cleaned))
        return True

    def replace_items(self, items: List[CartLineItem], synced_at: datetime) -> bool:
        """
        Install a reconciled item list and stamp the sync time.

        Used by the sync coordinator. A cart locked for payment while the
        round trip was in flight keeps its items; the result is discarded.
        """
        if self.state.is_locked:
            log_event(logger, logging.WARNING, "sync_result_discarded_locked", items=len(items))
            return False

        self.state.last_sync_at = synced_at
        self._set_items(list(items))
        return True

    def mark_synced(self, synced_at: datetime) -> None:
        self.state.last_sync_at = synced_at
        self._persist()
