"""
Quantity Guard

Permanent countermeasure against the quantity accumulation bug (rapid
double submissions and merge loops once pushed lines into the hundreds).
Every path that sets or raises a quantity goes through here: direct add,
direct update, merge from the server, legacy replacement and rehydration.

Two policies with deliberately different thresholds:
- fresh user input (add/update): reject > 50, accumulated > 50 resets to 1,
  accumulated > 20 clamps to 20
- stored values (server rows, snapshots, health sweep): > 100 resets to 1,
  (10, 100] caps to 10
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from storefront.logging import get_logger, log_event
from .models import CartLineItem, IdentityKey

logger = get_logger(__name__)

SAFE_QUANTITY = 1

# Fresh input
MAX_SINGLE_ADD = 50
ACCUMULATION_RESET_ABOVE = 50
ACCUMULATION_SOFT_CEILING = 20
HIGH_QUANTITY_WARNING = 10

# Stored values
STORED_RESET_ABOVE = 100
STORED_CAP = 10


class QuantityReason(str, Enum):
    ACCEPTED = "accepted"
    NOT_INTEGER = "not_integer"
    NON_POSITIVE = "non_positive"
    EXCEEDS_SINGLE_ADD = "exceeds_single_add"
    ACCUMULATION_RESET = "accumulation_reset"
    CLAMPED = "clamped"
    STORED_RESET = "stored_reset"
    STORED_CAPPED = "stored_capped"


@dataclass(frozen=True)
class QuantityDecision:
    """Outcome of a guard check. `quantity` is None when rejected."""
    accepted: bool
    quantity: Optional[int]
    reason: QuantityReason

    @property
    def corrected(self) -> bool:
        return self.accepted and self.reason != QuantityReason.ACCEPTED


def _reject(reason: QuantityReason) -> QuantityDecision:
    return QuantityDecision(accepted=False, quantity=None, reason=reason)


def _accept(quantity: int, reason: QuantityReason = QuantityReason.ACCEPTED) -> QuantityDecision:
    return QuantityDecision(accepted=True, quantity=quantity, reason=reason)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def check_requested(quantity, **context) -> QuantityDecision:
    """Validate a single fresh quantity (new line or direct update)."""
    if not _is_int(quantity):
        log_event(logger, logging.ERROR, "invalid_quantity_rejected", quantity=repr(quantity), **context)
        return _reject(QuantityReason.NOT_INTEGER)

    if quantity <= 0:
        log_event(logger, logging.ERROR, "invalid_quantity_rejected", quantity=quantity, **context)
        return _reject(QuantityReason.NON_POSITIVE)

    if quantity > MAX_SINGLE_ADD:
        log_event(logger, logging.ERROR, "suspicious_quantity_rejected", quantity=quantity, **context)
        return _reject(QuantityReason.EXCEEDS_SINGLE_ADD)

    if quantity > HIGH_QUANTITY_WARNING:
        log_event(logger, logging.WARNING, "high_quantity_warning", quantity=quantity, **context)

    return _accept(quantity)


def check_accumulation(existing: int, requested, **context) -> QuantityDecision:
    """
    Validate adding `requested` onto an existing line.

    A total above 50 means the stored value was already corrupt, so the
    line goes back to 1 instead of a plausible-looking clamp.
    """
    decision = check_requested(requested, **context)
    if not decision.accepted:
        return decision

    new_quantity = existing + requested

    if new_quantity > ACCUMULATION_RESET_ABOVE:
        log_event(
            logger, logging.ERROR, "quantity_reset",
            previous=existing, requested=requested, attempted=new_quantity,
            quantity=SAFE_QUANTITY, **context,
        )
        return _accept(SAFE_QUANTITY, QuantityReason.ACCUMULATION_RESET)

    if new_quantity > ACCUMULATION_SOFT_CEILING:
        log_event(
            logger, logging.WARNING, "quantity_clamped",
            previous=existing, requested=requested, attempted=new_quantity,
            quantity=ACCUMULATION_SOFT_CEILING, **context,
        )
        return _accept(ACCUMULATION_SOFT_CEILING, QuantityReason.CLAMPED)

    return _accept(new_quantity)


def check_stored(quantity, **context) -> QuantityDecision:
    """Validate an already-stored quantity (server row, snapshot, sweep)."""
    if not _is_int(quantity) or quantity <= 0:
        log_event(logger, logging.WARNING, "stored_quantity_dropped", quantity=repr(quantity), **context)
        return _reject(QuantityReason.NOT_INTEGER if not _is_int(quantity) else QuantityReason.NON_POSITIVE)

    if quantity > STORED_RESET_ABOVE:
        log_event(logger, logging.ERROR, "quantity_reset", attempted=quantity, quantity=SAFE_QUANTITY, **context)
        return _accept(SAFE_QUANTITY, QuantityReason.STORED_RESET)

    if quantity > STORED_CAP:
        log_event(logger, logging.WARNING, "quantity_clamped", attempted=quantity, quantity=STORED_CAP, **context)
        return _accept(STORED_CAP, QuantityReason.STORED_CAPPED)

    return _accept(quantity)


def sanitize_stored(items: Iterable[CartLineItem]) -> Tuple[List[CartLineItem], bool]:
    """
    Apply the stored-value policy to every line.

    Lines without product data or with a non-positive quantity are dropped.

    Returns:
        (cleaned items, whether anything changed)
    """
    cleaned: List[CartLineItem] = []
    changed = False

    for item in items:
        if item.product is None or not item.product_id:
            log_event(logger, logging.WARNING, "invalid_line_dropped", line_id=item.id)
            changed = True
            continue

        decision = check_stored(item.quantity, line_id=item.id, product=item.product.name)
        if not decision.accepted:
            changed = True
            continue

        if decision.quantity != item.quantity:
            changed = True
            cleaned.append(item.with_quantity(decision.quantity))
        else:
            cleaned.append(item)

    return cleaned, changed


def collapse_duplicates(items: Iterable[CartLineItem]) -> List[CartLineItem]:
    """
    Collapse lines sharing an identity key.

    The lower, strictly positive quantity wins: an inflated duplicate is the
    more likely error. First-seen order is kept.
    """
    by_key: dict[IdentityKey, CartLineItem] = {}

    for item in items:
        existing = by_key.get(item.key)
        if existing is None:
            by_key[item.key] = item
            continue

        log_event(
            logger, logging.WARNING, "sync_duplicate_detected",
            product_id=item.product_id, kept=existing.quantity, incoming=item.quantity,
        )
        if 0 < item.quantity < existing.quantity:
            by_key[item.key] = item

    return list(by_key.values())
