"""
Cart pricing derivations.

Pure functions over the current items and coupon. Nothing here is cached:
callers recompute on every read so a quantity or coupon change shows up
immediately.
"""
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from storefront.services.money import ZERO, floor_zero, multiply, percent_of, round_money, subtract, to_float
from .models import AppliedCoupon, CartLineItem, DiscountType


def total_item_count(items: Iterable[CartLineItem]) -> int:
    """Total number of units in the cart."""
    return sum(item.quantity for item in items)


def item_count(items: Iterable[CartLineItem], product_id: str) -> int:
    """Units of one product across all of its variants."""
    return sum(item.quantity for item in items if item.product_id == product_id)


def subtotal(items: Iterable[CartLineItem]) -> Decimal:
    """Sum of unit price times quantity, from the denormalized snapshots."""
    return sum((multiply(item.unit_price, item.quantity) for item in items), ZERO)


def discount_amount(items: Sequence[CartLineItem], coupon: Optional[AppliedCoupon]) -> Decimal:
    """
    Discount for the current subtotal.

    PERCENTAGE rounds to cents; FIXED_AMOUNT never exceeds the subtotal.
    """
    if coupon is None:
        return ZERO

    current = subtotal(items)

    if coupon.discount_type == DiscountType.PERCENTAGE:
        return percent_of(current, coupon.discount_value)
    if coupon.discount_type == DiscountType.FIXED_AMOUNT:
        return min(coupon.discount_value, current)

    return ZERO


def final_total(items: Sequence[CartLineItem], coupon: Optional[AppliedCoupon]) -> Decimal:
    """Subtotal minus discount, floored at zero."""
    return floor_zero(subtract(subtotal(items), discount_amount(items, coupon)))


def summarize(items: Sequence[CartLineItem], coupon: Optional[AppliedCoupon]) -> dict:
    """Cart summary for display layers (floats only at this boundary)."""
    if not items:
        return {
            "is_empty": True,
            "total_items": 0,
            "subtotal": 0.0,
            "discount": 0.0,
            "total": 0.0,
            "coupon_code": coupon.code if coupon else None,
        }

    return {
        "is_empty": False,
        "total_items": total_item_count(items),
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product.name,
                "quantity": item.quantity,
                "selected_color": item.selected_color,
                "selected_size": item.selected_size,
                "unit_price": to_float(item.unit_price),
                "total": to_float(round_money(multiply(item.unit_price, item.quantity))),
            }
            for item in items
        ],
        "subtotal": to_float(round_money(subtotal(items))),
        "discount": to_float(discount_amount(items, coupon)),
        "total": to_float(round_money(final_total(items, coupon))),
        "coupon_code": coupon.code if coupon else None,
    }
