"""Cart models with Decimal-based pricing."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Tuple

from storefront.services.money import to_decimal

IdentityKey = Tuple[str, Optional[str], Optional[str]]


def _variant(value: Optional[str]) -> Optional[str]:
    # "" and None both mean "no variant"
    return value or None


def identity_key(
    product_id: str,
    selected_color: Optional[str] = None,
    selected_size: Optional[str] = None,
) -> IdentityKey:
    """Key deciding whether two line items are the same logical item."""
    return (product_id, _variant(selected_color), _variant(selected_size))


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so they compare with the aware clock."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_line_id() -> str:
    """Fresh local line id; uuid4 so ids are never reused."""
    return f"cart-{uuid.uuid4().hex}"


class DiscountType(str, Enum):
    """Coupon discount kinds."""
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


def _finite_price(value) -> Decimal:
    price = to_decimal(value)
    if not price.is_finite():
        raise ValueError(f"Non-finite price: {value!r}")
    return price


@dataclass
class ProductSnapshot:
    """Display data captured when the product was added."""
    id: str
    name: str
    slug: str
    price: Decimal
    stock_quantity: int = 0
    primary_image: Optional[dict] = None

    def __post_init__(self):
        self.price = to_decimal(self.price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "price": str(self.price),
            "stock_quantity": self.stock_quantity,
            "primary_image": self.primary_image,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProductSnapshot":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            slug=data.get("slug", ""),
            price=_finite_price(data["price"]),
            stock_quantity=int(data.get("stock_quantity") or 0),
            primary_image=data.get("primary_image"),
        )


@dataclass
class CartLineItem:
    """Single line in the cart: product + variant + quantity."""
    id: str
    product_id: str
    quantity: int
    product: ProductSnapshot
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None

    def __post_init__(self):
        self.selected_color = _variant(self.selected_color)
        self.selected_size = _variant(self.selected_size)

    @property
    def key(self) -> IdentityKey:
        return identity_key(self.product_id, self.selected_color, self.selected_size)

    @property
    def unit_price(self) -> Decimal:
        return self.product.price

    def with_quantity(self, quantity: int) -> "CartLineItem":
        """Copy of this line with a different quantity."""
        return CartLineItem(
            id=self.id,
            product_id=self.product_id,
            quantity=quantity,
            product=self.product,
            selected_color=self.selected_color,
            selected_size=self.selected_size,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for snapshot storage."""
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "selected_color": self.selected_color,
            "selected_size": self.selected_size,
            "product": self.product.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLineItem":
        """Create from dictionary. Raises KeyError/TypeError/ValueError on bad rows."""
        return cls(
            id=str(data["id"]),
            product_id=str(data["product_id"]),
            quantity=int(data["quantity"]),
            product=ProductSnapshot.from_dict(data["product"]),
            selected_color=data.get("selected_color"),
            selected_size=data.get("selected_size"),
        )


@dataclass
class AppliedCoupon:
    """The single active coupon. The discount amount is always derived, never stored."""
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    description: Optional[str] = None

    def __post_init__(self):
        self.discount_type = DiscountType(self.discount_type)
        self.discount_value = to_decimal(self.discount_value)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "discount_type": self.discount_type.value,
            "discount_value": str(self.discount_value),
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppliedCoupon":
        return cls(
            code=data["code"],
            discount_type=DiscountType(data["discount_type"]),
            discount_value=to_decimal(data["discount_value"]),
            description=data.get("description"),
        )


@dataclass
class CartState:
    """Root cart state. Only items, coupon and last_sync_at are persisted."""
    items: List[CartLineItem] = field(default_factory=list)
    applied_coupon: Optional[AppliedCoupon] = None
    is_loading: bool = False
    is_syncing: bool = False
    is_locked: bool = False
    sync_lock: bool = False
    sync_operation_id: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    last_sync_request_at: Optional[datetime] = None

    def to_snapshot(self) -> dict:
        """Persisted subset; transient flags are excluded."""
        return {
            "items": [item.to_dict() for item in self.items],
            "applied_coupon": self.applied_coupon.to_dict() if self.applied_coupon else None,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
        }
