"""
Cart Sync Pydantic Models

Wire shapes of the server cart-sync and coupon endpoints. The server
speaks camelCase; fields here are snake_case with camelCase aliases.
"""
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from .models import AppliedCoupon, CartLineItem, DiscountType, ProductSnapshot

SyncDirection = Literal["merge", "local_to_db"]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ==================== REQUEST MODELS ====================

class SyncItemPayload(_WireModel):
    product_id: str
    quantity: int
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None

    @classmethod
    def from_line(cls, line: CartLineItem) -> "SyncItemPayload":
        return cls(
            product_id=line.product_id,
            quantity=line.quantity,
            selected_color=line.selected_color,
            selected_size=line.selected_size,
        )


class SyncRequest(_WireModel):
    local_cart_items: List[SyncItemPayload]
    sync_direction: SyncDirection = "merge"

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class CouponValidationRequest(_WireModel):
    code: str
    cart_total: float


# ==================== RESPONSE MODELS ====================

class ServerProduct(_WireModel):
    id: str
    name: str
    slug: str = ""
    price: Decimal
    primary_image: Optional[dict] = None
    stock_quantity: Optional[int] = 0

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> str:
        return str(value)


class ServerCartRow(_WireModel):
    id: str
    product_id: str
    # Not bounded here: the quantity guard decides what to do with outliers
    quantity: int
    selected_color: Optional[str] = None
    selected_size: Optional[str] = None
    product: ServerProduct

    @field_validator("id", "product_id", mode="before")
    @classmethod
    def _to_str(cls, value: Any) -> str:
        return str(value)

    def to_line_item(self) -> CartLineItem:
        """Convert to the local line shape; server ids get a `db-` prefix."""
        line_id = self.id if self.id.startswith("db-") else f"db-{self.id}"
        return CartLineItem(
            id=line_id,
            product_id=self.product_id,
            quantity=self.quantity,
            selected_color=self.selected_color,
            selected_size=self.selected_size,
            product=ProductSnapshot(
                id=self.product.id,
                name=self.product.name,
                slug=self.product.slug,
                price=self.product.price,
                stock_quantity=self.product.stock_quantity or 0,
                primary_image=self.product.primary_image,
            ),
        )


class MergeResponse(_WireModel):
    success: bool
    final_cart: Optional[List[ServerCartRow]] = None
    conflicts: Optional[List[Any]] = None


class PullResponse(_WireModel):
    success: bool = True
    # Required: a body without items must not read as an empty server cart
    items: List[ServerCartRow]


class CouponData(_WireModel):
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    description: Optional[str] = None

    def to_coupon(self) -> AppliedCoupon:
        return AppliedCoupon(
            code=self.code,
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            description=self.description,
        )


class CouponValidationResponse(_WireModel):
    success: bool
    data: Optional[CouponData] = None
    error: Optional[str] = None

