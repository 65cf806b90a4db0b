# storefront/modules/cart/schemas.py
from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel, Field

from storefront.core.responses import Money


class CartItemAdd(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(1, ge=1, le=99)


class CartItemUpdate(BaseModel):
    # 0 remove a linha
    quantity: int = Field(ge=0, le=99)


class CartLineOut(BaseModel):
    item_id: str
    product_id: str
    variant_id: Optional[str] = None
    name: str
    quantity: int
    base_price: Money
    final_price: Money
    discount_amount: Money
    discount_percent: int
    has_discount: bool
    discount_label: Optional[str] = None
    plan_slug: Optional[str] = None
    line_total_base: Money
    line_total_final: Money
    line_discount_amount: Money

    class Config:
        from_attributes = True


class CartOut(BaseModel):
    items: List[CartLineOut]
    subtotal_base: Money
    subtotal_final: Money
    total_discount: Money
    discount_label: Optional[str] = None
    has_subscription_discount: bool

    class Config:
        from_attributes = True
