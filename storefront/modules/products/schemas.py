# storefront/modules/products/schemas.py
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from storefront.core.responses import Money
from .models import ProductStatus


class PriceOut(BaseModel):
    base_price: Money
    final_price: Money
    discount_amount: Money
    discount_percent: int = 0
    has_discount: bool = False
    discount_label: Optional[str] = None
    plan_slug: Optional[str] = None

    class Config:
        from_attributes = True


class CategoryBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    slug: str = Field(min_length=1, max_length=140, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    is_active: bool = True
    display_order: int = 0


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    slug: Optional[str] = Field(None, min_length=1, max_length=140, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None


class CategoryOut(CategoryBase):
    id: str

    class Config:
        from_attributes = True


class VariantIn(BaseModel):
    sku: str = Field(min_length=1, max_length=80)
    name: str = Field(min_length=1, max_length=120)
    price: Optional[Decimal] = Field(None, gt=0)
    stock: int = Field(0, ge=0)
    active: bool = True


class VariantOut(BaseModel):
    id: str
    sku: str
    name: str
    price: Optional[Money] = None
    stock: int
    active: bool

    class Config:
        from_attributes = True


def _check_status(v: Optional[str]) -> Optional[str]:
    if v is not None and v not in ProductStatus.ALL:
        raise ValueError(f"status deve ser um de {', '.join(ProductStatus.ALL)}")
    return v


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=255, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    base_price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    stock: int = Field(0, ge=0)
    status: str = ProductStatus.DRAFT
    category_id: Optional[str] = None
    shipping_profile_id: Optional[str] = None
    variants: List[VariantIn] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _check_status(v)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=255, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    stock: Optional[int] = Field(None, ge=0)
    status: Optional[str] = None
    category_id: Optional[str] = None
    shipping_profile_id: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        return _check_status(v)


class ProductOut(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    base_price: Money
    stock: int
    status: str
    category: Optional[CategoryOut] = None
    shipping_profile_id: Optional[str] = None
    variants: List[VariantOut] = Field(default_factory=list)
    created_at: datetime

    class Config:
        from_attributes = True


class AdminProductOut(ProductOut):
    is_deleted: bool
    deleted_at: Optional[datetime] = None


class CatalogProductOut(ProductOut):
    # preço para quem está vendo (anônimo = preço cheio)
    price: PriceOut


class ProductPage(BaseModel):
    items: List[CatalogProductOut]
    total: int
    page: int
    page_size: int
