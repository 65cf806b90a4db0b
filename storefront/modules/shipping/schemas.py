# storefront/modules/shipping/schemas.py
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from storefront.core.responses import Money


class QuoteRequest(BaseModel):
    cep: str = Field(min_length=8, max_length=9)
    product_ids: List[str] = Field(default_factory=list)
    plan_id: Optional[str] = None

    @model_validator(mode="after")
    def _target(self):
        if not self.product_ids and not self.plan_id:
            raise ValueError("Informe product_ids ou plan_id")
        return self


class ShippingOptionOut(BaseModel):
    id: str
    carrier: str
    service: str
    name: str
    price: Money
    delivery_days: int
    delivery_time: str
    recommended: bool

    class Config:
        from_attributes = True


class PackageOut(BaseModel):
    name: str
    weight_kg: Money
    width_cm: int
    height_cm: int
    length_cm: int

    class Config:
        from_attributes = True


class QuoteOut(BaseModel):
    zip_code: str
    state: Optional[str] = None
    options: List[ShippingOptionOut]
    profile: PackageOut
    quoted_at: datetime

    class Config:
        from_attributes = True


class ShippingProfileBase(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    weight_kg: Decimal = Field(gt=0, max_digits=8, decimal_places=3)
    width_cm: int = Field(gt=0)
    height_cm: int = Field(gt=0)
    length_cm: int = Field(gt=0)
    is_active: bool = True


class ShippingProfileCreate(ShippingProfileBase):
    pass


class ShippingProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    weight_kg: Optional[Decimal] = Field(None, gt=0, max_digits=8, decimal_places=3)
    width_cm: Optional[int] = Field(None, gt=0)
    height_cm: Optional[int] = Field(None, gt=0)
    length_cm: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None


class ShippingProfileOut(ShippingProfileBase):
    id: str
    weight_kg: Money

    class Config:
        from_attributes = True
