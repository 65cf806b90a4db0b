# storefront/modules/subscriptions/schemas.py
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from storefront.core.responses import Money
from storefront.modules.benefits.schemas import PlanBenefitOut
from .models import BillingCycle, SubscriptionStatus

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


def _check_cycle(v: Optional[str]) -> Optional[str]:
    if v is not None and v not in BillingCycle.MONTHS:
        raise ValueError(f"billing_cycle deve ser um de {', '.join(BillingCycle.MONTHS)}")
    return v


class PlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    slug: str = Field(min_length=1, max_length=140, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    discount_percent: int = Field(0, ge=0, le=100)
    billing_cycle: str = BillingCycle.MONTHLY
    shipping_profile_id: Optional[str] = None
    is_active: bool = True

    @field_validator("billing_cycle")
    @classmethod
    def _cycle(cls, v):
        return _check_cycle(v)


class PlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    slug: Optional[str] = Field(None, min_length=1, max_length=140, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    discount_percent: Optional[int] = Field(None, ge=0, le=100)
    billing_cycle: Optional[str] = None
    shipping_profile_id: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("billing_cycle")
    @classmethod
    def _cycle(cls, v):
        return _check_cycle(v)


class PlanOut(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    price: Money
    discount_percent: int
    billing_cycle: str
    shipping_profile_id: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class PlanWithBenefitsOut(PlanOut):
    benefits: List[PlanBenefitOut] = []


class SubscriptionOut(BaseModel):
    id: str
    user_id: str
    plan_id: str
    order_id: Optional[str] = None
    status: str
    started_at: datetime
    next_billing_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    plan: PlanOut

    class Config:
        from_attributes = True


class SubscriptionStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        if v not in SubscriptionStatus.ALL:
            raise ValueError(f"status deve ser um de {', '.join(SubscriptionStatus.ALL)}")
        return v
