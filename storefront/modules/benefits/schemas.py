# storefront/modules/benefits/schemas.py
from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import ALLOWED_BENEFIT_ICONS

BENEFIT_SLUG_PATTERN = r"^[a-z0-9-]+$"


def _check_icon(v: Optional[str]) -> Optional[str]:
    if v is not None and v not in ALLOWED_BENEFIT_ICONS:
        raise ValueError(f"icon deve ser um de {', '.join(ALLOWED_BENEFIT_ICONS)}")
    return v


class BenefitCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    slug: str = Field(min_length=2, max_length=100, pattern=BENEFIT_SLUG_PATTERN)
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = None
    is_active: bool = True
    display_order: int = Field(0, ge=0)

    @field_validator("icon")
    @classmethod
    def _icon(cls, v):
        return _check_icon(v)


class BenefitUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    slug: Optional[str] = Field(None, min_length=2, max_length=100, pattern=BENEFIT_SLUG_PATTERN)
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)

    @field_validator("icon")
    @classmethod
    def _icon(cls, v):
        return _check_icon(v)


class BenefitOut(BaseModel):
    id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool
    display_order: int

    class Config:
        from_attributes = True


class PlanBenefitOut(BaseModel):
    """Benefício como aparece num plano (vínculo + dados do benefício)."""
    id: str
    benefit_id: str
    name: str
    slug: str
    description: Optional[str] = None
    icon: Optional[str] = None
    enabled: bool
    custom_value: Optional[str] = None


class PlanBenefitsOut(BaseModel):
    plan_id: str
    plan_name: str
    benefits: List[PlanBenefitOut]


class PlanBenefitItem(BaseModel):
    benefit_id: str
    enabled: bool
    custom_value: Optional[str] = Field(None, max_length=100)


class PlanBenefitsUpdate(BaseModel):
    benefits: List[PlanBenefitItem] = Field(min_length=1)
