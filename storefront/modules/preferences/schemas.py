# storefront/modules/preferences/schemas.py
from __future__ import annotations
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

PaperType = Literal["WHITE", "BROWN", "CELLULOSE", "MIXED"]
PaperSize = Literal["MINI", "KING_SIZE_SLIM", "KING_SIZE_TRADITIONAL", "KING_SIZE_LONG", "MIXED"]
FilterPaperSize = Literal["SHORT", "MEDIUM", "LONG", "ULTRA_LONG", "MIXED"]
GlassFilterSize = Literal["SHORT", "MEDIUM", "LONG", "MIXED"]
GlassFilterThickness = Literal["THIN", "MEDIUM", "THICK", "MIXED"]
TobaccoUsage = Literal["FULL_TIME", "MIX_ONLY", "NONE"]
ConsumptionFrequency = Literal["OCCASIONAL", "WEEKLY", "DAILY", "HEAVY"]
ConsumptionMoment = Literal["MORNING", "AFTERNOON", "NIGHT", "WEEKEND"]


class PreferencesIn(BaseModel):
    years_smoking: Optional[int] = Field(None, ge=0, le=100)
    favorite_paper_type: Optional[PaperType] = None
    favorite_paper_size: Optional[PaperSize] = None
    paper_filter_size: Optional[FilterPaperSize] = None
    glass_filter_size: Optional[GlassFilterSize] = None
    glass_filter_thickness: Optional[GlassFilterThickness] = None
    favorite_colors: List[str] = []
    tobacco_usage: Optional[TobaccoUsage] = None
    consumption_frequency: Optional[ConsumptionFrequency] = None
    consumption_moment: List[ConsumptionMoment] = []
    consumes_flower: bool = False
    consumes_skunk: bool = False
    consumes_hash: bool = False
    consumes_extracts: bool = False
    consumes_oil_edibles: bool = False
    likes_accessories: bool = False
    likes_collectibles: bool = False
    likes_premium_items: bool = False
    notes: Optional[str] = Field(None, max_length=500)


class PreferencesUpdate(BaseModel):
    years_smoking: Optional[int] = Field(None, ge=0, le=100)
    favorite_paper_type: Optional[PaperType] = None
    favorite_paper_size: Optional[PaperSize] = None
    paper_filter_size: Optional[FilterPaperSize] = None
    glass_filter_size: Optional[GlassFilterSize] = None
    glass_filter_thickness: Optional[GlassFilterThickness] = None
    favorite_colors: Optional[List[str]] = None
    tobacco_usage: Optional[TobaccoUsage] = None
    consumption_frequency: Optional[ConsumptionFrequency] = None
    consumption_moment: Optional[List[ConsumptionMoment]] = None
    consumes_flower: Optional[bool] = None
    consumes_skunk: Optional[bool] = None
    consumes_hash: Optional[bool] = None
    consumes_extracts: Optional[bool] = None
    consumes_oil_edibles: Optional[bool] = None
    likes_accessories: Optional[bool] = None
    likes_collectibles: Optional[bool] = None
    likes_premium_items: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500)


class PreferencesOut(PreferencesIn):
    id: str
    user_id: str
    updated_at: datetime

    class Config:
        from_attributes = True


class PreferencesSummaryOut(BaseModel):
    preferences: Optional[PreferencesOut] = None
    has_preferences: bool
    is_complete: bool
    summary: List[str]
