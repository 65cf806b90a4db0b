# storefront/modules/preferences/models.py
from typing import Any

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, Text, JSON
from storefront.db.base import Base, TimestampMixin, new_id


class UserPreferences(Base, TimestampMixin):
    """Perfil de consumo do assinante, usado na curadoria da caixa."""

    __tablename__ = "user_preferences"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    years_smoking: Mapped[int | None] = mapped_column(Integer, nullable=True)
    favorite_paper_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    favorite_paper_size: Mapped[str | None] = mapped_column(String(30), nullable=True)
    paper_filter_size: Mapped[str | None] = mapped_column(String(30), nullable=True)
    glass_filter_size: Mapped[str | None] = mapped_column(String(30), nullable=True)
    glass_filter_thickness: Mapped[str | None] = mapped_column(String(30), nullable=True)
    favorite_colors: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    tobacco_usage: Mapped[str | None] = mapped_column(String(30), nullable=True)
    consumption_frequency: Mapped[str | None] = mapped_column(String(30), nullable=True)
    consumption_moment: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    consumes_flower: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumes_skunk: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumes_hash: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumes_extracts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    consumes_oil_edibles: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    likes_accessories: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    likes_collectibles: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    likes_premium_items: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
