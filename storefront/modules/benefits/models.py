# storefront/modules/benefits/models.py
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, Boolean, ForeignKey, UniqueConstraint
from storefront.db.base import Base, TimestampMixin, new_id

# nomes de ícones aceitos pelo front (lucide)
ALLOWED_BENEFIT_ICONS = (
    "Truck", "Percent", "Gift", "Zap", "Headset", "Star", "Crown", "Shield",
    "Clock", "Heart", "Award", "Sparkles", "BadgeCheck", "Package", "CreditCard",
)


class Benefit(Base, TimestampMixin):
    __tablename__ = "benefits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(40), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class PlanBenefit(Base, TimestampMixin):
    """Vínculo plano x benefício; desabilitado por padrão."""

    __tablename__ = "plan_benefits"
    __table_args__ = (UniqueConstraint("plan_id", "benefit_id", name="uq_plan_benefit"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("subscription_plans.id", ondelete="CASCADE"), index=True, nullable=False
    )
    benefit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("benefits.id", ondelete="CASCADE"), index=True, nullable=False
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    custom_value: Mapped[str | None] = mapped_column(String(100), nullable=True)  # ex.: "10%", "2x/mês"

    benefit: Mapped[Benefit] = relationship(lazy="selectin")
