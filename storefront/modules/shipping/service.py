"""
Cotação de frete por tabela regional (fallback, sem API externa).

O preço do frete sempre é recalculado no servidor a partir do id da opção
escolhida; o valor enviado pelo cliente é ignorado.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.errors import BusinessRuleError, ValidationFailed
from storefront.modules.shipping.models import ShippingProfile
from storefront.modules.products.models import Product
from storefront.modules.subscriptions.models import SubscriptionPlan
from storefront.services.pricing import round_price
from storefront.utils.br import normalize_cep, is_valid_cep, format_cep, state_from_cep

logger = logging.getLogger(__name__)

# UF -> (região, tarifa fixa, prazo em dias úteis)
REGIONAL_RATES: dict[str, tuple[str, Decimal, int]] = {
    "SP": ("São Paulo", Decimal("15.90"), 3),
    "RJ": ("Rio de Janeiro", Decimal("18.90"), 5),
    "MG": ("Minas Gerais", Decimal("19.90"), 5),
    "ES": ("Espírito Santo", Decimal("21.90"), 6),
    "PR": ("Paraná", Decimal("22.90"), 6),
    "SC": ("Santa Catarina", Decimal("24.90"), 7),
    "RS": ("Rio Grande do Sul", Decimal("26.90"), 8),
    "GO": ("Goiás", Decimal("24.90"), 7),
    "MT": ("Mato Grosso", Decimal("29.90"), 9),
    "MS": ("Mato Grosso do Sul", Decimal("27.90"), 8),
    "DF": ("Distrito Federal", Decimal("23.90"), 6),
    "BA": ("Bahia", Decimal("29.90"), 9),
    "SE": ("Sergipe", Decimal("32.90"), 10),
    "AL": ("Alagoas", Decimal("33.90"), 10),
    "PE": ("Pernambuco", Decimal("34.90"), 10),
    "PB": ("Paraíba", Decimal("35.90"), 11),
    "RN": ("Rio Grande do Norte", Decimal("36.90"), 11),
    "CE": ("Ceará", Decimal("37.90"), 11),
    "PI": ("Piauí", Decimal("38.90"), 12),
    "MA": ("Maranhão", Decimal("39.90"), 12),
    "TO": ("Tocantins", Decimal("34.90"), 10),
    "PA": ("Pará", Decimal("42.90"), 14),
    "AP": ("Amapá", Decimal("49.90"), 16),
    "AM": ("Amazonas", Decimal("54.90"), 18),
    "RR": ("Roraima", Decimal("59.90"), 20),
    "AC": ("Acre", Decimal("59.90"), 20),
    "RO": ("Rondônia", Decimal("44.90"), 15),
}
DEFAULT_RATE = ("Brasil", Decimal("39.90"), 12)

BASE_WEIGHT_KG = Decimal("0.5")
SEDEX_MULTIPLIER = Decimal("1.8")


@dataclass
class PackageProfile:
    weight_kg: Decimal
    width_cm: int
    height_cm: int
    length_cm: int
    name: str = "Perfil combinado"


DEFAULT_PROFILE = PackageProfile(
    weight_kg=Decimal("0.5"), width_cm=20, height_cm=10, length_cm=30, name="Perfil padrão"
)


@dataclass
class ShippingOption:
    id: str
    carrier: str
    service: str
    name: str
    price: Decimal
    delivery_days: int
    delivery_time: str
    recommended: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ShippingQuote:
    zip_code: str
    state: Optional[str]
    options: list[ShippingOption]
    profile: PackageProfile
    quoted_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _as_package(profile: ShippingProfile | PackageProfile) -> PackageProfile:
    if isinstance(profile, PackageProfile):
        return profile
    return PackageProfile(
        weight_kg=Decimal(str(profile.weight_kg)),
        width_cm=profile.width_cm,
        height_cm=profile.height_cm,
        length_cm=profile.length_cm,
        name=profile.name,
    )


def combine_profiles(profiles: Iterable[ShippingProfile | PackageProfile]) -> Optional[PackageProfile]:
    """
    Redução determinística (não é bin-packing): soma os pesos, usa a maior
    largura e o maior comprimento e empilha as alturas.
    """
    packages = [_as_package(p) for p in profiles if p is not None]
    if not packages:
        return None
    return PackageProfile(
        weight_kg=sum((p.weight_kg for p in packages), Decimal("0")),
        width_cm=max(p.width_cm for p in packages),
        height_cm=sum(p.height_cm for p in packages),
        length_cm=max(p.length_cm for p in packages),
    )


def calculate_fallback_options(cep: str, profile: PackageProfile) -> list[ShippingOption]:
    state = state_from_cep(cep)
    _, fixed_rate, days = REGIONAL_RATES.get(state or "", DEFAULT_RATE)

    weight_multiplier = max(Decimal("1"), profile.weight_kg / BASE_WEIGHT_KG)
    adjusted = max(Decimal(str(settings.SHIPPING_MIN_PRICE)), fixed_rate * weight_multiplier)

    pac = ShippingOption(
        id="fallback_pac",
        carrier="Correios",
        service="PAC",
        name="Correios PAC",
        price=round_price(adjusted),
        delivery_days=days + 2,
        delivery_time=f"{days} a {days + 4} dias úteis",
        recommended=True,
    )
    sedex = ShippingOption(
        id="fallback_sedex",
        carrier="Correios",
        service="SEDEX",
        name="Correios SEDEX",
        price=round_price(adjusted * SEDEX_MULTIPLIER),
        delivery_days=max(1, days - 3),
        delivery_time=f"{max(1, days - 4)} a {max(2, days - 2)} dias úteis",
    )
    return [pac, sedex]


def quote(cep: str, profile: Optional[PackageProfile]) -> ShippingQuote:
    digits = normalize_cep(cep)
    if not is_valid_cep(digits):
        raise ValidationFailed("CEP inválido. Verifique e tente novamente.", error_code="INVALID_CEP")
    if profile is None:
        logger.info("Frete: nenhum perfil encontrado, usando perfil padrão")
        profile = DEFAULT_PROFILE
    return ShippingQuote(
        zip_code=format_cep(digits),
        state=state_from_cep(digits),
        options=calculate_fallback_options(digits, profile),
        profile=profile,
        quoted_at=datetime.now(timezone.utc),
    )


async def profile_for_products(db: AsyncSession, product_ids: Iterable[str]) -> Optional[PackageProfile]:
    ids = list(dict.fromkeys(product_ids))
    if not ids:
        return None
    res = await db.execute(
        select(ShippingProfile)
        .join(Product, Product.shipping_profile_id == ShippingProfile.id)
        .where(Product.id.in_(ids), ShippingProfile.is_active.is_(True))
        .order_by(Product.id)
    )
    return combine_profiles(res.scalars().all())


async def profile_for_plan(db: AsyncSession, plan_id: str) -> Optional[PackageProfile]:
    res = await db.execute(
        select(ShippingProfile)
        .join(SubscriptionPlan, SubscriptionPlan.shipping_profile_id == ShippingProfile.id)
        .where(SubscriptionPlan.id == plan_id, ShippingProfile.is_active.is_(True))
    )
    profile = res.scalar_one_or_none()
    return _as_package(profile) if profile else None


async def quote_for_products(db: AsyncSession, cep: str, product_ids: Iterable[str]) -> ShippingQuote:
    return quote(cep, await profile_for_products(db, product_ids))


async def quote_for_plan(db: AsyncSession, cep: str, plan_id: str) -> ShippingQuote:
    return quote(cep, await profile_for_plan(db, plan_id))


def resolve_shipping_option(options: list[ShippingOption], option_id: Optional[str]) -> ShippingOption:
    for option in options:
        if option.id == option_id:
            return option
    raise BusinessRuleError("Opção de frete inválida", error_code="INVALID_SHIPPING_OPTION")


def build_order_shipping_data(option: ShippingOption, shipping_quote: ShippingQuote) -> dict[str, Any]:
    """Dados de frete persistidos no pedido (JSON)."""
    now = datetime.now(timezone.utc)
    profile = shipping_quote.profile
    return {
        "option_id": option.id,
        "carrier": option.carrier,
        "service": option.service,
        "price": str(option.price),
        "delivery_days": option.delivery_days,
        "destination_zip_code": normalize_cep(shipping_quote.zip_code),
        "origin_zip_code": settings.SHIPPING_ORIGIN_CEP,
        "total_weight_kg": str(profile.weight_kg),
        "dimensions": {
            "width_cm": profile.width_cm,
            "height_cm": profile.height_cm,
            "length_cm": profile.length_cm,
        },
        "quoted_at": shipping_quote.quoted_at.isoformat(),
        "estimated_delivery_date": (now + timedelta(days=option.delivery_days)).isoformat(),
    }
