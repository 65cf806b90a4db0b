"""
Cálculo de preços (server-side, fonte de verdade).

Regras:
  - Produto tem UM preço (base_price). Desconto nunca pertence ao produto.
  - Desconto vem exclusivamente do plano da assinatura ATIVA do usuário.
  - Arredondamento em 2 casas (ROUND_HALF_UP) a cada passo; o preço enviado
    pelo cliente nunca é usado.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import NotFound
from storefront.modules.products.models import Product
from storefront.modules.subscriptions.models import Subscription, SubscriptionPlan, SubscriptionStatus
from storefront.modules.cart.models import Cart

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def round_price(value: Any) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def discount_label_for(plan_name: str) -> str:
    return f"Discount {plan_name}"


@dataclass
class PriceResult:
    base_price: Decimal
    final_price: Decimal
    discount_amount: Decimal = ZERO
    discount_percent: int = 0
    has_discount: bool = False
    discount_label: Optional[str] = None
    plan_slug: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CartLinePrice(PriceResult):
    item_id: str = ""
    product_id: str = ""
    variant_id: Optional[str] = None
    name: str = ""
    quantity: int = 0
    line_total_base: Decimal = ZERO
    line_total_final: Decimal = ZERO
    line_discount_amount: Decimal = ZERO


@dataclass
class CartPriceSummary:
    items: list[CartLinePrice] = field(default_factory=list)
    subtotal_base: Decimal = ZERO
    subtotal_final: Decimal = ZERO
    total_discount: Decimal = ZERO
    discount_label: Optional[str] = None
    has_subscription_discount: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _apply_discount(base_price: Decimal, discount_percent: int) -> tuple[Decimal, Decimal]:
    """Retorna (desconto unitário, preço final). Mesma regra no preview e no carrinho."""
    discount_amount = round_price(base_price * Decimal(discount_percent) / Decimal(100))
    final_price = round_price(base_price - discount_amount)
    return discount_amount, final_price


def compute_price_with_plan(
    base_price: Any,
    plan_slug: Optional[str],
    discount_percent: Optional[int],
    plan_name: Optional[str] = None,
) -> PriceResult:
    """
    Preview para um plano ainda não vinculado ao usuário.
    O percentual precisa vir do banco (get_plan_discount_percent), nunca do cliente.
    """
    base = round_price(base_price)
    if not plan_slug or not discount_percent or discount_percent <= 0:
        return PriceResult(base_price=base, final_price=base, plan_slug=plan_slug or None)

    discount_amount, final_price = _apply_discount(base, discount_percent)
    return PriceResult(
        base_price=base,
        final_price=final_price,
        discount_amount=discount_amount,
        discount_percent=discount_percent,
        has_discount=True,
        discount_label=discount_label_for(plan_name or plan_slug),
        plan_slug=plan_slug,
    )


async def get_active_subscription(db: AsyncSession, user_id: str) -> Optional[Subscription]:
    # sem constraint de unicidade: com mais de uma ATIVA vale a mais antiga
    res = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id, Subscription.status == SubscriptionStatus.ACTIVE)
        .order_by(Subscription.started_at.asc(), Subscription.id.asc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def get_plan_discount_percent(db: AsyncSession, plan_slug: str) -> int:
    res = await db.execute(select(SubscriptionPlan.discount_percent).where(SubscriptionPlan.slug == plan_slug))
    pct = res.scalar_one_or_none()
    return int(pct or 0)


def _price_for_subscription(base_price: Decimal, subscription: Optional[Subscription]) -> PriceResult:
    base = round_price(base_price)
    if subscription is None:
        return PriceResult(base_price=base, final_price=base)

    plan = subscription.plan
    if plan.discount_percent <= 0:
        # plano gratuito: sem desconto, mas identifica o plano
        return PriceResult(base_price=base, final_price=base, plan_slug=plan.slug)

    discount_amount, final_price = _apply_discount(base, plan.discount_percent)
    return PriceResult(
        base_price=base,
        final_price=final_price,
        discount_amount=discount_amount,
        discount_percent=plan.discount_percent,
        has_discount=True,
        discount_label=discount_label_for(plan.name),
        plan_slug=plan.slug,
    )


async def compute_price_for_user(db: AsyncSession, product_id: str, user_id: Optional[str]) -> PriceResult:
    res = await db.execute(
        select(Product.base_price).where(Product.id == product_id, Product.is_deleted.is_(False))
    )
    base_price = res.scalar_one_or_none()
    if base_price is None:
        raise NotFound("Produto não encontrado")

    subscription = await get_active_subscription(db, user_id) if user_id else None
    return _price_for_subscription(base_price, subscription)


async def validate_price(
    db: AsyncSession,
    product_id: str,
    user_id: Optional[str],
    claimed_price: Any,
    tolerance: Decimal = CENT,
) -> bool:
    """Anti-fraude: confere o preço alegado pelo cliente com o calculado."""
    result = await compute_price_for_user(db, product_id, user_id)
    return abs(result.final_price - round_price(claimed_price)) <= tolerance


async def compute_cart_prices(db: AsyncSession, user_id: str) -> CartPriceSummary:
    res = await db.execute(
        select(Cart).where(Cart.user_id == user_id).execution_options(populate_existing=True)
    )
    cart = res.scalar_one_or_none()
    if cart is None or not cart.items:
        return CartPriceSummary()

    # assinatura carregada uma única vez: percentual e label valem para todas as linhas
    subscription = await get_active_subscription(db, user_id)

    summary = CartPriceSummary()
    for item in cart.items:
        if item.variant is not None and item.variant.price is not None:
            unit_base = item.variant.price
        else:
            unit_base = item.product.base_price

        price = _price_for_subscription(unit_base, subscription)
        # total por linha arredondado antes de somar
        line_total_base = round_price(price.base_price * item.quantity)
        line_total_final = round_price(price.final_price * item.quantity)
        line_discount = round_price(line_total_base - line_total_final)

        name = item.product.name
        if item.variant is not None:
            name = f"{name} - {item.variant.name}"

        summary.items.append(
            CartLinePrice(
                **price.as_dict(),
                item_id=item.id,
                product_id=item.product_id,
                variant_id=item.variant_id,
                name=name,
                quantity=item.quantity,
                line_total_base=line_total_base,
                line_total_final=line_total_final,
                line_discount_amount=line_discount,
            )
        )
        summary.subtotal_base += line_total_base
        summary.subtotal_final += line_total_final
        summary.total_discount += line_discount

    summary.subtotal_base = round_price(summary.subtotal_base)
    summary.subtotal_final = round_price(summary.subtotal_final)
    summary.total_discount = round_price(summary.total_discount)
    if summary.items:
        summary.discount_label = summary.items[0].discount_label
        summary.has_subscription_discount = summary.items[0].has_discount
    return summary


async def compute_prices_for_user(
    db: AsyncSession, products: list[Product], user_id: Optional[str]
) -> dict[str, PriceResult]:
    """Mesma regra de compute_price_for_user para uma página do catálogo (uma consulta de assinatura)."""
    subscription = await get_active_subscription(db, user_id) if user_id else None
    return {p.id: _price_for_subscription(p.base_price, subscription) for p in products}
