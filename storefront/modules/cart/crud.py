# storefront/modules/cart/crud.py
"""
Operações do carrinho. O carrinho só guarda produto/variante/quantidade;
preço é sempre recalculado (services.pricing.compute_cart_prices).
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from storefront.core.errors import BusinessRuleError, NotFound
from storefront.modules.products.models import Product, ProductVariant
from .models import Cart, CartItem

logger = logging.getLogger(__name__)


async def get_or_create_cart(db: AsyncSession, user_id: str) -> Cart:
    q = await db.execute(
        select(Cart).where(Cart.user_id == user_id).execution_options(populate_existing=True)
    )
    cart = q.scalar_one_or_none()
    if cart is None:
        cart = Cart(user_id=user_id, items=[])
        db.add(cart)
        await db.flush()
    return cart


async def _purchasable(db: AsyncSession, product_id: str, variant_id: Optional[str]) -> tuple[Product, Optional[ProductVariant]]:
    product = await db.get(Product, product_id)
    if product is None or product.is_deleted:
        raise NotFound("Produto não encontrado")
    if not product.is_purchasable:
        raise BusinessRuleError(f"{product.name} não está disponível", error_code="PRODUCT_UNAVAILABLE")

    variant = None
    if variant_id:
        variant = await db.get(ProductVariant, variant_id)
        if variant is None or variant.product_id != product.id:
            raise NotFound("Variante não encontrada")
        if not variant.active:
            raise BusinessRuleError(f"{product.name} - {variant.name} não está disponível",
                                    error_code="PRODUCT_UNAVAILABLE")
    return product, variant


def _ensure_stock(product: Product, variant: Optional[ProductVariant], quantity: int) -> None:
    available = variant.stock if variant is not None else product.stock
    if quantity > available:
        raise BusinessRuleError(
            f"Estoque insuficiente para {product.name} (disponível: {available})",
            error_code="INSUFFICIENT_STOCK",
        )


async def add_item(db: AsyncSession, user_id: str, product_id: str, variant_id: Optional[str], quantity: int) -> CartItem:
    product, variant = await _purchasable(db, product_id, variant_id)
    cart = await get_or_create_cart(db, user_id)

    # mesma combinação produto/variante vira uma linha só
    existing = next(
        (i for i in cart.items if i.product_id == product.id and i.variant_id == (variant.id if variant else None)),
        None,
    )
    in_cart = existing.quantity if existing else 0
    _ensure_stock(product, variant, in_cart + quantity)

    if existing:
        existing.quantity = in_cart + quantity
        item = existing
    else:
        item = CartItem(cart_id=cart.id, product_id=product.id, variant_id=variant.id if variant else None,
                        quantity=quantity)
        db.add(item)
    await db.commit()
    return item


async def _get_own_item(db: AsyncSession, user_id: str, item_id: str) -> CartItem:
    q = await db.execute(
        select(CartItem).join(Cart, CartItem.cart_id == Cart.id).where(CartItem.id == item_id, Cart.user_id == user_id)
    )
    item = q.scalar_one_or_none()
    if item is None:
        raise NotFound("Item não encontrado no carrinho")
    return item


async def update_item(db: AsyncSession, user_id: str, item_id: str, quantity: int) -> Optional[CartItem]:
    item = await _get_own_item(db, user_id, item_id)
    if quantity <= 0:
        await db.delete(item)
        await db.commit()
        return None

    _ensure_stock(item.product, item.variant, quantity)
    item.quantity = quantity
    await db.commit()
    return item


async def remove_item(db: AsyncSession, user_id: str, item_id: str) -> None:
    item = await _get_own_item(db, user_id, item_id)
    await db.delete(item)
    await db.commit()


async def clear_cart(db: AsyncSession, user_id: str) -> None:
    q = await db.execute(select(Cart.id).where(Cart.user_id == user_id))
    cart_id = q.scalar_one_or_none()
    if cart_id is None:
        return
    await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    await db.commit()
    logger.info("Carrinho do usuário %s esvaziado", user_id)
