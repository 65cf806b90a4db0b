# storefront/services/stock.py
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.modules.products.models import Product, ProductVariant
from storefront.modules.orders.models import Order

logger = logging.getLogger(__name__)


async def reserve_stock(db: AsyncSession, product_id: str, variant_id: Optional[str], quantity: int) -> bool:
    """
    Baixa condicional (UPDATE ... WHERE stock >= qty).
    Retorna False se outra compra levou o estoque antes.
    """
    if variant_id:
        stmt = (
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock >= quantity)
            .values(stock=ProductVariant.stock - quantity)
        )
    else:
        stmt = (
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
        )
    res = await db.execute(stmt)
    return res.rowcount == 1


async def release_order_stock(db: AsyncSession, order: Order) -> None:
    """Devolve ao estoque os itens de um pedido cancelado."""
    for item in order.items:
        if item.variant_id:
            stmt = (
                update(ProductVariant)
                .where(ProductVariant.id == item.variant_id)
                .values(stock=ProductVariant.stock + item.quantity)
            )
        else:
            stmt = (
                update(Product)
                .where(Product.id == item.product_id)
                .values(stock=Product.stock + item.quantity)
            )
        await db.execute(stmt)
    if order.items:
        logger.info("Estoque devolvido para o pedido %s (%d itens)", order.id, len(order.items))
