# storefront/modules/products/crud.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import Select, select

from storefront.core.errors import NotFound
from .models import Product, ProductStatus

# vitrine: produtos à venda ou temporariamente sem estoque
CATALOG_STATUSES = (ProductStatus.ACTIVE, ProductStatus.OUT_OF_STOCK)


def visible_products_query() -> Select:
    return select(Product).where(Product.is_deleted.is_(False), Product.status.in_(CATALOG_STATUSES))


async def get_visible_product_by_slug(db: AsyncSession, slug: str) -> Product:
    q = await db.execute(visible_products_query().where(Product.slug == slug))
    product = q.scalar_one_or_none()
    if not product:
        raise NotFound("Produto não encontrado")
    return product


async def get_product_or_404(db: AsyncSession, product_id: str, include_deleted: bool = False) -> Product:
    stmt = select(Product).where(Product.id == product_id)
    if not include_deleted:
        stmt = stmt.where(Product.is_deleted.is_(False))
    q = await db.execute(stmt)
    product = q.scalar_one_or_none()
    if not product:
        raise NotFound("Produto não encontrado")
    return product


async def slug_taken(db: AsyncSession, slug: str, exclude_id: str | None = None) -> bool:
    stmt = select(Product.id).where(Product.slug == slug)
    if exclude_id:
        stmt = stmt.where(Product.id != exclude_id)
    q = await db.execute(stmt)
    return q.scalar_one_or_none() is not None
