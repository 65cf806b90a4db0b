# storefront/modules/products/router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from storefront.core.dependencies import get_db, get_optional_user
from storefront.core.errors import NotFound
from storefront.core.responses import Envelope, ok
from storefront.modules.subscriptions.models import SubscriptionPlan
from storefront.modules.users.models import User
from storefront.services.pricing import (
    PriceResult,
    compute_price_for_user,
    compute_price_with_plan,
    compute_prices_for_user,
    get_plan_discount_percent,
)
from .crud import get_visible_product_by_slug, visible_products_query
from .models import Category, Product
from .schemas import CatalogProductOut, CategoryOut, PriceOut, ProductOut, ProductPage

router = APIRouter()  # incluído com prefix "/products"
categories_router = APIRouter()  # incluído com prefix "/categories"


def _catalog_item(product: Product, price: PriceResult) -> CatalogProductOut:
    base = ProductOut.model_validate(product)
    return CatalogProductOut(**base.model_dump(), price=PriceOut.model_validate(price))


@router.get("", response_model=Envelope[ProductPage])
async def list_products(
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
    category: Optional[str] = Query(None, description="slug da categoria"),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    stmt = visible_products_query()
    if category:
        stmt = stmt.join(Category, Product.category_id == Category.id).where(Category.slug == category)
    if search:
        term = f"%{search.strip()}%"
        stmt = stmt.where(or_(Product.name.ilike(term), Product.description.ilike(term)))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    res = await db.execute(
        stmt.order_by(Product.name.asc()).limit(page_size).offset((page - 1) * page_size)
    )
    products = list(res.scalars().all())

    prices = await compute_prices_for_user(db, products, viewer.id if viewer else None)
    items = [_catalog_item(p, prices[p.id]) for p in products]
    return ok(ProductPage(items=items, total=total, page=page, page_size=page_size))


@router.get("/{slug}", response_model=Envelope[CatalogProductOut])
async def get_product(
    slug: str,
    db: AsyncSession = Depends(get_db),
    viewer: Optional[User] = Depends(get_optional_user),
):
    product = await get_visible_product_by_slug(db, slug)
    price = await compute_price_for_user(db, product.id, viewer.id if viewer else None)
    return ok(_catalog_item(product, price))


@router.get("/{slug}/price-preview", response_model=Envelope[PriceOut])
async def price_preview(
    slug: str,
    plan_slug: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    product = await get_visible_product_by_slug(db, slug)

    res = await db.execute(
        select(SubscriptionPlan).where(SubscriptionPlan.slug == plan_slug, SubscriptionPlan.is_active.is_(True))
    )
    plan = res.scalar_one_or_none()
    if plan is None:
        raise NotFound("Plano não encontrado", error_code="PLAN_NOT_FOUND")

    # percentual sempre do banco
    percent = await get_plan_discount_percent(db, plan.slug)
    price = compute_price_with_plan(product.base_price, plan.slug, percent, plan.name)
    return ok(PriceOut.model_validate(price))


@categories_router.get("", response_model=Envelope[List[CategoryOut]])
async def list_categories(db: AsyncSession = Depends(get_db)):
    res = await db.execute(
        select(Category)
        .where(Category.is_active.is_(True))
        .order_by(Category.display_order.asc(), Category.name.asc())
    )
    return ok([CategoryOut.model_validate(c) for c in res.scalars().all()])
