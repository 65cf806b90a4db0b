# storefront/modules/admin/catalog.py
"""Admin do catálogo: produtos, categorias, planos e perfis de frete."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, delete

from storefront.core.dependencies import get_db, require_admin
from storefront.core.errors import Conflict, NotFound
from storefront.core.responses import Envelope, ok
from storefront.db.base import utcnow
from storefront.modules.benefits.models import PlanBenefit
from storefront.modules.products.crud import get_product_or_404, slug_taken
from storefront.modules.products.models import Category, Product, ProductVariant
from storefront.modules.products.schemas import (
    AdminProductOut,
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    ProductCreate,
    ProductUpdate,
)
from storefront.modules.shipping.models import ShippingProfile
from storefront.modules.shipping.schemas import (
    ShippingProfileCreate,
    ShippingProfileOut,
    ShippingProfileUpdate,
)
from storefront.modules.subscriptions.models import Subscription, SubscriptionPlan
from storefront.modules.subscriptions.schemas import PlanCreate, PlanOut, PlanUpdate
from storefront.modules.users.models import User

logger = logging.getLogger(__name__)

router = APIRouter()


async def _exists(db: AsyncSession, stmt) -> bool:
    res = await db.execute(stmt.limit(1))
    return res.first() is not None


async def _reload_product(db: AsyncSession, product_id: str) -> Product:
    # relações (categoria/variantes) relidas após o commit
    res = await db.execute(
        select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def _check_refs(db: AsyncSession, category_id: Optional[str], shipping_profile_id: Optional[str]) -> None:
    if category_id and await db.get(Category, category_id) is None:
        raise NotFound("Categoria não encontrada")
    if shipping_profile_id and await db.get(ShippingProfile, shipping_profile_id) is None:
        raise NotFound("Perfil de frete não encontrado")


# ─────────────────────────────────────────────────────────────────────────────
# Produtos
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/products", response_model=Envelope[List[AdminProductOut]])
async def admin_list_products(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    include_deleted: bool = False,
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    stmt = select(Product)
    if not include_deleted:
        stmt = stmt.where(Product.is_deleted.is_(False))
    if status_filter:
        stmt = stmt.where(Product.status == status_filter)
    if search:
        term = f"%{search.strip()}%"
        stmt = stmt.where(or_(Product.name.ilike(term), Product.slug.ilike(term)))
    res = await db.execute(stmt.order_by(Product.created_at.desc()).limit(limit).offset(offset))
    return ok([AdminProductOut.model_validate(p) for p in res.scalars().all()])


@router.post("/products", response_model=Envelope[AdminProductOut], status_code=status.HTTP_201_CREATED)
async def admin_create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if await slug_taken(db, payload.slug):
        raise Conflict("Já existe um produto com esse slug", error_code="SLUG_TAKEN")
    await _check_refs(db, payload.category_id, payload.shipping_profile_id)

    skus = [v.sku for v in payload.variants]
    if len(set(skus)) != len(skus) or (
        skus and await _exists(db, select(ProductVariant.id).where(ProductVariant.sku.in_(skus)))
    ):
        raise Conflict("SKU de variante já utilizado", error_code="SKU_TAKEN")

    data = payload.model_dump(exclude={"variants"})
    product = Product(**data, variants=[ProductVariant(**v.model_dump()) for v in payload.variants])
    db.add(product)
    await db.commit()
    logger.info("Produto %s criado por %s", product.slug, admin.id)
    return ok(AdminProductOut.model_validate(await _reload_product(db, product.id)))


@router.patch("/products/{product_id}", response_model=Envelope[AdminProductOut])
async def admin_update_product(
    product_id: str,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    product = await get_product_or_404(db, product_id)
    data = payload.model_dump(exclude_unset=True)

    if "slug" in data and await slug_taken(db, data["slug"], exclude_id=product.id):
        raise Conflict("Já existe um produto com esse slug", error_code="SLUG_TAKEN")
    await _check_refs(db, data.get("category_id"), data.get("shipping_profile_id"))

    for k, v in data.items():
        setattr(product, k, v)
    await db.commit()
    return ok(AdminProductOut.model_validate(await _reload_product(db, product.id)))


@router.delete("/products/{product_id}", response_model=Envelope[AdminProductOut])
async def admin_delete_product(
    product_id: str,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    # soft delete: pedidos antigos continuam apontando para o produto
    product = await get_product_or_404(db, product_id)
    product.is_deleted = True
    product.deleted_at = utcnow()
    await db.commit()
    logger.info("Produto %s removido (soft delete) por %s", product.id, admin.id)
    return ok(AdminProductOut.model_validate(await _reload_product(db, product.id)))


# ─────────────────────────────────────────────────────────────────────────────
# Categorias
# ─────────────────────────────────────────────────────────────────────────────

async def _get_category(db: AsyncSession, category_id: str) -> Category:
    category = await db.get(Category, category_id)
    if not category:
        raise NotFound("Categoria não encontrada")
    return category


@router.get("/categories", response_model=Envelope[List[CategoryOut]])
async def admin_list_categories(db: AsyncSession = Depends(get_db), _: User = Depends(require_admin)):
    res = await db.execute(select(Category).order_by(Category.display_order.asc(), Category.name.asc()))
    return ok([CategoryOut.model_validate(c) for c in res.scalars().all()])


@router.post("/categories", response_model=Envelope[CategoryOut], status_code=status.HTTP_201_CREATED)
async def admin_create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    if await _exists(db, select(Category.id).where(Category.slug == payload.slug)):
        raise Conflict("Já existe uma categoria com esse slug", error_code="SLUG_TAKEN")
    category = Category(**payload.model_dump())
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return ok(CategoryOut.model_validate(category))


@router.patch("/categories/{category_id}", response_model=Envelope[CategoryOut])
async def admin_update_category(
    category_id: str,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    category = await _get_category(db, category_id)
    data = payload.model_dump(exclude_unset=True)
    if "slug" in data and await _exists(
        db, select(Category.id).where(Category.slug == data["slug"], Category.id != category.id)
    ):
        raise Conflict("Já existe uma categoria com esse slug", error_code="SLUG_TAKEN")
    for k, v in data.items():
        setattr(category, k, v)
    await db.commit()
    await db.refresh(category)
    return ok(CategoryOut.model_validate(category))


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_category(
    category_id: str,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    category = await _get_category(db, category_id)
    if await _exists(db, select(Product.id).where(Product.category_id == category.id)):
        raise Conflict("Categoria possui produtos vinculados", error_code="CATEGORY_IN_USE")
    await db.delete(category)
    await db.commit()
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Planos de assinatura
# ─────────────────────────────────────────────────────────────────────────────

async def _get_plan(db: AsyncSession, plan_id: str) -> SubscriptionPlan:
    plan = await db.get(SubscriptionPlan, plan_id)
    if not plan:
        raise NotFound("Plano não encontrado", error_code="PLAN_NOT_FOUND")
    return plan


@router.get("/plans", response_model=Envelope[List[PlanOut]])
async def admin_list_plans(db: AsyncSession = Depends(get_db), _: User = Depends(require_admin)):
    res = await db.execute(select(SubscriptionPlan).order_by(SubscriptionPlan.price.asc()))
    return ok([PlanOut.model_validate(p) for p in res.scalars().all()])


@router.post("/plans", response_model=Envelope[PlanOut], status_code=status.HTTP_201_CREATED)
async def admin_create_plan(
    payload: PlanCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    if await _exists(db, select(SubscriptionPlan.id).where(SubscriptionPlan.slug == payload.slug)):
        raise Conflict("Já existe um plano com esse slug", error_code="SLUG_TAKEN")
    await _check_refs(db, None, payload.shipping_profile_id)
    plan = SubscriptionPlan(**payload.model_dump())
    db.add(plan)
    await db.commit()
    await db.refresh(plan)
    return ok(PlanOut.model_validate(plan))


@router.patch("/plans/{plan_id}", response_model=Envelope[PlanOut])
async def admin_update_plan(
    plan_id: str,
    payload: PlanUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    plan = await _get_plan(db, plan_id)
    data = payload.model_dump(exclude_unset=True)
    if "slug" in data and await _exists(
        db, select(SubscriptionPlan.id).where(SubscriptionPlan.slug == data["slug"], SubscriptionPlan.id != plan.id)
    ):
        raise Conflict("Já existe um plano com esse slug", error_code="SLUG_TAKEN")
    await _check_refs(db, None, data.get("shipping_profile_id"))
    for k, v in data.items():
        setattr(plan, k, v)
    await db.commit()
    await db.refresh(plan)
    return ok(PlanOut.model_validate(plan))


@router.delete("/plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_plan(
    plan_id: str,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    plan = await _get_plan(db, plan_id)
    if await _exists(db, select(Subscription.id).where(Subscription.plan_id == plan.id)):
        raise Conflict("Plano possui assinaturas; desative em vez de excluir", error_code="PLAN_IN_USE")
    await db.execute(delete(PlanBenefit).where(PlanBenefit.plan_id == plan.id))
    await db.delete(plan)
    await db.commit()
    return None


# ─────────────────────────────────────────────────────────────────────────────
# Perfis de frete
# ─────────────────────────────────────────────────────────────────────────────

async def _get_profile(db: AsyncSession, profile_id: str) -> ShippingProfile:
    profile = await db.get(ShippingProfile, profile_id)
    if not profile:
        raise NotFound("Perfil de frete não encontrado")
    return profile


@router.get("/shipping-profiles", response_model=Envelope[List[ShippingProfileOut]])
async def admin_list_shipping_profiles(db: AsyncSession = Depends(get_db), _: User = Depends(require_admin)):
    res = await db.execute(select(ShippingProfile).order_by(ShippingProfile.name.asc()))
    return ok([ShippingProfileOut.model_validate(p) for p in res.scalars().all()])


@router.post("/shipping-profiles", response_model=Envelope[ShippingProfileOut], status_code=status.HTTP_201_CREATED)
async def admin_create_shipping_profile(
    payload: ShippingProfileCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    profile = ShippingProfile(**payload.model_dump())
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    return ok(ShippingProfileOut.model_validate(profile))


@router.patch("/shipping-profiles/{profile_id}", response_model=Envelope[ShippingProfileOut])
async def admin_update_shipping_profile(
    profile_id: str,
    payload: ShippingProfileUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    profile = await _get_profile(db, profile_id)
    for k, v in payload.model_dump(exclude_unset=True).items():
        setattr(profile, k, v)
    await db.commit()
    await db.refresh(profile)
    return ok(ShippingProfileOut.model_validate(profile))


@router.post("/shipping-profiles/{profile_id}/toggle", response_model=Envelope[ShippingProfileOut])
async def admin_toggle_shipping_profile(
    profile_id: str,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    profile = await _get_profile(db, profile_id)
    profile.is_active = not profile.is_active
    await db.commit()
    await db.refresh(profile)
    return ok(ShippingProfileOut.model_validate(profile))


@router.delete("/shipping-profiles/{profile_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_shipping_profile(
    profile_id: str,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    profile = await _get_profile(db, profile_id)
    in_use = await db.execute(
        select(func.count(Product.id)).where(Product.shipping_profile_id == profile.id)
    )
    in_plans = await db.execute(
        select(func.count(SubscriptionPlan.id)).where(SubscriptionPlan.shipping_profile_id == profile.id)
    )
    if in_use.scalar_one() or in_plans.scalar_one():
        raise Conflict("Perfil de frete em uso por produtos ou planos", error_code="PROFILE_IN_USE")
    await db.delete(profile)
    await db.commit()
    return None
