# storefront/modules/benefits/router.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete

from storefront.core.dependencies import get_db, require_admin
from storefront.core.errors import Conflict, NotFound
from storefront.core.responses import Envelope, ok
from storefront.modules.users.models import User
from . import service
from .models import Benefit, PlanBenefit
from .schemas import (
    BenefitCreate,
    BenefitOut,
    BenefitUpdate,
    PlanBenefitOut,
    PlanBenefitsOut,
    PlanBenefitsUpdate,
)

router = APIRouter()        # prefix "/plans" (público)
admin_router = APIRouter()  # incluído em /admin

_ORDERING = {
    "display_order": Benefit.display_order,
    "name": Benefit.name,
    "created_at": Benefit.created_at,
}


@router.get("/{plan_id}/benefits", response_model=Envelope[List[PlanBenefitOut]])
async def plan_benefits(plan_id: str, db: AsyncSession = Depends(get_db)):
    return ok(await service.get_enabled_plan_benefits(db, plan_id))


# ─────────────────────────────────────────────────────────────────────────────
# Admin
# ─────────────────────────────────────────────────────────────────────────────

async def _get_benefit(db: AsyncSession, benefit_id: str) -> Benefit:
    benefit = await db.get(Benefit, benefit_id)
    if not benefit:
        raise NotFound("Benefício não encontrado")
    return benefit


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: Optional[str] = None) -> bool:
    stmt = select(Benefit.id).where(Benefit.slug == slug)
    if exclude_id:
        stmt = stmt.where(Benefit.id != exclude_id)
    res = await db.execute(stmt.limit(1))
    return res.first() is not None


@admin_router.get("/benefits", response_model=Envelope[List[BenefitOut]])
async def admin_list_benefits(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    is_active: Optional[bool] = None,
    order_by: str = Query("display_order", pattern="^(display_order|name|created_at)$"),
    order_dir: str = Query("asc", pattern="^(asc|desc)$"),
):
    column = _ORDERING[order_by]
    stmt = select(Benefit).order_by(column.asc() if order_dir == "asc" else column.desc())
    if is_active is not None:
        stmt = stmt.where(Benefit.is_active.is_(is_active))
    res = await db.execute(stmt)
    return ok([BenefitOut.model_validate(b) for b in res.scalars().all()])


@admin_router.get("/benefits/{benefit_id}", response_model=Envelope[BenefitOut])
async def admin_get_benefit(benefit_id: str, db: AsyncSession = Depends(get_db), _: User = Depends(require_admin)):
    return ok(BenefitOut.model_validate(await _get_benefit(db, benefit_id)))


@admin_router.post("/benefits", response_model=Envelope[BenefitOut], status_code=status.HTTP_201_CREATED)
async def admin_create_benefit(
    payload: BenefitCreate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    if await _slug_taken(db, payload.slug):
        raise Conflict(f'Já existe um benefício com o slug "{payload.slug}"', error_code="SLUG_TAKEN")
    benefit = Benefit(**payload.model_dump())
    db.add(benefit)
    await db.commit()
    await db.refresh(benefit)
    return ok(BenefitOut.model_validate(benefit))


@admin_router.patch("/benefits/{benefit_id}", response_model=Envelope[BenefitOut])
async def admin_update_benefit(
    benefit_id: str,
    payload: BenefitUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    benefit = await _get_benefit(db, benefit_id)
    data = payload.model_dump(exclude_unset=True)
    if "slug" in data and await _slug_taken(db, data["slug"], exclude_id=benefit.id):
        raise Conflict(f'Já existe um benefício com o slug "{data["slug"]}"', error_code="SLUG_TAKEN")
    for k, v in data.items():
        setattr(benefit, k, v)
    await db.commit()
    await db.refresh(benefit)
    return ok(BenefitOut.model_validate(benefit))


@admin_router.delete("/benefits/{benefit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_benefit(
    benefit_id: str,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    benefit = await _get_benefit(db, benefit_id)
    # SQLite não aplica ON DELETE CASCADE sem PRAGMA; remove os vínculos explicitamente
    await db.execute(delete(PlanBenefit).where(PlanBenefit.benefit_id == benefit.id))
    await db.delete(benefit)
    await db.commit()
    return None


@admin_router.get("/plans/{plan_id}/benefits", response_model=Envelope[PlanBenefitsOut])
async def admin_plan_benefits(plan_id: str, db: AsyncSession = Depends(get_db), _: User = Depends(require_admin)):
    return ok(await service.get_plan_benefits(db, plan_id))


@admin_router.put("/plans/{plan_id}/benefits", response_model=Envelope[PlanBenefitsOut])
async def admin_update_plan_benefits(
    plan_id: str,
    payload: PlanBenefitsUpdate,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    return ok(await service.update_plan_benefits(db, plan_id, payload.benefits))
