# storefront/modules/benefits/service.py
import logging
from typing import Iterable

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import NotFound, ValidationFailed
from storefront.modules.subscriptions.models import SubscriptionPlan
from .models import Benefit, PlanBenefit
from .schemas import PlanBenefitItem, PlanBenefitOut, PlanBenefitsOut

logger = logging.getLogger(__name__)


def to_plan_benefit_out(pb: PlanBenefit) -> PlanBenefitOut:
    return PlanBenefitOut(
        id=pb.id,
        benefit_id=pb.benefit.id,
        name=pb.benefit.name,
        slug=pb.benefit.slug,
        description=pb.benefit.description,
        icon=pb.benefit.icon,
        enabled=pb.enabled,
        custom_value=pb.custom_value,
    )


async def _get_plan(db: AsyncSession, plan_id: str) -> SubscriptionPlan:
    plan = await db.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise NotFound("Plano não encontrado", error_code="PLAN_NOT_FOUND")
    return plan


def _plan_benefits_stmt(plan_ids: Iterable[str], only_enabled: bool):
    stmt = (
        select(PlanBenefit)
        .join(Benefit, Benefit.id == PlanBenefit.benefit_id)
        .where(PlanBenefit.plan_id.in_(list(plan_ids)), Benefit.is_active.is_(True))
        .order_by(Benefit.display_order.asc(), Benefit.name.asc())
        # vínculos recém-criados na mesma sessão ainda não têm .benefit carregado
        .execution_options(populate_existing=True)
    )
    if only_enabled:
        stmt = stmt.where(PlanBenefit.enabled.is_(True))
    return stmt


async def sync_benefits_to_plan(db: AsyncSession, plan_id: str) -> int:
    """Cria (desabilitado) o vínculo de todo benefício que o plano ainda não tem."""
    all_ids = (await db.execute(select(Benefit.id))).scalars().all()
    linked = set(
        (await db.execute(select(PlanBenefit.benefit_id).where(PlanBenefit.plan_id == plan_id))).scalars().all()
    )
    missing = [bid for bid in all_ids if bid not in linked]
    if not missing:
        return 0
    db.add_all(PlanBenefit(plan_id=plan_id, benefit_id=bid, enabled=False) for bid in missing)
    try:
        await db.commit()
    except IntegrityError:
        # outra requisição sincronizou o mesmo plano ao mesmo tempo
        await db.rollback()
        return 0
    return len(missing)


async def get_plan_benefits(db: AsyncSession, plan_id: str) -> PlanBenefitsOut:
    """Visão do admin: todos os benefícios ativos, habilitados ou não."""
    plan = await _get_plan(db, plan_id)
    await sync_benefits_to_plan(db, plan.id)
    res = await db.execute(_plan_benefits_stmt([plan.id], only_enabled=False))
    return PlanBenefitsOut(
        plan_id=plan.id,
        plan_name=plan.name,
        benefits=[to_plan_benefit_out(pb) for pb in res.scalars().all()],
    )


async def get_enabled_plan_benefits(db: AsyncSession, plan_id: str) -> list[PlanBenefitOut]:
    res = await db.execute(_plan_benefits_stmt([plan_id], only_enabled=True))
    return [to_plan_benefit_out(pb) for pb in res.scalars().all()]


async def enabled_benefits_by_plan(db: AsyncSession, plan_ids: list[str]) -> dict[str, list[PlanBenefitOut]]:
    out: dict[str, list[PlanBenefitOut]] = {pid: [] for pid in plan_ids}
    if not plan_ids:
        return out
    res = await db.execute(_plan_benefits_stmt(plan_ids, only_enabled=True))
    for pb in res.scalars().all():
        out[pb.plan_id].append(to_plan_benefit_out(pb))
    return out


async def update_plan_benefits(db: AsyncSession, plan_id: str, items: list[PlanBenefitItem]) -> PlanBenefitsOut:
    """Substitui todos os vínculos do plano pelos informados."""
    plan = await _get_plan(db, plan_id)

    ids = [i.benefit_id for i in items]
    found = set((await db.execute(select(Benefit.id).where(Benefit.id.in_(ids)))).scalars().all())
    invalid = [bid for bid in ids if bid not in found]
    if invalid:
        raise ValidationFailed(
            f"Benefícios não encontrados: {', '.join(invalid)}",
            details=[{"field": "benefits", "message": bid} for bid in invalid],
        )
    if len(set(ids)) != len(ids):
        raise ValidationFailed("Benefício repetido na lista")

    await db.execute(delete(PlanBenefit).where(PlanBenefit.plan_id == plan.id))
    db.add_all(
        PlanBenefit(plan_id=plan.id, benefit_id=i.benefit_id, enabled=i.enabled, custom_value=i.custom_value)
        for i in items
    )
    await db.commit()
    logger.info("Benefícios do plano %s atualizados (%d itens)", plan.slug, len(items))
    return await get_plan_benefits(db, plan.id)
