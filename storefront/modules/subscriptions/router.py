# storefront/modules/subscriptions/router.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from storefront.core.dependencies import get_db, get_current_user
from storefront.core.responses import Envelope, ok
from storefront.modules.users.models import User
from storefront.services.pricing import get_active_subscription
from storefront.modules.benefits.service import enabled_benefits_by_plan
from .models import SubscriptionPlan
from .schemas import PlanWithBenefitsOut, SubscriptionOut

router = APIRouter()  # prefix "/subscriptions"
user_router = APIRouter()  # prefix "/user"


@router.get("/plans", response_model=Envelope[List[PlanWithBenefitsOut]])
async def list_plans(db: AsyncSession = Depends(get_db)):
    res = await db.execute(
        select(SubscriptionPlan)
        .where(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.name.asc())
    )
    plans = res.scalars().all()
    benefits = await enabled_benefits_by_plan(db, [p.id for p in plans])
    return ok([
        PlanWithBenefitsOut.model_validate(p).model_copy(update={"benefits": benefits[p.id]})
        for p in plans
    ])


@user_router.get("/subscription", response_model=Envelope[Optional[SubscriptionOut]])
async def my_subscription(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # mesma regra de seleção usada no cálculo de preço
    sub = await get_active_subscription(db, user.id)
    return ok(SubscriptionOut.model_validate(sub) if sub else None)
