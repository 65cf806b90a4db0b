# storefront/modules/orders/router.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from storefront.core.dependencies import get_db, get_current_user, get_gateway
from storefront.core.errors import NotFound
from storefront.core.responses import Envelope, ok
from storefront.modules.checkout.schemas import CheckoutOut
from storefront.modules.users.models import User
from storefront.services.checkout import regenerate_pix
from .models import Order
from .schemas import OrderOut

router = APIRouter()  # prefix "/orders"


@router.get("", response_model=Envelope[List[OrderOut]])
async def list_orders(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    res = await db.execute(
        select(Order)
        .where(Order.user_id == user.id)
        .order_by(Order.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return ok([OrderOut.model_validate(o) for o in res.scalars().all()])


@router.get("/{order_id}", response_model=Envelope[OrderOut])
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id, Order.user_id == user.id)
        .execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if not order:
        raise NotFound("Pedido não encontrado")
    return ok(OrderOut.model_validate(order))


@router.post("/{order_id}/regenerate-pix", response_model=Envelope[CheckoutOut])
async def regenerate_order_pix(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway=Depends(get_gateway),
):
    result = await regenerate_pix(db, gateway, user, order_id)
    return ok(CheckoutOut.model_validate(result))
