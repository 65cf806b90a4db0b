# storefront/modules/subscriptions/service.py
import calendar
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.base import utcnow
from storefront.modules.orders.models import Order, Payment
from .models import (
    BillingCycle,
    CycleStatus,
    Subscription,
    SubscriptionCycle,
    SubscriptionPlan,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)


def add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def next_billing_date(cycle_end: datetime) -> datetime:
    # cobrança sempre no dia 1º do mês em que o ciclo termina
    return cycle_end.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def user_has_active_subscription(db: AsyncSession, user_id: str) -> bool:
    res = await db.execute(
        select(Subscription.id)
        .where(Subscription.user_id == user_id, Subscription.status == SubscriptionStatus.ACTIVE)
        .limit(1)
    )
    return res.scalar_one_or_none() is not None


async def activate_subscription_for_order(
    db: AsyncSession,
    order: Order,
    payment: Payment,
) -> tuple[Optional[Subscription], bool]:
    """
    Cria a assinatura (+ primeiro ciclo) de um pedido de assinatura pago.
    Retorna (assinatura, criada?). Não cria se o usuário já tem uma ATIVA.
    Deve rodar na mesma transação que marca o pagamento como pago.
    """
    existing = await db.execute(select(Subscription).where(Subscription.order_id == order.id))
    sub = existing.scalar_one_or_none()
    if sub is not None:
        return sub, False

    if await user_has_active_subscription(db, order.user_id):
        logger.info("Usuário %s já possui assinatura ativa; pedido %s não gera outra", order.user_id, order.id)
        return None, False

    plan = await db.get(SubscriptionPlan, order.plan_id) if order.plan_id else None
    if plan is None:
        logger.error("Pedido de assinatura %s sem plano válido", order.id)
        return None, False

    now = utcnow()
    cycle_end = add_months(now, BillingCycle.MONTHS.get(plan.billing_cycle, 1))
    sub = Subscription(
        user_id=order.user_id,
        plan_id=plan.id,
        order_id=order.id,
        status=SubscriptionStatus.ACTIVE,
        started_at=now,
        next_billing_at=next_billing_date(cycle_end),
        provider=payment.provider,
        provider_sub_id=payment.transaction_id,
    )
    db.add(sub)
    await db.flush()

    db.add(
        SubscriptionCycle(
            subscription_id=sub.id,
            payment_id=payment.id,
            status=CycleStatus.PAID,
            cycle_start=now,
            cycle_end=cycle_end,
            amount=payment.amount,
        )
    )
    logger.info("Assinatura %s criada (plano=%s, pedido=%s)", sub.id, plan.slug, order.id)
    return sub, True


async def cancel_subscription_for_order(db: AsyncSession, order: Order) -> Optional[Subscription]:
    res = await db.execute(
        select(Subscription).where(
            Subscription.order_id == order.id,
            Subscription.status.in_([SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED]),
        )
    )
    sub = res.scalar_one_or_none()
    if sub is None:
        return None
    sub.status = SubscriptionStatus.CANCELED
    sub.canceled_at = utcnow()
    logger.info("Assinatura %s cancelada (reembolso do pedido %s)", sub.id, order.id)
    return sub
