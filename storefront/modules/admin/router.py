import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from storefront.core.dependencies import get_db, get_gateway, require_admin
from storefront.core.errors import BusinessRuleError, NotFound
from storefront.core.responses import Envelope, ok
from storefront.db.base import utcnow
from storefront.integrations.mercadopago_client import MercadoPagoError
from storefront.modules.orders.models import Order, OrderStatus, PaymentStatus
from storefront.modules.orders.schemas import (
    AdminOrderOut,
    ApprovePaymentRequest,
    OrderStatusUpdate,
    ReconcileOut,
)
from storefront.modules.subscriptions.models import Subscription, SubscriptionStatus
from storefront.modules.subscriptions.schemas import SubscriptionOut, SubscriptionStatusUpdate
from storefront.modules.users.models import User
from storefront.services.payment_reconcile import apply_payment_result
from storefront.services.stock import release_order_stock
from storefront.modules.benefits.router import admin_router as benefits_admin_router
from .catalog import router as catalog_router
from .schemas import UserAdminOut, UserRoleUpdate, UserStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter()
router.include_router(catalog_router)
router.include_router(benefits_admin_router)


# ─────────────────────────────────────────────────────────────────────────────
# Usuários
# ─────────────────────────────────────────────────────────────────────────────

async def _get_other_user(db: AsyncSession, admin: User, user_id: str) -> User:
    if user_id == admin.id:
        raise BusinessRuleError("Não é possível alterar o próprio usuário", error_code="CANNOT_CHANGE_SELF")
    target = await db.get(User, user_id)
    if not target:
        raise NotFound("Usuário não encontrado")
    return target


@router.get("/users", response_model=Envelope[List[UserAdminOut]])
async def list_users_admin(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    search: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    stmt = select(User)
    if search:
        term = f"%{search.strip()}%"
        stmt = stmt.where(or_(User.full_name.ilike(term), User.email.ilike(term)))
    res = await db.execute(stmt.order_by(User.created_at.desc()).limit(limit).offset(offset))
    return ok([UserAdminOut.model_validate(u) for u in res.scalars().all()])


@router.patch("/users/{user_id}/role", response_model=Envelope[UserAdminOut])
async def change_user_role(
    user_id: str,
    payload: UserRoleUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    target = await _get_other_user(db, admin, user_id)
    target.role = payload.role
    await db.commit()
    await db.refresh(target)
    logger.info("Admin %s alterou papel de %s para %s", admin.id, target.id, target.role)
    return ok(UserAdminOut.model_validate(target))


@router.patch("/users/{user_id}/status", response_model=Envelope[UserAdminOut])
async def change_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    target = await _get_other_user(db, admin, user_id)
    target.status = payload.status
    await db.commit()
    await db.refresh(target)
    logger.info("Admin %s alterou status de %s para %s", admin.id, target.id, target.status)
    return ok(UserAdminOut.model_validate(target))


# ─────────────────────────────────────────────────────────────────────────────
# Assinaturas dos clientes
# ─────────────────────────────────────────────────────────────────────────────

@router.get("/subscriptions", response_model=Envelope[List[SubscriptionOut]])
async def list_subscriptions_admin(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    stmt = select(Subscription)
    if status_filter:
        stmt = stmt.where(Subscription.status == status_filter)
    if user_id:
        stmt = stmt.where(Subscription.user_id == user_id)
    res = await db.execute(stmt.order_by(Subscription.started_at.desc()).limit(limit).offset(offset))
    return ok([SubscriptionOut.model_validate(s) for s in res.scalars().all()])


@router.patch("/subscriptions/{subscription_id}/status", response_model=Envelope[SubscriptionOut])
async def change_subscription_status(
    subscription_id: str,
    payload: SubscriptionStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    sub = await db.get(Subscription, subscription_id)
    if not sub:
        raise NotFound("Assinatura não encontrada")
    sub.status = payload.status
    if payload.status == SubscriptionStatus.CANCELED and sub.canceled_at is None:
        sub.canceled_at = utcnow()
    await db.commit()
    await db.refresh(sub)
    logger.info("Admin %s alterou assinatura %s para %s", admin.id, sub.id, sub.status)
    return ok(SubscriptionOut.model_validate(sub))


# ─────────────────────────────────────────────────────────────────────────────
# Pedidos
# ─────────────────────────────────────────────────────────────────────────────

async def _load_order(db: AsyncSession, order_id: str) -> Order:
    res = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if not order:
        raise NotFound("Pedido não encontrado")
    return order


@router.get("/orders", response_model=Envelope[List[AdminOrderOut]])
async def list_orders_admin(
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
    status_filter: Optional[str] = Query(None, alias="status"),
    user_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    stmt = select(Order)
    if status_filter:
        stmt = stmt.where(Order.status == status_filter)
    if user_id:
        stmt = stmt.where(Order.user_id == user_id)
    res = await db.execute(stmt.order_by(Order.created_at.desc()).limit(limit).offset(offset))
    return ok([AdminOrderOut.model_validate(o) for o in res.scalars().all()])


@router.get("/orders/{order_id}", response_model=Envelope[AdminOrderOut])
async def get_order_admin(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    _: User = Depends(require_admin),
):
    return ok(AdminOrderOut.model_validate(await _load_order(db, order_id)))


@router.patch("/orders/{order_id}/status", response_model=Envelope[AdminOrderOut])
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = await _load_order(db, order_id)
    # PAID só via conciliação (approve-payment / webhook)
    if payload.status == OrderStatus.PAID and not order.has_paid_payment():
        raise BusinessRuleError("Use a aprovação de pagamento para marcar como pago",
                                error_code="INVALID_STATUS_TRANSITION")
    if order.status == OrderStatus.CANCELED and payload.status != OrderStatus.CANCELED:
        raise BusinessRuleError("Pedido cancelado não pode mudar de status", error_code="INVALID_STATUS_TRANSITION")

    if payload.status == OrderStatus.CANCELED and order.status == OrderStatus.PENDING:
        await release_order_stock(db, order)
        for payment in order.payments:
            if payment.status == PaymentStatus.PENDING:
                payment.status = PaymentStatus.FAILED
                payment.status_detail = "canceled_by_admin"

    previous = order.status
    order.status = payload.status
    await db.commit()
    logger.info("Admin %s alterou pedido %s: %s -> %s", admin.id, order.id, previous, order.status)
    return ok(AdminOrderOut.model_validate(await _load_order(db, order.id)))


@router.post("/orders/{order_id}/approve-payment", response_model=Envelope[ReconcileOut])
async def approve_payment(
    order_id: str,
    payload: ApprovePaymentRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
    gateway=Depends(get_gateway),
):
    order = await _load_order(db, order_id)
    payment = next((p for p in order.payments if p.id == payload.payment_id), None)
    if payment is None:
        raise NotFound("Pagamento não encontrado", error_code="PAYMENT_NOT_FOUND")

    if payment.transaction_id and payment.status != PaymentStatus.PAID:
        try:
            data = await gateway.get_payment(payment.transaction_id)
        except MercadoPagoError as exc:
            # gateway fora do ar: segue com a aprovação manual
            logger.warning(
                "Gateway indisponível ao verificar %s (%s); aprovação manual por %s",
                payment.transaction_id, exc.code, admin.id,
            )
        else:
            if data.get("status") != "approved":
                raise BusinessRuleError(
                    f"Pagamento não está aprovado no gateway (status: {data.get('status')})",
                    error_code="NOT_APPROVED_AT_GATEWAY",
                )

    result = await apply_payment_result(
        db,
        order.id,
        "approved",
        payment_id=payment.id,
        status_detail="manual_approval",
        payload={"approved_by": admin.id},
        source="admin",
    )
    return ok(ReconcileOut.model_validate(result))
