# storefront/services/payment_reconcile.py
"""
Conciliação de pagamentos.

Webhook, aprovação manual do admin, consulta de status e o script de operador
passam todos por `apply_payment_result`: uma única operação idempotente que
relê o estado atual antes de mudar qualquer coisa.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import NotFound
from storefront.db.base import utcnow
from storefront.modules.orders.models import Order, OrderKind, OrderStatus, Payment, PaymentStatus
from storefront.modules.subscriptions.models import Subscription
from storefront.modules.subscriptions.service import (
    activate_subscription_for_order,
    cancel_subscription_for_order,
)
from storefront.services.stock import release_order_stock, reserve_stock

logger = logging.getLogger(__name__)

GATEWAY_STATUS_MAP = {
    "approved": PaymentStatus.PAID,
    "pending": PaymentStatus.PENDING,
    "authorized": PaymentStatus.PENDING,
    "in_process": PaymentStatus.PENDING,
    "in_mediation": PaymentStatus.PENDING,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
    "charged_back": PaymentStatus.REFUNDED,
}


class ReconcileAction:
    PAYMENT_APPROVED = "payment_approved"
    ALREADY_PAID = "already_paid"
    PAYMENT_REJECTED = "payment_rejected"
    PAYMENT_REFUNDED = "payment_refunded"
    NO_ACTION = "no_action"


@dataclass
class ReconcileResult:
    action: str
    order_id: str
    order_status: str
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None
    subscription_created: bool = False
    subscription_id: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def map_gateway_status(status: Optional[str]) -> str:
    """Status desconhecido nunca é tratado como pago."""
    return GATEWAY_STATUS_MAP.get((status or "").strip().lower(), PaymentStatus.PENDING)


async def _load_order(db: AsyncSession, order_id: str) -> Order:
    res = await db.execute(
        select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if order is None:
        raise NotFound("Pedido não encontrado")
    return order


def _pick_payment(order: Order, payment_id: Optional[str], transaction_id: Optional[str]) -> Payment:
    if payment_id:
        for p in order.payments:
            if p.id == payment_id:
                return p
        raise NotFound("Pagamento não encontrado")
    if transaction_id:
        for p in order.payments:
            if p.transaction_id == str(transaction_id):
                return p
    payment = order.latest_payment()
    if payment is None:
        raise NotFound("Pagamento não encontrado")
    return payment


def _merge_payload(payment: Payment, payload: Optional[Dict[str, Any]], source: str) -> None:
    data = dict(payment.payload or {})
    if payload:
        data.update(payload)
    data["last_source"] = source
    payment.payload = data


async def _subscription_id_for(db: AsyncSession, order: Order) -> Optional[str]:
    if order.kind != OrderKind.SUBSCRIPTION:
        return None
    res = await db.execute(select(Subscription.id).where(Subscription.order_id == order.id))
    return res.scalar_one_or_none()


async def apply_payment_result(
    db: AsyncSession,
    order_id: str,
    gateway_status: str,
    *,
    payment_id: Optional[str] = None,
    transaction_id: Optional[str] = None,
    status_detail: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
    source: str = "webhook",
) -> ReconcileResult:
    order = await _load_order(db, order_id)
    payment = _pick_payment(order, payment_id, transaction_id)
    target = map_gateway_status(gateway_status)

    logger.info(
        "Conciliação [%s] pedido=%s pagamento=%s gateway=%s -> %s (atual: pedido=%s pagamento=%s)",
        source, order.id, payment.id, gateway_status, target, order.status, payment.status,
    )

    if target == PaymentStatus.PAID:
        return await _apply_approved(db, order, payment, transaction_id, status_detail, payload, source)
    if target == PaymentStatus.FAILED:
        return await _apply_rejected(db, order, payment, transaction_id, status_detail, payload, source)
    if target == PaymentStatus.REFUNDED:
        return await _apply_refunded(db, order, payment, status_detail, payload, source)

    # ainda pendente no gateway: só registra o detalhe
    if payment.status == PaymentStatus.PENDING:
        if status_detail:
            payment.status_detail = status_detail
        if transaction_id and not payment.transaction_id:
            payment.transaction_id = str(transaction_id)
        await db.commit()
    return ReconcileResult(ReconcileAction.NO_ACTION, order.id, order.status, payment.id, payment.status)


async def _apply_approved(db, order, payment, transaction_id, status_detail, payload, source) -> ReconcileResult:
    if payment.status == PaymentStatus.PAID or order.has_paid_payment():
        return ReconcileResult(
            ReconcileAction.ALREADY_PAID, order.id, order.status, payment.id, PaymentStatus.PAID,
            subscription_id=await _subscription_id_for(db, order),
        )

    # transição condicional: só um chamador consegue marcar como pago
    order_id, payment_id = order.id, payment.id
    res = await db.execute(
        update(Payment)
        .where(Payment.id == payment_id, Payment.status != PaymentStatus.PAID)
        .values(status=PaymentStatus.PAID, paid_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        await db.rollback()
        order = await _load_order(db, order_id)
        return ReconcileResult(
            ReconcileAction.ALREADY_PAID, order.id, order.status, payment_id, PaymentStatus.PAID,
            subscription_id=await _subscription_id_for(db, order),
        )

    payment.status = PaymentStatus.PAID
    payment.paid_at = utcnow()
    if transaction_id:
        payment.transaction_id = str(transaction_id)
    if status_detail:
        payment.status_detail = status_detail
    _merge_payload(payment, payload, source)

    if order.status == OrderStatus.CANCELED:
        logger.warning("Pedido %s estava CANCELADO e foi pago no gateway; reabrindo como PAGO", order.id)
        for item in order.items:
            if not await reserve_stock(db, item.product_id, item.variant_id, item.quantity):
                logger.warning("Pedido %s reaberto sem estoque para %s (qtd %d)", order.id, item.title, item.quantity)
    if order.status in (OrderStatus.PENDING, OrderStatus.CANCELED):
        order.status = OrderStatus.PAID

    sub, created = None, False
    if order.kind == OrderKind.SUBSCRIPTION:
        # guarda de assinatura ativa no mesmo passo/transação da criação
        sub, created = await activate_subscription_for_order(db, order, payment)

    await db.commit()
    logger.info("Pagamento %s aprovado (pedido %s, origem %s)", payment.id, order.id, source)
    return ReconcileResult(
        ReconcileAction.PAYMENT_APPROVED, order.id, order.status, payment.id, payment.status,
        subscription_created=created,
        subscription_id=sub.id if sub else None,
    )


async def _apply_rejected(db, order, payment, transaction_id, status_detail, payload, source) -> ReconcileResult:
    if payment.status in (PaymentStatus.PAID, PaymentStatus.REFUNDED, PaymentStatus.FAILED):
        # nunca rebaixa um pagamento pago; FAILED repetido é no-op
        return ReconcileResult(ReconcileAction.NO_ACTION, order.id, order.status, payment.id, payment.status)

    payment.status = PaymentStatus.FAILED
    if transaction_id and not payment.transaction_id:
        payment.transaction_id = str(transaction_id)
    if status_detail:
        payment.status_detail = status_detail
    _merge_payload(payment, payload, source)

    if order.status == OrderStatus.PENDING and not order.has_paid_payment():
        order.status = OrderStatus.CANCELED
        await release_order_stock(db, order)

    await db.commit()
    logger.info("Pagamento %s recusado (%s); pedido %s -> %s", payment.id, status_detail, order.id, order.status)
    return ReconcileResult(ReconcileAction.PAYMENT_REJECTED, order.id, order.status, payment.id, payment.status)


async def _apply_refunded(db, order, payment, status_detail, payload, source) -> ReconcileResult:
    if payment.status == PaymentStatus.REFUNDED:
        return ReconcileResult(ReconcileAction.NO_ACTION, order.id, order.status, payment.id, payment.status)

    payment.status = PaymentStatus.REFUNDED
    if status_detail:
        payment.status_detail = status_detail
    _merge_payload(payment, {**(payload or {}), "refunded_at": utcnow().isoformat()}, source)

    if order.status in (OrderStatus.PENDING, OrderStatus.PAID):
        order.status = OrderStatus.CANCELED
        await release_order_stock(db, order)

    sub = await cancel_subscription_for_order(db, order)
    await db.commit()
    logger.info("Pagamento %s reembolsado; pedido %s -> %s", payment.id, order.id, order.status)
    return ReconcileResult(
        ReconcileAction.PAYMENT_REFUNDED, order.id, order.status, payment.id, payment.status,
        subscription_id=sub.id if sub else None,
    )


async def reconcile_gateway_payment(
    db: AsyncSession,
    gateway,
    gateway_payment_id: str,
    source: str = "webhook",
) -> ReconcileResult:
    """
    Busca a verdade no gateway (não confia no corpo do webhook) e aplica.
    O pedido é resolvido pelo external_reference.
    """
    data = await gateway.get_payment(str(gateway_payment_id))
    order_id = data.get("external_reference")
    if not order_id:
        raise NotFound("Pagamento do gateway sem external_reference")

    return await apply_payment_result(
        db,
        str(order_id),
        str(data.get("status") or ""),
        transaction_id=str(data.get("id") or gateway_payment_id),
        status_detail=data.get("status_detail"),
        payload={
            "gateway_status": data.get("status"),
            "status_detail": data.get("status_detail"),
            "date_approved": data.get("date_approved"),
            "payment_method_id": data.get("payment_method_id"),
        },
        source=source,
    )
