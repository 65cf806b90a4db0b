"""
Orquestração do checkout (carrinho e assinatura).

Fluxo por tentativa:
  1. valida (carrinho, endereço, disponibilidade, estoque vivo, preço recalculado)
  2. snapshot: Order PENDING + itens com preço congelado + baixa de estoque
     condicional + Payment PENDING, tudo na mesma transação
  3. pede o artefato de pagamento ao gateway (cobrança no cartão ou PIX)
  4. resultado síncrono do cartão vai para `apply_payment_result`
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.errors import (
    AppError,
    BusinessRuleError,
    NotFound,
    InvalidCardTokenError,
    PaymentProcessingError,
)
from storefront.db.base import utcnow, as_utc
from storefront.integrations.mercadopago_client import MercadoPagoError, describe_status_detail
from storefront.modules.cart.models import Cart, CartItem
from storefront.modules.checkout.schemas import (
    CardData,
    CheckoutCartRequest,
    CheckoutSubscriptionRequest,
    PaymentPreferenceRequest,
)
from storefront.modules.orders.models import (
    Order,
    OrderItem,
    OrderKind,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
)
from storefront.modules.shipping.service import (
    build_order_shipping_data,
    quote_for_plan,
    quote_for_products,
    resolve_shipping_option,
)
from storefront.modules.subscriptions.models import SubscriptionPlan
from storefront.modules.subscriptions.service import user_has_active_subscription
from storefront.modules.users.models import Address, User
from storefront.services.payment_reconcile import apply_payment_result, map_gateway_status
from storefront.services.pricing import compute_cart_prices, round_price
from storefront.services.stock import reserve_stock

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    order_id: str
    payment_id: str
    order_status: str
    payment_status: str
    payment_method: str
    total_amount: Decimal
    status_detail: Optional[str] = None
    pix: Optional[dict[str, Any]] = None
    subscription_id: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _pix_data(payment: Payment) -> dict[str, Any]:
    return {
        "qr_code": payment.pix_qr_code,
        "qr_code_base64": payment.pix_qr_code_base64,
        "ticket_url": payment.pix_ticket_url,
        "expires_at": as_utc(payment.pix_expires_at),
    }


def _result(order: Order, payment: Payment, subscription_id: Optional[str] = None) -> CheckoutResult:
    return CheckoutResult(
        order_id=order.id,
        payment_id=payment.id,
        order_status=order.status,
        payment_status=payment.status,
        payment_method=payment.method,
        total_amount=order.total_amount,
        status_detail=payment.status_detail,
        pix=_pix_data(payment) if payment.method == PaymentMethod.PIX else None,
        subscription_id=subscription_id,
    )


async def _get_address(db: AsyncSession, user: User, address_id: str) -> Address:
    res = await db.execute(select(Address).where(Address.id == address_id, Address.user_id == user.id))
    address = res.scalar_one_or_none()
    if address is None:
        raise BusinessRuleError("Endereço não encontrado", error_code="ADDRESS_NOT_FOUND")
    return address


# ─────────────────────────────────────────────────────────────────────────────
# Carrinho
# ─────────────────────────────────────────────────────────────────────────────

def _validate_cart_lines(cart: Cart) -> list[dict[str, str]]:
    problems: list[dict[str, str]] = []
    for item in cart.items:
        product, variant = item.product, item.variant
        if not product.is_purchasable or (
            variant is not None and (not variant.active or variant.product_id != product.id)
        ):
            problems.append({
                "field": f"items.{item.id}",
                "code": "PRODUCT_UNAVAILABLE",
                "message": f"{product.name} não está disponível",
            })
            continue
        available = variant.stock if variant is not None else product.stock
        if item.quantity > available:
            problems.append({
                "field": f"items.{item.id}",
                "code": "INSUFFICIENT_STOCK",
                "message": f"Estoque insuficiente para {product.name} (disponível: {available})",
            })
    return problems


async def _create_cart_order(db: AsyncSession, user: User, req: CheckoutCartRequest) -> tuple[Order, Payment]:
    # estoque e preço relidos do banco, nunca do snapshot do carrinho
    res = await db.execute(
        select(Cart).where(Cart.user_id == user.id).execution_options(populate_existing=True)
    )
    cart = res.scalar_one_or_none()
    if cart is None or not cart.items:
        raise BusinessRuleError("Carrinho vazio", error_code="CART_EMPTY")

    address = await _get_address(db, user, req.address_id)

    problems = _validate_cart_lines(cart)
    if problems:
        first = problems[0]
        raise BusinessRuleError(first["message"], error_code=first["code"], details=problems)

    summary = await compute_cart_prices(db, user.id)
    shipping_quote = await quote_for_products(db, address.zip_code, [i.product_id for i in cart.items])
    option = resolve_shipping_option(shipping_quote.options, req.shipping_option_id)

    skus = {i.id: (i.variant.sku if i.variant is not None else None) for i in cart.items}
    items = [
        OrderItem(
            product_id=line.product_id,
            variant_id=line.variant_id,
            title=line.name,
            sku=skus.get(line.item_id),
            quantity=line.quantity,
            unit_base_price=line.base_price,
            unit_price=line.final_price,
            total_price=line.line_total_final,
        )
        for line in summary.items
    ]
    total = round_price(summary.subtotal_final + option.price)
    payment = Payment(
        status=PaymentStatus.PENDING,
        provider=PaymentProvider.MERCADO_PAGO,
        method=req.payment_method,
        amount=total,
    )
    order = Order(
        user_id=user.id,
        kind=OrderKind.PRODUCT,
        status=OrderStatus.PENDING,
        subtotal_amount=summary.subtotal_base,
        discount_amount=summary.total_discount,
        shipping_amount=option.price,
        total_amount=total,
        discount_label=summary.discount_label,
        shipping_address=address.snapshot(user.full_name, user.whatsapp),
        shipping_data=build_order_shipping_data(option, shipping_quote),
        notes=req.notes,
        items=items,
        payments=[payment],
    )
    db.add(order)
    await db.flush()

    for line in summary.items:
        if not await reserve_stock(db, line.product_id, line.variant_id, line.quantity):
            # outra compra levou o estoque entre a validação e a baixa
            await db.rollback()
            raise BusinessRuleError(
                f"Estoque insuficiente para {line.name}",
                error_code="INSUFFICIENT_STOCK",
                details=[{"field": f"items.{line.item_id}", "code": "INSUFFICIENT_STOCK",
                          "message": f"Estoque insuficiente para {line.name}"}],
            )

    await db.execute(delete(CartItem).where(CartItem.cart_id == cart.id))
    await db.commit()
    logger.info("Pedido %s criado (usuário=%s, total=%s, itens=%d)", order.id, user.id, total, len(items))
    return order, payment


async def _restore_cart(db: AsyncSession, user: User, order: Order) -> None:
    """Devolve os itens ao carrinho quando o pagamento falha na hora."""
    res = await db.execute(select(Cart).where(Cart.user_id == user.id))
    cart = res.scalar_one_or_none()
    if cart is None:
        return
    for item in order.items:
        db.add(CartItem(cart_id=cart.id, product_id=item.product_id, variant_id=item.variant_id,
                        quantity=item.quantity))
    await db.commit()


async def checkout_cart(db: AsyncSession, gateway, user: User, req: CheckoutCartRequest) -> CheckoutResult:
    order, payment = await _create_cart_order(db, user, req)
    description = f"Pedido {order.id[:8]}"
    try:
        return await _request_payment(db, gateway, user, order, payment, req.card, description)
    except AppError:
        # pagamento recusado na hora: pedido cancelado, itens voltam ao carrinho
        await _restore_cart(db, user, order)
        raise


# ─────────────────────────────────────────────────────────────────────────────
# Assinatura
# ─────────────────────────────────────────────────────────────────────────────

async def checkout_subscription(
    db: AsyncSession, gateway, user: User, req: CheckoutSubscriptionRequest
) -> CheckoutResult:
    res = await db.execute(
        select(SubscriptionPlan).where(SubscriptionPlan.slug == req.plan_slug, SubscriptionPlan.is_active.is_(True))
    )
    plan = res.scalar_one_or_none()
    if plan is None:
        raise BusinessRuleError("Plano não encontrado ou inativo", error_code="PLAN_NOT_FOUND")

    if await user_has_active_subscription(db, user.id):
        raise BusinessRuleError(
            "Você já possui uma assinatura ativa. Cancele a atual antes de assinar outro plano.",
            error_code="ALREADY_SUBSCRIBED",
        )

    address = await _get_address(db, user, req.address_id)
    shipping_quote = await quote_for_plan(db, address.zip_code, plan.id)
    option = resolve_shipping_option(shipping_quote.options, req.shipping_option_id)

    plan_price = round_price(plan.price)
    total = round_price(plan_price + option.price)
    payment = Payment(
        status=PaymentStatus.PENDING,
        provider=PaymentProvider.MERCADO_PAGO,
        method=req.payment_method,
        amount=total,
    )
    order = Order(
        user_id=user.id,
        kind=OrderKind.SUBSCRIPTION,
        plan_id=plan.id,
        status=OrderStatus.PENDING,
        subtotal_amount=plan_price,
        discount_amount=Decimal("0.00"),
        shipping_amount=option.price,
        total_amount=total,
        shipping_address=address.snapshot(user.full_name, user.whatsapp),
        shipping_data=build_order_shipping_data(option, shipping_quote),
        notes=f"Assinatura {plan.name}",
        items=[],
        payments=[payment],
    )
    db.add(order)
    await db.commit()
    logger.info("Pedido de assinatura %s criado (usuário=%s, plano=%s)", order.id, user.id, plan.slug)

    return await _request_payment(db, gateway, user, order, payment, req.card, f"Assinatura {plan.name}")


# ─────────────────────────────────────────────────────────────────────────────
# Pagamento
# ─────────────────────────────────────────────────────────────────────────────

async def _fail_attempt(db: AsyncSession, order: Order, payment: Payment, detail: str) -> None:
    await apply_payment_result(db, order.id, "rejected", payment_id=payment.id, status_detail=detail,
                               source="checkout")


async def _request_payment(
    db: AsyncSession,
    gateway,
    user: User,
    order: Order,
    payment: Payment,
    card: Optional[CardData],
    description: str,
) -> CheckoutResult:
    metadata = {"order_id": order.id, "user_id": user.id, "kind": order.kind}
    if order.plan_id:
        metadata["plan_id"] = order.plan_id

    try:
        if payment.method == PaymentMethod.PIX:
            expires_at = utcnow() + timedelta(minutes=settings.PIX_EXPIRATION_MINUTES)
            pix = await gateway.create_pix_payment(
                amount=order.total_amount,
                payer_email=user.email,
                description=description,
                external_reference=order.id,
                expires_at=expires_at,
                metadata=metadata,
            )
        else:
            identification = None
            if card.identification_type and card.identification_number:
                identification = {"type": card.identification_type, "number": card.identification_number}
            charge = await gateway.create_card_payment(
                amount=order.total_amount,
                token=card.token,
                payment_method_id=card.payment_method_id,
                installments=card.installments,
                issuer_id=card.issuer_id,
                payer_email=card.payer_email or user.email,
                identification=identification,
                description=description,
                external_reference=order.id,
                metadata=metadata,
            )
    except MercadoPagoError as exc:
        logger.warning("Gateway recusou a criação do pagamento do pedido %s: %s %s", order.id, exc.code, exc.data)
        await _fail_attempt(db, order, payment, exc.code)
        if exc.is_card_token_error:
            raise InvalidCardTokenError()
        raise PaymentProcessingError()
    except Exception:
        logger.exception("Erro inesperado ao criar pagamento do pedido %s", order.id)
        await _fail_attempt(db, order, payment, "gateway_error")
        raise PaymentProcessingError()

    if payment.method == PaymentMethod.PIX:
        payment.transaction_id = pix.payment_id
        payment.pix_qr_code = pix.qr_code
        payment.pix_qr_code_base64 = pix.qr_code_base64
        payment.pix_ticket_url = pix.ticket_url
        payment.pix_expires_at = pix.expiration_date or expires_at
        payment.payload = pix.payload
        await db.commit()
        # PIX: pedido segue PENDING até webhook ou conciliação manual
        return _result(order, payment)

    payment.transaction_id = charge.id
    payment.status_detail = charge.status_detail
    payment.payload = charge.payload
    await db.commit()

    outcome = map_gateway_status(charge.status)
    if outcome == PaymentStatus.PENDING:
        logger.info("Pagamento cartão do pedido %s em análise (%s)", order.id, charge.status_detail)
        return _result(order, payment)

    rec = await apply_payment_result(
        db, order.id, charge.status,
        payment_id=payment.id,
        transaction_id=charge.id,
        status_detail=charge.status_detail,
        source="checkout",
    )
    if outcome == PaymentStatus.FAILED:
        raise BusinessRuleError(
            describe_status_detail(charge.status_detail),
            error_code="PAYMENT_REJECTED",
            details=[{"field": "payment", "message": charge.status_detail or charge.status}],
        )
    return _result(order, payment, rec.subscription_id)


# ─────────────────────────────────────────────────────────────────────────────
# PIX: regenerar / pendente / status
# ─────────────────────────────────────────────────────────────────────────────

async def regenerate_pix(db: AsyncSession, gateway, user: User, order_id: str) -> CheckoutResult:
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id, Order.user_id == user.id)
        .execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if order is None:
        raise NotFound("Pedido não encontrado")
    if order.status != OrderStatus.PENDING:
        raise BusinessRuleError("Pedido não está pendente", error_code="ORDER_NOT_PENDING")
    payment = order.latest_payment()
    if payment is None:
        raise BusinessRuleError("Pagamento não encontrado", error_code="PAYMENT_NOT_FOUND")
    if order.has_paid_payment():
        raise BusinessRuleError("Pedido já foi pago", error_code="ALREADY_PAID")

    expires_at = utcnow() + timedelta(minutes=settings.PIX_EXPIRATION_MINUTES)
    try:
        pix = await gateway.create_pix_payment(
            amount=order.total_amount,
            payer_email=user.email,
            description=order.notes or f"Pedido {order.id[:8]}",
            external_reference=order.id,
            expires_at=expires_at,
            metadata={"order_id": order.id, "user_id": user.id, "kind": order.kind, "regenerated": True},
        )
    except MercadoPagoError as exc:
        logger.warning("Falha ao regenerar PIX do pedido %s: %s %s", order.id, exc.code, exc.data)
        raise PaymentProcessingError()

    # mesma tentativa lógica: sobrescreve o pagamento pendente, sem nova linha
    payment.method = PaymentMethod.PIX
    payment.status = PaymentStatus.PENDING
    payment.transaction_id = pix.payment_id
    payment.status_detail = None
    payment.pix_qr_code = pix.qr_code
    payment.pix_qr_code_base64 = pix.qr_code_base64
    payment.pix_ticket_url = pix.ticket_url
    payment.pix_expires_at = pix.expiration_date or expires_at
    payment.payload = {**pix.payload, "regenerated_at": utcnow().isoformat()}
    await db.commit()
    logger.info("PIX regenerado para o pedido %s (novo id gateway %s)", order.id, pix.payment_id)
    return _result(order, payment)


async def get_pending_pix(db: AsyncSession, user_id: str) -> Optional[dict[str, Any]]:
    res = await db.execute(
        select(Payment, Order)
        .join(Order, Order.id == Payment.order_id)
        .where(
            Order.user_id == user_id,
            Payment.status == PaymentStatus.PENDING,
            Payment.method == PaymentMethod.PIX,
            Payment.pix_qr_code.is_not(None),
        )
        .order_by(Payment.created_at.desc())
    )
    now = utcnow()
    # expiração checada na leitura (sem job agendado)
    for payment, order in res.all():
        expires_at = as_utc(payment.pix_expires_at)
        if expires_at is None or expires_at <= now:
            continue
        plan_name = None
        if order.plan_id:
            plan = await db.get(SubscriptionPlan, order.plan_id)
            plan_name = plan.name if plan else None
        return {
            "order_id": order.id,
            "payment_id": payment.id,
            "transaction_id": payment.transaction_id,
            "amount": payment.amount,
            "qr_code": payment.pix_qr_code,
            "qr_code_base64": payment.pix_qr_code_base64,
            "ticket_url": payment.pix_ticket_url,
            "expires_at": expires_at,
            "remaining_seconds": int((expires_at - now).total_seconds()),
            "plan_id": order.plan_id,
            "plan_name": plan_name,
        }
    return None


async def get_payment_status(db: AsyncSession, gateway, user: User, payment_id: str) -> dict[str, Any]:
    res = await db.execute(
        select(Payment)
        .join(Order, Order.id == Payment.order_id)
        .where(Payment.id == payment_id, Order.user_id == user.id)
    )
    payment = res.scalar_one_or_none()
    if payment is None:
        raise NotFound("Pagamento não encontrado")

    if payment.status == PaymentStatus.PENDING and payment.transaction_id:
        try:
            data = await gateway.get_payment(payment.transaction_id)
        except MercadoPagoError as exc:
            logger.warning("Consulta de status falhou para %s: %s", payment.transaction_id, exc.code)
        else:
            await apply_payment_result(
                db, payment.order_id, str(data.get("status") or ""),
                payment_id=payment.id,
                transaction_id=payment.transaction_id,
                status_detail=data.get("status_detail"),
                source="status_poll",
            )

    res = await db.execute(
        select(Payment).where(Payment.id == payment_id).execution_options(populate_existing=True)
    )
    payment = res.scalar_one()
    res = await db.execute(
        select(Order).where(Order.id == payment.order_id).execution_options(populate_existing=True)
    )
    order = res.scalar_one()
    return {
        "payment_id": payment.id,
        "order_id": payment.order_id,
        "payment_status": payment.status,
        "order_status": order.status,
        "status_detail": payment.status_detail,
        "is_paid": payment.status == PaymentStatus.PAID,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Checkout Pro (preferência de pagamento)
# ─────────────────────────────────────────────────────────────────────────────

def _ensure_payable(order: Order) -> None:
    if order.status != OrderStatus.PENDING:
        raise BusinessRuleError("Pedido não está pendente", error_code="ORDER_NOT_PENDING")
    if order.has_paid_payment():
        raise BusinessRuleError("Pedido já foi pago", error_code="ALREADY_PAID")


async def _user_order(db: AsyncSession, user: User, order_id: str) -> Order:
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id, Order.user_id == user.id)
        .execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if order is None:
        raise NotFound("Pedido não encontrado")
    return order


def _preference_items(order: Order, plan: Optional[SubscriptionPlan]) -> list[dict[str, Any]]:
    # valores do pedido já gravado; a soma das linhas fecha com total_amount
    if plan is not None:
        items = [{
            "id": plan.id,
            "title": f"Assinatura {plan.name}",
            "quantity": 1,
            "unit_price": order.subtotal_amount,
            "category_id": "subscription",
        }]
    else:
        items = [
            {
                "id": item.product_id,
                "title": item.title,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "category_id": "products",
            }
            for item in order.items
        ]
    if order.shipping_amount and order.shipping_amount > 0:
        items.append({"id": "frete", "title": "Frete", "quantity": 1,
                      "unit_price": order.shipping_amount, "category_id": "shipping"})
    return items


async def _new_subscription_order(db: AsyncSession, user: User, plan: SubscriptionPlan) -> Order:
    if await user_has_active_subscription(db, user.id):
        raise BusinessRuleError(
            "Você já possui uma assinatura ativa. Cancele a atual antes de assinar outro plano.",
            error_code="ALREADY_SUBSCRIBED",
        )
    price = round_price(plan.price)
    order = Order(
        user_id=user.id,
        kind=OrderKind.SUBSCRIPTION,
        plan_id=plan.id,
        status=OrderStatus.PENDING,
        subtotal_amount=price,
        discount_amount=Decimal("0.00"),
        shipping_amount=Decimal("0.00"),
        total_amount=price,
        notes=f"Assinatura {plan.name}",
        items=[],
        payments=[Payment(
            status=PaymentStatus.PENDING,
            provider=PaymentProvider.MERCADO_PAGO,
            method=PaymentMethod.CHECKOUT_PRO,
            amount=price,
        )],
    )
    db.add(order)
    await db.commit()
    logger.info("Pedido de assinatura %s criado para Checkout Pro (usuário=%s, plano=%s)",
                order.id, user.id, plan.slug)
    return order


async def create_payment_preference(
    db: AsyncSession, gateway, user: User, req: PaymentPreferenceRequest
) -> dict[str, Any]:
    """
    Cria a preferência do Checkout Pro para um pedido PENDING do usuário.
    external_reference é sempre o id do pedido: o webhook concilia por ele.
    """
    plan: Optional[SubscriptionPlan] = None
    created = False

    if req.type == "product":
        order = await _user_order(db, user, req.order_id)
        if order.kind != OrderKind.PRODUCT:
            raise BusinessRuleError("Pedido não é de produtos", error_code="ORDER_KIND_MISMATCH")
        _ensure_payable(order)
    else:
        res = await db.execute(
            select(SubscriptionPlan).where(
                SubscriptionPlan.slug == req.plan_slug, SubscriptionPlan.is_active.is_(True)
            )
        )
        plan = res.scalar_one_or_none()
        if plan is None:
            raise NotFound("Plano não encontrado", error_code="PLAN_NOT_FOUND")
        if req.order_id:
            order = await _user_order(db, user, req.order_id)
            if order.kind != OrderKind.SUBSCRIPTION or order.plan_id != plan.id:
                raise BusinessRuleError("Pedido não corresponde ao plano", error_code="ORDER_KIND_MISMATCH")
            _ensure_payable(order)
        else:
            order = await _new_subscription_order(db, user, plan)
            created = True

    payment = order.latest_payment()
    metadata = {"order_id": order.id, "user_id": user.id, "kind": order.kind}
    if order.plan_id:
        metadata["plan_id"] = order.plan_id
    front = settings.FRONTEND_BASE_URL.rstrip("/")

    try:
        pref = await gateway.create_preference(
            items=_preference_items(order, plan),
            payer_email=user.email,
            payer_name=user.full_name,
            external_reference=order.id,
            back_urls={
                "success": f"{front}/checkout/sucesso",
                "failure": f"{front}/checkout/falha",
                "pending": f"{front}/checkout/pendente",
            },
            metadata=metadata,
        )
    except MercadoPagoError as exc:
        logger.warning("Falha ao criar preferência do pedido %s: %s %s", order.id, exc.code, exc.data)
        if created and payment is not None:
            await _fail_attempt(db, order, payment, exc.code)
        raise PaymentProcessingError()

    if payment is not None:
        payment.payload = {**(payment.payload or {}), "preference_id": pref.id}
        await db.commit()

    is_test_mode = not settings.MP_USE_PRODUCTION
    init_point = (pref.sandbox_init_point or pref.init_point) if is_test_mode else pref.init_point
    logger.info("Preferência %s criada para o pedido %s", pref.id, order.id)
    return {
        "preference_id": pref.id,
        "init_point": init_point,
        "order_id": order.id,
        "is_test_mode": is_test_mode,
    }
