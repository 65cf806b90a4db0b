import pytest

from storefront.core.errors import NotFound
from storefront.modules.orders.models import Order, OrderStatus, Payment, PaymentStatus
from storefront.modules.products.models import Product
from storefront.modules.subscriptions.models import Subscription, SubscriptionCycle, SubscriptionStatus
from storefront.services.payment_reconcile import (
    ReconcileAction,
    apply_payment_result,
    map_gateway_status,
    reconcile_gateway_payment,
)


@pytest.mark.parametrize(
    "gateway_status, expected",
    [
        ("approved", PaymentStatus.PAID),
        ("APPROVED", PaymentStatus.PAID),
        ("in_process", PaymentStatus.PENDING),
        ("authorized", PaymentStatus.PENDING),
        ("rejected", PaymentStatus.FAILED),
        ("cancelled", PaymentStatus.FAILED),
        ("refunded", PaymentStatus.REFUNDED),
        ("charged_back", PaymentStatus.REFUNDED),
        ("qualquer_coisa", PaymentStatus.PENDING),
        ("", PaymentStatus.PENDING),
        (None, PaymentStatus.PENDING),
    ],
)
def test_map_gateway_status(gateway_status, expected):
    assert map_gateway_status(gateway_status) == expected


async def test_approval_is_idempotent(db, customer, product, make_order, fetch):
    order = await make_order(customer, product, quantity=2)

    first = await apply_payment_result(db, order.id, "approved", transaction_id="mp-1")
    assert first.action == ReconcileAction.PAYMENT_APPROVED
    assert first.order_status == OrderStatus.PAID

    second = await apply_payment_result(db, order.id, "approved", transaction_id="mp-1")
    assert second.action == ReconcileAction.ALREADY_PAID
    assert second.payment_status == PaymentStatus.PAID

    payment = await fetch(Payment, order.payments[0].id)
    assert payment.status == PaymentStatus.PAID
    assert payment.paid_at is not None
    assert payment.payload["last_source"] == "webhook"
    # aprovação não mexe no estoque já baixado pelo checkout
    assert (await fetch(Product, product.id)).stock == 10


async def test_subscription_created_once(db, customer, plan, make_order, count):
    order = await make_order(customer, plan=plan)

    first = await apply_payment_result(db, order.id, "approved", source="admin")
    assert first.subscription_created is True
    assert first.subscription_id

    second = await apply_payment_result(db, order.id, "approved", source="webhook")
    assert second.action == ReconcileAction.ALREADY_PAID
    assert second.subscription_id == first.subscription_id

    assert await count(Subscription, Subscription.user_id == customer.id) == 1
    assert await count(SubscriptionCycle, SubscriptionCycle.subscription_id == first.subscription_id) == 1


async def test_existing_active_subscription_blocks_new_one(db, customer, plan, subscribe, make_order, count):
    await subscribe(customer, plan)
    order = await make_order(customer, plan=plan)

    result = await apply_payment_result(db, order.id, "approved")
    assert result.action == ReconcileAction.PAYMENT_APPROVED
    assert result.order_status == OrderStatus.PAID
    assert result.subscription_created is False
    assert await count(Subscription, Subscription.status == SubscriptionStatus.ACTIVE) == 1


async def test_rejection_never_downgrades_paid(db, customer, product, make_order, fetch):
    order = await make_order(customer, product)
    await apply_payment_result(db, order.id, "approved")

    result = await apply_payment_result(db, order.id, "rejected", status_detail="cc_rejected_other_reason")
    assert result.action == ReconcileAction.NO_ACTION
    assert (await fetch(Order, order.id)).status == OrderStatus.PAID
    assert (await fetch(Payment, order.payments[0].id)).status == PaymentStatus.PAID


async def test_rejection_cancels_pending_and_releases_stock(db, customer, product, make_order, fetch):
    order = await make_order(customer, product, quantity=3)

    result = await apply_payment_result(db, order.id, "rejected", status_detail="cc_rejected_other_reason")
    assert result.action == ReconcileAction.PAYMENT_REJECTED
    assert result.order_status == OrderStatus.CANCELED

    payment = await fetch(Payment, order.payments[0].id)
    assert payment.status == PaymentStatus.FAILED
    assert payment.status_detail == "cc_rejected_other_reason"
    assert (await fetch(Product, product.id)).stock == 13

    # repetição não devolve o estoque de novo
    again = await apply_payment_result(db, order.id, "rejected")
    assert again.action == ReconcileAction.NO_ACTION
    assert (await fetch(Product, product.id)).stock == 13


async def test_refund_cancels_order_and_subscription(db, customer, plan, make_order, fetch):
    order = await make_order(customer, plan=plan)
    approved = await apply_payment_result(db, order.id, "approved")

    result = await apply_payment_result(db, order.id, "refunded")
    assert result.action == ReconcileAction.PAYMENT_REFUNDED
    assert result.order_status == OrderStatus.CANCELED
    assert result.payment_status == PaymentStatus.REFUNDED

    sub = await fetch(Subscription, approved.subscription_id)
    assert sub.status == SubscriptionStatus.CANCELED
    assert sub.canceled_at is not None

    again = await apply_payment_result(db, order.id, "refunded")
    assert again.action == ReconcileAction.NO_ACTION


async def test_pending_status_only_records_detail(db, customer, product, make_order, fetch):
    order = await make_order(customer, product)
    result = await apply_payment_result(db, order.id, "in_process", status_detail="pending_review_manual")
    assert result.action == ReconcileAction.NO_ACTION
    assert result.order_status == OrderStatus.PENDING

    payment = await fetch(Payment, order.payments[0].id)
    assert payment.status == PaymentStatus.PENDING
    assert payment.status_detail == "pending_review_manual"


async def test_canceled_order_paid_later_is_reopened(db, customer, product, make_order, fetch):
    order = await make_order(customer, product, quantity=2)
    await apply_payment_result(db, order.id, "rejected")
    assert (await fetch(Product, product.id)).stock == 12

    # o cliente pagou mesmo assim (ex.: PIX pago depois do cancelamento)
    result = await apply_payment_result(db, order.id, "approved")
    assert result.action == ReconcileAction.PAYMENT_APPROVED
    assert result.order_status == OrderStatus.PAID
    assert (await fetch(Product, product.id)).stock == 10


async def test_unknown_payment_id_raises(db, customer, product, make_order):
    order = await make_order(customer, product)
    with pytest.raises(NotFound):
        await apply_payment_result(db, order.id, "approved", payment_id="nao-existe")


async def test_unknown_order_raises(db):
    with pytest.raises(NotFound):
        await apply_payment_result(db, "nao-existe", "approved")


async def test_reconcile_reads_status_from_gateway(db, gateway, customer, product, make_order, fetch):
    order = await make_order(customer, product, transaction_id="555")
    gateway.register("555", order.id, "approved", "accredited")

    result = await reconcile_gateway_payment(db, gateway, "555", source="script")
    assert result.action == ReconcileAction.PAYMENT_APPROVED

    payment = await fetch(Payment, order.payments[0].id)
    assert payment.status_detail == "accredited"
    assert payment.payload["gateway_status"] == "approved"
    assert payment.payload["last_source"] == "script"
    assert ("get", "555") in gateway.calls


async def test_reconcile_without_external_reference(db, gateway):
    gateway.register("777", None, "approved")
    with pytest.raises(NotFound):
        await reconcile_gateway_payment(db, gateway, "777")
