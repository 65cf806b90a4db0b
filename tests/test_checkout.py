from decimal import Decimal

import pytest

from storefront.integrations.mercadopago_client import MercadoPagoError
from storefront.modules.cart.models import CartItem
from storefront.modules.orders.models import Order, OrderStatus, Payment, PaymentStatus
from storefront.modules.products.models import Product
from storefront.modules.subscriptions.models import Subscription, SubscriptionStatus

CARD = {"token": "tok_test", "payment_method_id": "visa", "installments": 1}

# SP, perfil padrão (0,5 kg): PAC = 15,90
PAC_PRICE = Decimal("15.90")


@pytest.fixture
def fill_cart(client, auth_headers):
    async def _fill(user, product, quantity=2):
        r = await client.post(
            "/api/v1/cart/items",
            json={"product_id": product.id, "quantity": quantity},
            headers=auth_headers(user),
        )
        assert r.status_code == 201, r.text
    return _fill


def _cart_body(address, method="CREDIT_CARD", **extra):
    body = {"address_id": address.id, "shipping_option_id": "fallback_pac", "payment_method": method}
    if method != "PIX":
        body["card"] = CARD
    body.update(extra)
    return body


async def test_card_approved_marks_order_paid(client, auth_headers, customer, address, product, fill_cart, fetch, count):
    await fill_cart(customer, product, 2)

    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address), headers=auth_headers(customer))
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["order_status"] == OrderStatus.PAID
    assert data["payment_status"] == PaymentStatus.PAID
    assert Decimal(str(data["total_amount"])) == Decimal("39.98") + PAC_PRICE

    order = await fetch(Order, data["order_id"])
    assert order.shipping_amount == PAC_PRICE
    assert order.shipping_address["zip_code"] == "01310-100"
    assert [(i.quantity, i.unit_price) for i in order.items] == [(2, Decimal("19.99"))]
    assert (await fetch(Product, product.id)).stock == 8
    assert await count(CartItem) == 0


async def test_card_rejected_cancels_order_and_restores(client, auth_headers, gateway, customer, address, product,
                                                        fill_cart, fetch, count):
    gateway.card_status = "rejected"
    gateway.card_status_detail = "cc_rejected_insufficient_amount"
    await fill_cart(customer, product, 2)

    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address), headers=auth_headers(customer))
    assert r.status_code == 400
    body = r.json()
    assert body["errorCode"] == "PAYMENT_REJECTED"
    assert body["error"] == "Saldo insuficiente."

    orders = await count(Order, Order.user_id == customer.id, Order.status == OrderStatus.CANCELED)
    assert orders == 1
    assert await count(Payment, Payment.status == PaymentStatus.FAILED) == 1
    assert (await fetch(Product, product.id)).stock == 10
    # itens voltam para o carrinho
    assert await count(CartItem) == 1


async def test_card_in_process_keeps_order_pending(client, auth_headers, gateway, customer, address, product, fill_cart):
    gateway.card_status = "in_process"
    gateway.card_status_detail = "pending_contingency"
    await fill_cart(customer, product, 1)

    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address), headers=auth_headers(customer))
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["order_status"] == OrderStatus.PENDING
    assert data["payment_status"] == PaymentStatus.PENDING
    assert data["status_detail"] == "pending_contingency"


async def test_insufficient_stock_creates_no_order(client, auth_headers, session_factory, customer, address, product,
                                                   fill_cart, count):
    await fill_cart(customer, product, 2)
    async with session_factory() as s:
        obj = await s.get(Product, product.id)
        obj.stock = 1
        await s.commit()

    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address), headers=auth_headers(customer))
    assert r.status_code == 400
    body = r.json()
    assert body["errorCode"] == "INSUFFICIENT_STOCK"
    assert body["details"][0]["code"] == "INSUFFICIENT_STOCK"
    assert await count(Order) == 0
    assert await count(CartItem) == 1


async def test_pix_checkout_returns_qr_and_pending_pix(client, auth_headers, customer, address, product, fill_cart):
    await fill_cart(customer, product, 1)
    h = auth_headers(customer)

    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address, "PIX"), headers=h)
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["order_status"] == OrderStatus.PENDING
    assert data["pix"]["qr_code"].startswith("00020126pix")
    assert data["pix"]["expires_at"] is not None

    r = await client.get("/api/v1/checkout/pending-pix", headers=h)
    pending = r.json()["data"]
    assert pending["order_id"] == data["order_id"]
    assert pending["payment_id"] == data["payment_id"]
    assert 0 < pending["remaining_seconds"] <= 30 * 60


async def test_invalid_card_token(client, auth_headers, gateway, customer, address, product, fill_cart, fetch, count):
    gateway.card_error = MercadoPagoError("2006", {"message": "card token not found"}, 400)
    await fill_cart(customer, product, 1)

    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address), headers=auth_headers(customer))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "INVALID_TOKEN"
    assert await count(Order, Order.status == OrderStatus.CANCELED) == 1
    assert (await fetch(Product, product.id)).stock == 10


async def test_gateway_failure_is_generic(client, auth_headers, gateway, customer, address, product, fill_cart):
    gateway.pix_error = MercadoPagoError("network_error", {"error": "timeout"})
    await fill_cart(customer, product, 1)

    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address, "PIX"), headers=auth_headers(customer))
    assert r.status_code == 502
    body = r.json()
    assert body["errorCode"] == "PAYMENT_FAILED"
    assert "timeout" not in body["error"]


async def test_empty_cart(client, auth_headers, customer, address):
    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address), headers=auth_headers(customer))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "CART_EMPTY"


async def test_other_users_address_rejected(client, auth_headers, make_user, address, product, fill_cart):
    other = await make_user("outro@example.com")
    await fill_cart(other, product, 1)
    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address), headers=auth_headers(other))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "ADDRESS_NOT_FOUND"


async def test_invalid_shipping_option(client, auth_headers, customer, address, product, fill_cart, count):
    await fill_cart(customer, product, 1)
    body = _cart_body(address, shipping_option_id="frete_gratis")
    r = await client.post("/api/v1/checkout/cart", json=body, headers=auth_headers(customer))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "INVALID_SHIPPING_OPTION"
    assert await count(Order) == 0


async def test_card_method_requires_card_data(client, auth_headers, customer, address):
    body = {"address_id": address.id, "shipping_option_id": "fallback_pac", "payment_method": "CREDIT_CARD"}
    r = await client.post("/api/v1/checkout/cart", json=body, headers=auth_headers(customer))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "VALIDATION_ERROR"


async def test_subscription_checkout_creates_subscription(client, auth_headers, customer, address, plan, count):
    h = auth_headers(customer)
    body = {"plan_slug": "clube", "address_id": address.id, "shipping_option_id": "fallback_pac",
            "payment_method": "CREDIT_CARD", "card": CARD}

    r = await client.post("/api/v1/checkout/subscription", json=body, headers=h)
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["order_status"] == OrderStatus.PAID
    assert data["subscription_id"]
    assert Decimal(str(data["total_amount"])) == Decimal("49.90") + PAC_PRICE
    assert await count(Subscription, Subscription.status == SubscriptionStatus.ACTIVE) == 1

    r = await client.post("/api/v1/checkout/subscription", json=body, headers=h)
    assert r.status_code == 400
    assert r.json()["errorCode"] == "ALREADY_SUBSCRIBED"


async def test_subscription_checkout_unknown_plan(client, auth_headers, customer, address):
    body = {"plan_slug": "nao-existe", "address_id": address.id, "shipping_option_id": "fallback_pac",
            "payment_method": "PIX"}
    r = await client.post("/api/v1/checkout/subscription", json=body, headers=auth_headers(customer))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "PLAN_NOT_FOUND"


async def test_payment_status_polls_gateway(client, auth_headers, gateway, customer, address, product, fill_cart):
    await fill_cart(customer, product, 1)
    h = auth_headers(customer)
    r = await client.post("/api/v1/checkout/cart", json=_cart_body(address, "PIX"), headers=h)
    data = r.json()["data"]

    transaction_id = [pid for pid in gateway.payments][0]
    gateway.set_status(transaction_id, "approved", "accredited")

    r = await client.get(f"/api/v1/checkout/payment-status/{data['payment_id']}", headers=h)
    status = r.json()["data"]
    assert status["is_paid"] is True
    assert status["order_status"] == OrderStatus.PAID


async def test_payment_status_of_other_user_is_not_found(client, auth_headers, make_user, make_order, customer):
    order = await make_order(customer)
    other = await make_user("outro@example.com")
    r = await client.get(f"/api/v1/checkout/payment-status/{order.payments[0].id}", headers=auth_headers(other))
    assert r.status_code == 404
