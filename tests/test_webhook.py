import hashlib
import hmac

from storefront.core.config import settings
from storefront.integrations.mercadopago_client import MercadoPagoError
from storefront.modules.orders.models import Order, OrderStatus, Payment, PaymentStatus

URL = "/api/v1/webhooks/mercadopago"
SECRET = "segredo-webhook"


def _signed_headers(data_id: str, request_id: str = "req-1", ts: str = "1700000000", secret: str = SECRET):
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    v1 = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return {"x-signature": f"ts={ts},v1={v1}", "x-request-id": request_id}


def _event(data_id: str, event_type: str = "payment"):
    return {"type": event_type, "action": "payment.updated", "data": {"id": data_id}}


async def test_health_check(client):
    r = await client.get(URL)
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


async def test_approved_webhook_marks_order_paid_once(client, gateway, customer, product, make_order, fetch):
    order = await make_order(customer, product, transaction_id="123")
    gateway.register("123", order.id, "approved", "accredited")

    for _ in range(2):
        r = await client.post(URL, json=_event("123"))
        assert r.status_code == 200
        assert r.json() == {"received": True}

    assert (await fetch(Order, order.id)).status == OrderStatus.PAID
    payment = await fetch(Payment, order.payments[0].id)
    assert payment.status == PaymentStatus.PAID
    assert payment.payload["last_source"] == "webhook"


async def test_webhook_trusts_gateway_not_body(client, gateway, customer, product, make_order, fetch):
    order = await make_order(customer, product, transaction_id="124")
    gateway.register("124", order.id, "pending", "pending_waiting_transfer")

    body = {**_event("124"), "status": "approved"}
    r = await client.post(URL, json=body)
    assert r.status_code == 200
    assert (await fetch(Order, order.id)).status == OrderStatus.PENDING


async def test_data_id_from_query_string(client, gateway, customer, product, make_order, fetch):
    order = await make_order(customer, product, transaction_id="125")
    gateway.register("125", order.id, "approved")

    r = await client.post(f"{URL}?type=payment&data.id=125", json={})
    assert r.status_code == 200
    assert (await fetch(Order, order.id)).status == OrderStatus.PAID


async def test_malformed_json_is_acknowledged(client, gateway):
    r = await client.post(URL, content=b"{nao-e-json", headers={"content-type": "application/json"})
    assert r.status_code == 200
    assert r.json() == {"received": True}
    assert gateway.calls == []


async def test_other_event_types_are_ignored(client, gateway):
    r = await client.post(URL, json=_event("999", event_type="merchant_order"))
    assert r.status_code == 200
    assert gateway.calls == []


async def test_payment_event_without_id_is_ignored(client, gateway):
    r = await client.post(URL, json={"type": "payment", "data": {}})
    assert r.status_code == 200
    assert gateway.calls == []


async def test_gateway_error_still_acknowledged(client, gateway):
    gateway.get_error = MercadoPagoError("network_error", {"error": "timeout"})
    r = await client.post(URL, json=_event("126"))
    assert r.status_code == 200
    assert r.json() == {"received": True}


async def test_unknown_payment_still_acknowledged(client):
    r = await client.post(URL, json=_event("inexistente"))
    assert r.status_code == 200


async def test_invalid_signature_rejected(client, gateway, monkeypatch):
    monkeypatch.setattr(settings, "MP_WEBHOOK_SECRET", SECRET)
    headers = _signed_headers("127", secret="outro-segredo")

    r = await client.post(URL, json=_event("127"), headers=headers)
    assert r.status_code == 401
    assert r.json()["errorCode"] == "INVALID_SIGNATURE"
    assert gateway.calls == []


async def test_missing_signature_rejected_when_secret_set(client, monkeypatch):
    monkeypatch.setattr(settings, "MP_WEBHOOK_SECRET", SECRET)
    r = await client.post(URL, json=_event("128"))
    assert r.status_code == 401


async def test_valid_signature_processed(client, gateway, customer, product, make_order, fetch, monkeypatch):
    monkeypatch.setattr(settings, "MP_WEBHOOK_SECRET", SECRET)
    order = await make_order(customer, product, transaction_id="129")
    gateway.register("129", order.id, "approved")

    r = await client.post(URL, json=_event("129"), headers=_signed_headers("129"))
    assert r.status_code == 200
    assert (await fetch(Order, order.id)).status == OrderStatus.PAID
