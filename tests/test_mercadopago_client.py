import hashlib
import hmac
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from storefront.integrations.mercadopago_client import (
    MercadoPagoClient,
    MercadoPagoError,
    _strip_sensitive,
    describe_status_detail,
    normalize_amount,
    verify_webhook_signature,
)


def _client(handler, **kw) -> MercadoPagoClient:
    return MercadoPagoClient("TEST-token", "https://mp.test", transport=httpx.MockTransport(handler), **kw)


def _sign(secret, data_id, request_id, ts):
    manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
    return hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()


def test_verify_webhook_signature():
    v1 = _sign("s3cr3t", "123", "req-9", "1700000000")
    header = f"ts=1700000000,v1={v1}"
    assert verify_webhook_signature("s3cr3t", header, "req-9", "123") is True
    assert verify_webhook_signature("s3cr3t", header, "req-9", "124") is False
    assert verify_webhook_signature("outro", header, "req-9", "123") is False
    assert verify_webhook_signature("s3cr3t", None, "req-9", "123") is False
    assert verify_webhook_signature("s3cr3t", header, None, "123") is False
    assert verify_webhook_signature("s3cr3t", "ts=1700000000", "req-9", "123") is False


def test_normalize_amount():
    assert normalize_amount("10.005") == Decimal("10.01")
    assert normalize_amount(55.88) == Decimal("55.88")
    with pytest.raises(ValueError):
        normalize_amount(0)


def test_describe_status_detail():
    assert describe_status_detail("cc_rejected_bad_filled_security_code") == "CVV incorreto."
    assert describe_status_detail(None).startswith("Pagamento recusado")


def test_strip_sensitive_drops_card_and_qr_image():
    data = {
        "id": 1,
        "card": {"first_six_digits": "450995"},
        "point_of_interaction": {"transaction_data": {"qr_code": "abc", "qr_code_base64": "AAAA"}},
    }
    clean = _strip_sensitive(data)
    assert "card" not in clean
    assert clean["point_of_interaction"]["transaction_data"] == {"qr_code": "abc"}


@pytest.mark.parametrize(
    "code, expected",
    [("2006", True), ("3003", True), ("invalid_card_token", True), ("network_error", False), ("400", False)],
)
def test_is_card_token_error(code, expected):
    assert MercadoPagoError(code).is_card_token_error is expected


async def test_card_payment_request():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={
            "id": 991, "status": "approved", "status_detail": "accredited", "card": {"last_four_digits": "0001"},
        })

    mp = _client(handler, notification_url="https://loja.test/api/v1/webhooks/mercadopago",
                 statement_descriptor="LOJA")
    result = await mp.create_card_payment(
        amount=Decimal("55.88"),
        token="tok",
        payment_method_id="visa",
        installments=2,
        payer_email="cliente@example.com",
        description="Pedido abc",
        external_reference="order-1",
        issuer_id="25",
        identification={"type": "CPF", "number": "12345678909"},
    )

    body = captured["body"]
    assert body["transaction_amount"] == 55.88
    assert body["token"] == "tok"
    assert body["installments"] == 2
    assert body["issuer_id"] == 25
    assert body["payer"] == {"email": "cliente@example.com",
                             "identification": {"type": "CPF", "number": "12345678909"}}
    assert body["notification_url"].endswith("/webhooks/mercadopago")
    assert body["statement_descriptor"] == "LOJA"
    assert captured["headers"]["authorization"] == "Bearer TEST-token"
    assert captured["headers"]["x-idempotency-key"].startswith("card_order-1_")

    assert result.id == "991"
    assert result.status == "approved"
    assert "card" not in result.payload


async def test_pix_payment_parses_transaction_data():
    expires = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["payment_method_id"] == "pix"
        assert body["date_of_expiration"].startswith("2030-01-01T12:00:00.000")
        return httpx.Response(201, json={
            "id": 77,
            "status": "pending",
            "date_of_expiration": "2030-01-01T12:00:00.000+00:00",
            "point_of_interaction": {"transaction_data": {
                "qr_code": "000201pix", "qr_code_base64": "QUJD", "ticket_url": "https://mp.test/t/77",
            }},
        })

    pix = await _client(handler).create_pix_payment(
        amount="19.99", payer_email="c@example.com", description="Pedido", external_reference="o-2",
        expires_at=expires,
    )
    assert pix.payment_id == "77"
    assert pix.qr_code == "000201pix"
    assert pix.qr_code_base64 == "QUJD"
    assert pix.expiration_date == expires
    assert "qr_code_base64" not in pix.payload["point_of_interaction"]["transaction_data"]


async def test_error_code_comes_from_cause():
    def handler(request):
        return httpx.Response(400, json={"message": "invalid", "cause": [{"code": 2006, "description": "x"}]})

    with pytest.raises(MercadoPagoError) as exc:
        await _client(handler).create_card_payment(
            amount=10, token="t", payment_method_id="visa", installments=1, payer_email="c@example.com",
            description="d", external_reference="o",
        )
    assert exc.value.code == "2006"
    assert exc.value.status_code == 400
    assert exc.value.is_card_token_error


async def test_error_without_cause_uses_operation_code():
    def handler(request):
        return httpx.Response(404, text="not found")

    with pytest.raises(MercadoPagoError) as exc:
        await _client(handler).get_payment("1")
    assert exc.value.code == "get_payment_failed"
    assert exc.value.data == {"error": "not found"}


async def test_network_error():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(MercadoPagoError) as exc:
        await _client(handler).get_payment("1")
    assert exc.value.code == "network_error"


async def test_preference_request():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={
            "id": "123-abc", "init_point": "https://mp.test/init", "sandbox_init_point": "https://sb.mp.test/init",
        })

    mp = _client(handler, notification_url="https://loja.test/api/v1/webhooks/mercadopago",
                 statement_descriptor="LOJA")
    pref = await mp.create_preference(
        items=[{"id": "p1", "title": "Kit", "quantity": 2, "unit_price": Decimal("19.99")}],
        payer_email="cliente@example.com",
        payer_name="Maria da Silva",
        external_reference="order-9",
        back_urls={"success": "https://loja.test/ok"},
    )

    body = captured["body"]
    assert captured["url"] == "https://mp.test/checkout/preferences"
    assert captured["headers"]["x-idempotency-key"].startswith("pref_order-9_")
    assert body["items"] == [{"id": "p1", "title": "Kit", "quantity": 2, "unit_price": 19.99, "currency_id": "BRL"}]
    assert body["payer"] == {"email": "cliente@example.com", "name": "Maria", "surname": "da Silva"}
    assert body["external_reference"] == "order-9"
    assert body["auto_return"] == "approved"
    assert body["statement_descriptor"] == "LOJA"
    assert pref.id == "123-abc"
    assert pref.sandbox_init_point == "https://sb.mp.test/init"
