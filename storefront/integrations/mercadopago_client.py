# storefront/integrations/mercadopago_client.py
from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List

import httpx

logger = logging.getLogger(__name__)

# códigos do MP que indicam token de cartão inválido/expirado/reutilizado
CARD_TOKEN_ERROR_CODES = {"2006", "2062", "3003"}

# mensagens amigáveis para status_detail / códigos de erro
ERROR_MESSAGES = {
    "2006": "Token do cartão não encontrado. Tente novamente.",
    "2062": "Token de cartão inválido. Verifique os dados.",
    "3003": "Token já utilizado. Insira os dados novamente.",
    "cc_rejected_bad_filled_card_number": "Número do cartão incorreto.",
    "cc_rejected_bad_filled_date": "Data de validade incorreta.",
    "cc_rejected_bad_filled_other": "Dados do cartão incorretos.",
    "cc_rejected_bad_filled_security_code": "CVV incorreto.",
    "cc_rejected_blacklist": "Cartão não permitido.",
    "cc_rejected_call_for_authorize": "Autorize o pagamento junto ao banco.",
    "cc_rejected_card_disabled": "Cartão desabilitado. Contate o banco.",
    "cc_rejected_duplicated_payment": "Pagamento duplicado. Aguarde.",
    "cc_rejected_high_risk": "Pagamento recusado por segurança.",
    "cc_rejected_insufficient_amount": "Saldo insuficiente.",
    "cc_rejected_invalid_installments": "Parcelas não permitidas.",
    "cc_rejected_max_attempts": "Limite de tentativas. Tente outro cartão.",
    "cc_rejected_other_reason": "Pagamento recusado pelo banco.",
}


def describe_status_detail(code: Optional[str]) -> str:
    return ERROR_MESSAGES.get(code or "", "Pagamento recusado. Tente novamente ou use outro meio.")


def normalize_amount(value: Any) -> Decimal:
    amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValueError("amount deve ser maior que zero")
    return amount


@dataclass
class CardChargeResult:
    id: str
    status: str
    status_detail: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PixChargeResult:
    payment_id: str
    qr_code: Optional[str]
    qr_code_base64: Optional[str]
    ticket_url: Optional[str]
    expiration_date: Optional[datetime]
    status: str = "pending"
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PreferenceResult:
    id: str
    init_point: Optional[str]
    sandbox_init_point: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)


class MercadoPagoError(RuntimeError):
    def __init__(self, code: str, data: Any = None, status_code: Optional[int] = None):
        super().__init__(code)
        self.code = code
        self.data = data
        self.status_code = status_code

    @property
    def is_card_token_error(self) -> bool:
        if self.code in CARD_TOKEN_ERROR_CODES:
            return True
        text = f"{self.code} {self.data}".lower()
        return "card_token" in text or "token" in str(self.code).lower()


def _strip_sensitive(data: Dict[str, Any]) -> Dict[str, Any]:
    """Remove dados de cartão antes de persistir a resposta."""
    clean = {k: v for k, v in data.items() if k not in ("card", "token")}
    poi = clean.get("point_of_interaction")
    if isinstance(poi, dict):
        # o QR em base64 já vai em coluna própria; não duplica no payload
        tx = dict(poi.get("transaction_data") or {})
        tx.pop("qr_code_base64", None)
        clean["point_of_interaction"] = {**poi, "transaction_data": tx}
    return clean


def _parse_datetime(v: Optional[str]) -> Optional[datetime]:
    if not v:
        return None
    try:
        return datetime.fromisoformat(v)
    except ValueError:
        return None


class MercadoPagoClient:
    def __init__(
        self,
        access_token: str,
        base_url: str = "https://api.mercadopago.com",
        timeout: float = 10.0,
        *,
        notification_url: Optional[str] = None,
        statement_descriptor: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.notification_url = notification_url
        self.statement_descriptor = statement_descriptor
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "authorization": f"Bearer {self.access_token}",
        }

    async def _request(self, method: str, path: str, *, json: Optional[Dict[str, Any]] = None,
                       idempotency_key: Optional[str] = None, error_code: str) -> Dict[str, Any]:
        headers = dict(self._headers)
        if idempotency_key:
            headers["x-idempotency-key"] = idempotency_key
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.request(method, f"{self.base_url}{path}", json=json, headers=headers)
        except httpx.HTTPError as exc:
            raise MercadoPagoError("network_error", {"error": str(exc)}) from exc

        if r.status_code >= 400:
            try:
                data = r.json()
            except ValueError:
                data = {"error": r.text}
            code = error_code
            causes = data.get("cause") if isinstance(data, dict) else None
            if isinstance(causes, list) and causes and causes[0].get("code") is not None:
                code = str(causes[0]["code"])
            raise MercadoPagoError(code, data, r.status_code)
        return r.json()

    def _base_body(self, *, amount: Any, description: str, external_reference: str,
                   payer_email: str, metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "transaction_amount": float(normalize_amount(amount)),
            "description": description,
            "external_reference": external_reference,
            "payer": {"email": payer_email},
        }
        if self.notification_url:
            body["notification_url"] = self.notification_url
        if self.statement_descriptor:
            body["statement_descriptor"] = self.statement_descriptor
        if metadata:
            body["metadata"] = metadata
        return body

    async def create_card_payment(
        self,
        *,
        amount: Any,
        token: str,
        payment_method_id: str,
        installments: int,
        payer_email: str,
        description: str,
        external_reference: str,
        issuer_id: Optional[str] = None,
        identification: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CardChargeResult:
        body = self._base_body(amount=amount, description=description, external_reference=external_reference,
                               payer_email=payer_email, metadata=metadata)
        body |= {
            "token": token,
            "payment_method_id": payment_method_id,
            "installments": installments,
        }
        if issuer_id:
            body["issuer_id"] = int(issuer_id) if str(issuer_id).isdigit() else issuer_id
        if identification:
            body["payer"]["identification"] = identification

        logger.info("MP: criando pagamento cartão ref=%s valor=%s parcelas=%s",
                    external_reference, body["transaction_amount"], installments)
        data = await self._request("POST", "/v1/payments", json=body,
                                   idempotency_key=f"card_{external_reference}_{uuid.uuid4().hex}",
                                   error_code="create_card_payment_failed")
        logger.info("MP: pagamento cartão id=%s status=%s detail=%s",
                    data.get("id"), data.get("status"), data.get("status_detail"))
        return CardChargeResult(
            id=str(data.get("id")),
            status=str(data.get("status") or "pending"),
            status_detail=data.get("status_detail"),
            payload=_strip_sensitive(data),
        )

    async def create_pix_payment(
        self,
        *,
        amount: Any,
        payer_email: str,
        description: str,
        external_reference: str,
        expires_at: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PixChargeResult:
        body = self._base_body(amount=amount, description=description, external_reference=external_reference,
                               payer_email=payer_email, metadata=metadata)
        body["payment_method_id"] = "pix"
        if expires_at is not None:
            body["date_of_expiration"] = expires_at.isoformat(timespec="milliseconds")

        logger.info("MP: criando PIX ref=%s valor=%s", external_reference, body["transaction_amount"])
        data = await self._request("POST", "/v1/payments", json=body,
                                   idempotency_key=f"pix_{external_reference}_{uuid.uuid4().hex}",
                                   error_code="create_pix_payment_failed")
        tx = (data.get("point_of_interaction") or {}).get("transaction_data") or {}
        logger.info("MP: PIX criado id=%s status=%s", data.get("id"), data.get("status"))
        return PixChargeResult(
            payment_id=str(data.get("id")),
            qr_code=tx.get("qr_code"),
            qr_code_base64=tx.get("qr_code_base64"),
            ticket_url=tx.get("ticket_url"),
            expiration_date=_parse_datetime(data.get("date_of_expiration")) or expires_at,
            status=str(data.get("status") or "pending"),
            payload=_strip_sensitive(data),
        )

    async def create_preference(
        self,
        *,
        items: List[Dict[str, Any]],
        payer_email: str,
        external_reference: str,
        payer_name: Optional[str] = None,
        back_urls: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        statement_descriptor: Optional[str] = None,
    ) -> PreferenceResult:
        """Checkout Pro: o usuário paga na página do MP (init_point)."""
        payer: Dict[str, Any] = {"email": payer_email}
        if payer_name:
            first, _, last = payer_name.strip().partition(" ")
            payer["name"] = first
            if last:
                payer["surname"] = last
        body: Dict[str, Any] = {
            "items": [
                {
                    "id": str(item["id"]),
                    "title": item["title"],
                    "quantity": int(item["quantity"]),
                    "unit_price": float(normalize_amount(item["unit_price"])),
                    "currency_id": "BRL",
                    **({"category_id": item["category_id"]} if item.get("category_id") else {}),
                }
                for item in items
            ],
            "payer": payer,
            "external_reference": external_reference,
        }
        if back_urls:
            body["back_urls"] = back_urls
            body["auto_return"] = "approved"
        if self.notification_url:
            body["notification_url"] = self.notification_url
        descriptor = statement_descriptor or self.statement_descriptor
        if descriptor:
            body["statement_descriptor"] = descriptor
        if metadata:
            body["metadata"] = metadata

        logger.info("MP: criando preferência ref=%s itens=%d", external_reference, len(items))
        data = await self._request("POST", "/checkout/preferences", json=body,
                                   idempotency_key=f"pref_{external_reference}_{uuid.uuid4().hex}",
                                   error_code="create_preference_failed")
        logger.info("MP: preferência criada id=%s ref=%s", data.get("id"), external_reference)
        return PreferenceResult(
            id=str(data.get("id")),
            init_point=data.get("init_point"),
            sandbox_init_point=data.get("sandbox_init_point"),
            payload=data,
        )

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        """Consulta o pagamento no MP (fonte da verdade para reconciliação)."""
        return await self._request("GET", f"/v1/payments/{payment_id}", error_code="get_payment_failed")


def verify_webhook_signature(
    secret: str,
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
) -> bool:
    """
    Valida o header x-signature ("ts=...,v1=...") do webhook do MP.
    Manifesto: id:{data.id};request-id:{x-request-id};ts:{ts};
    """
    if not signature_header or not request_id:
        return False
    parts: Dict[str, str] = {}
    for chunk in signature_header.split(","):
        key, _, value = chunk.strip().partition("=")
        if key and value:
            parts[key.strip()] = value.strip()
    ts, v1 = parts.get("ts"), parts.get("v1")
    if not ts or not v1:
        return False

    # a ordem dos campos importa
    manifest = f"id:{data_id or ''};request-id:{request_id};ts:{ts};"

    expected = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, v1)
