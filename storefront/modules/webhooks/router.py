# storefront/modules/webhooks/router.py
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.dependencies import get_db, get_gateway
from storefront.core.errors import Unauthorized
from storefront.integrations.mercadopago_client import verify_webhook_signature
from storefront.services.payment_reconcile import reconcile_gateway_payment

logger = logging.getLogger(__name__)

router = APIRouter()  # prefix "/webhooks"

ACK = {"received": True}


def _data_id(request: Request, body: dict) -> Optional[str]:
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    # o MP também manda o id na query (?data.id=...&type=payment)
    value = data.get("id") or request.query_params.get("data.id") or request.query_params.get("id")
    return str(value) if value else None


@router.get("/mercadopago")
async def mercadopago_health():
    return {"status": "ok", "webhook": "mercadopago"}


@router.post("/mercadopago", status_code=status.HTTP_200_OK)
async def mercadopago_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway=Depends(get_gateway),
):
    raw = await request.body()
    try:
        body = json.loads(raw or b"{}")
    except ValueError:
        logger.warning("Webhook MP com JSON inválido (%d bytes); ignorado", len(raw))
        return ACK
    if not isinstance(body, dict):
        logger.warning("Webhook MP com corpo inesperado; ignorado")
        return ACK

    data_id = _data_id(request, body)

    if settings.MP_WEBHOOK_SECRET:
        valid = verify_webhook_signature(
            settings.MP_WEBHOOK_SECRET,
            request.headers.get("x-signature"),
            request.headers.get("x-request-id"),
            data_id,
        )
        if not valid:
            logger.warning("Webhook MP com assinatura inválida (data.id=%s)", data_id)
            raise Unauthorized("Assinatura inválida", error_code="INVALID_SIGNATURE")

    event_type = body.get("type") or body.get("topic") or request.query_params.get("type")
    logger.info("Webhook MP recebido: type=%s action=%s data.id=%s", event_type, body.get("action"), data_id)

    if event_type != "payment":
        return ACK
    if not data_id:
        logger.warning("Webhook MP de pagamento sem data.id; ignorado")
        return ACK

    try:
        result = await reconcile_gateway_payment(db, gateway, data_id, source="webhook")
    except Exception:
        # sempre 200: a falha fica no log e a conciliação manual resolve
        logger.exception("Falha ao processar webhook MP do pagamento %s", data_id)
        await db.rollback()
        return ACK

    logger.info(
        "Webhook MP %s: ação=%s pedido=%s status=%s",
        data_id, result.action, result.order_id, result.order_status,
    )
    return ACK
