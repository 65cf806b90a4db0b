# scripts/reconcile_payment.py
# Conciliação manual de um pagamento do Mercado Pago (mesma operação do webhook).
# uso: python -m scripts.reconcile_payment <id_pagamento_gateway>
import sys, asyncio
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import logging

from storefront.core.config import settings
from storefront.core.dependencies import get_gateway
from storefront.core.errors import AppError
from storefront.db.session import AsyncSessionLocal
import storefront.db.models  # noqa: F401
from storefront.integrations.mercadopago_client import MercadoPagoError
from storefront.services.payment_reconcile import reconcile_gateway_payment

logging.basicConfig(level=settings.LOG_LEVEL.upper(), format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


async def main(gateway_payment_id: str) -> int:
    gateway = get_gateway()
    async with AsyncSessionLocal() as db:
        try:
            result = await reconcile_gateway_payment(db, gateway, gateway_payment_id, source="script")
        except MercadoPagoError as exc:
            print(f"Erro no gateway: {exc.code} {exc.data}")
            return 1
        except AppError as exc:
            print(f"Erro: {exc.error_code} {exc.message}")
            return 1

    print(f"ação:       {result.action}")
    print(f"pedido:     {result.order_id} ({result.order_status})")
    print(f"pagamento:  {result.payment_id} ({result.payment_status})")
    if result.subscription_id:
        created = "criada" if result.subscription_created else "existente"
        print(f"assinatura: {result.subscription_id} ({created})")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("uso: python -m scripts.reconcile_payment <id_pagamento_gateway>")
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
