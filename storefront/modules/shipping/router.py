# storefront/modules/shipping/router.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.dependencies import get_db
from storefront.core.responses import Envelope, ok
from .schemas import QuoteOut, QuoteRequest
from .service import quote_for_plan, quote_for_products

router = APIRouter()  # prefix "/shipping"


@router.post("/quote", response_model=Envelope[QuoteOut])
async def shipping_quote(payload: QuoteRequest, db: AsyncSession = Depends(get_db)):
    if payload.plan_id:
        result = await quote_for_plan(db, payload.cep, payload.plan_id)
    else:
        result = await quote_for_products(db, payload.cep, payload.product_ids)
    return ok(QuoteOut.model_validate(result))
