# storefront/modules/checkout/router.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.dependencies import get_db, get_current_user, get_gateway
from storefront.core.responses import Envelope, ok
from storefront.modules.users.models import User
from storefront.services import checkout as checkout_service
from .schemas import (
    CheckoutCartRequest,
    CheckoutOut,
    CheckoutSubscriptionRequest,
    PaymentPreferenceOut,
    PaymentPreferenceRequest,
    PaymentStatusOut,
    PendingPixOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()  # prefix "/checkout"


@router.post("/cart", response_model=Envelope[CheckoutOut], status_code=status.HTTP_201_CREATED)
async def checkout_cart(
    payload: CheckoutCartRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway=Depends(get_gateway),
):
    result = await checkout_service.checkout_cart(db, gateway, user, payload)
    return ok(CheckoutOut.model_validate(result))


@router.post("/subscription", response_model=Envelope[CheckoutOut], status_code=status.HTTP_201_CREATED)
async def checkout_subscription(
    payload: CheckoutSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway=Depends(get_gateway),
):
    result = await checkout_service.checkout_subscription(db, gateway, user, payload)
    return ok(CheckoutOut.model_validate(result))


@router.post("/payment-preference", response_model=Envelope[PaymentPreferenceOut], status_code=status.HTTP_201_CREATED)
async def payment_preference(
    payload: PaymentPreferenceRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway=Depends(get_gateway),
):
    data = await checkout_service.create_payment_preference(db, gateway, user, payload)
    return ok(PaymentPreferenceOut(**data))


@router.get("/pending-pix", response_model=Envelope[Optional[PendingPixOut]])
async def pending_pix(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = await checkout_service.get_pending_pix(db, user.id)
    return ok(PendingPixOut(**data) if data else None)


@router.get("/payment-status/{payment_id}", response_model=Envelope[PaymentStatusOut])
async def payment_status(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
    gateway=Depends(get_gateway),
):
    data = await checkout_service.get_payment_status(db, gateway, user, payment_id)
    return ok(PaymentStatusOut(**data))
