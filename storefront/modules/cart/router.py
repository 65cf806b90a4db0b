# storefront/modules/cart/router.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.dependencies import get_db, get_current_user
from storefront.core.responses import Envelope, ok
from storefront.modules.users.models import User
from storefront.services.pricing import compute_cart_prices
from . import crud
from .schemas import CartItemAdd, CartItemUpdate, CartOut

router = APIRouter()  # prefix "/cart"


async def _cart_response(db: AsyncSession, user: User):
    summary = await compute_cart_prices(db, user.id)
    return ok(CartOut.model_validate(summary))


@router.get("", response_model=Envelope[CartOut])
async def get_cart(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    return await _cart_response(db, user)


@router.post("/items", response_model=Envelope[CartOut], status_code=status.HTTP_201_CREATED)
async def add_item(
    payload: CartItemAdd,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await crud.add_item(db, user.id, payload.product_id, payload.variant_id, payload.quantity)
    return await _cart_response(db, user)


@router.patch("/items/{item_id}", response_model=Envelope[CartOut])
async def update_item(
    item_id: str,
    payload: CartItemUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await crud.update_item(db, user.id, item_id, payload.quantity)
    return await _cart_response(db, user)


@router.delete("/items/{item_id}", response_model=Envelope[CartOut])
async def remove_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await crud.remove_item(db, user.id, item_id)
    return await _cart_response(db, user)


@router.delete("", response_model=Envelope[CartOut])
async def clear_cart(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    await crud.clear_cart(db, user.id)
    return await _cart_response(db, user)
