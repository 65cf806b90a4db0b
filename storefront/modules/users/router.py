from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from storefront.core.dependencies import get_db, get_current_user
from storefront.core.errors import NotFound
from storefront.core.responses import Envelope, ok
from .models import Address, User
from .schemas import AddressCreate, AddressOut, UserOut

router = APIRouter()


@router.get("/me", response_model=Envelope[UserOut])
async def users_me(user: User = Depends(get_current_user)):
    return ok(UserOut.model_validate(user))


@router.get("/me/addresses", response_model=Envelope[List[AddressOut]])
async def list_addresses(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    res = await db.execute(
        select(Address)
        .where(Address.user_id == user.id)
        .order_by(Address.is_default.desc(), Address.created_at.asc())
    )
    return ok([AddressOut.model_validate(a) for a in res.scalars().all()])


@router.post("/me/addresses", response_model=Envelope[AddressOut], status_code=status.HTTP_201_CREATED)
async def create_address(
    payload: AddressCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    count = await db.execute(select(Address.id).where(Address.user_id == user.id).limit(1))
    is_first = count.scalar_one_or_none() is None

    if payload.is_default and not is_first:
        # só um endereço padrão por usuário
        await db.execute(update(Address).where(Address.user_id == user.id).values(is_default=False))

    data = payload.model_dump()
    data["is_default"] = payload.is_default or is_first
    obj = Address(**data, user_id=user.id)
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return ok(AddressOut.model_validate(obj))


@router.delete("/me/addresses/{address_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_address(
    address_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    res = await db.execute(select(Address).where(Address.id == address_id, Address.user_id == user.id))
    obj = res.scalar_one_or_none()
    if not obj:
        raise NotFound("Endereço não encontrado")
    await db.delete(obj)
    await db.commit()
    return None
