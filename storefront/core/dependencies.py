from typing import AsyncIterator, Optional
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from storefront.db.session import AsyncSessionLocal
from storefront.modules.users.models import User, UserRole, UserStatus
from storefront.core.config import settings
from storefront.core.errors import Unauthorized, Forbidden
from storefront.core.security import decode_token
from storefront.integrations.mercadopago_client import MercadoPagoClient

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session


def get_gateway() -> MercadoPagoClient:
    return MercadoPagoClient(
        settings.mp_access_token or "",
        settings.MP_API_BASE,
        settings.MP_TIMEOUT_SECONDS,
        notification_url=settings.mp_webhook_url,
        statement_descriptor=settings.MP_STATEMENT_DESCRIPTOR,
    )


async def _user_from_token(db: AsyncSession, token: str) -> User:
    try:
        payload = decode_token(token, settings.SECRET_KEY)
    except JWTError:
        raise Unauthorized("Token inválido")
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Token inválido")

    q = await db.execute(select(User).where(User.id == str(user_id)))
    user = q.scalar_one_or_none()
    if not user:
        raise Unauthorized("Usuário não encontrado")
    if user.status != UserStatus.ACTIVE:
        raise Forbidden("Usuário bloqueado")
    return user


async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise Unauthorized()
    return await _user_from_token(db, token)


async def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    # rotas públicas: token ausente/inválido vira anônimo
    if not token:
        return None
    try:
        return await _user_from_token(db, token)
    except (Unauthorized, Forbidden):
        return None


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise Forbidden("Acesso restrito a administradores")
    return user
