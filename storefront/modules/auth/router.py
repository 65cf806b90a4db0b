import logging
from datetime import timedelta

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from fastapi.security import OAuth2PasswordRequestForm

from storefront.core.config import settings
from storefront.core.dependencies import get_db, get_current_user
from storefront.core.errors import BusinessRuleError, Conflict, Forbidden, Unauthorized
from storefront.core.rate_limit import limit_auth
from storefront.core.responses import Envelope, ok
from storefront.core.security import (
    create_access_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)
from storefront.db.base import utcnow, as_utc
from storefront.modules.users.models import User, UserStatus
from storefront.modules.users.schemas import UserOut
from storefront.services.email import send_password_changed_email, send_password_reset_email
from .models import PasswordResetToken
from .schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageOut,
    RegisterRequest,
    ResetPasswordRequest,
    TokenOut,
)

logger = logging.getLogger(__name__)

router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "Se o e-mail estiver cadastrado, você receberá as instruções de redefinição."


def _issue_token(user: User) -> TokenOut:
    token = create_access_token(
        {"sub": str(user.id), "role": user.role},
        expires_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        secret_key=settings.SECRET_KEY,
    )
    return TokenOut(access_token=token)


async def _authenticate(db: AsyncSession, email: str, password: str) -> User:
    q = await db.execute(select(User).where(User.email == email.strip().lower()))
    user = q.scalar_one_or_none()
    if not user or not verify_password(password, user.password_hash):
        raise Unauthorized("Credenciais inválidas")
    if user.status != UserStatus.ACTIVE:
        raise Forbidden("Usuário bloqueado")
    return user


@router.post(
    "/register",
    response_model=Envelope[UserOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(limit_auth("register"))],
)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    email = payload.email.strip().lower()
    exists = await db.execute(select(User.id).where(User.email == email))
    if exists.scalar_one_or_none():
        raise Conflict("E-mail já cadastrado")

    user = User(
        full_name=payload.full_name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        whatsapp=payload.whatsapp,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Usuário registrado: %s", user.id)
    return ok(UserOut.model_validate(user))


@router.post("/login", response_model=Envelope[TokenOut], dependencies=[Depends(limit_auth("login"))])
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await _authenticate(db, payload.email, payload.password)
    return ok(_issue_token(user))


@router.post("/token", response_model=TokenOut, dependencies=[Depends(limit_auth("login"))])
async def token(form: OAuth2PasswordRequestForm = Depends(), db: AsyncSession = Depends(get_db)):
    # OAuth2PasswordRequestForm usa 'username' como e-mail (docs/Swagger)
    user = await _authenticate(db, form.username, form.password)
    return _issue_token(user)


@router.get("/me", response_model=Envelope[UserOut])
async def me(user: User = Depends(get_current_user)):
    return ok(UserOut.model_validate(user))


@router.post(
    "/forgot-password",
    response_model=Envelope[MessageOut],
    dependencies=[Depends(limit_auth("forgot-password"))],
)
async def forgot_password(
    payload: ForgotPasswordRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    # resposta idêntica exista ou não o e-mail
    q = await db.execute(select(User).where(User.email == payload.email.strip().lower()))
    user = q.scalar_one_or_none()
    if user and user.status == UserStatus.ACTIVE:
        # invalida tokens anteriores ainda não usados
        await db.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.user_id == user.id, PasswordResetToken.used_at.is_(None))
            .values(used_at=utcnow())
        )
        raw, token_hash = generate_reset_token()
        db.add(
            PasswordResetToken(
                user_id=user.id,
                token_hash=token_hash,
                expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
            )
        )
        await db.commit()
        background.add_task(send_password_reset_email, user.email, raw)
    return ok(MessageOut(message=FORGOT_PASSWORD_MESSAGE))


@router.post("/reset-password", response_model=Envelope[MessageOut])
async def reset_password(
    payload: ResetPasswordRequest,
    background: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    q = await db.execute(
        select(PasswordResetToken).where(PasswordResetToken.token_hash == hash_reset_token(payload.token))
    )
    record = q.scalar_one_or_none()
    if record is None or record.used_at is not None or as_utc(record.expires_at) <= utcnow():
        raise BusinessRuleError("Token inválido ou expirado", error_code="INVALID_TOKEN")

    user = await db.get(User, record.user_id)
    if user is None:
        raise BusinessRuleError("Token inválido ou expirado", error_code="INVALID_TOKEN")

    # troca de senha + consumo do token na mesma transação
    user.password_hash = hash_password(payload.password)
    record.used_at = utcnow()
    await db.commit()

    background.add_task(send_password_changed_email, user.email, user.full_name)
    return ok(MessageOut(message="Senha alterada com sucesso"))
