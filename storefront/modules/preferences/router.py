# storefront/modules/preferences/router.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from storefront.core.dependencies import get_db, get_current_user
from storefront.core.errors import Conflict
from storefront.core.responses import Envelope, ok
from storefront.modules.users.models import User
from .models import UserPreferences
from .schemas import PreferencesIn, PreferencesOut, PreferencesSummaryOut, PreferencesUpdate

logger = logging.getLogger(__name__)

router = APIRouter()  # prefix "/user"

_FREQUENCY_LABELS = {
    "OCCASIONAL": "Consumo ocasional",
    "WEEKLY": "Consumo semanal",
    "DAILY": "Consumo diário",
    "HEAVY": "Consumo frequente",
}
_PAPER_LABELS = {
    "WHITE": "Seda branca",
    "BROWN": "Seda marrom",
    "CELLULOSE": "Celulose",
    "MIXED": "Tipos variados",
}
_CONSUMES = (
    ("consumes_flower", "Flor"),
    ("consumes_skunk", "Skunk"),
    ("consumes_hash", "Hash"),
    ("consumes_extracts", "Extratos"),
)
_NOT_NULL_FIELDS = frozenset(
    [name for name, field in PreferencesIn.model_fields.items() if field.annotation is bool]
    + ["favorite_colors", "consumption_moment"]
)


def build_summary(prefs: UserPreferences) -> list[str]:
    """Frases curtas do perfil, na ordem em que aparecem no painel do usuário."""
    out: list[str] = []
    if prefs.consumption_frequency:
        out.append(_FREQUENCY_LABELS[prefs.consumption_frequency])
    if prefs.favorite_paper_type:
        out.append(_PAPER_LABELS[prefs.favorite_paper_type])
    if prefs.favorite_colors:
        out.append("Cores: " + ", ".join(prefs.favorite_colors))
    consumes = [label for attr, label in _CONSUMES if getattr(prefs, attr)]
    if consumes:
        out.append("Consome: " + ", ".join(consumes))
    return out


def _summary_out(prefs: Optional[UserPreferences]) -> PreferencesSummaryOut:
    if prefs is None:
        return PreferencesSummaryOut(preferences=None, has_preferences=False, is_complete=False, summary=[])
    summary = build_summary(prefs)
    return PreferencesSummaryOut(
        preferences=PreferencesOut.model_validate(prefs),
        has_preferences=True,
        is_complete=len(summary) >= 2,
        summary=summary,
    )


async def _get_prefs(db: AsyncSession, user_id: str) -> Optional[UserPreferences]:
    res = await db.execute(select(UserPreferences).where(UserPreferences.user_id == user_id))
    return res.scalar_one_or_none()


async def _save(db: AsyncSession, prefs: UserPreferences) -> UserPreferences:
    await db.commit()
    await db.refresh(prefs)
    return prefs


@router.get("/preferences", response_model=Envelope[PreferencesSummaryOut])
async def get_preferences(db: AsyncSession = Depends(get_db), user: User = Depends(get_current_user)):
    return ok(_summary_out(await _get_prefs(db, user.id)))


@router.post("/preferences", response_model=Envelope[PreferencesOut], status_code=status.HTTP_201_CREATED)
async def create_preferences(
    payload: PreferencesIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if await _get_prefs(db, user.id) is not None:
        raise Conflict("Preferências já cadastradas; use PATCH ou PUT", error_code="PREFERENCES_EXIST")
    prefs = UserPreferences(user_id=user.id, **payload.model_dump())
    db.add(prefs)
    await _save(db, prefs)
    logger.info("Preferências criadas para o usuário %s", user.id)
    return ok(PreferencesOut.model_validate(prefs))


@router.patch("/preferences", response_model=Envelope[PreferencesOut])
async def patch_preferences(
    payload: PreferencesUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # null em coluna NOT NULL é ignorado
    data = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k not in _NOT_NULL_FIELDS
    }
    prefs = await _get_prefs(db, user.id)
    if prefs is None:
        # sem cadastro: parte dos padrões e aplica só o que veio
        prefs = UserPreferences(user_id=user.id, **PreferencesIn(**data).model_dump())
        db.add(prefs)
    else:
        for k, v in data.items():
            setattr(prefs, k, v)
    await _save(db, prefs)
    return ok(PreferencesOut.model_validate(prefs))


@router.put("/preferences", response_model=Envelope[PreferencesOut])
async def put_preferences(
    payload: PreferencesIn,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = payload.model_dump()
    prefs = await _get_prefs(db, user.id)
    if prefs is None:
        prefs = UserPreferences(user_id=user.id, **data)
        db.add(prefs)
    else:
        for k, v in data.items():
            setattr(prefs, k, v)
    await _save(db, prefs)
    return ok(PreferencesOut.model_validate(prefs))
