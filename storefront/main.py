# storefront/main.py
import sys
import asyncio

# Event loop compatível no Windows (psycopg async)
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from contextlib import asynccontextmanager
import json
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.core.config import settings
from storefront.core.errors import register_exception_handlers
from storefront.api.v1.router import api_router
from storefront.db.session import engine, redis_client
from storefront.db.base import Base
import storefront.db.models  # noqa: F401  registra todos os models no metadata

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _normalize_origins(value) -> list[str]:
    """Aceita lista, JSON string ou CSV e devolve lista de origens."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(o).strip() for o in value if str(o).strip()]
    if isinstance(value, str):
        # tenta JSON primeiro
        try:
            as_json = json.loads(value)
        except ValueError:
            as_json = None
        if isinstance(as_json, (list, tuple)):
            return [str(o).strip() for o in as_json if str(o).strip()]
        # fallback: CSV
        return [o.strip() for o in value.split(",") if o.strip()]
    return [str(value).strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Fora de produção cria as tabelas na subida (sem migrations)."""
    env = (settings.ENVIRONMENT or "dev").lower().strip()
    if env != "prod":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    logger.info("Storefront iniciado (env=%s, MP produção=%s)", env, settings.MP_USE_PRODUCTION)
    yield
    await redis_client.aclose()
    await engine.dispose()


# --- App ---
app = FastAPI(title="Storefront Backend", lifespan=lifespan)
register_exception_handlers(app)

# --- CORS (colocado ANTES dos routers) ---
origins = _normalize_origins(settings.CORS_ORIGINS)
if not origins:
    origins = [
        "http://localhost:8080",
        "http://localhost:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Healthcheck simples
@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


# --- API v1 (só depois do CORS) ---
app.include_router(api_router, prefix=settings.API_V1_PREFIX)
