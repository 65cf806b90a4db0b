from pathlib import Path

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from storefront.core.config import settings

if settings.DATABASE_URL:
    _db_url = settings.DATABASE_URL
else:
    data_dir = (Path(__file__).resolve().parents[2] / "data")
    data_dir.mkdir(parents=True, exist_ok=True)
    db_file = data_dir / "storefront.db"
    # usar caminho POSIX para o SQLAlchemy
    _db_url = f"sqlite+aiosqlite:///{db_file.as_posix()}"

engine = create_async_engine(_db_url, echo=False, future=True, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

# Redis: contadores compartilhados entre instâncias (rate limit)
redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
