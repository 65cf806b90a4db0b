"""
Rate limit em janela fixa sobre Redis (INCR + EXPIRE).

O contador vive no Redis, então vale para várias instâncias/workers; cada
janela expira sozinha pelo TTL da chave.
"""

from __future__ import annotations

import logging
import time

from fastapi import Request
from redis.exceptions import RedisError

from storefront.core.config import settings
from storefront.core.errors import RateLimited
from storefront.db.session import redis_client

logger = logging.getLogger(__name__)


async def check_rate_limit(bucket: str, identifier: str, max_requests: int, window_seconds: int = 60) -> tuple[bool, int]:
    """
    Janela fixa por (bucket, identificador).
    Retorna: (permitido, restantes)
    """
    window = int(time.time()) // window_seconds
    key = f"rl:{bucket}:{identifier}:{window}"
    try:
        count = await redis_client.incr(key)
        if count == 1:
            await redis_client.expire(key, window_seconds)
    except RedisError as exc:
        # Redis fora do ar: libera a requisição (disponibilidade primeiro)
        logger.warning("Rate limit indisponível (%s): %s", key, exc)
        return (True, max_requests)
    return (count <= max_requests, max(0, max_requests - count))


def client_identifier(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "anonymous"


def limit_auth(bucket: str):
    """Dependência FastAPI para as rotas de autenticação."""

    async def _dependency(request: Request) -> None:
        allowed, _ = await check_rate_limit(
            bucket,
            client_identifier(request),
            settings.RATE_LIMIT_AUTH_PER_MINUTE,
        )
        if not allowed:
            raise RateLimited()

    return _dependency
