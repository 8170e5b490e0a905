"""Cliente Redis para contadores compartidos entre instancias"""
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from typing import Optional
import logging

from shared.config import settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
redis_pool: Optional[ConnectionPool] = None


def uses_redis(storage_uri: str) -> bool:
    return storage_uri.startswith(("redis://", "rediss://"))


async def init_redis(redis_url: Optional[str] = None):
    """Inicializar conexión a Redis con pool de conexiones"""
    global redis_client, redis_pool

    redis_url = redis_url or settings.REDIS_URL
    redis_pool = ConnectionPool.from_url(
        redis_url,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_keepalive=True,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    redis_client = redis.Redis(connection_pool=redis_pool)
    logger.info(f"Redis configurado: {redis_url.split('@')[-1]}")


async def get_redis() -> redis.Redis:
    """Obtener cliente Redis (lo crea en el primer uso)"""
    if redis_client is None:
        await init_redis(settings.brute_force_storage)
    return redis_client


async def close_redis():
    """Cerrar conexión a Redis y pool"""
    global redis_client, redis_pool
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None
        logger.info("Redis desconectado")
