"""
Bloqueo por fuerza bruta: intentos de login fallidos por IP

Con storage Redis el contador se comparte entre instancias (INCR + EXPIRE).
Si Redis no responde, se sigue contando en memoria local, igual que el
rate limiter con in_memory_fallback_enabled.
"""
from typing import Callable, Dict, Tuple
from redis.exceptions import RedisError
import math
import time
import logging

from shared.cache.redis_client import get_redis, uses_redis
from shared.config import settings
from shared.errors import TooManyRequests

logger = logging.getLogger(__name__)

KEY_PREFIX = "login_failures:"


class LoginAttemptTracker:
    """Cuenta fallos por IP; cada fallo renueva la ventana de bloqueo"""

    def __init__(
        self,
        max_attempts: int,
        lockout_seconds: int,
        storage_uri: str = "memory://",
        clock: Callable[[], float] = time.monotonic
    ):
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.use_redis = uses_redis(storage_uri)
        self._clock = clock
        # ip -> (fallos, momento del último fallo)
        self._memory: Dict[str, Tuple[int, float]] = {}

    # ============ MEMORIA ============

    def _memory_get(self, ip: str) -> Tuple[int, int]:
        entry = self._memory.get(ip)
        if entry is None:
            return 0, 0
        count, last_attempt = entry
        elapsed = self._clock() - last_attempt
        if elapsed >= self.lockout_seconds:
            del self._memory[ip]
            return 0, 0
        return count, math.ceil(self.lockout_seconds - elapsed)

    def _memory_record(self, ip: str) -> int:
        count, _ = self._memory_get(ip)
        count += 1
        self._memory[ip] = (count, self._clock())
        return count

    # ============ REDIS ============

    async def _redis_get(self, ip: str) -> Tuple[int, int]:
        conn = await get_redis()
        async with conn.pipeline(transaction=True) as pipe:
            pipe.get(KEY_PREFIX + ip)
            pipe.ttl(KEY_PREFIX + ip)
            count, ttl = await pipe.execute()
        return int(count or 0), max(int(ttl or 0), 0)

    async def _redis_record(self, ip: str) -> int:
        conn = await get_redis()
        async with conn.pipeline(transaction=True) as pipe:
            pipe.incr(KEY_PREFIX + ip)
            pipe.expire(KEY_PREFIX + ip, self.lockout_seconds)
            count, _ = await pipe.execute()
        return int(count)

    # ============ API ============

    async def _get(self, ip: str) -> Tuple[int, int]:
        if self.use_redis:
            try:
                return await self._redis_get(ip)
            except RedisError as e:
                logger.warning(f"Redis no disponible para intentos de login, usando memoria: {e}")
        return self._memory_get(ip)

    async def check(self, ip: str) -> None:
        """
        Rechazar la IP si está bloqueada

        Raises:
            TooManyRequests: la IP alcanzó el máximo de fallos dentro de la ventana
        """
        count, remaining = await self._get(ip)
        if count >= self.max_attempts:
            minutes = max(1, math.ceil(remaining / 60))
            logger.warning(f"Login bloqueado para IP {ip} ({count} intentos fallidos)")
            raise TooManyRequests(
                f"Demasiados intentos fallidos. Intenta nuevamente en {minutes} minutos",
                retry_after=remaining or self.lockout_seconds,
            )

    async def record_failure(self, ip: str) -> int:
        """Registrar un fallo y devolver el total dentro de la ventana"""
        if self.use_redis:
            try:
                return await self._redis_record(ip)
            except RedisError as e:
                logger.warning(f"Redis no disponible para intentos de login, usando memoria: {e}")
        return self._memory_record(ip)

    async def clear(self, ip: str) -> None:
        """Login exitoso: olvidar los fallos de la IP"""
        self._memory.pop(ip, None)
        if self.use_redis:
            try:
                conn = await get_redis()
                await conn.delete(KEY_PREFIX + ip)
            except RedisError as e:
                logger.warning(f"No se pudieron limpiar intentos de login en Redis: {e}")

    def reset(self) -> None:
        self._memory.clear()


login_attempts = LoginAttemptTracker(
    max_attempts=settings.BRUTE_FORCE_MAX_ATTEMPTS,
    lockout_seconds=settings.BRUTE_FORCE_LOCKOUT_MINUTES * 60,
    storage_uri=settings.brute_force_storage,
)
