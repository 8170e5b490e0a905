"""Utilidades para retry con backoff exponencial"""
import asyncio
import logging
from typing import Callable, Any, Optional, Type, Tuple

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """Se agotaron los reintentos; la última excepción queda en __cause__"""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries exceeded after {attempts} attempts: {last_error}")


async def retry_with_backoff(
    func: Callable,
    max_attempts: int = 3,
    initial_delay: float = 0.0,
    max_delay: float = 1.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None
) -> Any:
    """
    Ejecutar función con retry y backoff exponencial

    Args:
        func: Función a ejecutar (async o sync), sin argumentos
        max_attempts: Número máximo de intentos (incluye el primero)
        initial_delay: Delay inicial en segundos
        max_delay: Delay máximo en segundos
        exponential_base: Base para cálculo exponencial
        exceptions: Excepciones que deben trigger retry
        on_retry: Callback async opcional (attempt, error) antes de reintentar

    Returns:
        Resultado de la función

    Raises:
        RetryExhausted: si todos los intentos fallan con una excepción reintentable
    """
    delay = initial_delay

    for attempt in range(1, max_attempts + 1):
        try:
            if asyncio.iscoroutinefunction(func):
                return await func()
            return func()
        except exceptions as e:
            if attempt == max_attempts:
                raise RetryExhausted(attempt, e) from e

            logger.warning(f"Intento {attempt}/{max_attempts} falló: {type(e).__name__}: {e}. Reintentando...")
            if on_retry is not None:
                await on_retry(attempt, e)
            if delay > 0:
                await asyncio.sleep(delay)
            delay = min(max(delay, 0.01) * exponential_base, max_delay)
