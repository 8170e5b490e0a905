"""
Rate limiting usando slowapi + Redis
Los límites se comparten entre instancias cuando el storage es Redis
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from starlette.responses import JSONResponse
import hashlib
import logging

from shared.config import settings
from shared.errors import error_body

logger = logging.getLogger(__name__)


def get_real_client_ip(request: Request) -> str:
    """
    Obtener IP real del cliente considerando proxies/load balancers.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For puede tener múltiples IPs: client, proxy1, proxy2
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


def get_user_identifier(request: Request) -> str:
    """
    Identificador para rate limiting: IP + hash del token si está autenticado.
    """
    ip = get_real_client_ip(request)

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token_hash = hashlib.sha256(auth_header.encode()).hexdigest()[:8]
        return f"{ip}:{token_hash}"

    return ip


storage_uri = settings.rate_limit_storage
limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=storage_uri,
    strategy="fixed-window",
    headers_enabled=False,  # Deshabilitado para compatibilidad con response_model de FastAPI
    enabled=settings.RATE_LIMIT_ENABLED,
    in_memory_fallback_enabled=True,  # Si Redis cae, seguir limitando en memoria local
)
logger.info(f"Rate limiter inicializado con storage: {storage_uri.split('@')[-1]}")


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Handler para rate limit exceeded con el mismo formato de error que el resto de la API.
    """
    logger.warning(
        f"Rate limit exceeded - IP: {get_real_client_ip(request)}, "
        f"Path: {request.url.path}, "
        f"Limit: {exc.detail}"
    )

    body = error_body("Demasiadas solicitudes. Por favor espera antes de intentar nuevamente.")
    body["retry_after_seconds"] = 60
    return JSONResponse(
        status_code=429,
        content=body,
        headers={"Retry-After": "60"},
    )


# ============ RATE LIMITS PRE-DEFINIDOS ============

RATE_LIMITS = {
    # Login: protección contra fuerza bruta
    "auth": "10 per 15 minutes",

    # Órdenes y gift cards: más restrictivo para prevenir abuso
    "order": "20/minute",
    "gift_card": "10/minute",

    # APIs públicas: más permisivo
    "public": "120/minute",

    # Admin: operaciones de gestión
    "admin": "120/minute",
}
