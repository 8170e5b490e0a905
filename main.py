"""API Gateway principal - Punto de entrada de la aplicación"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging
from contextlib import asynccontextmanager

from shared.config import settings
from shared.database import connection
from shared.cache.redis_client import close_redis
from shared.database.connection import init_db, close_db
from shared.errors import register_error_handlers
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from services.auth.services.auth_service import auth_service

# Configurar logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events de la aplicación"""
    # Startup
    logger.info("Iniciando aplicación...")
    if settings.is_production:
        for warning in settings.security_warnings():
            logger.warning(f"Configuración insegura: {warning}")

    await init_db()
    try:
        async with connection.async_session_maker() as db:
            await auth_service.purge_expired_refresh_tokens(db)
    except SQLAlchemyError as e:
        # Base sin tablas todavía: ejecutar scripts/seed.py
        logger.warning(f"No se pudieron purgar refresh tokens expirados: {e}")

    logger.info("Aplicación iniciada")
    yield
    # Shutdown
    logger.info("Cerrando aplicación...")
    await close_db()
    await close_redis()
    logger.info("Aplicación cerrada")


# Crear aplicación FastAPI
app = FastAPI(
    title="Barby API",
    description="Backend del sitio de la sala: funciones, órdenes, gift cards y CMS",
    version="1.0.0",
    lifespan=lifespan
)

# Configurar CORS PRIMERO (antes de rate limiting)
if settings.APP_ENV == "development":
    logger.info("Modo desarrollo: CORS configurado para permitir todos los orígenes")
    allow_origins = ["*"]
    allow_credentials = False  # No se puede usar credentials con allow_origins=["*"]
else:
    allow_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    allow_credentials = True
    logger.info(f"CORS origins configurados: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight requests por 1 hora
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


# Configurar rate limiting DESPUÉS de CORS
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
register_error_handlers(app)

# Incluir routers de cada servicio
from services.auth.routes.auth import router as auth_router
from services.orders.routes.orders import router as orders_router
from services.gift_cards.routes.gift_cards import router as gift_cards_router
from services.catalog.routes.public import router as public_router
from services.admin.routes.admin import router as admin_router
from services.media.routes.media import router as media_router, admin_router as media_admin_router

app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(orders_router, prefix="/api/orders", tags=["orders"])
app.include_router(gift_cards_router, prefix="/api/giftcards", tags=["giftcards"])
app.include_router(public_router, prefix="/api/public", tags=["public"])
app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
app.include_router(media_admin_router, prefix="/api/admin/media", tags=["admin"])
app.include_router(media_router, prefix="/api/media", tags=["media"])


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "ok", "service": "barby-api"}


@app.get("/ready")
async def ready():
    """Ready check endpoint - verifica la conexión a la base de datos"""
    if connection.async_session_maker is None:
        return JSONResponse(status_code=503, content={"status": "not ready", "database": "not initialized"})
    try:
        async with connection.async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Ready check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e)})
    return {"status": "ready", "database": "connected"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.APP_DEBUG
    )
