"""Rutas de autenticación"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.session import get_db
from shared.database.models import User
from shared.auth.dependencies import get_current_user
from shared.utils.rate_limiter import limiter, RATE_LIMITS, get_real_client_ip
from services.auth.models.auth import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RefreshResponse,
    ChangePasswordRequest,
    MessageResponse,
    UserResponse,
    user_response,
)
from services.auth.services.auth_service import auth_service


router = APIRouter()


@router.post("/login", response_model=LoginResponse)
@limiter.limit(RATE_LIMITS["auth"])
async def login(
    request: Request,  # Necesario para rate limiter
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Login con email y contraseña

    Retorna access token (15 min) y refresh token (7 días).
    Limitado a 10 intentos cada 15 minutos por IP. Tras 5 fallos seguidos
    la IP queda bloqueada 15 minutos (429); un login exitoso reinicia la cuenta.
    """
    result = await auth_service.login(
        db, credentials.email, credentials.password,
        client_ip=get_real_client_ip(request),
    )
    return LoginResponse(
        access_token=result["access_token"],
        refresh_token=result["refresh_token"],
        user=user_response(result["user"]),
    )


@router.post("/refresh", response_model=RefreshResponse)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db)
):
    """Obtener un nuevo access token con un refresh token vigente"""
    access_token = await auth_service.refresh(db, body.refresh_token)
    return RefreshResponse(access_token=access_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db)
):
    """Revocar el refresh token"""
    await auth_service.logout(db, body.refresh_token)
    return MessageResponse(message="Sesión cerrada")


@router.get("/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)):
    return user_response(current_user)


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Cambiar contraseña del usuario actual

    Cierra todas las sesiones abiertas (revoca los refresh tokens).
    """
    await auth_service.change_password(db, current_user, body.current_password, body.new_password)
    return MessageResponse(message="Contraseña actualizada")
