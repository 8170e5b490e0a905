"""Servicio de autenticación: login, refresh, logout y gestión de contraseñas"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool
from datetime import timedelta
from typing import Dict, Optional
from uuid import UUID
import logging

from shared.auth.jwt_handler import (
    create_access_token,
    create_refresh_token,
    decode_token,
    REFRESH_TOKEN_TYPE,
)
from shared.auth.login_attempts import login_attempts
from shared.auth.password import hash_password, verify_password
from shared.config import settings
from shared.database.models import User, RefreshToken, USER_ROLES, utcnow
from shared.errors import Unauthorized, ValidationError, ConflictError
from services.admin.services.audit_service import audit_service

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Email o contraseña incorrectos"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    if not password or len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"La contraseña debe tener al menos {settings.PASSWORD_MIN_LENGTH} caracteres"
        )


class AuthService:
    """Servicio para sesiones de usuarios del panel (admin / editor)"""

    async def _verify_credentials(self, db: AsyncSession, email: str, password: str) -> User:
        """Usuario activo con esa contraseña, o Unauthorized con el mensaje genérico"""
        email = normalize_email(email)
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if user is None or not user.is_active:
            logger.warning(f"Login fallido para {email}: usuario inexistente o inactivo")
            raise Unauthorized(INVALID_CREDENTIALS)

        # bcrypt es CPU-bound: fuera del event loop
        valid = await run_in_threadpool(verify_password, password, user.password_hash)
        if not valid:
            logger.warning(f"Login fallido para {email}: contraseña incorrecta")
            raise Unauthorized(INVALID_CREDENTIALS)
        return user

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        client_ip: Optional[str] = None
    ) -> Dict:
        """
        Autenticar con email y contraseña

        Args:
            db: Sesión de base de datos
            email: Email (se compara en minúsculas)
            password: Contraseña en texto plano
            client_ip: IP del cliente; si viene, se aplica el bloqueo por fuerza bruta

        Returns:
            {access_token, refresh_token, user}

        Raises:
            TooManyRequests: la IP está bloqueada por intentos fallidos
            Unauthorized: credenciales incorrectas o usuario inactivo (mismo mensaje)
        """
        if client_ip:
            await login_attempts.check(client_ip)

        try:
            user = await self._verify_credentials(db, email, password)
        except Unauthorized:
            if client_ip:
                failures = await login_attempts.record_failure(client_ip)
                logger.info(f"Intentos fallidos desde {client_ip}: {failures}")
            raise

        if client_ip:
            await login_attempts.clear(client_ip)

        access_token = create_access_token(user)
        refresh_token = create_refresh_token(user)

        db.add(RefreshToken(
            user_id=user.id,
            token=refresh_token,
            expires_at=utcnow() + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        ))
        await db.commit()

        await audit_service.record(db, user, "login", "user", user.id)
        logger.info(f"Login exitoso: {user.email} ({user.role})")

        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "user": user,
        }

    async def refresh(self, db: AsyncSession, refresh_token: str) -> str:
        """Emitir un nuevo access token a partir de un refresh token vigente"""
        payload = decode_token(refresh_token, REFRESH_TOKEN_TYPE)

        stmt = select(RefreshToken).where(RefreshToken.token == refresh_token)
        result = await db.execute(stmt)
        stored = result.scalar_one_or_none()

        if stored is None:
            raise Unauthorized("Refresh token inválido")

        if stored.expires_at < utcnow():
            await db.delete(stored)
            await db.commit()
            raise Unauthorized("Refresh token expirado")

        try:
            user_id = UUID(payload["sub"])
        except ValueError:
            raise Unauthorized("Refresh token inválido")

        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            raise Unauthorized("Usuario no encontrado o inactivo")

        return create_access_token(user)

    async def logout(self, db: AsyncSession, refresh_token: str) -> None:
        """Revocar el refresh token. Un token desconocido no es un error."""
        stmt = select(RefreshToken).where(RefreshToken.token == refresh_token)
        result = await db.execute(stmt)
        stored = result.scalar_one_or_none()

        if stored is None:
            return

        user = await db.get(User, stored.user_id)
        await db.delete(stored)
        await db.commit()

        if user is not None:
            await audit_service.record(db, user, "logout", "user", user.id)
            logger.info(f"Logout: {user.email}")

    async def change_password(
        self,
        db: AsyncSession,
        user: User,
        current_password: str,
        new_password: str
    ) -> None:
        """
        Cambiar la contraseña del usuario actual

        Revoca todos sus refresh tokens: las demás sesiones deben volver a loguearse.
        """
        valid = await run_in_threadpool(verify_password, current_password, user.password_hash)
        if not valid:
            raise Unauthorized("La contraseña actual es incorrecta")

        validate_password_strength(new_password)

        user.password_hash = await run_in_threadpool(hash_password, new_password)
        await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
        await db.commit()

        await audit_service.record(db, user, "update", "user", user.id, "Cambio de contraseña")
        await db.refresh(user)
        logger.info(f"Contraseña actualizada: {user.email}")

    async def create_user(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        role: str,
        name: str,
        actor: Optional[User] = None
    ) -> User:
        """
        Crear usuario del panel

        Raises:
            ValidationError: rol inválido o contraseña débil
            ConflictError: el email ya está registrado
        """
        email = normalize_email(email)
        if role not in USER_ROLES:
            raise ValidationError(f"Rol inválido. Debe ser uno de: {', '.join(USER_ROLES)}")
        validate_password_strength(password)

        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(f"El email {email} ya está registrado")

        user = User(
            email=email,
            name=name or "",
            role=role,
            password_hash=await run_in_threadpool(hash_password, password),
            is_active=True,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Carrera con otro alta del mismo email
            await db.rollback()
            raise ConflictError(f"El email {email} ya está registrado")

        if actor is not None:
            await audit_service.record(db, actor, "create", "user", user.id, f"Usuario {email} ({role})")
        await db.refresh(user)
        logger.info(f"Usuario creado: {email} ({role})")
        return user

    async def purge_expired_refresh_tokens(self, db: AsyncSession) -> int:
        """Eliminar refresh tokens expirados. Retorna cuántos se borraron."""
        result = await db.execute(delete(RefreshToken).where(RefreshToken.expires_at < utcnow()))
        await db.commit()
        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Refresh tokens expirados eliminados: {deleted}")
        return deleted


auth_service = AuthService()
