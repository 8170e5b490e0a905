"""Servicio para gestión de usuarios del panel"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool
from typing import Dict
from uuid import UUID
import math
import logging

from shared.auth.password import hash_password
from shared.database.models import User, Order, RefreshToken, USER_ROLES
from shared.errors import NotFoundError, ValidationError, ConflictError
from services.admin.models.admin import UpdateUserRequest
from services.admin.services.audit_service import audit_service
from services.auth.services.auth_service import normalize_email, validate_password_strength

logger = logging.getLogger(__name__)


class UserManagementService:
    """Servicio para operaciones con usuarios (solo admin)"""

    async def list_users(self, db: AsyncSession, page: int = 1, limit: int = 20) -> Dict:
        """
        Listar usuarios (más recientes primero)

        Args:
            db: Sesión de base de datos
            page: Página (desde 1)
            limit: Tamaño de página

        Returns:
            {items, total, page, limit, total_pages}
        """
        stmt = select(User).order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
        users = (await db.execute(stmt)).scalars().all()
        total = (await db.execute(select(func.count(User.id)))).scalar() or 0

        return {
            "items": list(users),
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def get_user(self, db: AsyncSession, user_id: str) -> User:
        try:
            user_uuid = UUID(str(user_id))
        except ValueError:
            raise NotFoundError("Usuario no encontrado")

        user = await db.get(User, user_uuid)
        if user is None:
            raise NotFoundError("Usuario no encontrado")
        return user

    async def update_user(
        self,
        db: AsyncSession,
        user_id: str,
        data: UpdateUserRequest,
        actor: User
    ) -> User:
        """
        Actualizar nombre, email, contraseña, rol o estado de un usuario

        Cambiar la contraseña o desactivar al usuario revoca sus refresh tokens.

        Raises:
            NotFoundError: el usuario no existe
            ValidationError: rol inválido, contraseña débil o auto-desactivación
            ConflictError: el email ya pertenece a otro usuario
        """
        user = await self.get_user(db, user_id)
        changes = data.model_dump(exclude_unset=True)
        revoke_sessions = False

        if "role" in changes and changes["role"] not in USER_ROLES:
            raise ValidationError(f"Rol inválido. Debe ser uno de: {', '.join(USER_ROLES)}")
        if user.id == actor.id and changes.get("is_active") is False:
            raise ValidationError("No puedes desactivar tu propio usuario")

        if changes.get("email"):
            user.email = normalize_email(changes["email"])
        if changes.get("name") is not None:
            user.name = changes["name"]
        if changes.get("password"):
            validate_password_strength(changes["password"])
            user.password_hash = await run_in_threadpool(hash_password, changes["password"])
            revoke_sessions = True
        if changes.get("role"):
            user.role = changes["role"]
        if changes.get("is_active") is not None:
            user.is_active = changes["is_active"]
            revoke_sessions = revoke_sessions or not user.is_active

        if revoke_sessions:
            await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"El email {changes.get('email')} ya está registrado")

        fields = ", ".join(sorted(field for field in changes if field != "password"))
        if "password" in changes:
            fields = f"{fields}, password" if fields else "password"
        await audit_service.record(db, actor, "update", "user", user.id, f"Usuario {user.email}: {fields}")
        await db.refresh(user)
        return user

    async def delete_user(self, db: AsyncSession, user_id: str, actor: User) -> None:
        """
        Eliminar un usuario

        Raises:
            ValidationError: intento de eliminarse a sí mismo
            NotFoundError: el usuario no existe
            ConflictError: el usuario tiene órdenes (las órdenes no se borran)
        """
        user = await self.get_user(db, user_id)
        if user.id == actor.id:
            raise ValidationError("No puedes eliminar tu propio usuario")

        orders = await db.execute(select(func.count(Order.id)).where(Order.user_id == user.id))
        if (orders.scalar() or 0) > 0:
            raise ConflictError("El usuario tiene órdenes registradas, desactívalo en lugar de eliminarlo")

        email, deleted_id = user.email, user.id
        await db.execute(delete(RefreshToken).where(RefreshToken.user_id == deleted_id))
        await db.delete(user)
        await db.commit()

        await audit_service.record(db, actor, "delete", "user", deleted_id, f"Usuario eliminado: {email}")
        logger.info(f"Usuario eliminado: {email} por {actor.email}")


user_management_service = UserManagementService()
