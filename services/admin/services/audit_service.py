"""Servicio de auditoría: registro append-only de acciones"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, Optional
from uuid import UUID
import math
import logging

from shared.database.models import AuditLog, AUDIT_ACTIONS, AUDIT_ENTITY_TYPES

logger = logging.getLogger(__name__)


class AuditService:
    """
    Escritura y lectura del audit log.

    record() se llama DESPUÉS de confirmar la mutación principal y escribe en
    su propia transacción. Se espera inline, pero un fallo al escribir la
    auditoría se registra como warning y no se propaga: la mutación principal
    ya está confirmada y la respuesta al cliente no cambia.
    """

    async def record(
        self,
        db: AsyncSession,
        actor,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        diff_summary: Optional[str] = None
    ) -> Optional[AuditLog]:
        """
        Agregar una entrada al audit log

        Args:
            db: Sesión de base de datos
            actor: Usuario que realiza la acción
            action: create, update, delete, login, logout
            entity_type: Tipo de entidad afectada
            entity_id: ID de la entidad (opcional)
            diff_summary: Resumen del cambio (opcional)

        Returns:
            La entrada creada, o None si no se pudo escribir
        """
        if action not in AUDIT_ACTIONS:
            raise ValueError(f"Acción de auditoría inválida: {action}")
        if entity_type not in AUDIT_ENTITY_TYPES:
            raise ValueError(f"Tipo de entidad de auditoría inválido: {entity_type}")

        entry = AuditLog(
            actor_user_id=actor.id,
            actor_email=actor.email,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            diff_summary=diff_summary,
        )

        # Sesión propia sobre el mismo engine: un rollback aquí no expira los
        # objetos de la sesión del request
        try:
            async with AsyncSession(db.bind, expire_on_commit=False) as audit_db:
                audit_db.add(entry)
                await audit_db.commit()
        except SQLAlchemyError as e:
            logger.warning(
                f"No se pudo escribir audit log ({action} {entity_type} {entity_id}) "
                f"por {actor.email}: {type(e).__name__}: {e}"
            )
            return None

        return entry

    async def get_audit_logs(
        self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 50,
        entity_type: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Dict:
        """Listar entradas del audit log (más recientes primero) con paginación"""
        conditions = []
        if entity_type:
            conditions.append(AuditLog.entity_type == entity_type)
        if action:
            conditions.append(AuditLog.action == action)
        if user_id:
            try:
                conditions.append(AuditLog.actor_user_id == UUID(user_id))
            except ValueError:
                return {"items": [], "total": 0, "page": page, "limit": limit, "total_pages": 0}

        stmt = select(AuditLog).where(*conditions).order_by(AuditLog.created_at.desc())
        stmt = stmt.offset((page - 1) * limit).limit(limit)
        count_stmt = select(func.count(AuditLog.id)).where(*conditions)

        items = (await db.execute(stmt)).scalars().all()
        total = (await db.execute(count_stmt)).scalar() or 0

        return {
            "items": list(items),
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }


audit_service = AuditService()
