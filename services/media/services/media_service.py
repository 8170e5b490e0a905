"""Servicio de media: subida, listado, lectura y borrado de archivos"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import Dict, Optional, Tuple
from uuid import UUID
import math
import logging

from shared.config import settings
from shared.database.models import Media, User
from shared.errors import NotFoundError, ValidationError, PayloadTooLarge
from services.admin.services.audit_service import audit_service

logger = logging.getLogger(__name__)


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


class MediaService:
    """Archivos subidos desde el panel (imágenes de funciones, PDFs de páginas)"""

    async def upload(
        self,
        db: AsyncSession,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
        actor: User,
        alt: str = ""
    ) -> Media:
        """
        Guardar un archivo tal como llega (sin redimensionar ni recodificar)

        Raises:
            ValidationError: archivo vacío o tipo no permitido
            PayloadTooLarge: supera MEDIA_MAX_FILE_SIZE
        """
        if not data:
            raise ValidationError("Archivo vacío")
        content_type = (content_type or "").split(";")[0].strip().lower()
        if content_type not in settings.media_allowed_mime_types:
            raise ValidationError(f"Tipo de archivo no permitido: {content_type or 'desconocido'}")
        if len(data) > settings.MEDIA_MAX_FILE_SIZE:
            raise PayloadTooLarge(
                f"El archivo supera el máximo de {settings.MEDIA_MAX_FILE_SIZE // (1024 * 1024)} MB"
            )

        media = Media(
            original_name=(filename or "").strip() or "archivo",
            content_type=content_type,
            size_bytes=len(data),
            alt=(alt or "").strip(),
            data=data,
            created_by=actor.id,
        )
        db.add(media)
        await db.commit()

        await audit_service.record(
            db, actor, "create", "media", media.id, f"Archivo subido: {media.original_name}"
        )
        await db.refresh(media)
        logger.info(f"Media subida: {media.original_name} ({media.size_bytes} bytes) por {actor.email}")
        return media

    async def list_media(
        self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> Dict:
        """Listado paginado, más recientes primero. No carga los bytes."""
        conditions = []
        if search:
            conditions.append(Media.original_name.ilike(f"%{search}%"))
        if content_type:
            conditions.append(Media.content_type.ilike(f"%{content_type}%"))

        count_stmt = select(func.count(Media.id)).where(*conditions)
        total = (await db.execute(count_stmt)).scalar() or 0

        stmt = (
            select(Media)
            .where(*conditions)
            .order_by(Media.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list((await db.execute(stmt)).scalars().all())

        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def get(self, db: AsyncSession, media_id: str) -> Media:
        media_uuid = _parse_uuid(media_id)
        media = await db.get(Media, media_uuid) if media_uuid else None
        if media is None:
            raise NotFoundError("Archivo no encontrado")
        return media

    async def get_content(self, db: AsyncSession, media_id: str) -> Tuple[bytes, str]:
        """Bytes y content type para servir el archivo"""
        media_uuid = _parse_uuid(media_id)
        row = None
        if media_uuid:
            stmt = select(Media.data, Media.content_type).where(Media.id == media_uuid)
            row = (await db.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Archivo no encontrado")
        return row.data, row.content_type

    async def delete(self, db: AsyncSession, media_id: str, actor: User) -> None:
        """Eliminar un archivo. Las funciones o páginas que lo referencien quedan sin él."""
        media = await self.get(db, media_id)
        name, deleted_id = media.original_name, media.id

        await db.delete(media)
        await db.commit()

        await audit_service.record(db, actor, "delete", "media", deleted_id, f"Archivo eliminado: {name}")
        logger.info(f"Media eliminada: {name} ({deleted_id}) por {actor.email}")


media_service = MediaService()
