"""Servicio de funciones (shows)"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from typing import Dict, List, Optional
from uuid import UUID
import math
import re
import time
import logging

from shared.database.models import Show, User, utcnow
from shared.errors import NotFoundError, ConflictError
from services.admin.services.audit_service import audit_service
from services.catalog.models.catalog import ShowCreate, ShowUpdate

logger = logging.getLogger(__name__)

AUTO_ARCHIVE_INTERVAL_SECONDS = 60 * 60
SLUG_STRIP = re.compile(r"[^a-z0-9\u0590-\u05FF]+")


def slugify(title: str) -> str:
    """Slug desde el título (conserva letras hebreas)"""
    return SLUG_STRIP.sub("-", (title or "").lower()).strip("-")


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


def _today_iso() -> str:
    return utcnow().replace(hour=0, minute=0, second=0, microsecond=0).isoformat()


class ShowService:
    """
    Servicio para gestionar funciones.

    Cada instancia recuerda cuándo archivó por última vez: el auto-archivado
    corre como máximo una vez por hora por instancia.
    """

    def __init__(self):
        self._last_auto_archive: Optional[float] = None

    async def auto_archive_past_shows(self, db: AsyncSession, force: bool = False) -> int:
        """Archivar funciones con fecha anterior a hoy (UTC). Retorna cuántas se archivaron."""
        now = time.monotonic()
        if (
            not force
            and self._last_auto_archive is not None
            and now - self._last_auto_archive < AUTO_ARCHIVE_INTERVAL_SECONDS
        ):
            return 0
        self._last_auto_archive = now

        stmt = (
            update(Show)
            .where(Show.archived.is_(False), Show.date_iso != "", Show.date_iso < _today_iso())
            .values(archived=True, updated_at=utcnow())
        )
        result = await db.execute(stmt)
        await db.commit()

        archived = result.rowcount or 0
        if archived:
            logger.info(f"Funciones archivadas automáticamente: {archived}")
        return archived

    async def list_shows(
        self,
        db: AsyncSession,
        page: int = 1,
        limit: int = 12,
        search: Optional[str] = None,
        status: Optional[str] = None,
        featured: Optional[bool] = None,
        archived: bool = False,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        tags: Optional[List[str]] = None,
        include_unpublished: bool = False
    ) -> Dict:
        """
        Listar funciones con filtros y paginación

        El listado público solo incluye funciones publicadas. Las archivadas
        se ordenan de la más reciente a la más antigua, el resto por fecha.
        """
        await self.auto_archive_past_shows(db)

        conditions = [Show.archived.is_(archived)]
        if not include_unpublished:
            conditions.append(Show.published.is_(True))
        if search:
            conditions.append(or_(
                Show.title.ilike(f"%{search}%"),
                Show.description.ilike(f"%{search}%"),
            ))
        if status:
            conditions.append(Show.status == status)
        if featured is not None:
            conditions.append(Show.featured.is_(featured))
        if start_date:
            conditions.append(Show.date_iso >= start_date)
        if end_date:
            conditions.append(Show.date_iso <= end_date)

        order = Show.date_iso.desc() if archived else Show.date_iso.asc()
        stmt = select(Show).where(*conditions).order_by(order)

        if tags:
            # tags es JSON: se filtra en memoria (el catálogo es chico)
            wanted = set(tags)
            shows = [
                show for show in (await db.execute(stmt)).scalars().all()
                if wanted.intersection(show.tags or [])
            ]
            total = len(shows)
            items = shows[(page - 1) * limit:page * limit]
        else:
            count_stmt = select(func.count(Show.id)).where(*conditions)
            total = (await db.execute(count_stmt)).scalar() or 0
            items = list((await db.execute(stmt.offset((page - 1) * limit).limit(limit))).scalars().all())

        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        }

    async def get_show(self, db: AsyncSession, show_id: str, include_unpublished: bool = False) -> Show:
        show_uuid = _parse_uuid(show_id)
        show = await db.get(Show, show_uuid) if show_uuid else None
        if show is None or (not include_unpublished and not show.published):
            raise NotFoundError("Función no encontrada")
        return show

    async def get_show_by_slug(self, db: AsyncSession, slug: str, include_unpublished: bool = False) -> Show:
        result = await db.execute(select(Show).where(Show.slug == slug))
        show = result.scalar_one_or_none()
        if show is None or (not include_unpublished and not show.published):
            raise NotFoundError("Función no encontrada")
        return show

    async def get_featured(self, db: AsyncSession, limit: int = 6) -> List[Show]:
        stmt = select(Show).where(
            Show.featured.is_(True),
            Show.published.is_(True),
            Show.archived.is_(False),
            Show.date_iso >= utcnow().isoformat(),
        ).order_by(Show.date_iso.asc()).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_upcoming(self, db: AsyncSession, limit: int = 12) -> List[Show]:
        stmt = select(Show).where(
            Show.published.is_(True),
            Show.archived.is_(False),
            Show.date_iso >= utcnow().isoformat(),
        ).order_by(Show.date_iso.asc()).limit(limit)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _commit_unique_slug(self, db: AsyncSession, slug: Optional[str]) -> None:
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Ya existe una función con el slug '{slug}'")

    async def create_show(self, db: AsyncSession, data: ShowCreate, actor: User) -> Show:
        values = data.model_dump()
        values["ticket_tiers"] = [tier.model_dump() for tier in data.ticket_tiers]
        values["slug"] = data.slug or slugify(data.title) or None

        show = Show(**values, created_by=actor.id, updated_by=actor.id)
        db.add(show)
        await self._commit_unique_slug(db, values["slug"])

        await audit_service.record(db, actor, "create", "show", show.id, f"Función creada: {show.title}")
        await db.refresh(show)
        logger.info(f"Función creada: {show.title} ({show.id})")
        return show

    async def update_show(self, db: AsyncSession, show_id: str, data: ShowUpdate, actor: User) -> Show:
        show = await self.get_show(db, show_id, include_unpublished=True)

        changes = data.model_dump(exclude_unset=True)
        if "ticket_tiers" in changes and data.ticket_tiers is not None:
            changes["ticket_tiers"] = [tier.model_dump() for tier in data.ticket_tiers]
        for field, value in changes.items():
            setattr(show, field, value)
        show.updated_by = actor.id
        await self._commit_unique_slug(db, show.slug)

        await audit_service.record(
            db, actor, "update", "show", show.id,
            f"Función actualizada: {show.title} ({', '.join(sorted(changes)) or 'sin cambios'})"
        )
        await db.refresh(show)
        return show

    async def delete_show(self, db: AsyncSession, show_id: str, actor: User) -> None:
        """Eliminar una función. Las órdenes conservan su snapshot."""
        show = await self.get_show(db, show_id, include_unpublished=True)
        title, deleted_id = show.title, show.id

        await db.delete(show)
        await db.commit()

        await audit_service.record(db, actor, "delete", "show", deleted_id, f"Función eliminada: {title}")
        logger.info(f"Función eliminada: {title} ({deleted_id})")


show_service = ShowService()
