"""Servicio de páginas de contenido (about, terms, ...)"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from shared.database.models import Page, User, PAGE_KEYS
from shared.errors import NotFoundError, ValidationError
from services.admin.services.audit_service import audit_service
from services.catalog.models.catalog import PageUpdate


class PageService:
    """Páginas identificadas por una clave fija"""

    async def get_page(self, db: AsyncSession, key: str) -> Page:
        if key not in PAGE_KEYS:
            raise NotFoundError("Página no encontrada")
        result = await db.execute(select(Page).where(Page.key == key))
        page = result.scalar_one_or_none()
        if page is None:
            raise NotFoundError("Página no encontrada")
        return page

    async def list_pages(self, db: AsyncSession) -> List[Page]:
        result = await db.execute(select(Page).order_by(Page.key))
        return list(result.scalars().all())

    async def update_page(self, db: AsyncSession, key: str, data: PageUpdate, actor: User) -> Page:
        """Crear o reemplazar el contenido de una página"""
        if key not in PAGE_KEYS:
            raise ValidationError(f"Clave de página inválida. Debe ser una de: {', '.join(PAGE_KEYS)}")

        result = await db.execute(select(Page).where(Page.key == key))
        page = result.scalar_one_or_none()
        if page is None:
            page = Page(key=key)
            db.add(page)

        page.title = data.title
        page.content_rich_text = data.content_rich_text
        page.pdf_media_id = data.pdf_media_id or None
        page.updated_by = actor.id
        await db.commit()

        await audit_service.record(db, actor, "update", "page", key, f"Página actualizada: {key}")
        await db.refresh(page)
        return page


page_service = PageService()
