"""Servicio de preguntas frecuentes"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from typing import List
from uuid import UUID
import logging

from shared.database.models import FAQ, User
from shared.errors import NotFoundError, ValidationError
from services.admin.services.audit_service import audit_service
from services.catalog.models.catalog import FAQCreate, FAQUpdate

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General"


def _short(question: str) -> str:
    return question[:50]


class FAQService:
    """Servicio para gestionar FAQ"""

    async def list_active(self, db: AsyncSession) -> List[FAQ]:
        stmt = select(FAQ).where(FAQ.is_active.is_(True)).order_by(FAQ.category, FAQ.order)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_all(self, db: AsyncSession) -> List[FAQ]:
        result = await db.execute(select(FAQ).order_by(FAQ.category, FAQ.order))
        return list(result.scalars().all())

    async def categories(self, db: AsyncSession) -> List[str]:
        result = await db.execute(select(FAQ.category).distinct())
        return sorted(category for category in result.scalars().all() if category)

    async def get(self, db: AsyncSession, faq_id: str) -> FAQ:
        try:
            faq_uuid = UUID(str(faq_id))
        except ValueError:
            raise NotFoundError("Pregunta no encontrada")
        faq = await db.get(FAQ, faq_uuid)
        if faq is None:
            raise NotFoundError("Pregunta no encontrada")
        return faq

    async def create(self, db: AsyncSession, data: FAQCreate, actor: User) -> FAQ:
        category = data.category or DEFAULT_CATEGORY
        order = data.order
        if order is None:
            # Al final de su categoría
            result = await db.execute(select(func.max(FAQ.order)).where(FAQ.category == category))
            max_order = result.scalar()
            order = (max_order if max_order is not None else -1) + 1

        faq = FAQ(
            question=data.question,
            answer=data.answer,
            category=category,
            order=order,
            is_active=data.is_active,
        )
        db.add(faq)
        await db.commit()

        await audit_service.record(db, actor, "create", "faq", faq.id, f"FAQ creada: {_short(faq.question)}")
        await db.refresh(faq)
        return faq

    async def update(self, db: AsyncSession, faq_id: str, data: FAQUpdate, actor: User) -> FAQ:
        faq = await self.get(db, faq_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if field == "category" and not value:
                value = DEFAULT_CATEGORY
            setattr(faq, field, value)
        await db.commit()

        await audit_service.record(db, actor, "update", "faq", faq.id, f"FAQ actualizada: {_short(faq.question)}")
        await db.refresh(faq)
        return faq

    async def delete(self, db: AsyncSession, faq_id: str, actor: User) -> None:
        faq = await self.get(db, faq_id)
        question, deleted_id = faq.question, faq.id
        await db.delete(faq)
        await db.commit()

        await audit_service.record(db, actor, "delete", "faq", deleted_id, f"FAQ eliminada: {_short(question)}")

    async def reorder(self, db: AsyncSession, ids: List[str], actor: User) -> List[FAQ]:
        """
        Asignar order = posición en la lista recibida

        Raises:
            ValidationError: algún id mal formado o repetido
            NotFoundError: algún id no existe
        """
        try:
            faq_ids = [UUID(str(faq_id)) for faq_id in ids]
        except ValueError:
            raise ValidationError("Lista de ids inválida")
        if len(set(faq_ids)) != len(faq_ids):
            raise ValidationError("La lista de ids tiene duplicados")

        result = await db.execute(select(FAQ).where(FAQ.id.in_(faq_ids)))
        faqs = {faq.id: faq for faq in result.scalars().all()}
        missing = [str(faq_id) for faq_id in faq_ids if faq_id not in faqs]
        if missing:
            raise NotFoundError(f"Preguntas no encontradas: {', '.join(missing)}")

        for position, faq_id in enumerate(faq_ids):
            faqs[faq_id].order = position
        await db.commit()

        await audit_service.record(db, actor, "update", "faq", None, f"{len(faq_ids)} FAQ reordenadas")
        return [faqs[faq_id] for faq_id in faq_ids]


faq_service = FAQService()
